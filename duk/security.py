from __future__ import annotations
import datetime as dt
import hmac
from passlib.context import CryptContext
import jwt
from .config import get_settings

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

SESSION_COOKIE_PREFIX = "auth_"


def hash_password(p: str) -> str:
    return pwd_context.hash(p)


def password_matches(supplied: str, stored: str) -> bool:
    """Compare a submitted password against the stored value.

    Stored values are usually short numeric codes kept as-is; values created
    with ``hash_password`` are verified through passlib instead.
    """
    if pwd_context.identify(stored):
        return pwd_context.verify(supplied, stored)
    return hmac.compare_digest(supplied.encode("utf-8"), stored.encode("utf-8"))


def session_cookie_name(hash_: str) -> str:
    return f"{SESSION_COOKIE_PREFIX}{hash_}"


def issue_session_token(hash_: str, now: dt.datetime | None = None) -> str:
    settings = get_settings()
    now = now or dt.datetime.now(dt.timezone.utc)
    payload = {
        "hash": hash_,
        "iat": int(now.timestamp()),
        "exp": int((now + dt.timedelta(seconds=settings.session_ttl_seconds)).timestamp()),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm="HS256")


def session_is_valid(token: str | None, hash_: str) -> bool:
    if not token:
        return False
    try:
        payload = jwt.decode(token, get_settings().jwt_secret, algorithms=["HS256"])
    except jwt.PyJWTError:
        return False
    return payload.get("hash") == hash_
