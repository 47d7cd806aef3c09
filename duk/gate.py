from __future__ import annotations

import datetime as dt
import logging
from typing import Mapping

from starlette.responses import Response

from .config import get_settings
from .errors import InvalidPassword, LinkExpired, PasswordRequired
from .schemas import ResolvedMapping
from .security import issue_session_token, password_matches, session_cookie_name, session_is_valid

logger = logging.getLogger(__name__)


def _utcnow() -> dt.datetime:
    return dt.datetime.utcnow()


def is_expired(mapping: ResolvedMapping, now: dt.datetime | None = None) -> bool:
    if mapping.expires_at is None:
        return False
    expires_at = mapping.expires_at
    if expires_at.tzinfo is not None:
        expires_at = expires_at.astimezone(dt.timezone.utc).replace(tzinfo=None)
    return expires_at < (now or _utcnow())


def check_access(
    mapping: ResolvedMapping,
    cookies: Mapping[str, str],
    now: dt.datetime | None = None,
) -> None:
    """Raise unless the caller may receive the mapping's content."""
    if is_expired(mapping, now):
        raise LinkExpired()
    if not mapping.password:
        return
    if session_is_valid(cookies.get(session_cookie_name(mapping.hash)), mapping.hash):
        return
    raise PasswordRequired()


def verify_password(
    mapping: ResolvedMapping,
    supplied: str,
    now: dt.datetime | None = None,
) -> str | None:
    """Check a submitted password and return a fresh session token.

    Returns ``None`` for mappings without a password: there is nothing to
    unlock and no cookie to issue.
    """
    if is_expired(mapping, now):
        raise LinkExpired()
    if not mapping.password:
        return None
    if not password_matches(supplied, mapping.password):
        logger.warning(f"Invalid password submitted for {mapping.hash}")
        raise InvalidPassword()
    return issue_session_token(mapping.hash)


def set_session_cookie(response: Response, hash_: str, token: str) -> None:
    settings = get_settings()
    response.set_cookie(
        key=session_cookie_name(hash_),
        value=token,
        max_age=settings.session_ttl_seconds,
        path="/",
        httponly=True,
        secure=settings.is_production,
        samesite="strict",
    )
