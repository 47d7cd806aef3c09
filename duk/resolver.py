from __future__ import annotations

import logging
import re

from sqlalchemy import update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .errors import NotFound, ResolverUnavailable
from .models import Mapping
from .schemas import ResolvedMapping

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = ("jpg", "jpeg", "png", "gif", "webp", "svg", "bmp", "ico")

CONTENT_TYPES = {
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "gif": "image/gif",
    "webp": "image/webp",
    "svg": "image/svg+xml",
    "bmp": "image/bmp",
    "ico": "image/x-icon",
}

_URL_SAFE = re.compile(r"^[A-Za-z0-9_-]+$")
# ".png%20", ".png+", ".png " as pasted into forums
_TRAILING_JUNK = re.compile(r"(%[0-9a-f]{2}|\s|\+)+$", re.IGNORECASE)


def is_url_safe(hash_: str) -> bool:
    return bool(hash_) and bool(_URL_SAFE.match(hash_))


def normalize_extension(ext: str | None) -> str | None:
    if not ext:
        return None
    ext = _TRAILING_JUNK.sub("", ext.strip().lstrip(".")).lower()
    return ext if ext in IMAGE_EXTENSIONS else None


def parse_hash_filename(raw: str) -> tuple[str, str | None]:
    """Split ``abc123.png`` into ``("abc123", "png")``.

    Unknown extensions are left attached, so the whole string is looked up as
    a hash (and, not being URL-safe, resolves to not-found).
    """
    head, dot, tail = raw.rpartition(".")
    if not dot:
        return raw, None
    ext = normalize_extension(tail)
    if ext is None:
        return raw, None
    return head, ext


def content_type_for(extension: str | None) -> str | None:
    if not extension:
        return None
    return CONTENT_TYPES.get(extension.lower().lstrip("."))


def resolve(db: Session, hash_: str) -> ResolvedMapping:
    """Look up one mapping by hash with a single primary-key query."""
    if not is_url_safe(hash_):
        raise NotFound()
    try:
        row = db.get(Mapping, hash_)
    except SQLAlchemyError as exc:
        logger.error(f"Mapping lookup for {hash_} failed: {exc}")
        raise ResolverUnavailable() from exc
    if row is None or row.is_deleted:
        raise NotFound()
    if not row.object_key and not row.url:
        # Rows from before ck_mappings_target existed
        logger.warning(f"Mapping {hash_} has neither object_key nor url")
        raise NotFound()
    return ResolvedMapping.model_validate(row)


def record_view(bind: Engine, hash_: str) -> None:
    """Best-effort ``view_count + 1``; runs after the response has been sent.

    The increment happens inside the UPDATE itself, so concurrent writers can
    only lose increments, never move the counter backwards.
    """
    stmt = (
        update(Mapping)
        .where(Mapping.hash == hash_)
        .values(view_count=Mapping.view_count + 1)
    )
    try:
        with bind.begin() as conn:
            conn.execute(stmt)
    except SQLAlchemyError as exc:
        logger.warning(f"Failed to record view for {hash_}: {exc}")
