"""Response strategy selection for a resolved, access-checked mapping."""
from __future__ import annotations

import datetime as dt
import logging
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Union

from .classifier import ClientKind
from .config import get_settings
from .resolver import content_type_for
from .schemas import ResolvedMapping
from .targets import ExternalUrl, ObjectStoreKey

logger = logging.getLogger(__name__)

ONE_YEAR = 365 * 24 * 60 * 60

# 1x1 transparent GIF
PLACEHOLDER_GIF = (
    b"GIF89a\x01\x00\x01\x00\x80\x00\x00\x00\x00\x00\xff\xff\xff!\xf9\x04\x01\x00\x00\x00\x00"
    b",\x00\x00\x00\x00\x01\x00\x01\x00\x00\x02\x02D\x01\x00;"
)


@dataclass(frozen=True)
class RedirectToPreview:
    location: str


@dataclass(frozen=True)
class StreamObject:
    target: ObjectStoreKey
    extension: str | None


@dataclass(frozen=True)
class ProxyExternal:
    url: str
    extension: str | None


Strategy = Union[RedirectToPreview, StreamObject, ProxyExternal]


def preview_location(hash_: str) -> str:
    return get_settings().preview_path_template.format(hash=hash_)


def decide(
    mapping: ResolvedMapping,
    kind: ClientKind,
    extension: str | None = None,
    *,
    force_direct: bool = False,
) -> Strategy:
    """Pick how to answer a caller that has already passed the access gate."""
    if kind is ClientKind.BROWSER and not force_direct:
        return RedirectToPreview(preview_location(mapping.hash))

    extension = extension or mapping.file_extension
    match mapping.target:
        case ObjectStoreKey() as target:
            return StreamObject(target, extension)
        case ExternalUrl(url=url):
            return ProxyExternal(url, extension)
    raise TypeError(f"unsupported target {mapping.target!r}")


def cache_control_for(mapping: ResolvedMapping, now: dt.datetime | None = None) -> str:
    if mapping.password:
        return "private, max-age=0, must-revalidate"
    if mapping.expires_at is None:
        return f"public, max-age={ONE_YEAR}, immutable"
    now = now or dt.datetime.utcnow()
    expires_at = mapping.expires_at
    if expires_at.tzinfo is not None:
        expires_at = expires_at.astimezone(dt.timezone.utc).replace(tzinfo=None)
    remaining = int((expires_at - now).total_seconds())
    if remaining > ONE_YEAR:
        return f"public, max-age={ONE_YEAR}, immutable"
    return f"public, max-age={max(0, remaining)}"


@lru_cache(maxsize=4)
def _read_placeholder(path: str) -> bytes:
    return Path(path).read_bytes()


def placeholder_image() -> tuple[bytes, str]:
    """Bytes and media type served when the real image cannot be delivered."""
    path = get_settings().placeholder_path
    if path:
        try:
            media_type = content_type_for(Path(path).suffix) or "application/octet-stream"
            return _read_placeholder(path), media_type
        except OSError as e:
            logger.warning(f"Placeholder {path} unreadable, using built-in GIF: {e}")
    return PLACEHOLDER_GIF, "image/gif"
