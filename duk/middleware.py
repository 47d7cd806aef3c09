"""Path rewriting for extension-bearing hotlinks.

``/abc123.png`` is served by the same smart-route entry as ``/abc123``, so a
forum embed and a bare short link go through identical routing. Runs before
any router sees the request.
"""
from __future__ import annotations

import logging
import re

from starlette.types import ASGIApp, Receive, Scope, Send

from .config import get_settings
from .resolver import IMAGE_EXTENSIONS

logger = logging.getLogger(__name__)

SMART_ROUTE_PREFIX = "/api/smart-route"

_HOTLINK = re.compile(
    r"^/(?P<hash>[A-Za-z0-9_-]+)\.(?P<ext>" + "|".join(IMAGE_EXTENSIONS) + r")$",
    re.IGNORECASE,
)


def _is_reserved(path: str, admin_prefix: str) -> bool:
    prefix = admin_prefix.rstrip("/")
    return bool(prefix) and (path == prefix or path.startswith(prefix + "/"))


def rewrite_path(path: str, admin_prefix: str = "/admin") -> str | None:
    """Return the smart-route path for a hotlink path, or ``None`` to leave it alone."""
    if _is_reserved(path, admin_prefix):
        return None
    match = _HOTLINK.match(path)
    if not match:
        return None
    return f"{SMART_ROUTE_PREFIX}/{match.group('hash')}.{match.group('ext')}"


class HotlinkRewriteMiddleware:
    """Pure ASGI middleware; only ``path``/``raw_path`` change, the rest of the scope is passed on."""

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] == "http":
            new_path = rewrite_path(scope["path"], get_settings().admin_prefix)
            if new_path is not None:
                logger.debug(f"Rewriting {scope['path']} -> {new_path}")
                scope = dict(scope)
                scope["path"] = new_path
                scope["raw_path"] = new_path.encode("ascii")
        await self.app(scope, receive, send)
