"""Failure kinds of the smart-routing path.

Raised by the resolver, the access gate and the fetcher; converted to an
HTTP response only at the router boundary.
"""
from __future__ import annotations


class AccessError(Exception):
    status_code: int = 500
    detail: str = "Internal server error"

    def __init__(self, detail: str | None = None) -> None:
        if detail is not None:
            self.detail = detail
        super().__init__(self.detail)


class NotFound(AccessError):
    status_code = 404
    detail = "Not found"


class LinkExpired(AccessError):
    status_code = 410
    detail = "Link expired"


class PasswordRequired(AccessError):
    # Not a failure: the caller is shown the password form
    status_code = 200
    detail = "Password required"


class InvalidPassword(AccessError):
    status_code = 401
    detail = "Invalid password"


class ResolverUnavailable(AccessError):
    status_code = 503
    detail = "Mapping store unavailable"


class UpstreamFetchFailure(AccessError):
    status_code = 502
    detail = "Failed to fetch image"
