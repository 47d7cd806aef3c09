from __future__ import annotations
import datetime as dt
from pydantic import BaseModel, ConfigDict, Field

from .targets import Target, target_for


class CamelModel(BaseModel):
    model_config = {"populate_by_name": True, "alias_generator": lambda s: ''.join([s.split('_')[0]] + [w.capitalize() for w in s.split('_')[1:]])}


# ---- Resolver

class ResolvedMapping(BaseModel):
    """Detached copy of a Mapping row; safe to use after the session closes."""
    model_config = ConfigDict(from_attributes=True, frozen=True)

    hash: str
    filename: str | None = None
    url: str | None = None
    object_key: str | None = None
    storage_tier: str | None = None
    file_extension: str | None = None
    password: str | None = None
    expires_at: dt.datetime | None = None
    view_count: int = 0
    created_at: dt.datetime | None = None

    @property
    def target(self) -> Target:
        return target_for(self.object_key, self.url, self.storage_tier)

    @property
    def has_password(self) -> bool:
        return bool(self.password)


# ---- Public API

class MappingInfo(CamelModel):
    hash: str
    filename: str | None = None
    url: str | None = None
    short_url: str
    file_extension: str | None = None
    created_at: dt.datetime | None = None
    expires_at: dt.datetime | None = None
    has_password: bool = False  # the password itself is never returned


class VerifyPasswordRequest(BaseModel):
    # Optional so that missing fields produce our 400 instead of a 422
    hash: str | None = None
    password: str | int | None = None  # forms send "1234", some clients 1234


class VerifyPasswordResponse(BaseModel):
    success: bool = True


class ErrorResponse(BaseModel):
    detail: str = Field(description="Human readable reason")
