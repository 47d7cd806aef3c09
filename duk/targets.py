from __future__ import annotations

from dataclasses import dataclass
from typing import Union


@dataclass(frozen=True)
class ObjectStoreKey:
    """Image held in our own object storage; readable in-process."""

    key: str
    tier: str | None = None
    # Public URL of the same object, used when the in-process read fails
    public_url: str | None = None


@dataclass(frozen=True)
class ExternalUrl:
    """Image hosted elsewhere; must be fetched and streamed through."""

    url: str


Target = Union[ObjectStoreKey, ExternalUrl]


def target_for(object_key: str | None, url: str | None, tier: str | None = None) -> Target:
    if object_key:
        return ObjectStoreKey(key=object_key, tier=tier, public_url=url or None)
    if url:
        return ExternalUrl(url=url)
    raise ValueError("mapping has neither object_key nor url")
