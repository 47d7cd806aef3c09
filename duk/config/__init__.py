"""Process-wide settings.

Modules call ``get_settings()`` when they need a value instead of binding
the instance at import time, so ``override()`` takes effect everywhere.
"""
from __future__ import annotations

from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Mapping

from .manager import ConfigManager
from .models import Settings

__all__ = ["Settings", "get_settings", "reload_settings", "config_path", "as_dict", "override"]

_manager = ConfigManager()


def get_settings() -> Settings:
    return _manager.settings


def reload_settings(*, overrides: Mapping[str, Any] | None = None) -> Settings:
    return _manager.reload(overrides=overrides)


def config_path() -> Path:
    return _manager.config_path


def as_dict() -> dict[str, Any]:
    return _manager.as_dict()


@contextmanager
def override(**values: Any) -> Iterator[Settings]:
    """Temporarily apply ``values`` on top of the current settings."""
    saved = _manager.settings
    try:
        yield _manager.update(values)
    finally:
        _manager.replace(saved)
