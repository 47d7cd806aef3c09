from __future__ import annotations

import logging
import os
from pathlib import Path
from threading import RLock
from typing import Any, Mapping

from .models import Settings
from .sources import env_overrides, load_from_toml

logger = logging.getLogger(__name__)


class ConfigManager:
    """Holds the active Settings; layers are file, then environment, then explicit overrides."""

    def __init__(self, *, env_var: str = "DUK_CONFIG", default_file: str = "config.toml") -> None:
        self._env_var = env_var
        self._default_file = default_file
        self._lock = RLock()
        self._settings = self._build()

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def config_path(self) -> Path:
        return Path(os.environ.get(self._env_var) or self._default_file)

    def _build(self, overrides: Mapping[str, Any] | None = None) -> Settings:
        path = self.config_path
        values = load_from_toml(path, Settings)
        if values:
            logger.debug(f"Loaded {len(values)} settings from {path}")
        values.update(env_overrides(Settings, os.environ))
        values.update(overrides or {})
        return Settings(**values)

    def _swap(self, new_settings: Settings) -> Settings:
        with self._lock:
            self._settings = new_settings
        return new_settings

    def reload(self, *, overrides: Mapping[str, Any] | None = None) -> Settings:
        return self._swap(self._build(overrides))

    def update(self, values: Mapping[str, Any]) -> Settings:
        """Switch to a copy of the current settings with ``values`` applied."""
        return self._swap(Settings.model_validate({**self._settings.model_dump(), **values}))

    def replace(self, new_settings: Settings) -> Settings:
        return self._swap(new_settings)

    def as_dict(self) -> dict[str, Any]:
        return self._settings.model_dump()
