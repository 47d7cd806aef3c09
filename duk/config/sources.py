"""Where settings values come from: a TOML file and the process environment.

TOML tables are flattened into field names (``[upstream] retries`` becomes
``upstream_retries``). Dict-valued fields such as ``s3_backends`` are taken
whole from their sub-table (``[s3.backends.<name>]``).
"""
from __future__ import annotations

import json
import tomllib
from pathlib import Path
from typing import Any, Mapping, Type

from pydantic import BaseModel

from .models import Settings

ENV_PREFIX = "DUK_"


def _dict_fields(model: Type[BaseModel]) -> set[str]:
    return {
        name
        for name, field in model.model_fields.items()
        if getattr(field.annotation, "__origin__", field.annotation) is dict
    }


def _flatten(data: Mapping[str, Any], dict_fields: set[str], prefix: str = "") -> dict[str, Any]:
    flat: dict[str, Any] = {}
    for key, value in data.items():
        name = f"{prefix}{key}"
        if isinstance(value, Mapping) and name not in dict_fields:
            flat.update(_flatten(value, dict_fields, f"{name}_"))
        else:
            flat[name] = value
    return flat


def load_from_toml(path: str | Path | None, model: Type[BaseModel] = Settings) -> dict[str, Any]:
    if not path or not Path(path).is_file():
        return {}
    with Path(path).open("rb") as fh:
        data = tomllib.load(fh)
    return _flatten(data, _dict_fields(model))


def env_overrides(model: Type[BaseModel], environ: Mapping[str, str]) -> dict[str, Any]:
    """Values from ``DUK_<FIELD>`` or plain ``<FIELD>``; the prefixed form wins.

    Dict-valued fields are read as JSON objects.
    """
    dict_fields = _dict_fields(model)
    found: dict[str, Any] = {}
    for name in model.model_fields:
        for key in (name.upper(), ENV_PREFIX + name.upper()):
            if key in environ:
                found[name] = environ[key]
        if name in dict_fields and name in found:
            found[name] = json.loads(found[name])
    return found
