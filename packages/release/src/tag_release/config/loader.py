from __future__ import annotations

import json
from pathlib import Path

import jsonschema
from pydantic import TypeAdapter, ValidationError

from tag_release.core import ConfigError, read_json

from .models import ReleaseConfig

DEFAULT_CONFIG_NAME = "release.json"


def schema_for_release_config() -> dict:
    return TypeAdapter(ReleaseConfig).json_schema()


def resolve_config_path(workspace: Path, explicit: Path | None = None) -> Path | None:
    """
    Resolve the release config file.

    Priority:
      1) explicit argument (must exist)
      2) {workspace}/release.json when present
      3) None, meaning built-in defaults
    """
    if explicit is not None:
        p = Path(explicit).expanduser().resolve()
        if not p.is_file():
            raise ConfigError(f"Release config not found: {p}")
        return p

    cand = Path(workspace) / DEFAULT_CONFIG_NAME
    if cand.is_file():
        return cand.resolve()
    return None


def load_release_config(path: Path | None) -> ReleaseConfig:
    if path is None:
        return ReleaseConfig()

    try:
        raw = read_json(Path(path))
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigError(f"Cannot read release config {path}: {e}") from e

    try:
        jsonschema.validate(instance=raw, schema=schema_for_release_config())
    except jsonschema.ValidationError as e:
        raise ConfigError(f"Release config {path} is invalid: {e.message}") from e

    try:
        return ReleaseConfig.model_validate(raw)
    except ValidationError as e:
        raise ConfigError(f"Release config {path} is invalid: {e}") from e
