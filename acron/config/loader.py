"""Configuration loading utilities."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from acron.config.schema import Config

DEFAULT_CONFIG_PATH = Path("acron.yml")


class ConfigError(ValueError):
    """Raised when a config file cannot be read or decoded."""


def _is_yaml(path: Path) -> bool:
    return path.suffix.lower() in (".yml", ".yaml")


def load_raw_config(path: Path) -> dict[str, Any]:
    """Read and decode a config file without validating it."""
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"cannot read config {path}: {e}") from e

    try:
        data = yaml.safe_load(text) if _is_yaml(path) else json.loads(text)
    except (yaml.YAMLError, json.JSONDecodeError) as e:
        raise ConfigError(f"cannot decode config {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"config {path} must be a mapping at the top level")
    return data


def load_config(path: Path | str = DEFAULT_CONFIG_PATH) -> Config:
    """Load configuration from a YAML (.yml/.yaml) or JSON file."""
    p = Path(path)
    data = load_raw_config(p)
    try:
        return Config.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"invalid config {p}: {e}") from e


def dump_config(config: Config, fmt: str = "yaml") -> str:
    """Render a config back to YAML or JSON text."""
    data = config.model_dump(mode="json")
    if fmt == "json":
        return json.dumps(data, indent=2)
    return yaml.safe_dump(data, sort_keys=False, allow_unicode=True)
