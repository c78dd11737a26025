# === NAVMAP v1 ===
# {
#   "module": "CrawlKit.PageFetch.loader",
#   "purpose": "Load FetchSettings with file < environment < CLI precedence",
#   "sections": [
#     {"id": "read-file", "name": "_read_file", "anchor": "function-read-file", "kind": "function"},
#     {"id": "assign-nested", "name": "_assign_nested", "anchor": "function-assign-nested", "kind": "function"},
#     {"id": "coerce-env-value", "name": "_coerce_env_value", "anchor": "function-coerce-env-value", "kind": "function"},
#     {"id": "merge-env-overrides", "name": "_merge_env_overrides", "anchor": "function-merge-env-overrides", "kind": "function"},
#     {"id": "merge-cli-overrides", "name": "_merge_cli_overrides", "anchor": "function-merge-cli-overrides", "kind": "function"},
#     {"id": "load-settings", "name": "load_settings", "anchor": "function-load-settings", "kind": "function"}
#   ]
# }
# === /NAVMAP ===

"""
Settings loading with file/env/CLI precedence.

Implements three-level composition:
1. **File level** (YAML/JSON): base settings
2. **Environment level**: ``CRAWLKIT_*`` variables override the file
3. **CLI level**: programmatic overrides win

Environment variables use double-underscore nesting:
  CRAWLKIT_POLITENESS_DELAY=0.5          →  politeness_delay=0.5
  CRAWLKIT_PROXY__HOST=proxy.internal    →  proxy.host="proxy.internal"
  CRAWLKIT_LOGGING__LEVEL=debug          →  logging.level="DEBUG"

JSON values are parsed; other strings are type-coerced when possible.
"""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import ValidationError

from .errors import ConfigError
from .settings import FetchSettings

_LOGGER = logging.getLogger(__name__)

DEFAULT_ENV_PREFIX = "CRAWLKIT_"

# ============================================================================
# Helpers
# ============================================================================


def _read_file(path: str) -> dict[str, Any]:
    """
    Read a YAML or JSON settings file.

    Args:
        path: File path (suffix selects the format: .yaml/.yml or .json)

    Returns:
        Parsed mapping (empty for an empty file)

    Raises:
        ConfigError: If the file is missing, unreadable, malformed, or not a mapping
    """
    p = Path(path)
    if not p.exists():
        raise ConfigError(f"Config file not found: {path}")

    try:
        text = p.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read config file {path}: {e}") from e

    suffix = p.suffix.lower()
    if suffix in (".yaml", ".yml"):
        try:
            data = yaml.safe_load(text) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {path}: {e}") from e
    elif suffix == ".json":
        try:
            data = json.loads(text) if text.strip() else {}
        except json.JSONDecodeError as e:
            raise ConfigError(f"Invalid JSON in {path}: {e}") from e
    else:
        raise ConfigError(f"Unsupported file format: {suffix}. Use .yaml or .json")

    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping at the top level")
    return data


def _assign_nested(data: dict[str, Any], dotted_key: str, value: Any) -> None:
    """
    Assign ``value`` inside ``data`` following a dotted path.

    Example:
        _assign_nested(data, "proxy.host", "proxy.internal")
        → data["proxy"]["host"] = "proxy.internal"
    """
    keys = dotted_key.split(".")
    current = data

    for key in keys[:-1]:
        if not isinstance(current.get(key), dict):
            current[key] = {}
        current = current[key]

    current[keys[-1]] = value


def _coerce_env_value(value: str) -> Any:
    """Coerce an environment string: JSON first, then bool/int/float, else str."""
    try:
        return json.loads(value)
    except (json.JSONDecodeError, ValueError):
        pass

    if value.lower() in ("true", "false"):
        return value.lower() == "true"

    if value.isdigit() or (value.startswith("-") and value[1:].isdigit()):
        return int(value)

    try:
        return float(value)
    except ValueError:
        pass

    return value


def _merge_env_overrides(
    data: dict[str, Any], env_prefix: str = DEFAULT_ENV_PREFIX
) -> dict[str, Any]:
    """
    Overlay ``env_prefix``-prefixed environment variables onto ``data``.

    Args:
        data: Base settings mapping (modified in place)
        env_prefix: Environment variable prefix

    Returns:
        The modified mapping
    """
    for env_key, env_value in sorted(os.environ.items()):
        if not env_key.startswith(env_prefix):
            continue

        relative_key = env_key[len(env_prefix) :].lower()
        if not relative_key:
            continue
        dotted_key = relative_key.replace("__", ".")
        coerced_value = _coerce_env_value(env_value)
        _assign_nested(data, dotted_key, coerced_value)
        _LOGGER.debug("Environment override: %s → %s", env_key, dotted_key)

    return data


def _merge_cli_overrides(
    data: dict[str, Any], cli_overrides: Optional[Mapping[str, Any]]
) -> dict[str, Any]:
    """Recursively merge CLI overrides into ``data``; later values win."""
    if not cli_overrides:
        return data

    for key, value in cli_overrides.items():
        if isinstance(value, Mapping) and isinstance(data.get(key), dict):
            data[key] = _merge_cli_overrides(data[key], value)
        else:
            data[key] = dict(value) if isinstance(value, Mapping) else value
        _LOGGER.debug("CLI override: %s", key)

    return data


# ============================================================================
# Public API
# ============================================================================


def load_settings(
    path: Optional[str] = None,
    env_prefix: str = DEFAULT_ENV_PREFIX,
    cli_overrides: Optional[Mapping[str, Any]] = None,
) -> FetchSettings:
    """
    Load :class:`FetchSettings` from file, environment, and CLI overrides.

    **Precedence:** file < environment < CLI

    Args:
        path: Path to a YAML/JSON settings file (optional)
        env_prefix: Environment variable prefix
        cli_overrides: Programmatic overrides (optional)

    Returns:
        Validated, frozen :class:`FetchSettings`

    Raises:
        ConfigError: If the file cannot be read or the merged settings are invalid
    """
    data: dict[str, Any] = {}

    if path:
        try:
            data = _read_file(path)
        except ConfigError as e:
            _LOGGER.error("Failed to load config: %s", e)
            raise
        _LOGGER.info("Loaded config from %s", path)

    data = _merge_env_overrides(data, env_prefix)
    data = _merge_cli_overrides(data, cli_overrides)

    try:
        settings = FetchSettings.model_validate(data)
    except ValidationError as e:
        _LOGGER.error("Configuration validation failed: %s", e)
        raise ConfigError(f"Invalid page fetch settings: {e}") from e

    _LOGGER.info("Configuration validated. Config hash: %s...", settings.config_hash()[:8])
    return settings


__all__ = ["DEFAULT_ENV_PREFIX", "load_settings"]
