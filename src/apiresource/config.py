"""Configuration loading with XDG paths and precedence resolution.

Settings are a :class:`~apiresource.models.ClientSettings` object resolved
from, highest precedence first:

1. explicit overrides (command-line flags, keyword arguments),
2. environment variables (``APIRESOURCE_*``, see :data:`ENV_VARS`),
3. the project file ``./apiresource.json``,
4. the user file ``$XDG_CONFIG_HOME/apiresource/config.json``,
5. model defaults.

Files contain the JSON form of ``ClientSettings``, e.g.::

    {
      "base_url": "https://blog.example.com/api",
      "defaults": {"cache_enabled": true, "retry_count": 1}
    }
"""

from __future__ import annotations

import json
import os
import platform
from pathlib import Path
from typing import Any, Optional

from apiresource.exceptions import ConfigError
from apiresource.models import ClientSettings

_APP_NAME = "apiresource"
_CONFIG_FILENAME = "config.json"
_PROJECT_CONFIG_FILENAME = "apiresource.json"

ENV_VARS: dict[str, tuple[str, ...]] = {
    "APIRESOURCE_BASE_URL": ("base_url",),
    "APIRESOURCE_TIMEOUT": ("timeout",),
    "APIRESOURCE_CACHE_ENABLED": ("defaults", "cache_enabled"),
    "APIRESOURCE_CACHE_TIME_MS": ("defaults", "cache_time_ms"),
    "APIRESOURCE_RETRY_COUNT": ("defaults", "retry_count"),
    "APIRESOURCE_RETRY_DELAY_MS": ("defaults", "retry_delay_ms"),
    "APIRESOURCE_SUPPRESS_CACHE_HEADERS": ("defaults", "suppress_cache_request_headers"),
}
"""Environment variable -> settings path.  Values are coerced by Pydantic."""


# --- XDG path resolution ---


def _is_xdg_platform() -> bool:
    return platform.system() == "Linux" or platform.system().endswith("BSD")


def get_config_dir() -> Path:
    """Return the user configuration directory (not created).

    On Linux/BSD: ``$XDG_CONFIG_HOME/apiresource/`` (default
    ``~/.config/apiresource/``).  Elsewhere: ``~/.apiresource/``.
    """
    if _is_xdg_platform():
        env_value = os.environ.get("XDG_CONFIG_HOME", "")
        base = Path(env_value) if env_value else Path.home() / ".config"
        return base / _APP_NAME
    return Path.home() / f".{_APP_NAME}"


# --- File layers ---


def _read_json(path: Path, label: str) -> Optional[dict[str, Any]]:
    if not path.is_file():
        return None
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, ValueError) as exc:
        raise ConfigError(f"Invalid {label} config at {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Invalid {label} config at {path}: expected a JSON object")
    return data


def load_global_config() -> Optional[dict[str, Any]]:
    """Load ``config.json`` from :func:`get_config_dir`, or ``None`` if absent.

    Raises:
        ConfigError: If the file exists but is not a JSON object.
    """
    return _read_json(get_config_dir() / _CONFIG_FILENAME, "global")


def load_project_config() -> Optional[dict[str, Any]]:
    """Load ``./apiresource.json``, or ``None`` if absent.

    Raises:
        ConfigError: If the file exists but is not a JSON object.
    """
    return _read_json(Path.cwd() / _PROJECT_CONFIG_FILENAME, "project")


def _env_layer() -> dict[str, Any]:
    layer: dict[str, Any] = {}
    for var, path in ENV_VARS.items():
        value = os.environ.get(var)
        if value is None or value == "":
            continue
        target = layer
        for segment in path[:-1]:
            target = target.setdefault(segment, {})
        target[path[-1]] = value
    return layer


def _merge(base: dict[str, Any], layer: dict[str, Any]) -> dict[str, Any]:
    """Recursively overlay *layer* on *base*; nested dicts merge, other values replace."""
    merged = dict(base)
    for key, value in layer.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


# --- Precedence resolution ---


def resolve_settings(overrides: Optional[dict[str, Any]] = None) -> ClientSettings:
    """Resolve :class:`~apiresource.models.ClientSettings` across all layers.

    Args:
        overrides: Highest-precedence values in the same nested shape as
            the JSON files.  ``None`` values are ignored.

    Raises:
        ConfigError: If any layer is malformed or the merged result fails
            validation (e.g. ``APIRESOURCE_RETRY_COUNT=lots``).
    """
    merged: dict[str, Any] = {}
    for layer in (load_global_config(), load_project_config(), _env_layer()):
        if layer:
            merged = _merge(merged, layer)
    if overrides:
        merged = _merge(merged, _drop_none(overrides))

    try:
        return ClientSettings.model_validate(merged)
    except ValueError as exc:
        raise ConfigError(f"Invalid configuration: {exc}") from exc


def _drop_none(values: dict[str, Any]) -> dict[str, Any]:
    cleaned: dict[str, Any] = {}
    for key, value in values.items():
        if isinstance(value, dict):
            cleaned[key] = _drop_none(value)
        elif value is not None:
            cleaned[key] = value
    return cleaned
