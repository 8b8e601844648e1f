"""Configuration hierarchy — merges sources in priority order.

Precedence (later overrides earlier):
  1. Package defaults
  2. Config file        (./config.yml, or IPX_CONFIG / --config)
  3. Environment variables (IPX_*)
  4. Runtime arguments
"""

from __future__ import annotations

import copy
import logging
import os
from pathlib import Path
from typing import Any

import yaml

from ipxcache.config.defaults import DEFAULT_CONFIG_FILE, get_defaults
from ipxcache.config.schema import AppConfig

logger = logging.getLogger(__name__)

_CONFIG_PATH_ENV = "IPX_CONFIG"

# Map of environment variables to nested config keys
_ENV_MAP: dict[str, tuple[str, ...]] = {
    "IPX_FS_DIR": ("ipxSettings", "fsDir"),
    "IPX_DOMAINS": ("ipxSettings", "httpStorage", "domains"),
    "IPX_CACHE_TTL_SECONDS": ("ipxSettings", "imageCacheTTLSeconds"),
    "IPX_DISK_CACHE_DIR": ("ipxSettings", "diskCacheDir"),
    "IPX_PORT": ("server", "port"),
    "IPX_HOST": ("server", "host"),
    "IPX_LOG_LEVEL": ("logLevel",),
}

# Runtime keyword arguments accepted by load_config_hierarchy()
_OVERRIDE_MAP: dict[str, tuple[str, ...]] = {
    "fs_dir": ("ipxSettings", "fsDir"),
    "domains": ("ipxSettings", "httpStorage", "domains"),
    "cache_ttl_seconds": ("ipxSettings", "imageCacheTTLSeconds"),
    "disk_cache_dir": ("ipxSettings", "diskCacheDir"),
    "port": ("server", "port"),
    "host": ("server", "host"),
    "log_level": ("logLevel",),
}

# Keys that should be parsed as specific types
_TYPE_MAP: dict[str, type] = {
    "imageCacheTTLSeconds": int,
    "port": int,
}


def load_config_hierarchy(
    config_path: str | Path | None = None,
    **runtime_overrides: Any,
) -> dict[str, Any]:
    """Load and merge configuration from all sources.

    Returns a nested dict shaped like config.yml with the final values.
    """
    config = get_defaults()

    # Layer 2: config file
    file_cfg = _load_yaml_config(_resolve_config_path(config_path))
    if file_cfg:
        config = _deep_merge(config, file_cfg)

    # Layer 3: environment variables
    for keys, value in _load_env_vars():
        _set_nested(config, keys, value)

    # Layer 4: runtime arguments (highest priority)
    # None means "not given on the command line"
    for name, value in runtime_overrides.items():
        if value is None:
            continue
        keys = _OVERRIDE_MAP.get(name)
        if keys is None:
            raise TypeError(f"Unknown configuration override: {name}")
        _set_nested(config, keys, value)

    return config


def load_app_config(
    config_path: str | Path | None = None,
    **runtime_overrides: Any,
) -> AppConfig:
    """Resolve the hierarchy into a validated, immutable AppConfig."""
    return AppConfig.model_validate(load_config_hierarchy(config_path, **runtime_overrides))


def _resolve_config_path(config_path: str | Path | None) -> Path:
    if config_path is not None:
        return Path(config_path)
    env_path = os.environ.get(_CONFIG_PATH_ENV)
    if env_path:
        return Path(env_path)
    return Path.cwd() / DEFAULT_CONFIG_FILE


def _load_yaml_config(path: Path) -> dict[str, Any] | None:
    """Load a YAML config file if it exists."""
    if not path.exists() or not path.is_file():
        logger.info("No config file at %s, using defaults", path)
        return None
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
        if isinstance(data, dict):
            return data
        logger.warning("Config file %s is not a mapping, ignoring", path)
    except (OSError, yaml.YAMLError) as e:
        logger.warning("Could not load config %s: %s. Using default configuration.", path, e)
    return None


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Merge ``override`` into a copy of ``base``; nested mappings merge, the rest replaces."""
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if value is None and isinstance(merged.get(key), dict):
            # An empty section ("server:") keeps the defaults
            continue
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _set_nested(config: dict[str, Any], keys: tuple[str, ...], value: Any) -> None:
    node = config
    for key in keys[:-1]:
        child = node.get(key)
        if not isinstance(child, dict):
            child = {}
            node[key] = child
        node = child
    node[keys[-1]] = value


def _load_env_vars() -> list[tuple[tuple[str, ...], Any]]:
    """Read IPX_* environment variables."""
    result: list[tuple[tuple[str, ...], Any]] = []
    for env_key, keys in _ENV_MAP.items():
        value = os.environ.get(env_key)
        if value is None:
            continue
        result.append((keys, _coerce_env_value(keys[-1], value)))
    return result


def _coerce_env_value(key: str, value: str) -> Any:
    """Coerce an environment variable string to the appropriate type."""
    if key == "domains":
        return [d.strip() for d in value.split(",") if d.strip()]

    target_type = _TYPE_MAP.get(key)
    if target_type:
        try:
            return target_type(value)
        except (ValueError, TypeError):
            logger.warning(
                "Cannot convert env var for '%s' to %s: %s", key, target_type.__name__, value
            )
            return value

    return value
