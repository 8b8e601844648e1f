"""Package-level default configuration values."""

from __future__ import annotations

from typing import Any

# Source settings
DEFAULT_FS_DIR = "./public"
DEFAULT_DOMAINS = ("storage.agrego.id",)

# Cache settings
DEFAULT_CACHE_TTL_SECONDS = 30 * 24 * 3600
DEFAULT_DISK_CACHE_DIR = "./.cache/ipx"

# Server settings
DEFAULT_PORT = 4321
DEFAULT_HOST = "0.0.0.0"

# Config file looked up in the working directory
DEFAULT_CONFIG_FILE = "config.yml"

# Log level
DEFAULT_LOG_LEVEL = "INFO"


def get_defaults() -> dict[str, Any]:
    """Return all defaults as a nested dictionary shaped like config.yml."""
    return {
        "ipxSettings": {
            "fsDir": DEFAULT_FS_DIR,
            "httpStorage": {
                "domains": list(DEFAULT_DOMAINS),
            },
            "imageCacheTTLSeconds": DEFAULT_CACHE_TTL_SECONDS,
            "diskCacheDir": DEFAULT_DISK_CACHE_DIR,
        },
        "server": {
            "port": DEFAULT_PORT,
            "host": DEFAULT_HOST,
        },
        "logLevel": DEFAULT_LOG_LEVEL,
    }
