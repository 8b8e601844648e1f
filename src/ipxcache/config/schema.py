"""Pydantic models for server configuration.

Models are frozen: the configuration is built once at startup and passed
explicitly to every component.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ipxcache.config.defaults import (
    DEFAULT_CACHE_TTL_SECONDS,
    DEFAULT_DISK_CACHE_DIR,
    DEFAULT_DOMAINS,
    DEFAULT_FS_DIR,
    DEFAULT_HOST,
    DEFAULT_LOG_LEVEL,
    DEFAULT_PORT,
)

logger = logging.getLogger(__name__)

_FROZEN = ConfigDict(frozen=True, populate_by_name=True)


class HttpStorageConfig(BaseModel):
    model_config = _FROZEN

    domains: tuple[str, ...] = DEFAULT_DOMAINS

    @field_validator("domains", mode="before")
    @classmethod
    def _coerce_domains(cls, value: Any) -> tuple[str, ...]:
        if isinstance(value, str) or not isinstance(value, (list, tuple, set)):
            logger.warning(
                "httpStorage.domains must be a list, got %s; using defaults %s",
                type(value).__name__,
                ", ".join(DEFAULT_DOMAINS),
            )
            return DEFAULT_DOMAINS
        return tuple(str(d).strip().lower() for d in value if str(d).strip())


class IpxSettings(BaseModel):
    model_config = _FROZEN

    fs_dir: Path = Field(default=Path(DEFAULT_FS_DIR), alias="fsDir")
    http_storage: HttpStorageConfig = Field(
        default_factory=HttpStorageConfig, alias="httpStorage"
    )
    image_cache_ttl_seconds: int = Field(
        default=DEFAULT_CACHE_TTL_SECONDS, ge=0, alias="imageCacheTTLSeconds"
    )
    disk_cache_dir: Path = Field(default=Path(DEFAULT_DISK_CACHE_DIR), alias="diskCacheDir")

    @property
    def domains(self) -> tuple[str, ...]:
        return self.http_storage.domains


class ServerConfig(BaseModel):
    model_config = _FROZEN

    port: int = Field(default=DEFAULT_PORT, ge=0, le=65535)
    host: str = DEFAULT_HOST


class AppConfig(BaseModel):
    model_config = _FROZEN

    ipx: IpxSettings = Field(default_factory=IpxSettings, alias="ipxSettings")
    server: ServerConfig = Field(default_factory=ServerConfig)
    log_level: str = Field(default=DEFAULT_LOG_LEVEL, alias="logLevel")

    @property
    def cache_control(self) -> str:
        """Cache-Control header value for image responses."""
        ttl = self.ipx.image_cache_ttl_seconds
        return f"public, max-age={ttl}, s-maxage={ttl}, immutable, stale-while-revalidate=600"
