"""Shared Pydantic models for ipxcache."""

from __future__ import annotations

from enum import StrEnum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict

# ── Enums ──


class SourceKind(StrEnum):
    FILESYSTEM = "filesystem"
    REMOTE = "remote"


class CacheStatus(StrEnum):
    HIT = "HIT"
    MISS = "MISS"
    BYPASS = "BYPASS"


# ── Identity and location ──


class SourceIdentity(BaseModel):
    """Resolved, typed representation of where the original image lives.

    ``source`` is the key material (relative path or original URL);
    ``effective_source`` is what the transform backend is asked to load.
    """

    model_config = ConfigDict(frozen=True)

    kind: SourceKind
    source: str
    effective_source: str
    absolute_path: Path | None = None
    domain: str | None = None

    @property
    def is_remote(self) -> bool:
        return self.kind == SourceKind.REMOTE


class CacheLocation(BaseModel):
    model_config = ConfigDict(frozen=True)

    root: Path
    directory: Path
    artifact_path: Path
    fingerprint_path: Path
    digest: str


class CachedArtifact(BaseModel):
    """Result of a cache lookup: the artifact exists, the record may not."""

    artifact_path: Path
    stored_fingerprint: str | None = None


# ── Runtime models ──


class TransformResult(BaseModel):
    data: bytes
    format: str | None = None


class IPXResponse(BaseModel):
    """What the orchestrator hands to the HTTP layer.

    Exactly one of ``body`` / ``body_iter`` is set, except for 304 responses
    which carry neither.
    """

    model_config = {"arbitrary_types_allowed": True}

    status_code: int = 200
    content_type: str = "application/octet-stream"
    cache_status: CacheStatus = CacheStatus.BYPASS
    body: bytes | None = None
    body_iter: Any = None
    etag: str | None = None

    def read_all(self) -> bytes:
        """Drain the response into memory (tests and the CLI only)."""
        if self.body is not None:
            return self.body
        if self.body_iter is None:
            return b""
        return b"".join(self.body_iter)
