"""Cache statistics models."""

from __future__ import annotations

from pydantic import BaseModel


class CacheStats(BaseModel):
    """Request-level counters kept by the orchestrator."""

    hits: int = 0
    misses: int = 0
    bypasses: int = 0
    shared: int = 0
    errors: int = 0

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses + self.bypasses
        return self.hits / total if total > 0 else 0.0


class DiskUsage(BaseModel):
    """On-disk footprint of the cache root."""

    entries: int = 0
    size_bytes: int = 0

    @property
    def size_mb(self) -> float:
        return self.size_bytes / (1024 * 1024)
