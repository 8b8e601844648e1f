"""Cache subsystem — content-validated disk cache with hashed keys."""

from ipxcache.cache.disk import DiskCacheStore
from ipxcache.cache.fingerprint import fingerprint_source
from ipxcache.cache.flight import SingleFlight
from ipxcache.cache.keys import build_cache_key, sanitize_modifiers
from ipxcache.cache.stats import CacheStats, DiskUsage

__all__ = [
    "DiskCacheStore",
    "SingleFlight",
    "CacheStats",
    "DiskUsage",
    "build_cache_key",
    "fingerprint_source",
    "sanitize_modifiers",
]
