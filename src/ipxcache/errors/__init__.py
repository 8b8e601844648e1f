"""Error handling — request-terminal exceptions mapped to HTTP statuses."""

from ipxcache.errors.exceptions import (
    BackendProcessingFailure,
    CacheDirectoryUnavailable,
    ForbiddenDomain,
    InvalidRequestShape,
    IPXError,
    MalformedSource,
    PathTraversalDenied,
)

__all__ = [
    "IPXError",
    "InvalidRequestShape",
    "MalformedSource",
    "ForbiddenDomain",
    "PathTraversalDenied",
    "CacheDirectoryUnavailable",
    "BackendProcessingFailure",
]
