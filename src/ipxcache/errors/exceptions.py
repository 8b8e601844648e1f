"""Custom exception hierarchy for ipxcache.

Every error carries the HTTP status the server layer answers with. All of
them are terminal for the request that raised them.
"""

from __future__ import annotations


class IPXError(Exception):
    """Base exception for all ipxcache errors."""

    http_status = 500
    error_type = "ipx_error"

    def __init__(self, message: str = "", http_status: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        if http_status is not None:
            self.http_status = http_status


class InvalidRequestShape(IPXError):
    """Request path is missing the modifiers or the source segment."""

    http_status = 400
    error_type = "invalid_request"


class MalformedSource(IPXError):
    """Source looks like a URL but cannot be parsed."""

    http_status = 400
    error_type = "malformed_source"


class ForbiddenDomain(IPXError):
    """Remote source host is not in the configured allow-list."""

    http_status = 403
    error_type = "forbidden_domain"

    def __init__(self, message: str = "", domain: str = "") -> None:
        super().__init__(message)
        self.domain = domain


class PathTraversalDenied(IPXError):
    """A computed path escapes its root (source root or cache root)."""

    http_status = 403
    error_type = "path_traversal"


class CacheDirectoryUnavailable(IPXError):
    """The cache entry's directory could not be created."""

    http_status = 500
    error_type = "cache_unavailable"


class BackendProcessingFailure(IPXError):
    """The transform backend failed.

    ``http_status`` is the backend-reported status when it has one
    (404 for a missing source, 502 for an upstream fetch error, ...).
    """

    error_type = "processing_failure"

    def __init__(
        self,
        message: str = "",
        http_status: int | None = None,
        original: Exception | None = None,
    ) -> None:
        super().__init__(message, http_status=http_status)
        self.original = original
