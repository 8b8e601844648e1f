"""HTTP surface — FastAPI app exposing /_ipx and /health."""

from ipxcache.server.app import CACHE_STATUS_HEADER, create_app

__all__ = ["CACHE_STATUS_HEADER", "create_app"]
