"""FastAPI application: the /_ipx image endpoint and /health."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response, StreamingResponse

from ipxcache.config.schema import AppConfig
from ipxcache.core import IPXCache
from ipxcache.errors.exceptions import IPXError

logger = logging.getLogger(__name__)

CACHE_STATUS_HEADER = "X-IPX-Cache"


def create_app(config: AppConfig | None = None, ipx: IPXCache | None = None) -> FastAPI:
    """Build the ASGI app around one IPXCache.

    Pass ``ipx`` to reuse an existing orchestrator (tests inject one with a
    fake backend); otherwise one is built from ``config``.
    """
    if ipx is None:
        ipx = IPXCache(config or AppConfig())
    config = ipx.config

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info(
            "Serving %s (cache %s, %d allowed domains)",
            config.ipx.fs_dir, config.ipx.disk_cache_dir, len(config.ipx.domains),
        )
        yield
        await ipx.aclose()

    app = FastAPI(title="ipxcache", lifespan=lifespan)
    app.state.ipx = ipx

    @app.exception_handler(IPXError)
    async def ipx_error_handler(request: Request, exc: IPXError) -> JSONResponse:
        return JSONResponse(
            status_code=exc.http_status,
            content={"error": exc.error_type, "message": exc.message},
        )

    @app.get("/_ipx/{path:path}")
    async def ipx_image(path: str, request: Request) -> Response:
        """Serve ``/_ipx/<modifiers>/<source>`` from cache or via the transformer."""
        if request.url.query:
            path = f"{path}?{request.url.query}"
        result = await ipx.handle(path, if_none_match=request.headers.get("if-none-match"))

        headers = {
            "Cache-Control": config.cache_control,
            "Vary": "Accept-Encoding",
            CACHE_STATUS_HEADER: result.cache_status.value,
        }
        if result.etag:
            headers["ETag"] = result.etag

        if result.status_code == 304:
            return Response(status_code=304, headers=headers)
        if result.body_iter is not None:
            return StreamingResponse(
                result.body_iter, media_type=result.content_type, headers=headers
            )
        return Response(content=result.body, media_type=result.content_type, headers=headers)

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}

    return app
