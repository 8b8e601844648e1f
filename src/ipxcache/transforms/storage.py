"""Source storage for the transform backend — local files and allow-listed URLs."""

from __future__ import annotations

import logging
import os
from collections.abc import Iterable
from pathlib import Path
from urllib.parse import urlsplit

import httpx
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ipxcache.errors.exceptions import BackendProcessingFailure

logger = logging.getLogger(__name__)

MAX_SOURCE_BYTES = 50 * 1024 * 1024  # 50 MB

_USER_AGENT = "ipxcache/1.0 (+image transform cache)"


class FilesystemStorage:
    """Reads source images below a root directory."""

    def __init__(self, root: str | Path, max_bytes: int = MAX_SOURCE_BYTES) -> None:
        self._root = Path(os.path.abspath(root))
        self._max_bytes = max_bytes

    @property
    def root(self) -> Path:
        return self._root

    def read(self, relative: str) -> bytes:
        """Return the bytes of ``relative``; messages never expose the root."""
        path = Path(os.path.normpath(self._root / relative.lstrip("/")))
        try:
            path.relative_to(self._root)
        except ValueError as e:
            raise BackendProcessingFailure("Forbidden path", http_status=403) from e

        if not path.is_file():
            raise BackendProcessingFailure(f"File not found: {relative}", http_status=404)

        size = path.stat().st_size
        if size > self._max_bytes:
            raise BackendProcessingFailure(
                f"Source too large ({size} bytes, max {self._max_bytes})", http_status=413
            )
        return path.read_bytes()


class HttpStorage:
    """Fetches remote source images from allow-listed hosts."""

    def __init__(
        self,
        domains: Iterable[str],
        client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
        max_bytes: int = MAX_SOURCE_BYTES,
    ) -> None:
        self._domains = frozenset(d.lower() for d in domains)
        self._client = client or httpx.AsyncClient(
            timeout=timeout,
            follow_redirects=True,
            headers={"User-Agent": _USER_AGENT, "Accept": "image/*,*/*;q=0.8"},
        )
        self._max_bytes = max_bytes

    def is_allowed(self, url: str | httpx.URL) -> bool:
        try:
            host = url.host if isinstance(url, httpx.URL) else urlsplit(url).hostname
        except ValueError:
            return False
        return bool(host) and host.lower() in self._domains

    async def fetch(self, url: str) -> bytes:
        if not self.is_allowed(url):
            raise BackendProcessingFailure("Forbidden host", http_status=403)

        try:
            response = await self._get(url)
        except httpx.HTTPError as e:
            raise _fetch_failure(url, e) from e

        try:
            if not self.is_allowed(response.url):
                logger.warning("Redirect from %s left the allow-list: %s", url, response.url)
                raise BackendProcessingFailure("Forbidden host", http_status=403)

            if response.status_code >= 400:
                logger.error("Upstream returned %d for %s", response.status_code, url)
                raise BackendProcessingFailure(
                    f"Failed to fetch source: {response.status_code}",
                    http_status=response.status_code,
                )

            try:
                declared = int(response.headers.get("content-length", ""))
            except ValueError:
                declared = None
            if declared is not None and declared > self._max_bytes:
                raise self._too_large(url)

            data = bytearray()
            try:
                async for chunk in response.aiter_bytes():
                    data.extend(chunk)
                    if len(data) > self._max_bytes:
                        raise self._too_large(url)
            except httpx.HTTPError as e:
                raise _fetch_failure(url, e) from e
        finally:
            await response.aclose()

        logger.debug("Fetched %s (%d bytes)", url, len(data))
        return bytes(data)

    def _too_large(self, url: str) -> BackendProcessingFailure:
        logger.warning("Source %s exceeds %d bytes", url, self._max_bytes)
        return BackendProcessingFailure(
            f"Source too large (max {self._max_bytes} bytes)", http_status=413
        )

    @retry(
        retry=retry_if_exception_type(httpx.TransportError),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=5),
        stop=stop_after_attempt(3),
        reraise=True,
    )
    async def _get(self, url: str) -> httpx.Response:
        """Open a streaming GET; the caller must close the response."""
        request = self._client.build_request("GET", url)
        return await self._client.send(request, stream=True)

    async def aclose(self) -> None:
        await self._client.aclose()


def _fetch_failure(url: str, error: httpx.HTTPError) -> BackendProcessingFailure:
    if isinstance(error, httpx.TimeoutException):
        logger.error("Timeout fetching %s", url)
        return BackendProcessingFailure("Source fetch timeout", http_status=504, original=error)
    logger.error("Fetch error for %s: %s", url, error)
    return BackendProcessingFailure("Failed to fetch source", http_status=502, original=error)
