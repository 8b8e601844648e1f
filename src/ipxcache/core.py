"""Top-level request handling: IPXCache."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from typing import Protocol

from ipxcache.cache.disk import DiskCacheStore
from ipxcache.cache.fingerprint import fingerprint_source
from ipxcache.cache.flight import SingleFlight
from ipxcache.cache.keys import build_cache_key
from ipxcache.cache.stats import CacheStats
from ipxcache.config.schema import AppConfig
from ipxcache.errors.exceptions import (
    BackendProcessingFailure,
    InvalidRequestShape,
    IPXError,
)
from ipxcache.modifiers import parse_modifiers
from ipxcache.resolver import SourceResolver
from ipxcache.transforms.engine import ImageTransformer
from ipxcache.types import (
    CacheLocation,
    CacheStatus,
    IPXResponse,
    SourceIdentity,
    TransformResult,
)
from ipxcache.utils.image import content_type_for

logger = logging.getLogger(__name__)

_ROUTE_PREFIX = "/_ipx/"


class TransformBackend(Protocol):
    async def process(
        self, source: str, modifiers: Mapping[str, str | bool]
    ) -> TransformResult: ...


class IPXCache:
    """Serves transformed images from the disk cache, transforming on miss.

    Per request: resolve the source and cache location, validate any cached
    entry against the source fingerprint, then either stream the cached
    artifact or run the backend (once per key across concurrent requests)
    and persist the result before answering.
    """

    def __init__(self, config: AppConfig, backend: TransformBackend | None = None) -> None:
        self._config = config
        self._resolver = SourceResolver(config.ipx.fs_dir, config.ipx.domains)
        self._store = DiskCacheStore(config.ipx.disk_cache_dir)
        self._backend = backend or ImageTransformer.from_config(config)
        self._flight: SingleFlight[tuple[TransformResult, bool]] = SingleFlight()
        self._stats = CacheStats()

    @property
    def config(self) -> AppConfig:
        return self._config

    @property
    def resolver(self) -> SourceResolver:
        return self._resolver

    @property
    def store(self) -> DiskCacheStore:
        return self._store

    def stats(self) -> CacheStats:
        return self._stats.model_copy()

    def locate(self, path: str) -> tuple[str, SourceIdentity, CacheLocation]:
        """Split, resolve and key a request path. No filesystem access."""
        modifiers, source = split_request_path(path)
        identity = self._resolver.resolve(source)
        location = build_cache_key(modifiers, identity, self._store.root)
        return modifiers, identity, location

    async def handle(self, path: str, if_none_match: str | None = None) -> IPXResponse:
        """Answer one ``/_ipx/<modifiers>/<source>`` request.

        Raises an IPXError subclass when the request fails; the error
        carries the HTTP status to answer with.
        """
        try:
            modifiers, identity, location = self.locate(path)
        except IPXError as e:
            self._stats.errors += 1
            logger.warning("Rejected /_ipx/%s: %s", path.lstrip("/"), e.message)
            raise

        fingerprint = await asyncio.to_thread(fingerprint_source, identity)
        if fingerprint is None:
            logger.info("Source %s is not readable; response will not be cached", identity.source)
        else:
            cached = await asyncio.to_thread(
                self._serve_cached, modifiers, identity, location, fingerprint, if_none_match
            )
            if cached is not None:
                self._stats.hits += 1
                return cached

        return await self._transform(modifiers, identity, location, fingerprint)

    async def aclose(self) -> None:
        close = getattr(self._backend, "aclose", None)
        if close is not None:
            await close()

    def _serve_cached(
        self,
        modifiers: str,
        identity: SourceIdentity,
        location: CacheLocation,
        fingerprint: str,
        if_none_match: str | None,
    ) -> IPXResponse | None:
        """Answer from the disk cache, or None on a miss. Runs in a worker thread."""
        cached = self._store.lookup(location)
        if cached is None:
            return None
        if not self._store.is_valid(cached.stored_fingerprint, fingerprint):
            logger.info("Stale cache entry for %s %s", modifiers, identity.source)
            return None

        etag = make_etag(location.digest, fingerprint)
        if etag_matches(if_none_match, etag):
            return IPXResponse(status_code=304, cache_status=CacheStatus.HIT, etag=etag)

        fmt = self._store.sniff(cached.artifact_path)
        try:
            body_iter = self._store.serve(cached.artifact_path)
        except OSError as e:
            logger.warning("Cached artifact %s unreadable: %s", cached.artifact_path, e)
            return None

        logger.debug("Cache hit for %s %s", modifiers, identity.source)
        return IPXResponse(
            content_type=content_type_for(fmt),
            cache_status=CacheStatus.HIT,
            body_iter=body_iter,
            etag=etag,
        )

    async def _transform(
        self,
        modifiers: str,
        identity: SourceIdentity,
        location: CacheLocation,
        fingerprint: str | None,
    ) -> IPXResponse:
        async def produce() -> tuple[TransformResult, bool]:
            result = await self._backend.process(
                identity.effective_source, parse_modifiers(modifiers)
            )
            written = False
            if fingerprint is not None:
                written = await asyncio.to_thread(self._write, location, result, fingerprint)
            return result, written

        try:
            (result, written), shared = await self._flight.run(location.digest, produce)
        except BackendProcessingFailure as e:
            self._stats.errors += 1
            logger.error(
                "Transform failed for %s %s (%d): %s",
                modifiers, identity.source, e.http_status, e.message,
            )
            raise
        except IPXError:
            self._stats.errors += 1
            raise
        except Exception as e:
            self._stats.errors += 1
            logger.exception("Unexpected transform error for %s %s", modifiers, identity.source)
            raise BackendProcessingFailure("Image processing failed", original=e) from e

        if shared:
            self._stats.shared += 1
        if written:
            self._stats.misses += 1
            status = CacheStatus.MISS
            etag = make_etag(location.digest, fingerprint) if fingerprint else None
        else:
            self._stats.bypasses += 1
            status = CacheStatus.BYPASS
            etag = None

        return IPXResponse(
            content_type=content_type_for(result.format),
            cache_status=status,
            body=result.data,
            etag=etag,
        )

    def _write(self, location: CacheLocation, result: TransformResult, fingerprint: str) -> bool:
        """Persist a result. Directory failures propagate; file failures only skip caching."""
        try:
            self._store.write(location, result.data, fingerprint)
        except OSError as e:
            logger.warning("Could not write cache entry %s: %s", location.artifact_path, e)
            return False
        return True


def split_request_path(path: str) -> tuple[str, str]:
    """``w_100/photos/cat.jpg`` → ``("w_100", "photos/cat.jpg")``."""
    if path.startswith(_ROUTE_PREFIX):
        path = path[len(_ROUTE_PREFIX):]
    modifiers, sep, source = path.lstrip("/").partition("/")
    if not modifiers or not sep or not source.strip("/"):
        raise InvalidRequestShape("Expected /_ipx/<modifiers>/<source>")
    return modifiers, source


def make_etag(digest: str, fingerprint: str) -> str:
    return f'W/"{digest}-{fingerprint[:16]}"'


def etag_matches(if_none_match: str | None, etag: str) -> bool:
    if not if_none_match:
        return False
    if if_none_match.strip() == "*":
        return True
    wanted = etag.removeprefix("W/")
    return any(tag.strip().removeprefix("W/") == wanted for tag in if_none_match.split(","))
