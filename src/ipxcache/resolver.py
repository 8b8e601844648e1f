"""Source resolution — classify a request segment as a local file or a remote URL."""

from __future__ import annotations

import logging
import os
import re
from collections.abc import Iterable
from pathlib import Path
from urllib.parse import urlsplit

from ipxcache.errors.exceptions import (
    ForbiddenDomain,
    InvalidRequestShape,
    MalformedSource,
    PathTraversalDenied,
)
from ipxcache.types import SourceIdentity, SourceKind

logger = logging.getLogger(__name__)

# Accepts "https:/host" too: proxies that merge slashes collapse "://" to ":/"
_URL_PREFIX = re.compile(r"^(https?):/+", re.IGNORECASE)


class SourceResolver:
    """Resolves raw source segments against the source root and the domain allow-list."""

    def __init__(self, fs_dir: str | Path, domains: Iterable[str]) -> None:
        self._fs_root = Path(os.path.abspath(fs_dir))
        self._domains = frozenset(d.lower() for d in domains)

    @property
    def fs_root(self) -> Path:
        return self._fs_root

    @property
    def domains(self) -> frozenset[str]:
        return self._domains

    def resolve(self, raw_segment: str) -> SourceIdentity:
        """Return the typed identity for ``raw_segment``.

        Raises InvalidRequestShape, MalformedSource, ForbiddenDomain or
        PathTraversalDenied.
        """
        if not raw_segment or not raw_segment.strip("/"):
            raise InvalidRequestShape("Missing source in request path")
        if "\x00" in raw_segment:
            raise MalformedSource("Source contains a NUL byte")

        match = _URL_PREFIX.match(raw_segment)
        if match:
            url = f"{match.group(1).lower()}://{raw_segment[match.end():]}"
            return self._resolve_remote(url)
        return self._resolve_filesystem(raw_segment)

    def _resolve_remote(self, url: str) -> SourceIdentity:
        try:
            parsed = urlsplit(url)
            hostname = parsed.hostname
            # Accessing .port validates it
            parsed.port
        except ValueError as e:
            raise MalformedSource(f"Malformed source URL: {e}") from e

        if not hostname:
            raise MalformedSource("Source URL has no host")

        if hostname not in self._domains:
            logger.warning("Rejected remote source %s: host %s is not allowed", url, hostname)
            raise ForbiddenDomain(f"Forbidden host: {hostname}", domain=hostname)

        logger.debug("Resolved remote source %s (host %s)", url, hostname)
        return SourceIdentity(
            kind=SourceKind.REMOTE,
            source=url,
            effective_source=url,
            domain=hostname,
        )

    def _resolve_filesystem(self, raw_segment: str) -> SourceIdentity:
        # Local files have no query semantics
        raw_segment = raw_segment.partition("?")[0]
        parts = [p for p in raw_segment.replace("\\", "/").split("/") if p not in ("", ".")]
        if not parts:
            raise InvalidRequestShape("Missing source in request path")
        if ".." in parts:
            logger.warning("Rejected source with parent traversal: %s", raw_segment)
            raise PathTraversalDenied("Source path escapes the source root")

        relative = "/".join(parts)
        absolute = Path(os.path.normpath(self._fs_root / relative))
        try:
            absolute.relative_to(self._fs_root)
        except ValueError as e:
            logger.warning("Rejected source outside the source root: %s", raw_segment)
            raise PathTraversalDenied("Source path escapes the source root") from e

        logger.debug("Resolved filesystem source %s -> %s", relative, absolute)
        return SourceIdentity(
            kind=SourceKind.FILESYSTEM,
            source=relative,
            effective_source=relative,
            absolute_path=absolute,
        )
