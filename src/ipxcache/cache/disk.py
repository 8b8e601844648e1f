"""Disk cache store — one artifact file and one fingerprint record per entry."""

from __future__ import annotations

import contextlib
import logging
import os
from collections.abc import Iterator
from pathlib import Path
from tempfile import NamedTemporaryFile
from typing import BinaryIO

from ipxcache.cache.keys import ARTIFACT_SUFFIX, FINGERPRINT_SUFFIX, ensure_within
from ipxcache.cache.stats import DiskUsage
from ipxcache.errors.exceptions import CacheDirectoryUnavailable
from ipxcache.types import CachedArtifact, CacheLocation
from ipxcache.utils.image import sniff_format

logger = logging.getLogger(__name__)

_DEFAULT_CHUNK_SIZE = 64 * 1024
_SNIFF_BYTES = 256


class DiskCacheStore:
    """Filesystem-backed cache of transformed images.

    Entries are never evicted; removal is a manual operation (``clear``).
    """

    def __init__(self, cache_root: str | Path) -> None:
        self._root = Path(os.path.abspath(cache_root))

    @property
    def root(self) -> Path:
        return self._root

    def lookup(self, location: CacheLocation) -> CachedArtifact | None:
        """Existence check; reads only the fingerprint record, never the artifact."""
        if not location.artifact_path.is_file():
            return None
        return CachedArtifact(
            artifact_path=location.artifact_path,
            stored_fingerprint=self._read_fingerprint(location.fingerprint_path),
        )

    @staticmethod
    def is_valid(stored: str | None, current: str | None) -> bool:
        return stored is not None and current is not None and stored == current

    def serve(
        self, artifact_path: Path, chunk_size: int = _DEFAULT_CHUNK_SIZE
    ) -> Iterator[bytes]:
        """Stream the cached bytes in chunks.

        The file is opened eagerly so a vanished artifact raises OSError here
        rather than in the middle of a response.
        """
        f = open(artifact_path, "rb")
        return _iter_file(f, chunk_size)

    def sniff(self, artifact_path: Path) -> str | None:
        """Detect the image format of a cached artifact from its header."""
        try:
            with open(artifact_path, "rb") as f:
                return sniff_format(f.read(_SNIFF_BYTES))
        except OSError:
            return None

    def write(self, location: CacheLocation, data: bytes, fingerprint: str) -> None:
        """Persist an artifact, then its fingerprint record.

        The previous record is removed first so that an interrupted write
        leaves an entry that looks stale rather than one that pairs a new
        artifact with an old fingerprint.
        """
        ensure_within(self._root, Path(os.path.normpath(location.artifact_path)))
        ensure_within(self._root, Path(os.path.normpath(location.fingerprint_path)))

        try:
            location.directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.error("Cannot create cache directory %s: %s", location.directory, e)
            raise CacheDirectoryUnavailable("Cache directory is not writable") from e

        location.fingerprint_path.unlink(missing_ok=True)
        _atomic_write(location.artifact_path, data)
        _atomic_write(location.fingerprint_path, fingerprint.encode("ascii"))
        logger.debug("Cached %s (%d bytes)", location.artifact_path, len(data))

    # ── Manual maintenance ──

    def iter_artifacts(self) -> Iterator[Path]:
        if not self._root.is_dir():
            return
        yield from self._root.glob(f"*/*{ARTIFACT_SUFFIX}")

    @property
    def entry_count(self) -> int:
        return sum(1 for _ in self.iter_artifacts())

    @property
    def size_bytes(self) -> int:
        total = 0
        for path in self.iter_artifacts():
            with contextlib.suppress(OSError):
                total += path.stat().st_size
        return total

    def usage(self) -> DiskUsage:
        return DiskUsage(entries=self.entry_count, size_bytes=self.size_bytes)

    def clear(self) -> int:
        """Remove every entry. Returns the number of artifacts removed."""
        removed = 0
        for path in list(self.iter_artifacts()):
            record = path.with_name(path.name[: -len(ARTIFACT_SUFFIX)] + FINGERPRINT_SUFFIX)
            record.unlink(missing_ok=True)
            path.unlink(missing_ok=True)
            removed += 1
        if self._root.is_dir():
            for directory in list(self._root.iterdir()):
                if directory.is_dir():
                    with contextlib.suppress(OSError):
                        directory.rmdir()
        logger.info("Cleared %d cache entries from %s", removed, self._root)
        return removed

    @staticmethod
    def _read_fingerprint(path: Path) -> str | None:
        try:
            return path.read_text(encoding="ascii").strip() or None
        except (OSError, UnicodeDecodeError):
            return None


def _iter_file(f: BinaryIO, chunk_size: int) -> Iterator[bytes]:
    with f:
        while chunk := f.read(chunk_size):
            yield chunk


def _atomic_write(path: Path, data: bytes) -> None:
    """Write via a temp file in the same directory + os.replace."""
    tmp = NamedTemporaryFile(dir=path.parent, prefix=f".{path.name}.", delete=False)
    try:
        with tmp:
            tmp.write(data)
        os.replace(tmp.name, path)
    except BaseException:
        with contextlib.suppress(OSError):
            os.unlink(tmp.name)
        raise
