"""Source fingerprints used to detect stale cache entries.

Filesystem sources are fingerprinted by content, so an edit at the same path
invalidates the entry. Remote sources are fingerprinted by their URL only:
content changes behind a stable URL are not detected.
"""

from __future__ import annotations

import hashlib
import logging

from ipxcache.types import SourceIdentity, SourceKind

logger = logging.getLogger(__name__)

_CHUNK_SIZE = 1024 * 1024


def fingerprint_source(identity: SourceIdentity) -> str | None:
    """Return the SHA-256 hex fingerprint of a source, or None if it cannot be read."""
    if identity.kind == SourceKind.REMOTE:
        return hash_url(identity.source)

    if identity.absolute_path is None:
        return None
    try:
        digest = hashlib.sha256()
        with open(identity.absolute_path, "rb") as f:
            while chunk := f.read(_CHUNK_SIZE):
                digest.update(chunk)
        return digest.hexdigest()
    except OSError as e:
        logger.debug("Cannot fingerprint %s: %s", identity.absolute_path, e)
        return None


def hash_url(url: str) -> str:
    return hashlib.sha256(url.encode("utf-8")).hexdigest()
