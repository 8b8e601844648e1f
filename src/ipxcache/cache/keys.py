"""Cache key generation — deterministic on-disk locations for (modifiers, source)."""

from __future__ import annotations

import hashlib
import json
import os
import re
from pathlib import Path

from ipxcache.errors.exceptions import PathTraversalDenied
from ipxcache.types import CacheLocation, SourceIdentity

# 32 hex chars = 128 bits of SHA-256
DIGEST_LENGTH = 32
ARTIFACT_SUFFIX = ".img"
FINGERPRINT_SUFFIX = ".img.sourcehash"

_SCHEME_PREFIX = re.compile(r"^[A-Za-z][A-Za-z0-9+.-]*:/+")
_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]")


def canonical_key(modifiers: str, identity: SourceIdentity) -> str:
    """Unambiguous key material: a JSON array of modifiers, kind tag and source."""
    return json.dumps([modifiers, identity.kind.value, identity.source], ensure_ascii=False)


def hash_key(canonical: str) -> str:
    """Truncated SHA-256 of the canonical key material."""
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:DIGEST_LENGTH]


def sanitize_modifiers(modifiers: str) -> str:
    """Make a modifier string safe to use as a single directory name."""
    stripped = _SCHEME_PREFIX.sub("", modifiers)
    return _UNSAFE_CHARS.sub("_", stripped) or "_"


def build_cache_key(
    modifiers: str,
    identity: SourceIdentity,
    cache_root: str | Path,
) -> CacheLocation:
    """Compose the cache location for a request.

    Raises PathTraversalDenied when the modifiers carry path separators or
    parent references, or when the composed location is not strictly under
    ``cache_root``. Touches no files.
    """
    if "/" in modifiers or "\\" in modifiers or ".." in modifiers:
        raise PathTraversalDenied("Modifiers may not contain path separators")

    root = Path(os.path.abspath(cache_root))
    digest = hash_key(canonical_key(modifiers, identity))
    directory = Path(os.path.normpath(root / sanitize_modifiers(modifiers)))
    artifact_path = directory / f"{digest}{ARTIFACT_SUFFIX}"
    fingerprint_path = directory / f"{digest}{FINGERPRINT_SUFFIX}"

    ensure_within(root, Path(os.path.normpath(artifact_path)))

    return CacheLocation(
        root=root,
        directory=directory,
        artifact_path=artifact_path,
        fingerprint_path=fingerprint_path,
        digest=digest,
    )


def ensure_within(root: Path, candidate: Path) -> None:
    """Raise PathTraversalDenied unless ``candidate`` is strictly below ``root``."""
    try:
        relative = candidate.relative_to(root)
    except ValueError as e:
        raise PathTraversalDenied("Cache location escapes the cache root") from e
    if not relative.parts:
        raise PathTraversalDenied("Cache location escapes the cache root")
