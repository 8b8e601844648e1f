"""Transform backend — load a source, apply modifiers, encode the result."""

from __future__ import annotations

import asyncio
import io
import logging
import re
from collections.abc import Mapping

import httpx
from PIL import Image, UnidentifiedImageError

from ipxcache.config.schema import AppConfig
from ipxcache.errors.exceptions import BackendProcessingFailure
from ipxcache.transforms.operations import (
    OPTION_MODIFIERS,
    ModifierValue,
    flatten,
    get_operations,
    normalize_modifiers,
    parse_int,
)
from ipxcache.transforms.storage import FilesystemStorage, HttpStorage
from ipxcache.types import TransformResult
from ipxcache.utils.image import sniff_format

logger = logging.getLogger(__name__)

_REMOTE_SOURCE = re.compile(r"^https?://", re.IGNORECASE)

# Output format name → Pillow encoder
_ENCODERS: dict[str, str] = {
    "jpeg": "JPEG",
    "png": "PNG",
    "webp": "WEBP",
    "gif": "GIF",
    "tiff": "TIFF",
    "avif": "AVIF",
}

_FORMAT_ALIASES = {"jpg": "jpeg", "mpo": "jpeg", "tif": "tiff"}

_QUALITY_FORMATS = frozenset({"jpeg", "webp", "avif"})


class ImageTransformer:
    """Resolves sources through its storages and runs the Pillow pipeline.

    CPU-bound work runs in a worker thread so the event loop stays free.
    """

    def __init__(self, fs_storage: FilesystemStorage, http_storage: HttpStorage) -> None:
        self._fs = fs_storage
        self._http = http_storage

    @classmethod
    def from_config(
        cls, config: AppConfig, client: httpx.AsyncClient | None = None
    ) -> ImageTransformer:
        return cls(
            FilesystemStorage(config.ipx.fs_dir),
            HttpStorage(config.ipx.domains, client=client),
        )

    async def process(
        self, source: str, modifiers: Mapping[str, ModifierValue]
    ) -> TransformResult:
        """Load ``source`` (relative path or URL) and apply ``modifiers``.

        Raises BackendProcessingFailure with the status to report.
        """
        if _REMOTE_SOURCE.match(source):
            data = await self._http.fetch(source)
        else:
            data = await asyncio.to_thread(self._fs.read, source)

        if sniff_format(data[:256]) == "svg+xml":
            logger.debug("Passing SVG source %s through unchanged", source)
            return TransformResult(data=data, format="svg+xml")

        return await asyncio.to_thread(transform_image, data, modifiers)

    async def aclose(self) -> None:
        await self._http.aclose()


def transform_image(data: bytes, modifiers: Mapping[str, ModifierValue]) -> TransformResult:
    """Decode ``data``, run every requested operation, encode."""
    mods = normalize_modifiers(modifiers)
    operations = get_operations()

    try:
        img = Image.open(io.BytesIO(data))
        img.load()
    except Image.DecompressionBombError as e:
        raise BackendProcessingFailure("Image too large", http_status=413, original=e) from e
    except (UnidentifiedImageError, OSError) as e:
        raise BackendProcessingFailure(
            "Unsupported or corrupt image", http_status=415, original=e
        ) from e

    for name in mods:
        if name not in operations and name not in OPTION_MODIFIERS:
            logger.debug("Ignoring unknown modifier '%s'", name)

    try:
        out_format = _output_format(mods.get("format"), img.format)
        for name, operation in operations.items():
            if name in mods:
                img = operation(img, mods[name], mods)
        return _encode(img, out_format, mods.get("quality"))
    except ValueError as e:
        raise BackendProcessingFailure(str(e), http_status=400, original=e) from e


def _output_format(requested: ModifierValue | None, source_format: str | None) -> str:
    if requested is None or requested is True or str(requested).lower() == "auto":
        fmt = _FORMAT_ALIASES.get((source_format or "").lower(), (source_format or "").lower())
        return fmt if fmt in _ENCODERS else "png"

    fmt = str(requested).lower()
    fmt = _FORMAT_ALIASES.get(fmt, fmt)
    if fmt not in _ENCODERS:
        raise ValueError(f"Unsupported output format: {requested}")
    return fmt


def _encode(img: Image.Image, fmt: str, quality: ModifierValue | None) -> TransformResult:
    options: dict[str, int] = {}
    if quality is not None and fmt in _QUALITY_FORMATS:
        options["quality"] = parse_int(quality, "quality", 1, 100)

    if fmt == "jpeg":
        img = flatten(img, True, {})
        if img.mode not in ("RGB", "L", "CMYK"):
            img = img.convert("RGB")
    elif fmt in ("webp", "avif") and img.mode not in ("RGB", "RGBA"):
        img = img.convert("RGBA" if "A" in img.getbands() or "transparency" in img.info else "RGB")

    buf = io.BytesIO()
    try:
        img.save(buf, format=_ENCODERS[fmt], **options)
    except KeyError as e:
        # Pillow built without this encoder
        raise BackendProcessingFailure(
            f"Unsupported output format: {fmt}", http_status=400, original=e
        ) from e
    except OSError as e:
        raise BackendProcessingFailure(f"Cannot encode {fmt}", original=e) from e
    return TransformResult(data=buf.getvalue(), format=fmt)
