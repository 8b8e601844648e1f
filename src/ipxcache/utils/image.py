"""Image format detection and content-type helpers."""

from __future__ import annotations

GENERIC_CONTENT_TYPE = "application/octet-stream"


def sniff_format(head: bytes) -> str | None:
    """Map leading magic bytes to an image format name."""
    if head.startswith(b"\xff\xd8\xff"):
        return "jpeg"
    if head.startswith(b"\x89PNG\r\n\x1a\n"):
        return "png"
    if head[:6] in (b"GIF87a", b"GIF89a"):
        return "gif"
    if head[:4] == b"RIFF" and head[8:12] == b"WEBP":
        return "webp"
    if head[4:8] == b"ftyp" and head[8:12] in (b"avif", b"avis"):
        return "avif"
    if head[:4] in (b"II*\x00", b"MM\x00*"):
        return "tiff"
    lowered = head.lstrip().lower()
    if lowered.startswith(b"<svg") or (lowered.startswith(b"<?xml") and b"<svg" in lowered):
        return "svg+xml"
    return None


def content_type_for(fmt: str | None) -> str:
    """``jpeg`` → ``image/jpeg``; unknown or missing → generic binary."""
    if not fmt:
        return GENERIC_CONTENT_TYPE
    fmt = fmt.lower()
    if fmt == "jpg":
        fmt = "jpeg"
    if fmt == "svg":
        fmt = "svg+xml"
    return f"image/{fmt}"
