"""Image operations — one registered function per modifier.

Operations run in registration order, whatever order the modifiers were
given in. Each receives the current image, its own modifier value and the
full (alias-normalized) modifier mapping, and returns a new image. Invalid
values raise ValueError.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Mapping

import numpy as np
from PIL import Image, ImageColor, ImageFilter, ImageOps

logger = logging.getLogger(__name__)

ModifierValue = str | bool

MAX_DIMENSION = 8192

# Short names accepted in URLs
ALIASES: dict[str, str] = {
    "w": "width",
    "h": "height",
    "s": "resize",
    "f": "format",
    "q": "quality",
    "b": "background",
    "pos": "position",
}

# Modifiers consumed by other operations or by the encoder
OPTION_MODIFIERS = frozenset(
    {"width", "height", "fit", "position", "enlarge", "background", "format", "quality", "animated"}
)

FITS = ("cover", "contain", "fill", "inside", "outside")

_POSITIONS: dict[str, tuple[float, float]] = {
    "center": (0.5, 0.5),
    "centre": (0.5, 0.5),
    "top": (0.5, 0.0),
    "bottom": (0.5, 1.0),
    "left": (0.0, 0.5),
    "right": (1.0, 0.5),
}

_HEX_COLOR = re.compile(r"^[0-9a-fA-F]{3,8}$")

# Registry of operations, in application order
_OPERATIONS: dict[str, Callable[..., Image.Image]] = {}


def _register(name: str) -> Callable:
    """Decorator to register an image operation."""
    def decorator(fn: Callable[..., Image.Image]) -> Callable[..., Image.Image]:
        _OPERATIONS[name] = fn
        return fn
    return decorator


def get_operations() -> dict[str, Callable[..., Image.Image]]:
    return dict(_OPERATIONS)


def normalize_modifiers(modifiers: Mapping[str, ModifierValue]) -> dict[str, ModifierValue]:
    """Expand aliases; a bare ``width``/``height`` implies a resize."""
    result: dict[str, ModifierValue] = {}
    for name, value in modifiers.items():
        result[ALIASES.get(name, name)] = value
    if ("width" in result or "height" in result) and "resize" not in result:
        result["resize"] = True
    return result


# ── Value parsing ──


def parse_int(value: ModifierValue, name: str, minimum: int = 0, maximum: int | None = None) -> int:
    if value is True:
        raise ValueError(f"Modifier '{name}' needs a value")
    try:
        number = int(float(value))
    except (TypeError, ValueError, OverflowError) as e:
        raise ValueError(f"Invalid value for '{name}': {value}") from e
    if number < minimum or (maximum is not None and number > maximum):
        raise ValueError(f"Value for '{name}' out of range: {value}")
    return number


def parse_float(value: ModifierValue, name: str, default: float) -> float:
    if value is True:
        return default
    try:
        return float(value)
    except (TypeError, ValueError) as e:
        raise ValueError(f"Invalid value for '{name}': {value}") from e


def parse_color(value: ModifierValue) -> tuple[int, ...]:
    if value is True:
        raise ValueError("Modifier 'background' needs a color")
    text = str(value)
    if _HEX_COLOR.match(text):
        text = f"#{text}"
    try:
        return ImageColor.getrgb(text)
    except ValueError as e:
        raise ValueError(f"Invalid color: {value}") from e


def parse_flag(value: ModifierValue) -> bool:
    if value is True:
        return True
    return str(value).lower() not in ("0", "false", "no", "off")


def _target_size(modifiers: Mapping[str, ModifierValue]) -> tuple[int | None, int | None]:
    width: int | None = None
    height: int | None = None
    resize = modifiers.get("resize")
    if isinstance(resize, str):
        w, _, h = resize.lower().partition("x")
        width = parse_int(w, "resize", 1, MAX_DIMENSION) if w else None
        height = parse_int(h, "resize", 1, MAX_DIMENSION) if h else None
    if "width" in modifiers:
        width = parse_int(modifiers["width"], "width", 1, MAX_DIMENSION)
    if "height" in modifiers:
        height = parse_int(modifiers["height"], "height", 1, MAX_DIMENSION)
    return width, height


def _background(modifiers: Mapping[str, ModifierValue], default: tuple[int, ...]) -> tuple[int, ...]:
    if "background" in modifiers:
        return parse_color(modifiers["background"])
    return default


# ── Individual operations ──


@_register("trim")
def trim(img: Image.Image, value: ModifierValue, modifiers: Mapping[str, ModifierValue]) -> Image.Image:
    """Crop away borders matching the top-left pixel colour."""
    threshold = parse_float(value, "trim", 10.0)
    arr = np.asarray(img.convert("RGB"), dtype=np.int16)
    diff = np.abs(arr - arr[0, 0]).max(axis=2)
    mask = diff > threshold
    if not mask.any():
        return img

    rows = np.any(mask, axis=1)
    cols = np.any(mask, axis=0)
    rmin, rmax = np.where(rows)[0][[0, -1]]
    cmin, cmax = np.where(cols)[0][[0, -1]]
    return img.crop((int(cmin), int(rmin), int(cmax) + 1, int(rmax) + 1))


@_register("extract")
def extract(img: Image.Image, value: ModifierValue, modifiers: Mapping[str, ModifierValue]) -> Image.Image:
    """Crop a ``left_top_width_height`` region."""
    parts = str(value).replace(",", "_").split("_") if value is not True else []
    if len(parts) != 4:
        raise ValueError("Modifier 'extract' needs left_top_width_height")
    left, top, width, height = (parse_int(p, "extract") for p in parts)
    if width == 0 or height == 0 or left + width > img.width or top + height > img.height:
        raise ValueError("Extract region is outside the image")
    return img.crop((left, top, left + width, top + height))


@_register("resize")
def resize(img: Image.Image, value: ModifierValue, modifiers: Mapping[str, ModifierValue]) -> Image.Image:
    """Resize to width/height using the ``fit`` strategy."""
    width, height = _target_size(modifiers)
    if width is None and height is None:
        return img

    enlarge = parse_flag(modifiers["enlarge"]) if "enlarge" in modifiers else False
    fit = str(modifiers.get("fit", "cover")).lower()
    if fit not in FITS:
        raise ValueError(f"Unknown fit: {fit}")

    src_w, src_h = img.size
    if not enlarge and ((width or 0) > src_w or (height or 0) > src_h):
        return img

    if width is None or height is None:
        # One dimension given: keep the aspect ratio
        scale = width / src_w if width is not None else height / src_h
        size = (max(1, round(src_w * scale)), max(1, round(src_h * scale)))
        return img.resize(size, Image.LANCZOS)

    box = (width, height)
    if fit == "fill":
        return img.resize(box, Image.LANCZOS)
    if fit == "inside":
        return ImageOps.contain(img, box, Image.LANCZOS)
    if fit == "outside":
        scale = max(width / src_w, height / src_h)
        return img.resize((round(src_w * scale), round(src_h * scale)), Image.LANCZOS)
    if fit == "contain":
        if img.mode not in ("RGB", "RGBA"):
            img = img.convert("RGBA")
        color = _background(modifiers, (0, 0, 0, 0) if img.mode == "RGBA" else (0, 0, 0))
        return ImageOps.pad(img, box, Image.LANCZOS, color=color)

    position = str(modifiers.get("position", "center")).lower()
    centering = _POSITIONS.get(position)
    if centering is None:
        raise ValueError(f"Unknown position: {position}")
    return ImageOps.fit(img, box, Image.LANCZOS, centering=centering)


@_register("rotate")
def rotate(img: Image.Image, value: ModifierValue, modifiers: Mapping[str, ModifierValue]) -> Image.Image:
    """Rotate clockwise by degrees; a bare flag auto-orients from EXIF."""
    if value is True:
        return ImageOps.exif_transpose(img)
    angle = parse_float(value, "rotate", 0.0)
    if angle % 360 == 0:
        return img
    fill = _background(modifiers, (0, 0, 0, 0) if img.mode == "RGBA" else (0, 0, 0))
    if img.mode not in ("RGB", "RGBA"):
        img = img.convert("RGBA")
    return img.rotate(-angle, expand=True, resample=Image.BICUBIC, fillcolor=fill)


@_register("flip")
def flip(img: Image.Image, value: ModifierValue, modifiers: Mapping[str, ModifierValue]) -> Image.Image:
    """Mirror vertically."""
    return ImageOps.flip(img) if parse_flag(value) else img


@_register("flop")
def flop(img: Image.Image, value: ModifierValue, modifiers: Mapping[str, ModifierValue]) -> Image.Image:
    """Mirror horizontally."""
    return ImageOps.mirror(img) if parse_flag(value) else img


@_register("flatten")
def flatten(img: Image.Image, value: ModifierValue, modifiers: Mapping[str, ModifierValue]) -> Image.Image:
    """Merge the alpha channel onto the background colour (white by default)."""
    if not parse_flag(value) or ("A" not in img.getbands() and img.mode != "P"):
        return img
    rgba = img.convert("RGBA")
    canvas = Image.new("RGB", rgba.size, _background(modifiers, (255, 255, 255))[:3])
    canvas.paste(rgba, mask=rgba.getchannel("A"))
    return canvas


@_register("grayscale")
def grayscale(img: Image.Image, value: ModifierValue, modifiers: Mapping[str, ModifierValue]) -> Image.Image:
    if not parse_flag(value):
        return img
    return img.convert("LA") if "A" in img.getbands() else img.convert("L")


@_register("negate")
def negate(img: Image.Image, value: ModifierValue, modifiers: Mapping[str, ModifierValue]) -> Image.Image:
    if not parse_flag(value):
        return img
    return _per_colour_channels(img, ImageOps.invert)


@_register("normalize")
def normalize(img: Image.Image, value: ModifierValue, modifiers: Mapping[str, ModifierValue]) -> Image.Image:
    """Stretch contrast to the full range."""
    if not parse_flag(value):
        return img
    return _per_colour_channels(img, ImageOps.autocontrast)


@_register("threshold")
def threshold(img: Image.Image, value: ModifierValue, modifiers: Mapping[str, ModifierValue]) -> Image.Image:
    """Convert to black and white around a 0-255 threshold (default 128)."""
    level = 128 if value is True else parse_int(value, "threshold", 0, 255)
    return img.convert("L").point(lambda p: 255 if p >= level else 0)


@_register("blur")
def blur(img: Image.Image, value: ModifierValue, modifiers: Mapping[str, ModifierValue]) -> Image.Image:
    """Gaussian blur with the given sigma (fast box blur for a bare flag)."""
    img = _filterable(img)
    if value is True:
        return img.filter(ImageFilter.BoxBlur(1))
    sigma = parse_float(value, "blur", 1.0)
    if not 0.3 <= sigma <= 1000:
        raise ValueError(f"Value for 'blur' out of range: {value}")
    return img.filter(ImageFilter.GaussianBlur(radius=sigma))


@_register("median")
def median(img: Image.Image, value: ModifierValue, modifiers: Mapping[str, ModifierValue]) -> Image.Image:
    size = 3 if value is True else parse_int(value, "median", 1, 99)
    if size % 2 == 0:
        size += 1
    img = _filterable(img)
    return img.filter(ImageFilter.MedianFilter(size=size))


@_register("sharpen")
def sharpen(img: Image.Image, value: ModifierValue, modifiers: Mapping[str, ModifierValue]) -> Image.Image:
    img = _filterable(img)
    if value is True:
        return img.filter(ImageFilter.SHARPEN)
    sigma = parse_float(value, "sharpen", 1.0)
    return img.filter(ImageFilter.UnsharpMask(radius=sigma))


def _filterable(img: Image.Image) -> Image.Image:
    # Pillow cannot filter palette or 1-bit images
    if img.mode in ("P", "1"):
        return img.convert("RGBA" if "transparency" in img.info else "RGB")
    return img


def _per_colour_channels(img: Image.Image, fn: Callable[[Image.Image], Image.Image]) -> Image.Image:
    """Apply ``fn`` to the colour channels, leaving alpha untouched."""
    if img.mode in ("RGBA", "LA"):
        *colour, alpha = img.split()
        base = Image.merge("RGB", colour) if len(colour) == 3 else colour[0]
        out = fn(base)
        return Image.merge(img.mode, (*out.split(), alpha))
    if img.mode not in ("RGB", "L"):
        img = img.convert("RGB")
    return fn(img)
