"""Transform backend — source storage plus the Pillow operation pipeline."""

from ipxcache.transforms.engine import ImageTransformer, transform_image
from ipxcache.transforms.operations import get_operations, normalize_modifiers
from ipxcache.transforms.storage import FilesystemStorage, HttpStorage

__all__ = [
    "ImageTransformer",
    "FilesystemStorage",
    "HttpStorage",
    "get_operations",
    "normalize_modifiers",
    "transform_image",
]
