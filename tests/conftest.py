import asyncio
import io

import pytest
from PIL import Image

from ipxcache.config.schema import AppConfig
from ipxcache.types import TransformResult

ALLOWED_DOMAIN = "images.example.com"


def make_png(size=(40, 30), color=(200, 30, 30)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", size, color).save(buf, format="PNG")
    return buf.getvalue()


class FakeBackend:
    """Transform backend stand-in that records every call."""

    def __init__(self, output: bytes, fmt: str = "png"):
        self.output = output
        self.format = fmt
        self.calls = []
        self.error = None
        self.delay = 0.0

    async def process(self, source, modifiers):
        self.calls.append((source, dict(modifiers)))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return TransformResult(data=self.output, format=self.format)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    """Keep IPX_* variables from the outer environment out of tests."""
    import os

    for key in list(os.environ):
        if key.startswith("IPX_"):
            monkeypatch.delenv(key)


@pytest.fixture
def png_bytes():
    """40x30 solid red PNG."""
    return make_png()


@pytest.fixture
def fs_dir(tmp_path, png_bytes):
    """Source root containing photos/cat.png."""
    root = tmp_path / "public"
    (root / "photos").mkdir(parents=True)
    (root / "photos" / "cat.png").write_bytes(png_bytes)
    return root


@pytest.fixture
def cache_dir(tmp_path):
    return tmp_path / "cache"


@pytest.fixture
def app_config(fs_dir, cache_dir):
    return AppConfig.model_validate({
        "ipxSettings": {
            "fsDir": str(fs_dir),
            "diskCacheDir": str(cache_dir),
            "httpStorage": {"domains": [ALLOWED_DOMAIN]},
        },
    })


@pytest.fixture
def fake_backend(png_bytes):
    return FakeBackend(png_bytes)


@pytest.fixture
def config_yaml(tmp_path, fs_dir, cache_dir):
    """Write a config.yml pointing at the test directories and return its path."""
    content = f"""
ipxSettings:
  fsDir: {fs_dir}
  diskCacheDir: {cache_dir}
  httpStorage:
    domains:
      - {ALLOWED_DOMAIN}
  imageCacheTTLSeconds: 3600
server:
  port: 8080
"""
    path = tmp_path / "config.yml"
    path.write_text(content)
    return path
