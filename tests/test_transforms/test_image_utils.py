"""Tests for format sniffing and content types."""

import pytest

from ipxcache.utils.image import GENERIC_CONTENT_TYPE, content_type_for, sniff_format


class TestSniffFormat:
    @pytest.mark.parametrize(
        ("head", "fmt"),
        [
            (b"\xff\xd8\xff\xe0rest", "jpeg"),
            (b"\x89PNG\r\n\x1a\nrest", "png"),
            (b"GIF89a....", "gif"),
            (b"RIFF\x00\x00\x00\x00WEBPVP8 ", "webp"),
            (b"\x00\x00\x00\x1cftypavif", "avif"),
            (b"II*\x00rest", "tiff"),
            (b'<svg xmlns="http://www.w3.org/2000/svg"/>', "svg+xml"),
            (b'<?xml version="1.0"?><svg/>', "svg+xml"),
        ],
    )
    def test_known(self, head, fmt):
        assert sniff_format(head) == fmt

    def test_unknown(self):
        assert sniff_format(b"hello") is None
        assert sniff_format(b"") is None


class TestContentType:
    def test_known(self):
        assert content_type_for("png") == "image/png"
        assert content_type_for("JPG") == "image/jpeg"
        assert content_type_for("svg") == "image/svg+xml"

    def test_missing(self):
        assert content_type_for(None) == GENERIC_CONTENT_TYPE
