"""Tests for source resolution."""

import pytest

from ipxcache.errors.exceptions import (
    ForbiddenDomain,
    InvalidRequestShape,
    MalformedSource,
    PathTraversalDenied,
)
from ipxcache.resolver import SourceResolver
from ipxcache.types import SourceKind


@pytest.fixture
def resolver(fs_dir):
    return SourceResolver(fs_dir, ["images.example.com", "CDN.Example.com"])


class TestFilesystemSources:
    def test_relative_path(self, resolver, fs_dir):
        identity = resolver.resolve("photos/cat.png")
        assert identity.kind == SourceKind.FILESYSTEM
        assert identity.source == "photos/cat.png"
        assert identity.effective_source == "photos/cat.png"
        assert identity.absolute_path == fs_dir / "photos" / "cat.png"
        assert not identity.is_remote

    def test_redundant_separators_normalized(self, resolver):
        assert resolver.resolve("./photos//cat.png").source == "photos/cat.png"
        assert resolver.resolve("/photos/cat.png").source == "photos/cat.png"

    def test_backslashes(self, resolver):
        assert resolver.resolve("photos\\cat.png").source == "photos/cat.png"

    def test_missing_file_still_resolves(self, resolver):
        identity = resolver.resolve("nope.png")
        assert identity.kind == SourceKind.FILESYSTEM

    @pytest.mark.parametrize(
        "raw",
        ["../etc/passwd", "../../etc/passwd", "photos/../../secret", "photos/../cat.png", "..\\x"],
    )
    def test_parent_segments_rejected(self, resolver, raw):
        with pytest.raises(PathTraversalDenied):
            resolver.resolve(raw)

    @pytest.mark.parametrize("raw", ["", "/", "//", "./"])
    def test_empty_rejected(self, resolver, raw):
        with pytest.raises(InvalidRequestShape):
            resolver.resolve(raw)

    def test_nul_byte_rejected(self, resolver):
        with pytest.raises(MalformedSource):
            resolver.resolve("photos/cat\x00.png")

    def test_query_dropped(self, resolver):
        identity = resolver.resolve("photos/cat.png?v=2")
        assert identity.source == "photos/cat.png"

    def test_dotted_filename_allowed(self, resolver):
        assert resolver.resolve("photos/..cat.png").source == "photos/..cat.png"


class TestRemoteSources:
    def test_allowed_host(self, resolver):
        identity = resolver.resolve("https://images.example.com/a/b.png")
        assert identity.kind == SourceKind.REMOTE
        assert identity.source == "https://images.example.com/a/b.png"
        assert identity.effective_source == "https://images.example.com/a/b.png"
        assert identity.domain == "images.example.com"
        assert identity.absolute_path is None
        assert identity.is_remote

    def test_http_scheme(self, resolver):
        assert resolver.resolve("http://images.example.com/a.png").is_remote

    def test_host_case_insensitive(self, resolver):
        assert resolver.resolve("https://IMAGES.example.com/a.png").domain == "images.example.com"
        assert resolver.resolve("https://cdn.example.com/a.png").domain == "cdn.example.com"

    def test_collapsed_slashes(self, resolver):
        identity = resolver.resolve("https:/images.example.com/a.png")
        assert identity.source == "https://images.example.com/a.png"

    def test_query_kept_in_source(self, resolver):
        identity = resolver.resolve("https://images.example.com/a.png?v=2")
        assert identity.source.endswith("?v=2")

    def test_forbidden_host(self, resolver):
        with pytest.raises(ForbiddenDomain) as exc_info:
            resolver.resolve("https://evil.example.org/a.png")
        assert exc_info.value.domain == "evil.example.org"

    def test_subdomain_not_allowed(self, resolver):
        with pytest.raises(ForbiddenDomain):
            resolver.resolve("https://sub.images.example.com/a.png")

    def test_port_does_not_bypass_allow_list(self, resolver):
        assert resolver.resolve("https://images.example.com:8443/a.png").domain == "images.example.com"
        with pytest.raises(ForbiddenDomain):
            resolver.resolve("https://evil.example.org:443/a.png")

    def test_userinfo_does_not_bypass_allow_list(self, resolver):
        with pytest.raises(ForbiddenDomain):
            resolver.resolve("https://images.example.com@evil.example.org/a.png")

    def test_missing_host(self, resolver):
        with pytest.raises(MalformedSource):
            resolver.resolve("https://")

    def test_bad_port(self, resolver):
        with pytest.raises(MalformedSource):
            resolver.resolve("https://images.example.com:99999/a.png")

    def test_empty_allow_list_rejects_everything(self, fs_dir):
        with pytest.raises(ForbiddenDomain):
            SourceResolver(fs_dir, []).resolve("https://images.example.com/a.png")

    def test_other_scheme_is_a_file_path(self, resolver):
        identity = resolver.resolve("ftp:/images.example.com/a.png")
        assert identity.kind == SourceKind.FILESYSTEM
