"""Tests for the FastAPI application."""

from datetime import datetime

import pytest
from fastapi.testclient import TestClient

from ipxcache.core import IPXCache
from ipxcache.errors.exceptions import BackendProcessingFailure
from ipxcache.server.app import create_app


@pytest.fixture
def ipx(app_config, fake_backend):
    return IPXCache(app_config, backend=fake_backend)


@pytest.fixture
def client(ipx):
    with TestClient(create_app(ipx=ipx)) as c:
        yield c


class TestImageRoute:
    def test_miss_then_hit(self, client, png_bytes):
        first = client.get("/_ipx/w_100/photos/cat.png")
        assert first.status_code == 200
        assert first.headers["x-ipx-cache"] == "MISS"
        assert first.headers["content-type"] == "image/png"
        assert first.content == png_bytes

        second = client.get("/_ipx/w_100/photos/cat.png")
        assert second.status_code == 200
        assert second.headers["x-ipx-cache"] == "HIT"
        assert second.headers["content-type"] == "image/png"
        assert second.content == png_bytes

    def test_cache_headers(self, client, app_config):
        response = client.get("/_ipx/w_100/photos/cat.png")
        assert response.headers["cache-control"] == app_config.cache_control
        assert "max-age=2592000" in response.headers["cache-control"]
        assert "immutable" in response.headers["cache-control"]
        assert response.headers["vary"] == "Accept-Encoding"
        assert response.headers["etag"].startswith('W/"')

    def test_conditional_request(self, client):
        etag = client.get("/_ipx/w_100/photos/cat.png").headers["etag"]
        response = client.get("/_ipx/w_100/photos/cat.png", headers={"If-None-Match": etag})
        assert response.status_code == 304
        assert response.content == b""
        assert response.headers["etag"] == etag

    def test_remote_source(self, client, fake_backend):
        response = client.get("/_ipx/w_50/https://images.example.com/a.png")
        assert response.status_code == 200
        assert fake_backend.calls[0][0] == "https://images.example.com/a.png"

    def test_remote_query_is_part_of_source(self, client, fake_backend):
        first = client.get("/_ipx/w_50/https://images.example.com/img.php?id=1")
        second = client.get("/_ipx/w_50/https://images.example.com/img.php?id=2")
        assert first.headers["x-ipx-cache"] == "MISS"
        assert second.headers["x-ipx-cache"] == "MISS"
        assert [source for source, _ in fake_backend.calls] == [
            "https://images.example.com/img.php?id=1",
            "https://images.example.com/img.php?id=2",
        ]

    def test_local_source_ignores_query(self, client, fake_backend):
        client.get("/_ipx/w_100/photos/cat.png")
        response = client.get("/_ipx/w_100/photos/cat.png?v=2")
        assert response.status_code == 200
        assert response.headers["x-ipx-cache"] == "HIT"
        assert len(fake_backend.calls) == 1

    def test_forbidden_domain(self, client, fake_backend):
        response = client.get("/_ipx/w_50/https://evil.example.org/a.png")
        assert response.status_code == 403
        assert response.json()["error"] == "forbidden_domain"
        assert fake_backend.calls == []

    def test_path_traversal(self, client, fake_backend):
        response = client.get("/_ipx/_/%2E%2E/%2E%2E/etc/passwd")
        assert response.status_code == 403
        assert response.json()["error"] == "path_traversal"
        assert fake_backend.calls == []

    def test_missing_source_segment(self, client):
        response = client.get("/_ipx/w_100")
        assert response.status_code == 400
        assert response.json()["error"] == "invalid_request"

    def test_backend_status_is_propagated(self, client, fake_backend):
        fake_backend.error = BackendProcessingFailure("File not found: nope.png", http_status=404)
        response = client.get("/_ipx/_/nope.png")
        assert response.status_code == 404
        body = response.json()
        assert body["error"] == "processing_failure"
        assert "nope.png" in body["message"]


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "ok"
        assert datetime.fromisoformat(body["timestamp"]).tzinfo is not None


class TestCreateApp:
    def test_builds_from_config(self, app_config):
        app = create_app(app_config)
        assert app.state.ipx.config == app_config
