"""Tests for configuration defaults and the config models."""

import logging

import pytest
from pydantic import ValidationError

from ipxcache.config.defaults import (
    DEFAULT_CACHE_TTL_SECONDS,
    DEFAULT_DOMAINS,
    DEFAULT_PORT,
    get_defaults,
)
from ipxcache.config.schema import AppConfig, HttpStorageConfig


class TestDefaults:
    def test_shape(self):
        defaults = get_defaults()
        assert set(defaults) == {"ipxSettings", "server", "logLevel"}
        assert defaults["ipxSettings"]["imageCacheTTLSeconds"] == 30 * 24 * 3600
        assert defaults["server"]["port"] == 4321

    def test_returns_fresh_copy(self):
        first = get_defaults()
        first["ipxSettings"]["httpStorage"]["domains"].append("x.example.com")
        assert get_defaults()["ipxSettings"]["httpStorage"]["domains"] == list(DEFAULT_DOMAINS)

    def test_defaults_validate(self):
        config = AppConfig.model_validate(get_defaults())
        assert config == AppConfig()


class TestAppConfig:
    def test_defaults(self):
        config = AppConfig()
        assert config.ipx.image_cache_ttl_seconds == DEFAULT_CACHE_TTL_SECONDS
        assert config.ipx.domains == DEFAULT_DOMAINS
        assert config.server.port == DEFAULT_PORT

    def test_cache_control(self):
        config = AppConfig.model_validate({"ipxSettings": {"imageCacheTTLSeconds": 60}})
        assert config.cache_control == (
            "public, max-age=60, s-maxage=60, immutable, stale-while-revalidate=600"
        )

    def test_frozen(self):
        config = AppConfig()
        with pytest.raises(ValidationError):
            config.log_level = "DEBUG"

    def test_port_range(self):
        with pytest.raises(ValidationError):
            AppConfig.model_validate({"server": {"port": 70000}})

    def test_negative_ttl_rejected(self):
        with pytest.raises(ValidationError):
            AppConfig.model_validate({"ipxSettings": {"imageCacheTTLSeconds": -1}})


class TestDomains:
    def test_lowercased_and_stripped(self):
        cfg = HttpStorageConfig(domains=[" Images.Example.COM ", ""])
        assert cfg.domains == ("images.example.com",)

    def test_empty_list_allows_nothing(self):
        assert HttpStorageConfig(domains=[]).domains == ()

    def test_non_list_falls_back_to_defaults(self, caplog):
        with caplog.at_level(logging.WARNING):
            cfg = HttpStorageConfig(domains="images.example.com")
        assert cfg.domains == DEFAULT_DOMAINS
        assert "must be a list" in caplog.text

    def test_null_falls_back_to_defaults(self):
        config = AppConfig.model_validate({"ipxSettings": {"httpStorage": {"domains": None}}})
        assert config.ipx.domains == DEFAULT_DOMAINS
