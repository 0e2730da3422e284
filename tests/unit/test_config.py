"""Tests for configuration validation."""

import logging
import os
from unittest.mock import patch

import pytest

from webdav_bridge.config import Settings, get_settings

pytestmark = pytest.mark.unit


class TestPrefixValidation:
    """Test gateway and dev proxy prefix validation."""

    def test_defaults(self):
        settings = Settings()
        assert settings.gateway_prefix == "/api/webdav"
        assert settings.dev_proxy_prefix == "/webdav"

    def test_trailing_slash_is_removed(self):
        settings = Settings(gateway_prefix="/files/")
        assert settings.gateway_prefix == "/files"

    @pytest.mark.parametrize("prefix", ["api/webdav", "/", ""])
    def test_invalid_prefix_raises(self, prefix):
        with pytest.raises(ValueError, match="GATEWAY_PREFIX"):
            Settings(gateway_prefix=prefix)

    def test_prefixes_must_differ(self):
        with pytest.raises(ValueError, match="must differ"):
            Settings(gateway_prefix="/webdav", dev_proxy_prefix="/webdav/")


class TestUpstreamValidation:
    def test_upstream_parts(self):
        settings = Settings(upstream_url="https://dav.example.com/remote.php/webdav/")
        assert settings.upstream_url == "https://dav.example.com/remote.php/webdav"
        assert settings.upstream_root == "/remote.php/webdav"
        assert settings.upstream_host == "dav.example.com"

    @pytest.mark.parametrize("url", ["dav.example.com/dav", "ftp://dav.example.com"])
    def test_upstream_must_be_absolute_http(self, url):
        with pytest.raises(ValueError, match="WEBDAV_UPSTREAM_URL"):
            Settings(upstream_url=url)


class TestTimeoutValidation:
    def test_non_positive_timeout_raises(self):
        with pytest.raises(ValueError, match="must be positive"):
            Settings(request_timeout=0)

    def test_connect_timeout_above_request_timeout_warns(self, caplog):
        caplog.set_level(logging.WARNING, logger="webdav_bridge.config")
        Settings(request_timeout=2, connect_timeout=5)
        assert "the request timeout wins" in caplog.text


class TestGetSettings:
    def test_reads_environment(self):
        env = {
            "WEBDAV_UPSTREAM_URL": "https://dav.example.com/dav",
            "WEBDAV_GATEWAY_PREFIX": "/proxy",
            "WEBDAV_DEV_MODE": "true",
            "WEBDAV_REQUEST_TIMEOUT": "12.5",
            "WEBDAV_SERVER_URL": "https://dav.example.com/dav",
            "WEBDAV_USERNAME": "alice",
            "WEBDAV_SYNC_PATH": "/books",
            "METRICS_ENABLED": "false",
            "LOG_FORMAT": "json",
        }
        with patch.dict(os.environ, env, clear=True):
            settings = get_settings()

        assert settings.upstream_url == "https://dav.example.com/dav"
        assert settings.gateway_prefix == "/proxy"
        assert settings.dev_mode is True
        assert settings.request_timeout == 12.5
        assert settings.webdav_sync_path == "/books"
        assert not hasattr(settings, "webdav_username")
        assert settings.metrics_enabled is False
        assert settings.log_format == "json"

    def test_defaults_without_environment(self):
        with patch.dict(os.environ, {}, clear=True):
            settings = get_settings()

        assert settings.upstream_url == "https://dav.jianguoyun.com/dav"
        assert settings.dev_mode is False
        assert settings.metrics_enabled is True
        assert settings.webdav_sync_path == "/fastReader"
