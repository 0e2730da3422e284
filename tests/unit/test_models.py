"""Unit tests for shared models."""

import array
import base64

import pytest
from pydantic import ValidationError

from webdav_bridge.models import (
    Base64Text,
    BufferLike,
    ConnectionStatus,
    FileEntry,
    FileKind,
    OperationResult,
    RawBytes,
    RoutingStrategy,
    WebDAVConfig,
    to_bytes,
)

pytestmark = pytest.mark.unit


class TestOperationResult:
    def test_ok_carries_data_and_no_error(self):
        result = OperationResult.ok([1, 2])
        assert result.success is True
        assert result.data == [1, 2]
        assert result.error is None

    def test_ok_accepts_falsy_data(self):
        result = OperationResult.ok(False)
        assert result.success is True
        assert result.data is False

    def test_fail_carries_error_and_no_data(self):
        result = OperationResult.fail("boom")
        assert result.success is False
        assert result.data is None
        assert result.error == "boom"

    def test_fail_never_has_an_empty_error(self):
        assert OperationResult.fail("").error == "Unknown error"

    @pytest.mark.parametrize(
        "fields",
        [
            {"success": True},
            {"success": True, "data": 1, "error": "x"},
            {"success": False, "data": 1, "error": "x"},
            {"success": False},
        ],
    )
    def test_envelope_invariant_is_enforced(self, fields):
        with pytest.raises(ValidationError):
            OperationResult(**fields)


class TestWebDAVConfig:
    def test_accepts_camel_case_aliases(self):
        config = WebDAVConfig.model_validate(
            {
                "enabled": True,
                "serverUrl": "https://dav.jianguoyun.com/dav",
                "username": "alice",
                "password": "secret",
                "syncPath": "/books",
                "useProxy": True,
                "connectionStatus": "connected",
            }
        )
        assert config.server_url == "https://dav.jianguoyun.com/dav"
        assert config.sync_path == "/books"
        assert config.use_proxy is True
        assert config.connection_status is ConnectionStatus.CONNECTED

    def test_missing_fields(self):
        config = WebDAVConfig(server_url="https://x", username=" ", password="")
        assert config.missing_fields() == ["username", "password"]

    def test_password_not_in_repr(self):
        config = WebDAVConfig(server_url="https://x", username="a", password="hunter2")
        assert "hunter2" not in repr(config)


def test_file_entry_is_directory():
    entry = FileEntry(filename="/api/webdav/sub", basename="sub", kind=FileKind.DIRECTORY)
    assert entry.is_directory
    assert entry.size == 0


def test_routing_strategy_is_proxied():
    assert not RoutingStrategy.DIRECT.is_proxied
    assert RoutingStrategy.DEV_PROXY.is_proxied
    assert RoutingStrategy.SERVERLESS_PROXY.is_proxied


class TestToBytes:
    def test_raw_bytes(self):
        assert to_bytes(RawBytes(b"\x00\x01")) == b"\x00\x01"

    def test_base64_text(self):
        encoded = base64.b64encode(b"%PDF-1.7").decode()
        assert to_bytes(Base64Text(encoded)) == b"%PDF-1.7"

    def test_buffer_like(self):
        assert to_bytes(BufferLike(bytearray(b"abc"))) == b"abc"
        assert to_bytes(BufferLike(memoryview(b"xyz"))) == b"xyz"
        assert to_bytes(BufferLike(array.array("B", [1, 2, 3]))) == b"\x01\x02\x03"

    def test_invalid_base64_raises_value_error(self):
        with pytest.raises(ValueError, match="Invalid base64"):
            to_bytes(Base64Text("not base64!"))

    def test_non_buffer_raises_value_error(self):
        with pytest.raises(ValueError, match="Unsupported buffer type"):
            to_bytes(BufferLike(object()))

    def test_unknown_payload_raises_value_error(self):
        with pytest.raises(ValueError, match="Unknown payload type"):
            to_bytes(b"plain bytes")  # type: ignore[arg-type]
