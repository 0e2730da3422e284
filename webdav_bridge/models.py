"""Data models shared by the client facade, the router and collaborators."""

import base64
import binascii
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Generic, Optional, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

T = TypeVar("T")


class ConnectionStatus(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERROR = "error"


class RoutingStrategy(str, Enum):
    """How the facade reaches the upstream WebDAV server."""

    DIRECT = "direct"
    DEV_PROXY = "dev-proxy"
    SERVERLESS_PROXY = "serverless-proxy"

    @property
    def is_proxied(self) -> bool:
        return self is not RoutingStrategy.DIRECT


class FileKind(str, Enum):
    FILE = "file"
    DIRECTORY = "directory"


class OperationResult(BaseModel, Generic[T]):
    """Uniform envelope returned by every facade operation.

    ``success`` is true exactly when ``data`` is present and ``error`` is absent.
    """

    success: bool
    data: Optional[T] = None
    error: Optional[str] = None

    @model_validator(mode="after")
    def _check_envelope(self):
        if self.success and (self.data is None or self.error is not None):
            raise ValueError("A successful result carries data and no error")
        if not self.success and (self.data is not None or not self.error):
            raise ValueError("A failed result carries an error and no data")
        return self

    @classmethod
    def ok(cls, data: T) -> "OperationResult[T]":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: str) -> "OperationResult[T]":
        return cls(success=False, error=error or "Unknown error")


class FileEntry(BaseModel):
    """A file or directory as returned by a listing.

    ``filename`` is always in the public canonical path space, so it can be
    passed straight back to ``read``/``write`` whatever the active route.
    """

    filename: str
    basename: str
    last_modified: Optional[datetime] = None
    size: int = 0
    kind: FileKind
    etag: Optional[str] = None
    mime: Optional[str] = None

    @property
    def is_directory(self) -> bool:
        return self.kind is FileKind.DIRECTORY


class WebDAVConfig(BaseModel):
    """Connection settings owned by the configuration collaborator.

    The facade keeps a frozen copy and never writes back to the caller's object.
    """

    model_config = ConfigDict(populate_by_name=True)

    enabled: bool = False
    server_url: str = Field("", alias="serverUrl")
    username: str = ""
    password: str = Field("", repr=False)
    sync_path: str = Field("/fastReader", alias="syncPath")
    auto_sync: bool = Field(False, alias="autoSync")
    last_sync_time: Optional[str] = Field(None, alias="lastSyncTime")
    connection_status: ConnectionStatus = Field(
        ConnectionStatus.DISCONNECTED, alias="connectionStatus"
    )
    use_proxy: bool = Field(False, alias="useProxy")

    def missing_fields(self) -> list[str]:
        return [
            name
            for name in ("server_url", "username", "password")
            if not getattr(self, name).strip()
        ]


class ProxyRoute(BaseModel):
    """Resolved routing decision, fixed for the lifetime of one initialization."""

    model_config = ConfigDict(frozen=True)

    strategy: RoutingStrategy
    base_url: str
    path_prefix: str = ""


class DownloadedFile(BaseModel):
    filename: str
    content: bytes
    mime_type: str
    size: int


# Binary payload shapes a protocol client may hand back. ``to_bytes`` is the
# single place they are reconciled.


@dataclass(frozen=True)
class RawBytes:
    data: bytes


@dataclass(frozen=True)
class Base64Text:
    text: str


@dataclass(frozen=True)
class BufferLike:
    """Anything exposing the buffer protocol (bytearray, memoryview, array...)."""

    buffer: object


BinaryPayload = Union[RawBytes, Base64Text, BufferLike]


def to_bytes(payload: BinaryPayload) -> bytes:
    """Collapse a tagged binary payload into ``bytes``.

    Raises:
        ValueError: If base64 text is malformed or a buffer-like value does
            not support the buffer protocol
    """
    if isinstance(payload, RawBytes):
        return bytes(payload.data)
    if isinstance(payload, Base64Text):
        try:
            return base64.b64decode(payload.text, validate=True)
        except (binascii.Error, ValueError) as e:
            raise ValueError(f"Invalid base64 payload: {e}") from e
    if isinstance(payload, BufferLike):
        try:
            return bytes(memoryview(payload.buffer))  # type: ignore[arg-type]
        except TypeError as e:
            raise ValueError(
                f"Unsupported buffer type: {type(payload.buffer).__name__}"
            ) from e
    raise ValueError(f"Unknown payload type: {type(payload).__name__}")
