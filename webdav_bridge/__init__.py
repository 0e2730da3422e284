"""Browser-safe WebDAV access: proxy gateway, path resolution and client facade."""

from webdav_bridge.models import FileEntry, OperationResult, ProxyRoute, WebDAVConfig
from webdav_bridge.paths import normalize_path
from webdav_bridge.service import CancelToken, WebDAVService

__all__ = [
    "CancelToken",
    "FileEntry",
    "OperationResult",
    "ProxyRoute",
    "WebDAVConfig",
    "WebDAVService",
    "normalize_path",
]
