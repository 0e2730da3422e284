import base64
import logging
import mimetypes
from datetime import datetime, timezone
from email.utils import format_datetime
from typing import Optional
from urllib.parse import quote

import anyio
import httpx
import pytest

from webdav_bridge.config import Settings
from webdav_bridge.models import WebDAVConfig
from webdav_bridge.paths import parent_path

logger = logging.getLogger(__name__)

UPSTREAM_URL = "https://dav.jianguoyun.com/dav"
USERNAME = "alice@example.com"
PASSWORD = "app-password"


def basic_auth(username: str = USERNAME, password: str = PASSWORD) -> str:
    token = base64.b64encode(f"{username}:{password}".encode()).decode()
    return f"Basic {token}"


class FakeDAVServer:
    """In-memory WebDAV server for ``httpx.MockTransport``.

    Serves PROPFIND (Depth 0/1/infinity), GET, PUT (honouring
    ``If-None-Match: *``), MKCOL and DELETE below ``root`` and checks Basic
    credentials on every request.
    """

    def __init__(self, root: str = "/dav"):
        self.root = root
        self.auth = basic_auth()
        self.files: dict[str, bytes] = {}
        self.dirs: set[str] = {"/"}
        self.modified: dict[str, datetime] = {}
        self.requests: list[httpx.Request] = []
        # Test knobs
        self.fail_status: Optional[int] = None
        self.propfind_body: Optional[bytes] = None
        self.delay: float = 0.0

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def add_dir(self, path: str) -> None:
        path = "/" + path.strip("/")
        while path != "/":
            self.dirs.add(path)
            path = parent_path(path)

    def add_file(
        self, path: str, content: bytes, modified: Optional[datetime] = None
    ) -> None:
        path = "/" + path.strip("/")
        self.add_dir(parent_path(path))
        self.files[path] = content
        self.modified[path] = modified or datetime(2024, 1, 1, tzinfo=timezone.utc)

    def _href(self, path: str) -> str:
        if path == "/":
            return quote(self.root + "/")
        suffix = "/" if path in self.dirs else ""
        return quote(self.root + path + suffix)

    def _children(self, path: str, deep: bool) -> list[str]:
        found = []
        for candidate in sorted(self.dirs | set(self.files)):
            if candidate == "/" or candidate == path:
                continue
            if deep:
                if path == "/" or candidate.startswith(path + "/"):
                    found.append(candidate)
            elif parent_path(candidate) == path:
                found.append(candidate)
        return found

    def _propfind_entry(self, path: str) -> str:
        if path in self.dirs:
            props = "<d:resourcetype><d:collection/></d:resourcetype>"
        else:
            content_type = mimetypes.guess_type(path)[0] or "application/octet-stream"
            props = (
                "<d:resourcetype/>"
                f"<d:getcontentlength>{len(self.files[path])}</d:getcontentlength>"
                f"<d:getcontenttype>{content_type}</d:getcontenttype>"
                f'<d:getetag>"etag-{len(self.files[path])}"</d:getetag>'
                f"<d:getlastmodified>{format_datetime(self.modified[path], usegmt=True)}</d:getlastmodified>"
            )
        return (
            "<d:response>"
            f"<d:href>{self._href(path)}</d:href>"
            f"<d:propstat><d:prop>{props}</d:prop>"
            "<d:status>HTTP/1.1 200 OK</d:status></d:propstat>"
            "</d:response>"
        )

    def _propfind(self, path: str, depth: str) -> httpx.Response:
        if self.propfind_body is not None:
            return httpx.Response(
                207,
                content=self.propfind_body,
                headers={"Content-Type": "application/xml; charset=utf-8"},
            )
        if path not in self.dirs and path not in self.files:
            return httpx.Response(404)

        paths = [path]
        if path in self.dirs and depth != "0":
            paths += self._children(path, deep=depth == "infinity")

        body = (
            '<?xml version="1.0" encoding="utf-8"?>'
            '<d:multistatus xmlns:d="DAV:">'
            + "".join(self._propfind_entry(p) for p in paths)
            + "</d:multistatus>"
        )
        return httpx.Response(
            207,
            content=body.encode("utf-8"),
            headers={"Content-Type": "application/xml; charset=utf-8"},
        )

    def _put(self, path: str, request: httpx.Request) -> httpx.Response:
        if parent_path(path) not in self.dirs:
            return httpx.Response(409)
        existed = path in self.files
        if existed and request.headers.get("if-none-match") == "*":
            return httpx.Response(412)
        self.files[path] = request.content
        self.modified[path] = datetime.now(timezone.utc)
        return httpx.Response(204 if existed else 201)

    def _mkcol(self, path: str) -> httpx.Response:
        if path in self.dirs or path in self.files:
            return httpx.Response(405)
        if parent_path(path) not in self.dirs:
            return httpx.Response(409)
        self.dirs.add(path)
        return httpx.Response(201)

    def _delete(self, path: str) -> httpx.Response:
        if path in self.files:
            del self.files[path]
            return httpx.Response(204)
        if path in self.dirs and path != "/":
            self.dirs = {d for d in self.dirs if d != path and not d.startswith(path + "/")}
            self.files = {
                f: c for f, c in self.files.items() if not f.startswith(path + "/")
            }
            return httpx.Response(204)
        return httpx.Response(404)

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.delay:
            await anyio.sleep(self.delay)
        if self.fail_status is not None:
            return httpx.Response(self.fail_status)
        if request.headers.get("authorization") != self.auth:
            return httpx.Response(401, headers={"WWW-Authenticate": 'Basic realm="dav"'})

        full_path = request.url.path
        if full_path != self.root and not full_path.startswith(self.root + "/"):
            return httpx.Response(404)
        path = "/" + full_path[len(self.root):].strip("/")

        method = request.method
        if method == "PROPFIND":
            return self._propfind(path, request.headers.get("depth", "1"))
        if method == "GET":
            if path not in self.files:
                return httpx.Response(404)
            content_type = mimetypes.guess_type(path)[0] or "application/octet-stream"
            if path.endswith(".md"):
                content_type = "text/markdown"
            return httpx.Response(
                200, content=self.files[path], headers={"Content-Type": content_type}
            )
        if method == "PUT":
            return self._put(path, request)
        if method == "MKCOL":
            return self._mkcol(path)
        if method == "DELETE":
            return self._delete(path)
        if method == "OPTIONS":
            return httpx.Response(200, headers={"DAV": "1, 2", "Allow": "GET, PUT, PROPFIND"})
        return httpx.Response(405)


@pytest.fixture(scope="session")
def anyio_backend():
    """Configure anyio to use asyncio backend for all tests."""
    return "asyncio"


@pytest.fixture
def fake_dav() -> FakeDAVServer:
    return FakeDAVServer()


@pytest.fixture
def settings() -> Settings:
    return Settings(upstream_url=UPSTREAM_URL, metrics_enabled=False)


@pytest.fixture
def dav_config() -> WebDAVConfig:
    return WebDAVConfig(
        enabled=True,
        server_url=UPSTREAM_URL,
        username=USERNAME,
        password=PASSWORD,
    )
