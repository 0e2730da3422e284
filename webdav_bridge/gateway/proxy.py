"""Proxy gateway between browser clients and the upstream WebDAV server.

Each request runs through a fixed sequence: preflight, method validation,
route rewrite, forward, body decode, respond. The gateway keeps no state
between requests and never lets an exception escape: every failure after
validation becomes a CORS-enabled JSON error the browser can read.
"""

import json
import logging
import re
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, Optional
from urllib.parse import quote

from httpx import AsyncBaseTransport, AsyncClient
from httpx import Response as UpstreamResponse
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.types import Receive, Scope, Send

from webdav_bridge.client import create_http_client
from webdav_bridge.config import Settings
from webdav_bridge.observability.metrics import (
    record_upstream_error,
    record_upstream_request,
)
from webdav_bridge.observability.tracing import trace_upstream_call

from .cors import SUPPORTED_METHODS, gateway_cors_headers, is_cors_header

logger = logging.getLogger(__name__)

# Request headers not copied onto the upstream request. httpx sets its own
# Host and framing headers for the buffered body, and negotiates only the
# content codings it can decode.
DROPPED_REQUEST_HEADERS = {
    b"host",
    b"accept-encoding",
    b"connection",
    b"keep-alive",
    b"content-length",
    b"transfer-encoding",
}

# Upstream response headers not relayed; the body is re-encoded here.
DROPPED_RESPONSE_HEADERS = {
    "connection",
    "keep-alive",
    "transfer-encoding",
    "content-encoding",
    "content-length",
}

XML_TYPES = ("text/xml", "application/xml")
JSON_TYPES = ("application/json",)
BINARY_MARKERS = ("application/octet-stream", "pdf", "zip", "epub")
XML_DECLARED_ENCODING = re.compile(
    rb"^\s*<\?xml[^>]*?encoding=[\"']([A-Za-z0-9._:-]+)[\"']"
)


class BodyKind(str, Enum):
    XML = "xml"
    JSON = "json"
    BINARY = "binary"
    TEXT = "text"
    EMPTY = "empty"


@dataclass
class DecodedBody:
    """Upstream body in the representation chosen for its content type."""

    kind: BodyKind
    value: Any
    encoding: str = "utf-8"

    def render(self) -> bytes:
        if self.kind is BodyKind.EMPTY:
            return b""
        if self.kind is BodyKind.BINARY:
            return bytes(self.value)
        if self.kind is BodyKind.JSON:
            return json.dumps(self.value, separators=(",", ":")).encode("ascii")
        return self.value.encode(self.encoding, errors="replace")


def xml_declared_encoding(content: bytes) -> str:
    """Encoding named in an XML declaration, ``utf-8`` when absent."""
    match = XML_DECLARED_ENCODING.match(content[:256])
    return match.group(1).decode("ascii") if match else "utf-8"


def decode_body(response: UpstreamResponse) -> DecodedBody:
    """Decode an upstream body according to its Content-Type.

    XML (the PROPFIND multistatus payload) is decoded strictly so it
    re-encodes to identical bytes. Without a header charset the encoding
    named in the XML declaration is used. A body that cannot be decoded
    becomes an empty payload; status and headers are unaffected.
    """
    media_type = response.headers.get("content-type", "").split(";")[0].strip().lower()
    encoding = response.charset_encoding or "utf-8"
    content = response.content

    try:
        if media_type in XML_TYPES or media_type.endswith("+xml"):
            encoding = response.charset_encoding or xml_declared_encoding(content)
            return DecodedBody(BodyKind.XML, content.decode(encoding), encoding)
        if media_type in JSON_TYPES or media_type.endswith("+json"):
            return DecodedBody(BodyKind.JSON, json.loads(content.decode(encoding)))
        if any(marker in media_type for marker in BINARY_MARKERS):
            return DecodedBody(BodyKind.BINARY, content)
        return DecodedBody(
            BodyKind.TEXT, content.decode(encoding, errors="replace"), encoding
        )
    except (LookupError, ValueError) as e:
        logger.warning(
            f"Could not decode {media_type or 'untyped'} upstream body, relaying empty payload: {e}"
        )
        return DecodedBody(BodyKind.EMPTY, b"")


def forward_request_headers(
    raw_headers: Iterable[tuple[bytes, bytes]],
) -> list[tuple[bytes, bytes]]:
    """Copy request headers byte-for-byte, minus hop-by-hop and framing headers."""
    return [
        (name, value)
        for name, value in raw_headers
        if name.lower() not in DROPPED_REQUEST_HEADERS
    ]


def upstream_url_for(request: Request, prefix: str, upstream_url: str) -> str:
    """Rewrite ``<prefix>/<rel>?<q>`` to ``<upstream_url>/<rel>?<q>``.

    The still-encoded request path is used so percent-escapes reach the
    upstream unchanged; the query string is kept verbatim.
    """
    raw_path = request.scope.get("raw_path")
    path = raw_path.decode("latin-1") if raw_path else quote(request.url.path)

    root_path = request.scope.get("root_path", "")
    if root_path and path.startswith(root_path):
        path = path[len(root_path):]

    rel = path[len(prefix):] if path.startswith(prefix) else path
    if not rel.startswith("/"):
        rel = "/" + rel

    query = request.scope.get("query_string", b"").decode("latin-1")
    return f"{upstream_url}{rel}" + (f"?{query}" if query else "")


def build_response(
    upstream: UpstreamResponse, body: bytes, cors_headers: dict[str, str]
) -> Response:
    """Relay status and headers from the upstream, with our CORS set on top."""
    response = Response(content=body, status_code=upstream.status_code)
    for name, value in upstream.headers.multi_items():
        if name.lower() in DROPPED_RESPONSE_HEADERS or is_cors_header(name):
            continue
        response.headers.append(name, value)

    for name, value in cors_headers.items():
        if name == "Vary" and "vary" in response.headers:
            response.headers["vary"] = f"{response.headers['vary']}, {value}"
        else:
            response.headers[name] = value
    return response


class WebDAVGateway:
    """ASGI endpoint forwarding ``<prefix>/*`` to the upstream WebDAV root."""

    source = "gateway"

    def __init__(
        self,
        settings: Settings,
        prefix: Optional[str] = None,
        client: Optional[AsyncClient] = None,
        transport: Optional[AsyncBaseTransport] = None,
    ):
        self.settings = settings
        self.prefix = prefix or settings.gateway_prefix
        self._client = client
        self._transport = transport

    @property
    def client(self) -> AsyncClient:
        if self._client is None:
            self._client = create_http_client(self.settings, transport=self._transport)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        request = Request(scope, receive)
        response = await self.handle(request)
        await response(scope, receive, send)

    async def handle(self, request: Request) -> Response:
        method = request.method.upper()
        cors = gateway_cors_headers(request.headers.get("origin"))

        if method == "OPTIONS":
            return Response(status_code=200, headers=cors)

        if method not in SUPPORTED_METHODS:
            logger.warning(f"Rejected unsupported method {method} {request.url.path}")
            return JSONResponse(
                {
                    "error": f"Method {method} is not allowed",
                    "method": method,
                    "supportedMethods": list(SUPPORTED_METHODS),
                },
                status_code=405,
                headers=cors,
            )

        start_time = time.time()
        try:
            url = upstream_url_for(request, self.prefix, self.settings.upstream_url)
            body = await request.body()
            headers = forward_request_headers(request.headers.raw)

            logger.info(f"Proxying {method} {request.url.path} -> {url}")
            logger.debug(
                f"Authorization header: {'set' if 'authorization' in request.headers else 'unset'}"
            )

            with trace_upstream_call(source=self.source, method=method, path=url):
                upstream = await self.client.request(
                    method, url, headers=headers, content=body
                )

            record_upstream_request(
                source=self.source,
                method=method,
                status_code=upstream.status_code,
                duration=time.time() - start_time,
            )
            content = decode_body(upstream).render()

        except Exception as e:
            record_upstream_error(source=self.source, error_type=type(e).__name__)
            logger.error(
                f"Gateway request failed: {method} {request.url.path}: {e}",
                exc_info=True,
            )
            return JSONResponse(
                {
                    "error": "Proxy request failed",
                    "message": str(e) or type(e).__name__,
                },
                status_code=500,
                headers=cors,
            )

        return build_response(upstream, content, cors)
