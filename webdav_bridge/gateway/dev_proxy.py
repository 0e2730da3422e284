"""Development proxy: path rewrite and forced CORS, nothing else.

Bodies are relayed as raw bytes whatever their content type, and every
method is forwarded, including OPTIONS.
"""

import logging
import time
from typing import Optional

from httpx import AsyncBaseTransport, AsyncClient, HTTPError
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

from .cors import dev_cors_headers
from .proxy import build_response, forward_request_headers, upstream_url_for

logger = logging.getLogger(__name__)


class DevProxy:
    """ASGI endpoint forwarding ``<prefix>/*`` to the upstream WebDAV root.

    Mounted twice in dev mode: at the dev prefix (``/webdav``, rewritten onto
    the upstream root) and at the upstream root itself (``/dav``, passed
    through unchanged).
    """

    source = "dev_proxy"

    def __init__(
        self,
        settings: Settings,
        prefix: Optional[str] = None,
        client: Optional[AsyncClient] = None,
        transport: Optional[AsyncBaseTransport] = None,
    ):
        self.settings = settings
        self.prefix = prefix or settings.dev_proxy_prefix
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
        url = upstream_url_for(request, self.prefix, self.settings.upstream_url)
        logger.debug(f"Dev proxy {method} {request.url.path} -> {url}")

        start_time = time.time()
        try:
            with trace_upstream_call(source=self.source, method=method, path=url):
                upstream = await self.client.request(
                    method,
                    url,
                    headers=forward_request_headers(request.headers.raw),
                    content=await request.body(),
                )
        except HTTPError as e:
            record_upstream_error(source=self.source, error_type=type(e).__name__)
            logger.warning(f"Dev proxy could not reach upstream for {method} {url}: {e}")
            return JSONResponse(
                {"error": "Bad gateway", "message": str(e) or type(e).__name__},
                status_code=502,
                headers=dev_cors_headers(),
            )

        record_upstream_request(
            source=self.source,
            method=method,
            status_code=upstream.status_code,
            duration=time.time() - start_time,
        )
        return build_response(upstream, upstream.content, dev_cors_headers())
