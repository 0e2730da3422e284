import logging

from httpx import (
    AsyncBaseTransport,
    AsyncClient,
    AsyncHTTPTransport,
    Auth,
    Request,
    Response,
    Timeout,
)

from webdav_bridge.config import Settings

from .webdav import WebDAVClient

logger = logging.getLogger(__name__)

_REDACTED_HEADERS = {"authorization", "cookie", "proxy-authorization"}


async def log_request(request: Request):
    logger.debug(
        "Request event hook: %s %s",
        request.method,
        request.url,
    )
    logger.debug(
        "Headers: %s",
        {
            key: "<set>" if key.lower() in _REDACTED_HEADERS else value
            for key, value in request.headers.items()
        },
    )


async def log_response(response: Response):
    await response.aread()
    logger.debug(
        "Response [%s] %s (%d bytes)",
        response.status_code,
        response.headers.get("content-type", "-"),
        len(response.content),
    )


class AsyncDisableCookieTransport(AsyncBaseTransport):
    """This Transport disable cookies from accumulating in the httpx AsyncClient

    Thanks to: https://github.com/encode/httpx/issues/2992#issuecomment-2133258994
    """

    def __init__(self, transport: AsyncBaseTransport, owns_transport: bool = False):
        self.transport = transport
        self.owns_transport = owns_transport

    async def handle_async_request(self, request: Request) -> Response:
        response = await self.transport.handle_async_request(request)
        response.headers.pop("set-cookie", None)
        return response

    async def aclose(self) -> None:
        # Injected transports may be shared between clients
        if self.owns_transport:
            await self.transport.aclose()


def create_http_client(
    settings: Settings,
    *,
    base_url: str = "",
    auth: Auth | None = None,
    transport: AsyncBaseTransport | None = None,
) -> AsyncClient:
    """Build an AsyncClient with the shared transport, hooks and timeouts.

    Redirects are never followed; 3xx responses are surfaced to the caller.

    Args:
        settings: Application settings (timeouts, user agent)
        base_url: Base URL requests are resolved against
        auth: Optional httpx auth (Basic-Auth for the protocol client)
        transport: Override the network transport (tests use ``MockTransport``)
    """
    return AsyncClient(
        base_url=base_url,
        auth=auth,
        transport=AsyncDisableCookieTransport(
            transport or AsyncHTTPTransport(), owns_transport=transport is None
        ),
        event_hooks={"request": [log_request], "response": [log_response]},
        timeout=Timeout(
            timeout=settings.request_timeout, connect=settings.connect_timeout
        ),
        headers={"User-Agent": settings.user_agent},
        follow_redirects=False,
    )


__all__ = [
    "AsyncDisableCookieTransport",
    "WebDAVClient",
    "create_http_client",
]
