import logging
import time
from contextlib import asynccontextmanager
from typing import Optional

from httpx import AsyncBaseTransport
from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route

from webdav_bridge.client import create_http_client
from webdav_bridge.config import Settings, get_settings
from webdav_bridge.gateway import DevProxy, WebDAVGateway
from webdav_bridge.observability import ObservabilityMiddleware
from webdav_bridge.observability.metrics import set_dependency_health

logger = logging.getLogger(__name__)


def _prefix_routes(prefix: str, endpoint) -> list[Route]:
    # Class endpoints match every HTTP method
    return [
        Route(prefix, endpoint),
        Route(prefix + "/{path:path}", endpoint),
    ]


def get_app(
    settings: Optional[Settings] = None,
    upstream_transport: Optional[AsyncBaseTransport] = None,
) -> Starlette:
    """Build the Starlette application.

    Args:
        settings: Application settings; read from the environment if omitted
        upstream_transport: httpx transport for upstream requests (tests
            inject ``httpx.MockTransport``)

    Returns:
        App serving the gateway, the dev proxy (dev mode only) and health probes
    """
    settings = settings or get_settings()

    gateway = WebDAVGateway(settings, transport=upstream_transport)
    routes = _prefix_routes(settings.gateway_prefix, gateway)
    proxied_prefixes = [settings.gateway_prefix]

    dev_proxies: list[DevProxy] = []
    if settings.dev_mode:
        dev_client = create_http_client(settings, transport=upstream_transport)
        dev_proxies = [
            DevProxy(settings, prefix=settings.dev_proxy_prefix, client=dev_client),
        ]
        if settings.upstream_root not in ("/", settings.gateway_prefix):
            # Upstream-shaped paths (/dav/...) pass straight through
            dev_proxies.append(
                DevProxy(settings, prefix=settings.upstream_root, client=dev_client)
            )
        for proxy in dev_proxies:
            routes.extend(_prefix_routes(proxy.prefix, proxy))
            proxied_prefixes.append(proxy.prefix)
        logger.info(f"Dev proxy enabled at {', '.join(p.prefix for p in dev_proxies)}")

    def health_live(request: Request) -> JSONResponse:
        """Liveness probe endpoint.

        Returns 200 OK if the application process is running.
        """
        return JSONResponse(
            {
                "status": "alive",
                "mode": "dev" if settings.dev_mode else "gateway",
            }
        )

    async def health_ready(request: Request) -> JSONResponse:
        """Readiness probe endpoint.

        Ready when the upstream WebDAV server answers at all. Any HTTP status
        counts (an unauthenticated probe normally gets 401).
        """
        checks = {"upstream_url": settings.upstream_url}
        start_time = time.time()
        try:
            response = await gateway.client.request(
                "OPTIONS", settings.upstream_url + "/"
            )
            checks["upstream_reachable"] = "ok"
            checks["upstream_status"] = str(response.status_code)
            is_ready = response.status_code < 500
        except Exception as e:
            checks["upstream_reachable"] = f"error: {e}"
            is_ready = False
        checks["duration_seconds"] = f"{time.time() - start_time:.3f}"
        set_dependency_health("upstream", is_ready)

        return JSONResponse(
            {"status": "ready" if is_ready else "not_ready", "checks": checks},
            status_code=200 if is_ready else 503,
        )

    routes.append(Route("/health/live", health_live, methods=["GET"]))
    routes.append(Route("/health/ready", health_ready, methods=["GET"]))

    @asynccontextmanager
    async def lifespan(app: Starlette):
        logger.info(
            f"WebDAV gateway at {settings.gateway_prefix} -> {settings.upstream_url}"
        )
        try:
            yield
        finally:
            await gateway.aclose()
            # The dev proxies share one client
            if dev_proxies:
                await dev_proxies[0].aclose()
            logger.info("Upstream connections closed")

    middleware = []
    if settings.metrics_enabled:
        middleware.append(
            Middleware(ObservabilityMiddleware, prefixes=proxied_prefixes)
        )

    return Starlette(routes=routes, middleware=middleware, lifespan=lifespan)
