"""
Observability middleware for the WebDAV bridge.

Instruments every HTTP request with Prometheus RED metrics and an
OpenTelemetry span.
"""

import logging
import time
from typing import Callable, Iterable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from webdav_bridge.observability.metrics import (
    http_request_duration_seconds,
    http_requests_in_progress,
    http_requests_total,
)
from webdav_bridge.observability.tracing import (
    add_span_attribute,
    trace_operation,
)

logger = logging.getLogger(__name__)


class ObservabilityMiddleware(BaseHTTPMiddleware):
    """
    Starlette middleware for automatic HTTP request instrumentation.

    Paths under a proxied prefix are collapsed to ``<prefix>/*`` so that
    every file touched through the gateway does not become its own label.
    """

    def __init__(self, app: ASGIApp, prefixes: Iterable[str] = ()):
        super().__init__(app)
        self.prefixes = tuple(prefixes)

    async def dispatch(
        self,
        request: Request,
        call_next: Callable,
    ) -> Response:
        method = request.method
        path = request.url.path
        endpoint = self._get_endpoint_label(path)

        http_requests_in_progress.labels(method=method, endpoint=endpoint).inc()
        start_time = time.time()

        try:
            with trace_operation(
                f"HTTP {method} {endpoint}",
                attributes={
                    "http.method": method,
                    "http.path": path,
                    "http.scheme": request.url.scheme,
                    "http.host": request.url.hostname or "",
                },
            ):
                response = await call_next(request)
                add_span_attribute("http.status_code", response.status_code)

                duration = time.time() - start_time
                self._record_request_metrics(
                    method=method,
                    endpoint=endpoint,
                    status_code=response.status_code,
                    duration=duration,
                )

                return response

        except Exception:
            duration = time.time() - start_time
            self._record_request_metrics(
                method=method,
                endpoint=endpoint,
                status_code=500,
                duration=duration,
            )

            logger.error(
                f"Request failed: {method} {path}",
                exc_info=True,
                extra={
                    "method": method,
                    "path": path,
                    "duration_seconds": duration,
                },
            )
            raise

        finally:
            http_requests_in_progress.labels(method=method, endpoint=endpoint).dec()

    def _get_endpoint_label(self, path: str) -> str:
        """Normalize a request path into a low-cardinality metrics label."""
        if path.startswith("/health/"):
            return "/health/*"

        for prefix in self.prefixes:
            if path == prefix or path.startswith(prefix + "/"):
                return f"{prefix}/*"

        return "other"

    def _record_request_metrics(
        self,
        method: str,
        endpoint: str,
        status_code: int,
        duration: float,
    ) -> None:
        http_requests_total.labels(
            method=method,
            endpoint=endpoint,
            status_code=str(status_code),
        ).inc()

        http_request_duration_seconds.labels(
            method=method,
            endpoint=endpoint,
        ).observe(duration)

        # Log slow requests (>5 seconds)
        if duration > 5.0:
            logger.warning(
                f"Slow request: {method} {endpoint} took {duration:.3f}s",
                extra={
                    "method": method,
                    "endpoint": endpoint,
                    "status_code": status_code,
                    "duration_seconds": duration,
                },
            )
