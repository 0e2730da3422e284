"""
Prometheus metrics for the WebDAV bridge.

Metrics are organized by category:

- HTTP Server Metrics (RED: Rate, Errors, Duration)
- Upstream WebDAV Metrics (gateway forwards and protocol client calls)
- Client Facade Operation Metrics
"""

import logging

from prometheus_client import (
    Counter,
    Gauge,
    Histogram,
    start_http_server,
)

logger = logging.getLogger(__name__)

# =============================================================================
# HTTP Server Metrics (RED + System)
# =============================================================================

http_requests_total = Counter(
    "webdav_bridge_http_requests_total",
    "Total HTTP requests received",
    ["method", "endpoint", "status_code"],
)

http_request_duration_seconds = Histogram(
    "webdav_bridge_http_request_duration_seconds",
    "HTTP request latency in seconds",
    ["method", "endpoint"],
    buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)

http_requests_in_progress = Gauge(
    "webdav_bridge_http_requests_in_progress",
    "Number of HTTP requests currently being processed",
    ["method", "endpoint"],
)

# =============================================================================
# Upstream WebDAV Metrics
# =============================================================================

upstream_requests_total = Counter(
    "webdav_bridge_upstream_requests_total",
    "Total requests sent to the upstream WebDAV server",
    ["source", "method", "status_code"],  # source: gateway | dev_proxy | client
)

upstream_request_duration_seconds = Histogram(
    "webdav_bridge_upstream_request_duration_seconds",
    "Upstream WebDAV request duration in seconds",
    ["source", "method"],
    buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
)

upstream_errors_total = Counter(
    "webdav_bridge_upstream_errors_total",
    "Upstream requests that failed without a response",
    ["source", "error_type"],
)

# =============================================================================
# Client Facade Metrics
# =============================================================================

facade_operations_total = Counter(
    "webdav_bridge_facade_operations_total",
    "Total client facade operations",
    ["operation", "strategy", "status"],  # status: success | error
)

facade_operation_duration_seconds = Histogram(
    "webdav_bridge_facade_operation_duration_seconds",
    "Client facade operation duration in seconds",
    ["operation", "strategy"],
    buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
)

# =============================================================================
# External Dependency Health Metrics
# =============================================================================

dependency_health = Gauge(
    "webdav_bridge_dependency_health",
    "External dependency health status (1=up, 0=down)",
    ["dependency"],
)

# =============================================================================
# Metrics Setup
# =============================================================================


def setup_metrics(port: int = 9090) -> None:
    """
    Start the Prometheus metrics HTTP server on a dedicated port.

    The server runs in a separate thread. ``/metrics`` is never served on the
    application port, so the gateway prefix cannot shadow it.

    Args:
        port: Port to serve metrics on (default: 9090)
    """
    try:
        start_http_server(port)
        logger.info(f"Prometheus metrics server started on port {port}")
    except OSError as e:
        if "Address already in use" in str(e):
            logger.warning(
                f"Metrics port {port} already in use (metrics server likely already running)"
            )
        else:
            logger.error(f"Failed to start metrics server on port {port}: {e}")
            raise


# =============================================================================
# Convenience Functions
# =============================================================================


def record_upstream_request(
    source: str,
    method: str,
    status_code: int,
    duration: float,
) -> None:
    """
    Record metrics for one upstream WebDAV round trip.

    Args:
        source: Which component sent it ("gateway", "dev_proxy", "client")
        method: HTTP method (GET, PUT, PROPFIND, ...)
        status_code: Upstream status code
        duration: Request duration in seconds
    """
    upstream_requests_total.labels(
        source=source, method=method, status_code=str(status_code)
    ).inc()
    upstream_request_duration_seconds.labels(source=source, method=method).observe(
        duration
    )


def record_upstream_error(source: str, error_type: str) -> None:
    upstream_errors_total.labels(source=source, error_type=error_type).inc()


def record_facade_operation(
    operation: str, strategy: str, duration: float, status: str = "success"
) -> None:
    """
    Record a client facade operation.

    Args:
        operation: Operation name (list, read, write, ...)
        strategy: Active routing strategy value
        duration: Operation duration in seconds
        status: "success" or "error"
    """
    facade_operations_total.labels(
        operation=operation, strategy=strategy, status=status
    ).inc()
    facade_operation_duration_seconds.labels(
        operation=operation, strategy=strategy
    ).observe(duration)


def set_dependency_health(dependency: str, is_healthy: bool) -> None:
    """
    Update external dependency health status.

    Args:
        dependency: Dependency name (currently only "upstream")
        is_healthy: True if dependency is healthy, False otherwise
    """
    dependency_health.labels(dependency=dependency).set(1 if is_healthy else 0)
