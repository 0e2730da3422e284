"""
Observability for the WebDAV bridge.

This module provides:
- Prometheus metrics collection
- OpenTelemetry distributed tracing
- Structured logging with trace correlation
- Monitoring middleware for Starlette

Usage:
    from webdav_bridge.observability import setup_logging, setup_metrics

    setup_logging(log_format="json")
    setup_metrics(port=9090)
"""

from webdav_bridge.observability.logging_config import (
    get_uvicorn_logging_config,
    setup_logging,
)
from webdav_bridge.observability.metrics import setup_metrics
from webdav_bridge.observability.middleware import ObservabilityMiddleware
from webdav_bridge.observability.tracing import setup_tracing

__all__ = [
    "setup_logging",
    "get_uvicorn_logging_config",
    "setup_metrics",
    "setup_tracing",
    "ObservabilityMiddleware",
]
