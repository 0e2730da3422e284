"""
Logging configuration for the WebDAV bridge.

This module provides:
- Structured JSON logging with python-json-logger
- Trace context injection (trace_id, span_id) for correlation with traces
- Configurable log formats (JSON or text)
- An access-log filter that hides health checks and CORS preflights
"""

import logging
import sys
from typing import Any

from pythonjsonlogger.json import JsonFormatter

from webdav_bridge.observability.tracing import get_trace_context

QUIET_ENDPOINTS = ("/health/live", "/health/ready", "/metrics")


class PreflightFilter(logging.Filter):
    """
    Logging filter that drops health check polls and CORS preflight requests.

    Browsers issue an OPTIONS request ahead of nearly every WebDAV call, which
    would otherwise double the access log volume.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        if '"OPTIONS ' in message:
            return False
        return not any(endpoint in message for endpoint in QUIET_ENDPOINTS)


class TraceContextFormatter(JsonFormatter):
    """JSON formatter that injects OpenTelemetry trace context into log records."""

    def add_fields(
        self,
        log_record: dict[str, Any],
        record: logging.LogRecord,
        message_dict: dict[str, Any],
    ) -> None:
        super().add_fields(log_record, record, message_dict)

        trace_context = get_trace_context()
        if trace_context:
            log_record["trace_id"] = trace_context.get("trace_id")
            log_record["span_id"] = trace_context.get("span_id")

        log_record["timestamp"] = self.formatTime(record)
        log_record["level"] = record.levelname
        log_record["logger"] = record.name
        log_record["message"] = record.getMessage()

        if record.exc_info:
            log_record["exception"] = self.formatException(record.exc_info)


class TraceContextTextFormatter(logging.Formatter):
    """
    Text formatter that includes OpenTelemetry trace context.

    Format: LEVEL [timestamp] logger - message [trace_id=xxx span_id=yyy]
    """

    def format(self, record: logging.LogRecord) -> str:
        base_message = super().format(record)

        trace_context = get_trace_context()
        if trace_context:
            trace_id = trace_context.get("trace_id", "")
            span_id = trace_context.get("span_id", "")
            return f"{base_message} [trace_id={trace_id} span_id={span_id}]"

        return base_message


def _formatter_spec(log_format: str, include_trace_context: bool) -> tuple[str, str]:
    """Return (formatter class path, format string) for a log format."""
    if log_format.lower() == "json":
        if include_trace_context:
            formatter_class = (
                "webdav_bridge.observability.logging_config.TraceContextFormatter"
            )
        else:
            formatter_class = "pythonjsonlogger.json.JsonFormatter"
        return formatter_class, "%(timestamp)s %(level)s %(name)s %(message)s"

    if include_trace_context:
        formatter_class = (
            "webdav_bridge.observability.logging_config.TraceContextTextFormatter"
        )
    else:
        formatter_class = "logging.Formatter"
    return formatter_class, "%(levelname)s [%(asctime)s] %(name)s - %(message)s"


def setup_logging(
    log_format: str = "text",
    log_level: str = "INFO",
    include_trace_context: bool = True,
) -> None:
    """
    Configure root logging.

    Args:
        log_format: "json" for JSON logging, "text" for human-readable text
        log_level: Minimum log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        include_trace_context: Whether to include trace context in logs
    """
    level = getattr(logging, log_level.upper(), logging.INFO)
    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)

    if log_format.lower() == "json":
        formatter_cls = (
            TraceContextFormatter if include_trace_context else JsonFormatter
        )
        formatter: logging.Formatter = formatter_cls(
            "%(timestamp)s %(level)s %(name)s %(message)s",
            datefmt="%Y-%m-%dT%H:%M:%S",
        )
    else:
        text_cls = (
            TraceContextTextFormatter if include_trace_context else logging.Formatter
        )
        formatter = text_cls(
            "%(levelname)s [%(asctime)s] %(name)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    configure_component_loggers(log_level)

    root_logger.info(
        f"Logging configured: format={log_format}, level={log_level}, "
        f"trace_context={include_trace_context}"
    )


def configure_component_loggers(default_level: str = "INFO") -> None:
    """Set log levels for application and library loggers."""
    logger_levels = {
        "webdav_bridge": default_level,
        # Request/response hooks log at DEBUG on the client loggers
        "webdav_bridge.client": default_level,
        "httpx": "WARNING",
        "httpcore": "WARNING",
        "uvicorn": "INFO",
        "uvicorn.access": "INFO",
        "uvicorn.error": "INFO",
        "opentelemetry": "WARNING",
    }

    for logger_name, level in logger_levels.items():
        logging.getLogger(logger_name).setLevel(
            getattr(logging, level.upper(), logging.INFO)
        )


def get_uvicorn_logging_config(
    log_format: str = "text",
    log_level: str = "INFO",
    include_trace_context: bool = True,
) -> dict:
    """
    Get a uvicorn-compatible logging configuration.

    Args:
        log_format: "json" or "text"
        log_level: Minimum log level
        include_trace_context: Whether to include trace IDs in logs

    Returns:
        Logging config dict for uvicorn's ``log_config`` parameter
    """
    formatter_class, format_string = _formatter_spec(log_format, include_trace_context)

    def quiet(handler: str, level: str = "INFO") -> dict:
        return {"handlers": [handler], "level": level, "propagate": False}

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": {
                "()": formatter_class,
                "format": format_string,
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
        },
        "filters": {
            "preflight_filter": {
                "()": "webdav_bridge.observability.logging_config.PreflightFilter",
            },
        },
        "handlers": {
            "default": {
                "formatter": "default",
                "class": "logging.StreamHandler",
                "stream": "ext://sys.stdout",
            },
            "access": {
                "formatter": "default",
                "class": "logging.StreamHandler",
                "stream": "ext://sys.stdout",
                "filters": ["preflight_filter"],
            },
        },
        "loggers": {
            "": {"handlers": ["default"], "level": log_level.upper()},
            "uvicorn": quiet("default"),
            "uvicorn.access": quiet("access"),
            "uvicorn.error": quiet("default"),
            "httpx": quiet("default", "WARNING"),
            "httpcore": quiet("default", "WARNING"),
            "opentelemetry": quiet("default", "WARNING"),
        },
    }
