import logging
import os
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlparse

DEFAULT_UPSTREAM_URL = "https://dav.jianguoyun.com/dav"
DEFAULT_GATEWAY_PREFIX = "/api/webdav"
DEFAULT_DEV_PROXY_PREFIX = "/webdav"
DEFAULT_USER_AGENT = "webdav-bridge/1.0"


@dataclass
class Settings:
    """Application settings from environment variables."""

    # Upstream WebDAV origin, including its WebDAV root path
    upstream_url: str = DEFAULT_UPSTREAM_URL

    # Public path prefixes served by this process
    gateway_prefix: str = DEFAULT_GATEWAY_PREFIX
    dev_proxy_prefix: str = DEFAULT_DEV_PROXY_PREFIX
    dev_mode: bool = False

    # Origins the client facade uses to reach the gateway / dev proxy
    gateway_origin: str = "http://127.0.0.1:8000"
    dev_proxy_origin: str = "http://127.0.0.1:5173"
    serverless_host_pattern: str = "vercel.app"

    # Request bounds (seconds)
    request_timeout: float = 30.0
    connect_timeout: float = 5.0
    user_agent: str = DEFAULT_USER_AGENT

    # Sync folder the `probe` command configures
    webdav_sync_path: str = "/fastReader"

    # Observability settings
    metrics_enabled: bool = True
    metrics_port: int = 9090
    otel_exporter_otlp_endpoint: Optional[str] = None
    otel_exporter_verify_ssl: bool = False
    otel_service_name: str = "webdav-bridge"
    log_format: str = "text"  # "json" or "text"
    log_level: str = "INFO"
    log_include_trace_context: bool = True

    def __post_init__(self):
        """Validate prefixes, timeouts and the upstream URL."""
        logger = logging.getLogger(__name__)

        for name in ("gateway_prefix", "dev_proxy_prefix"):
            value = getattr(self, name)
            if not value.startswith("/") or value == "/":
                raise ValueError(
                    f"WEBDAV_{name.upper()} must start with '/' and name a path segment, got {value!r}"
                )
            if value.endswith("/"):
                setattr(self, name, value.rstrip("/"))

        if self.gateway_prefix == self.dev_proxy_prefix:
            raise ValueError(
                "WEBDAV_GATEWAY_PREFIX and WEBDAV_DEV_PROXY_PREFIX must differ."
            )

        parsed = urlparse(self.upstream_url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError(
                f"WEBDAV_UPSTREAM_URL must be an absolute http(s) URL, got {self.upstream_url!r}"
            )
        self.upstream_url = self.upstream_url.rstrip("/")

        if self.request_timeout <= 0 or self.connect_timeout <= 0:
            raise ValueError("Request and connect timeouts must be positive.")

        if self.connect_timeout > self.request_timeout:
            logger.warning(
                f"WEBDAV_CONNECT_TIMEOUT ({self.connect_timeout}s) exceeds "
                f"WEBDAV_REQUEST_TIMEOUT ({self.request_timeout}s); the request timeout wins."
            )

    @property
    def upstream_root(self) -> str:
        """WebDAV root path on the upstream (``/dav`` for the default)."""
        return urlparse(self.upstream_url).path or "/"

    @property
    def upstream_host(self) -> str:
        return urlparse(self.upstream_url).hostname or ""


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() == "true"


def get_settings() -> Settings:
    """Get application settings from environment variables.

    Returns:
        Settings object with configuration values
    """
    return Settings(
        upstream_url=os.getenv("WEBDAV_UPSTREAM_URL", DEFAULT_UPSTREAM_URL),
        gateway_prefix=os.getenv("WEBDAV_GATEWAY_PREFIX", DEFAULT_GATEWAY_PREFIX),
        dev_proxy_prefix=os.getenv("WEBDAV_DEV_PROXY_PREFIX", DEFAULT_DEV_PROXY_PREFIX),
        dev_mode=_env_bool("WEBDAV_DEV_MODE"),
        gateway_origin=os.getenv("WEBDAV_GATEWAY_ORIGIN", "http://127.0.0.1:8000"),
        dev_proxy_origin=os.getenv("WEBDAV_DEV_PROXY_ORIGIN", "http://127.0.0.1:5173"),
        serverless_host_pattern=os.getenv(
            "WEBDAV_SERVERLESS_HOST_PATTERN", "vercel.app"
        ),
        request_timeout=float(os.getenv("WEBDAV_REQUEST_TIMEOUT", "30")),
        connect_timeout=float(os.getenv("WEBDAV_CONNECT_TIMEOUT", "5")),
        user_agent=os.getenv("WEBDAV_USER_AGENT", DEFAULT_USER_AGENT),
        webdav_sync_path=os.getenv("WEBDAV_SYNC_PATH", "/fastReader"),
        # Observability settings
        metrics_enabled=_env_bool("METRICS_ENABLED", "true"),
        metrics_port=int(os.getenv("METRICS_PORT", "9090")),
        otel_exporter_otlp_endpoint=os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT"),
        otel_exporter_verify_ssl=_env_bool("OTEL_EXPORTER_VERIFY_SSL"),
        otel_service_name=os.getenv("OTEL_SERVICE_NAME", "webdav-bridge"),
        log_format=os.getenv("LOG_FORMAT", "text"),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        log_include_trace_context=_env_bool("LOG_INCLUDE_TRACE_CONTEXT", "true"),
    )
