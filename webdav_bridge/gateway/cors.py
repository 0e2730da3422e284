"""CORS header sets for the gateway and the dev proxy."""

from typing import Optional

# Methods forwarded to the upstream; anything else is answered with 405
SUPPORTED_METHODS: tuple[str, ...] = (
    "GET",
    "POST",
    "PUT",
    "DELETE",
    "PROPFIND",
    "PROPPATCH",
    "MKCOL",
    "COPY",
    "MOVE",
    "LOCK",
    "UNLOCK",
    "OPTIONS",
)

# Advertised to browsers in preflight responses
ALLOWED_METHODS: tuple[str, ...] = (*SUPPORTED_METHODS, "HEAD", "PATCH")

ALLOWED_HEADERS: tuple[str, ...] = (
    "Authorization",
    "Content-Type",
    "Depth",
    "Destination",
    "Overwrite",
    "Timeout",
    "User-Agent",
    "If-None-Match",
    "If-Match",
)

MAX_AGE = "86400"

DEV_ALLOWED_METHODS = "GET, POST, PUT, DELETE, OPTIONS"
DEV_ALLOWED_HEADERS = "Content-Type, Authorization, Content-Length, X-Requested-With"


def gateway_cors_headers(origin: Optional[str] = None) -> dict[str, str]:
    """Full CORS header set attached to every gateway response.

    The request ``Origin`` is echoed when present, otherwise ``*``.
    """
    headers = {
        "Access-Control-Allow-Origin": origin or "*",
        "Access-Control-Allow-Methods": ", ".join(ALLOWED_METHODS),
        "Access-Control-Allow-Headers": ", ".join(ALLOWED_HEADERS),
        "Access-Control-Allow-Credentials": "true",
        "Access-Control-Max-Age": MAX_AGE,
    }
    if origin:
        headers["Vary"] = "Origin"
    return headers


def dev_cors_headers() -> dict[str, str]:
    """CORS header set the dev proxy forces onto every response."""
    return {
        "Access-Control-Allow-Origin": "*",
        "Access-Control-Allow-Methods": DEV_ALLOWED_METHODS,
        "Access-Control-Allow-Headers": DEV_ALLOWED_HEADERS,
    }


def is_cors_header(name: str) -> bool:
    return name.lower().startswith("access-control-")
