"""Error taxonomy for the WebDAV access layer.

Facade operations never let these escape; they are raised internally and
turned into ``OperationResult.error`` strings by :func:`classify_error`.
"""

import xml.etree.ElementTree as ET
from enum import Enum

from httpx import HTTPStatusError, RequestError, TimeoutException


class ErrorCategory(str, Enum):
    CONFIG_INCOMPLETE = "config_incomplete"
    NOT_INITIALIZED = "not_initialized"
    UNAUTHORIZED = "unauthorized"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"
    METHOD_NOT_ALLOWED = "method_not_allowed"
    ALREADY_EXISTS = "already_exists"
    MALFORMED_RESPONSE = "malformed_response"
    TRANSPORT = "transport"
    CANCELLED = "cancelled"
    UNKNOWN_UPSTREAM = "unknown_upstream"


class WebDAVBridgeError(Exception):
    """Base class for all classified errors."""

    category: ErrorCategory = ErrorCategory.UNKNOWN_UPSTREAM

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class ConfigIncompleteError(WebDAVBridgeError):
    category = ErrorCategory.CONFIG_INCOMPLETE


class NotInitializedError(WebDAVBridgeError):
    category = ErrorCategory.NOT_INITIALIZED

    def __init__(self, message: str = "WebDAV client is not initialized"):
        super().__init__(message)


class UnauthorizedError(WebDAVBridgeError):
    category = ErrorCategory.UNAUTHORIZED


class ForbiddenError(WebDAVBridgeError):
    category = ErrorCategory.FORBIDDEN


class NotFoundError(WebDAVBridgeError):
    category = ErrorCategory.NOT_FOUND


class MethodNotAllowedError(WebDAVBridgeError):
    category = ErrorCategory.METHOD_NOT_ALLOWED


class AlreadyExistsError(WebDAVBridgeError):
    category = ErrorCategory.ALREADY_EXISTS


class MalformedUpstreamResponseError(WebDAVBridgeError):
    category = ErrorCategory.MALFORMED_RESPONSE


class TransportError(WebDAVBridgeError):
    category = ErrorCategory.TRANSPORT


class OperationCancelledError(WebDAVBridgeError):
    category = ErrorCategory.CANCELLED

    def __init__(self, message: str = "Operation was cancelled"):
        super().__init__(message)


class UnknownUpstreamError(WebDAVBridgeError):
    category = ErrorCategory.UNKNOWN_UPSTREAM


_STATUS_ERRORS: dict[int, tuple[type[WebDAVBridgeError], str]] = {
    401: (UnauthorizedError, "Authentication failed, check username and password"),
    403: (
        ForbiddenError,
        "Access forbidden: the server refused this request "
        "(check account permissions or proxy compatibility)",
    ),
    404: (NotFoundError, "Resource not found, check the server address and path"),
    405: (
        MethodNotAllowedError,
        "Method not allowed: the proxy or server rejected this WebDAV method",
    ),
    412: (AlreadyExistsError, "Target already exists and overwrite is disabled"),
}


def error_for_status(status_code: int, detail: str = "") -> WebDAVBridgeError:
    """Map an upstream status code to a classified error.

    Unrecognized codes keep ``detail`` verbatim.
    """
    if status_code in _STATUS_ERRORS:
        error_cls, message = _STATUS_ERRORS[status_code]
        return error_cls(message, status_code=status_code)
    return UnknownUpstreamError(
        detail or f"Unexpected upstream status {status_code}", status_code=status_code
    )


def classify_error(exc: BaseException) -> WebDAVBridgeError:
    """Convert any exception raised during an operation into the taxonomy."""
    if isinstance(exc, WebDAVBridgeError):
        return exc
    if isinstance(exc, HTTPStatusError):
        return error_for_status(exc.response.status_code, str(exc))
    if isinstance(exc, TimeoutException):
        return TransportError(f"Request timed out: {exc}")
    if isinstance(exc, RequestError):
        return TransportError(
            f"Network connection failed, check the server address: {exc}"
        )
    if isinstance(exc, TimeoutError):
        return TransportError("Operation timed out")
    if isinstance(exc, ET.ParseError):
        return MalformedUpstreamResponseError(
            f"Server returned a response that could not be parsed: {exc}"
        )
    return UnknownUpstreamError(str(exc) or type(exc).__name__)
