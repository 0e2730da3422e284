"""Unit tests for error classification."""

import xml.etree.ElementTree as ET

import httpx
import pytest

from webdav_bridge.errors import (
    AlreadyExistsError,
    ErrorCategory,
    ForbiddenError,
    MalformedUpstreamResponseError,
    MethodNotAllowedError,
    NotFoundError,
    NotInitializedError,
    TransportError,
    UnauthorizedError,
    UnknownUpstreamError,
    classify_error,
    error_for_status,
)

pytestmark = pytest.mark.unit


def _status_error(status_code: int) -> httpx.HTTPStatusError:
    request = httpx.Request("PROPFIND", "https://dav.jianguoyun.com/dav/")
    response = httpx.Response(status_code, request=request)
    return httpx.HTTPStatusError(
        f"Server error '{status_code}'", request=request, response=response
    )


@pytest.mark.parametrize(
    "status_code,expected",
    [
        (401, UnauthorizedError),
        (403, ForbiddenError),
        (404, NotFoundError),
        (405, MethodNotAllowedError),
        (412, AlreadyExistsError),
    ],
)
def test_known_statuses_map_to_categories(status_code, expected):
    error = classify_error(_status_error(status_code))
    assert isinstance(error, expected)
    assert error.status_code == status_code


def test_unauthorized_message_mentions_credentials():
    assert "username and password" in classify_error(_status_error(401)).message


def test_unknown_status_passes_message_through():
    error = classify_error(_status_error(507))
    assert isinstance(error, UnknownUpstreamError)
    assert error.message == "Server error '507'"


def test_error_for_status_without_detail():
    assert error_for_status(418).message == "Unexpected upstream status 418"


def test_transport_errors():
    request = httpx.Request("GET", "https://dav.jianguoyun.com/dav/")
    assert isinstance(
        classify_error(httpx.ConnectError("refused", request=request)), TransportError
    )
    assert isinstance(
        classify_error(httpx.ReadTimeout("slow", request=request)), TransportError
    )
    timed_out = classify_error(TimeoutError())
    assert isinstance(timed_out, TransportError)
    assert timed_out.message == "Operation timed out"


def test_parse_errors_are_malformed_responses():
    try:
        ET.fromstring(b"<not-closed")
    except ET.ParseError as e:
        error = classify_error(e)
    assert isinstance(error, MalformedUpstreamResponseError)
    assert error.category is ErrorCategory.MALFORMED_RESPONSE


def test_classified_errors_are_returned_unchanged():
    error = NotInitializedError()
    assert classify_error(error) is error
    assert error.message == "WebDAV client is not initialized"


def test_other_exceptions_pass_through_verbatim():
    error = classify_error(RuntimeError("something odd"))
    assert isinstance(error, UnknownUpstreamError)
    assert error.message == "something odd"
    assert classify_error(KeyError()).message == "KeyError"
