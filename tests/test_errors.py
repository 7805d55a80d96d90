import pytest

from roster.errors import (
    RETRYABLE_KINDS,
    ApiError,
    ErrorKind,
    error_for_status,
    network_unreachable,
    request_timeout,
)


@pytest.mark.parametrize(
    "status,kind",
    [
        (400, ErrorKind.BAD_REQUEST),
        (401, ErrorKind.UNAUTHORIZED),
        (403, ErrorKind.FORBIDDEN),
        (404, ErrorKind.NOT_FOUND),
        (409, ErrorKind.CONFLICT),
        (422, ErrorKind.VALIDATION_FAILED),
        (429, ErrorKind.RATE_LIMITED),
        (500, ErrorKind.SERVER_ERROR),
        (502, ErrorKind.SERVER_ERROR),
        (503, ErrorKind.SERVICE_UNAVAILABLE),
        (418, ErrorKind.UNKNOWN),
        (0, ErrorKind.NETWORK_UNREACHABLE),
    ],
)
def test_error_for_status_classifies(status, kind):
    err = error_for_status(status)
    assert isinstance(err, ApiError)
    assert err.kind is kind
    assert err.status == status


def test_server_message_flows_into_text():
    err = error_for_status(400, {"success": False, "message": "Email already registered"})
    assert err.message == "Bad Request: Email already registered"
    assert err.detail == "Email already registered"
    assert str(error_for_status(418, {"error": "teapot"})) == "Error 418: teapot"


def test_transport_failures_are_retryable():
    assert network_unreachable("refused").kind in RETRYABLE_KINDS
    assert request_timeout(5).kind in RETRYABLE_KINDS
    assert "5s" in request_timeout(5).detail
    assert error_for_status(503).kind not in RETRYABLE_KINDS
