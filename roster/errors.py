"""Classified API failures.

Every transport or server failure seen by the client is mapped onto one
:class:`ErrorKind` and raised as the matching :class:`ApiError` subclass.
"""
from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional, Type


class ErrorKind(str, Enum):
    NETWORK_UNREACHABLE = "NetworkUnreachable"
    BAD_REQUEST = "BadRequest"
    UNAUTHORIZED = "Unauthorized"
    FORBIDDEN = "Forbidden"
    NOT_FOUND = "NotFound"
    CONFLICT = "Conflict"
    VALIDATION_FAILED = "ValidationFailed"
    RATE_LIMITED = "RateLimited"
    SERVER_ERROR = "ServerError"
    SERVICE_UNAVAILABLE = "ServiceUnavailable"
    TIMEOUT = "Timeout"
    UNKNOWN = "Unknown"


class ApiError(Exception):
    """Base class for classified client-side failures."""

    kind: ErrorKind = ErrorKind.UNKNOWN

    def __init__(self, message: str, status: int = 0, detail: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.status = status
        self.detail = detail

    def __repr__(self) -> str:
        return f"{type(self).__name__}(kind={self.kind.value!r}, status={self.status}, message={self.message!r})"


class NetworkUnreachableError(ApiError):
    kind = ErrorKind.NETWORK_UNREACHABLE


class BadRequestError(ApiError):
    kind = ErrorKind.BAD_REQUEST


class UnauthorizedError(ApiError):
    kind = ErrorKind.UNAUTHORIZED


class ForbiddenError(ApiError):
    kind = ErrorKind.FORBIDDEN


class NotFoundError(ApiError):
    kind = ErrorKind.NOT_FOUND


class ConflictError(ApiError):
    kind = ErrorKind.CONFLICT


class ValidationFailedError(ApiError):
    kind = ErrorKind.VALIDATION_FAILED


class RateLimitedError(ApiError):
    kind = ErrorKind.RATE_LIMITED


class ServerError(ApiError):
    kind = ErrorKind.SERVER_ERROR


class ServiceUnavailableError(ApiError):
    kind = ErrorKind.SERVICE_UNAVAILABLE


class RequestTimeoutError(ApiError):
    kind = ErrorKind.TIMEOUT


class UnknownApiError(ApiError):
    kind = ErrorKind.UNKNOWN


# Transport-class failures; the only ones reads may retry.
RETRYABLE_KINDS = frozenset({ErrorKind.NETWORK_UNREACHABLE, ErrorKind.TIMEOUT})

_BY_STATUS: Dict[int, Type[ApiError]] = {
    0: NetworkUnreachableError,
    400: BadRequestError,
    401: UnauthorizedError,
    403: ForbiddenError,
    404: NotFoundError,
    409: ConflictError,
    422: ValidationFailedError,
    429: RateLimitedError,
    500: ServerError,
    503: ServiceUnavailableError,
}


def _server_message(body: Any) -> Optional[str]:
    if isinstance(body, dict):
        for key in ("message", "error"):
            value = body.get(key)
            if isinstance(value, str) and value:
                return value
    return None


def _message_for(kind: ErrorKind, status: int, detail: Optional[str]) -> str:
    if kind is ErrorKind.NETWORK_UNREACHABLE:
        return "Network Error: Unable to connect to server"
    if kind is ErrorKind.BAD_REQUEST:
        return f"Bad Request: {detail or 'Invalid data'}"
    if kind is ErrorKind.UNAUTHORIZED:
        return "Unauthorized: Please login again"
    if kind is ErrorKind.FORBIDDEN:
        return "Forbidden: You do not have permission"
    if kind is ErrorKind.NOT_FOUND:
        return "Resource not found"
    if kind is ErrorKind.CONFLICT:
        return "Conflict: Resource already exists"
    if kind is ErrorKind.VALIDATION_FAILED:
        return f"Validation Error: {detail}" if detail else "Validation Error"
    if kind is ErrorKind.RATE_LIMITED:
        return "Too many requests. Please try again later"
    if kind is ErrorKind.SERVER_ERROR:
        return "Server Error: Please try again later"
    if kind is ErrorKind.SERVICE_UNAVAILABLE:
        return "Service Unavailable: Server is under maintenance"
    if kind is ErrorKind.TIMEOUT:
        return "Timeout: The server did not respond in time"
    return f"Error {status}: {detail or 'Unexpected response'}"


def error_for_status(status: int, body: Any = None) -> ApiError:
    """Build the classified error for a non-success HTTP status."""
    cls = _BY_STATUS.get(status)
    if cls is None:
        cls = ServerError if 500 <= status < 600 else UnknownApiError
    detail = _server_message(body)
    return cls(_message_for(cls.kind, status, detail), status=status, detail=detail)


def network_unreachable(detail: Optional[str] = None) -> NetworkUnreachableError:
    return NetworkUnreachableError(_message_for(ErrorKind.NETWORK_UNREACHABLE, 0, detail), detail=detail)


def request_timeout(budget_seconds: float) -> RequestTimeoutError:
    detail = f"no response within {budget_seconds:g}s"
    return RequestTimeoutError(_message_for(ErrorKind.TIMEOUT, 0, detail), detail=detail)


def request_failed(detail: Optional[str] = None) -> UnknownApiError:
    """A request that failed client-side without a usable reply."""
    return UnknownApiError(f"Request failed: {detail or 'Unexpected error'}", detail=detail)
