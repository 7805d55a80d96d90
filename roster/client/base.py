from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Protocol

from ..errors import error_for_status


@dataclass
class Reply:
    """A completed HTTP exchange: status, decoded JSON body (if any) and raw bytes."""

    status: int
    body: Any = None
    content: bytes = b""
    headers: Mapping[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


class Transport(Protocol):
    """Protocol for sending one request to the API.

    Implementations raise classified ``ApiError`` subclasses: network and timeout
    failures as NetworkUnreachable/Timeout, non-2xx replies via ``raise_for_reply``.
    """

    def send(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Mapping[str, str]] = None,
        json: Any = None,
        timeout: float,
    ) -> Reply: ...


class TokenSource(Protocol):
    """What a transport needs from the authentication provider."""

    def current_token(self) -> Optional[str]: ...

    def handle_unauthorized(self) -> None: ...


def raise_for_reply(reply: Reply) -> Reply:
    if not reply.ok:
        raise error_for_status(reply.status, reply.body)
    return reply


def unwrap(body: Any) -> Any:
    """Return the ``data`` member of an API envelope, or the body itself."""
    if isinstance(body, dict) and "data" in body:
        return body["data"]
    return body
