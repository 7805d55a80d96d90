"""Client package: transport, response cache, auth session and the student facade.

Public exports:
- Transport protocol, Reply
- RestTransport
- CacheFacade
- AuthSession
- StudentService
- create_client
"""
from typing import Optional

from ..config import Settings, get_settings
from .auth import AuthSession
from .base import Reply, Transport
from .cache import CacheFacade
from .rest import RestTransport
from .service import StudentService


def create_client(settings: Optional[Settings] = None) -> StudentService:
    """Wire a RestTransport, AuthSession and StudentService together.

    The session is reachable as ``service.auth``.
    """
    settings = settings or get_settings()
    transport = RestTransport(settings)
    auth = AuthSession(transport, settings)
    transport.auth = auth
    return StudentService(transport, settings=settings, auth=auth)


__all__ = [
    "Transport",
    "Reply",
    "RestTransport",
    "CacheFacade",
    "AuthSession",
    "StudentService",
    "create_client",
]
