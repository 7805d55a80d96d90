import logging
from typing import Any, Callable, Dict, Iterable, List, Optional

from ..config import Settings, get_settings
from ..errors import ApiError, UnauthorizedError
from ..models import User, UserRole
from ..state import StateStream
from .base import Transport, unwrap

logger = logging.getLogger(__name__)


class AuthSession:
    """Client-side authentication provider.

    Holds the access/refresh tokens and the signed-in user, and tears the session
    down when the API answers 401. Navigation after logout is left to whoever
    registers an ``on_logout`` callback.
    """

    def __init__(self, transport: Transport, settings: Optional[Settings] = None) -> None:
        self.transport = transport
        self.settings = settings or get_settings()
        self._token: Optional[str] = None
        self._refresh_token: Optional[str] = None
        self.user: StateStream[Optional[User]] = StateStream(None, name="user")
        self.authenticated: StateStream[bool] = StateStream(False, name="authenticated")
        self._logout_callbacks: List[Callable[[], None]] = []

    # ---- Token access ----
    def current_token(self) -> Optional[str]:
        return self._token

    def restore(self, token: str, refresh_token: Optional[str] = None, user: Optional[User] = None) -> None:
        """Seed the session from previously stored credentials."""
        self._apply(token, refresh_token, user)

    def _apply(self, token: str, refresh_token: Optional[str], user: Optional[User]) -> None:
        self._token = token
        if refresh_token:
            self._refresh_token = refresh_token
        if user is not None:
            self.user.set(user)
        self.authenticated.set(True)

    @staticmethod
    def _credentials(body: Any) -> Dict[str, Any]:
        payload = unwrap(body)
        return payload if isinstance(payload, dict) else {}

    # ---- Flows ----
    def login(self, email: str, password: str) -> Optional[User]:
        try:
            reply = self.transport.send(
                "POST",
                "/auth/login",
                json={"email": email, "password": password},
                timeout=self.settings.write_timeout_seconds,
            )
        except UnauthorizedError as e:
            raise UnauthorizedError("Invalid credentials", status=e.status, detail=e.detail) from e

        payload = self._credentials(reply.body)
        token = payload.get("token") or payload.get("accessToken")
        if not token:
            raise UnauthorizedError("Login response carried no token", status=reply.status)
        user = User.model_validate(payload["user"]) if payload.get("user") else None
        self._apply(token, payload.get("refreshToken"), user)
        logger.info("Signed in as %s", email)
        return user

    def register(self, name: str, email: str, password: str, role: UserRole = UserRole.STUDENT) -> Optional[User]:
        reply = self.transport.send(
            "POST",
            "/auth/register",
            json={"name": name, "email": email, "password": password, "role": UserRole(role).value},
            timeout=self.settings.write_timeout_seconds,
        )
        payload = self._credentials(reply.body)
        user = User.model_validate(payload["user"]) if payload.get("user") else None
        token = payload.get("token") or payload.get("accessToken")
        if token:
            self._apply(token, payload.get("refreshToken"), user)
        return user

    def refresh(self) -> str:
        """Exchange the refresh token for a new access token; logs out on failure."""
        presented = self._refresh_token or self._token
        if not presented:
            raise UnauthorizedError("No token available", status=401)
        try:
            reply = self.transport.send(
                "POST",
                "/auth/refresh",
                json={"token": presented},
                timeout=self.settings.write_timeout_seconds,
            )
        except ApiError:
            self.logout()
            raise
        token = self._credentials(reply.body).get("token")
        if not token:
            self.logout()
            raise UnauthorizedError("Refresh response carried no token", status=reply.status)
        self._token = token
        return token

    def logout(self) -> None:
        self._token = None
        self._refresh_token = None
        self.user.set(None)
        self.authenticated.set(False)
        for callback in list(self._logout_callbacks):
            callback()

    def handle_unauthorized(self) -> None:
        logger.warning("API answered 401; ending session")
        self.logout()

    def on_logout(self, callback: Callable[[], None]) -> Callable[[], None]:
        self._logout_callbacks.append(callback)

        def remove() -> None:
            if callback in self._logout_callbacks:
                self._logout_callbacks.remove(callback)

        return remove

    # ---- Queries ----
    def is_authenticated(self) -> bool:
        return self.authenticated.value

    def current_user(self) -> Optional[User]:
        return self.user.value

    def has_role(self, roles: Iterable[UserRole]) -> bool:
        user = self.user.value
        if user is None:
            return False
        return user.role in set(roles)

    def is_admin(self) -> bool:
        return self.has_role([UserRole.ADMIN])
