import time
from functools import wraps
from typing import Any, Callable, Dict, Optional

import jwt
from flask import abort, g, request
from pydantic import BaseModel, ValidationError, field_validator

from ..config import Settings, get_settings
from ..models import UserRole
from .store import UserRecord


class JWTClaims(BaseModel):
    """Pydantic model for normalized JWT claims used by the API."""

    sub: str
    email: Optional[str] = None
    role: UserRole = UserRole.STUDENT
    exp: int

    @field_validator("role", mode="before")
    @classmethod
    def normalize_role(cls, v):
        role = v.strip().lower() if isinstance(v, str) else "student"
        role_map = {
            "admin": "admin",
            "administrator": "admin",
            "teacher": "teacher",
            "faculty": "teacher",
            "instructor": "teacher",
            "student": "student",
            "parent": "parent",
            "guardian": "parent",
        }
        return role_map.get(role, "guest")


class TokenService:
    """Issues and validates access/refresh JWTs and guards API routes."""

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self.settings = settings or get_settings()

    # ---- Issuing ----
    def _encode(self, user: UserRecord, secret: str, ttl: int) -> str:
        payload: Dict[str, Any] = {
            "sub": user.id,
            "email": user.email,
            "role": user.role.value,
            "exp": int(time.time()) + ttl,
            # Distinguishes tokens issued within the same second.
            "jti": f"{time.time_ns():x}",
        }
        if self.settings.jwt_issuer:
            payload["iss"] = self.settings.jwt_issuer
        if self.settings.jwt_audience:
            payload["aud"] = self.settings.jwt_audience
        return jwt.encode(payload, secret, algorithm="HS256")

    def issue_access(self, user: UserRecord) -> str:
        return self._encode(user, self.settings.jwt_secret, self.settings.access_token_ttl_seconds)

    def issue_refresh(self, user: UserRecord) -> str:
        return self._encode(user, self.settings.jwt_refresh_secret, self.settings.refresh_token_ttl_seconds)

    # ---- Validation ----
    def _decode_jwt(self, token: str, secret: str) -> dict:
        """Decode and validate a JWT (HS256)."""
        options = {"require": ["exp", "sub"], "verify_exp": True}
        kwargs: Dict[str, Any] = {"algorithms": ["HS256"]}
        if self.settings.jwt_issuer:
            kwargs["issuer"] = self.settings.jwt_issuer
        if self.settings.jwt_audience:
            kwargs["audience"] = self.settings.jwt_audience
        return jwt.decode(token, secret, options=options, **kwargs)

    def decode_access(self, token: str) -> JWTClaims:
        return JWTClaims.model_validate(self._decode_jwt(token, self.settings.jwt_secret))

    def decode_refresh(self, token: str) -> JWTClaims:
        return JWTClaims.model_validate(self._decode_jwt(token, self.settings.jwt_refresh_secret))

    def default_claims(self) -> JWTClaims:
        # Local dev identity used when auth is disabled.
        return JWTClaims(sub="dev-admin", email="admin@example.com", role="admin", exp=int(time.time()) + 3600)

    # ---- Request guard ----
    def authenticate(self) -> None:
        """Populate ``g.claims`` from the bearer token or abort with 401."""
        if self.settings.disable_auth:
            g.claims = self.default_claims()
            return

        auth = request.headers.get("Authorization", "")
        if not auth.startswith("Bearer "):
            abort(401, description="Please authenticate")

        token = auth.split(" ", 1)[1].strip()
        try:
            g.claims = self.decode_access(token)
        except (jwt.PyJWTError, ValidationError):
            abort(401, description="Please authenticate")

    def login_required(self, fn: Callable) -> Callable:
        @wraps(fn)
        def wrapper(*args, **kwargs):
            self.authenticate()
            return fn(*args, **kwargs)

        return wrapper

    def require_roles(self, *roles: UserRole) -> Callable[[Callable], Callable]:
        allowed = {UserRole(r) for r in roles}

        def decorator(fn: Callable) -> Callable:
            @wraps(fn)
            def wrapper(*args, **kwargs):
                claims: Optional[JWTClaims] = getattr(g, "claims", None)
                if claims is None:
                    abort(401, description="Authentication required")
                if claims.role not in allowed:
                    abort(403, description="Insufficient permissions")
                return fn(*args, **kwargs)

            return wrapper

        return decorator
