import time

import jwt
import pytest

from roster.client.auth import AuthSession
from roster.client.base import Reply
from roster.config import Settings
from roster.errors import NetworkUnreachableError, UnauthorizedError, network_unreachable
from roster.models import UserRole
from roster.server.auth import JWTClaims, TokenService
from roster.server.store import UserStore


def make_settings(**overrides):
    return Settings(**overrides)


# ---- Server-side tokens ----

def test_issue_and_decode_access_token():
    s = make_settings(jwt_secret="secret", jwt_refresh_secret="refresh")
    users = UserStore()
    user = users.create("Ada", "ada@example.com", "hunter22", UserRole.TEACHER)
    svc = TokenService(settings=s)
    claims = svc.decode_access(svc.issue_access(user))
    assert claims.sub == user.id
    assert claims.role is UserRole.TEACHER


def test_refresh_token_not_valid_as_access_token():
    s = make_settings(jwt_secret="secret", jwt_refresh_secret="refresh")
    user = UserStore().create("Ada", "ada@example.com", "hunter22")
    svc = TokenService(settings=s)
    with pytest.raises(jwt.InvalidSignatureError):
        svc.decode_access(svc.issue_refresh(user))


def test_role_mapping_normalizes_aliases():
    payload = {"sub": "u1", "role": "Administrator", "exp": int(time.time()) + 60}
    assert JWTClaims.model_validate(payload).role is UserRole.ADMIN
    payload["role"] = "janitor"
    assert JWTClaims.model_validate(payload).role is UserRole.GUEST


def test_decode_invalid_token_raises():
    svc = TokenService(settings=make_settings(jwt_secret="secret"))
    with pytest.raises(jwt.PyJWTError):
        svc.decode_access("not-a-token")


def test_expired_token_rejected():
    s = make_settings(jwt_secret="secret")
    svc = TokenService(settings=s)
    tok = jwt.encode({"sub": "u1", "role": "admin", "exp": int(time.time()) - 10}, "secret", algorithm="HS256")
    with pytest.raises(jwt.ExpiredSignatureError):
        svc.decode_access(tok)


# ---- Client session ----

class ScriptedTransport:
    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.sent = []

    def send(self, method, path, *, params=None, json=None, timeout):
        self.sent.append((method, path, json))
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return Reply(status=200, body=outcome)


USER = {"id": "u1", "name": "Ada", "email": "ada@example.com", "role": "admin"}


def test_login_stores_token_and_user():
    session = AuthSession(ScriptedTransport({"success": True, "token": "a1", "refreshToken": "r1", "user": USER}))
    user = session.login("ada@example.com", "pw")
    assert session.current_token() == "a1"
    assert user.role is UserRole.ADMIN
    assert session.is_authenticated()
    assert session.is_admin()
    assert session.has_role([UserRole.TEACHER]) is False


def test_login_rejection_reads_as_invalid_credentials():
    from roster.errors import error_for_status

    session = AuthSession(ScriptedTransport(error_for_status(401, {"message": "Invalid credentials"})))
    with pytest.raises(UnauthorizedError) as exc_info:
        session.login("ada@example.com", "bad")
    assert exc_info.value.message == "Invalid credentials"
    assert not session.is_authenticated()


def test_refresh_sends_refresh_token_and_swaps_access_token():
    transport = ScriptedTransport({"token": "a2"})
    session = AuthSession(transport)
    session.restore("a1", refresh_token="r1")
    assert session.refresh() == "a2"
    assert transport.sent[0] == ("POST", "/auth/refresh", {"token": "r1"})
    assert session.current_token() == "a2"


def test_refresh_failure_logs_out():
    session = AuthSession(ScriptedTransport(network_unreachable()))
    session.restore("a1")
    redirected = []
    session.on_logout(lambda: redirected.append(True))
    with pytest.raises(NetworkUnreachableError):
        session.refresh()
    assert session.current_token() is None
    assert redirected == [True]


def test_refresh_without_token_fails_fast():
    transport = ScriptedTransport()
    with pytest.raises(UnauthorizedError):
        AuthSession(transport).refresh()
    assert transport.sent == []


def test_handle_unauthorized_tears_down_and_notifies():
    session = AuthSession(ScriptedTransport())
    session.restore("a1")
    states = []
    session.authenticated.subscribe(states.append)
    remove = session.on_logout(lambda: states.append("redirect"))
    session.handle_unauthorized()
    remove()
    session.logout()
    assert states == [True, False, "redirect", False]
    assert session.current_user() is None
