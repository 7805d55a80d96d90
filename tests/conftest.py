import os
import threading
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import pytest

# Ensure predictable environment before importing the package
os.environ.setdefault("API_BASE_URL", "http://api.test/api")
os.environ.setdefault("CACHE_TYPE", "SimpleCache")
os.environ.setdefault("CACHE_TIMEOUT_SECONDS", "0")
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.setdefault("DISABLE_AUTH", "0")

from roster.client.base import Reply, raise_for_reply  # noqa: E402
from roster.client.cache import CacheFacade  # noqa: E402
from roster.client.rest import skips_auth  # noqa: E402
from roster.client.service import StudentService  # noqa: E402
from roster.config import Settings  # noqa: E402


def student_json(sid: Optional[str], name: str = "Ada Lovelace", **overrides: Any) -> Dict[str, Any]:
    data: Dict[str, Any] = {
        "name": name,
        "email": f"{name.split()[0].lower()}@example.com",
        "phone": "5551234567",
        "course": "Computer Science",
        "status": "Active",
        "enrollmentDate": "2024-09-01",
    }
    if sid is not None:
        data["_id"] = sid
    data.update(overrides)
    return data


@dataclass
class Call:
    method: str
    path: str
    params: Dict[str, str]
    json: Any
    timeout: float


class FakeTransport:
    """Scripted Transport: each (method, path) replays its outcomes in order.

    An outcome is a body (dict/list), a Reply, an exception instance, or a
    callable returning one of those. The last outcome repeats once exhausted.
    """

    def __init__(self) -> None:
        self.calls: List[Call] = []
        self._routes: Dict[tuple, list] = {}
        self._lock = threading.Lock()

    def on(self, method: str, path: str, *outcomes: Any) -> "FakeTransport":
        self._routes[(method, path)] = list(outcomes)
        return self

    def count(self, method: str, path: str) -> int:
        return sum(1 for c in self.calls if c.method == method and c.path == path)

    def send(self, method, path, *, params=None, json=None, timeout):
        with self._lock:
            self.calls.append(Call(method, path, dict(params or {}), json, timeout))
            outcomes = self._routes.get((method, path))
            if not outcomes:
                raise AssertionError(f"unexpected request {method} {path}")
            outcome = outcomes.pop(0) if len(outcomes) > 1 else outcomes[0]

        if callable(outcome):
            outcome = outcome(params=params, json=json)
        if isinstance(outcome, Exception):
            raise outcome
        if isinstance(outcome, Reply):
            return raise_for_reply(outcome)
        return Reply(status=200, body=outcome)


class FlaskTransport:
    """Transport over a Flask test client, mirroring RestTransport's auth handling."""

    def __init__(self, client, auth=None) -> None:
        self.client = client
        self.auth = auth

    def send(self, method, path, *, params=None, json=None, timeout):
        headers = {}
        skip = skips_auth(path)
        if self.auth is not None and not skip:
            token = self.auth.current_token()
            if token:
                headers["Authorization"] = f"Bearer {token}"
        resp = self.client.open(f"/api{path}", method=method, query_string=params, json=json, headers=headers)
        reply = Reply(
            status=resp.status_code,
            body=resp.get_json(silent=True),
            content=resp.data,
            headers=dict(resp.headers),
        )
        if reply.status == 401 and self.auth is not None and not skip:
            self.auth.handle_unauthorized()
        return raise_for_reply(reply)


@pytest.fixture
def settings() -> Settings:
    return Settings(read_retries=2, bulk_max_workers=4, cache_timeout_seconds=0)


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def service(transport, settings):
    svc = StudentService(transport, settings=settings, cache=CacheFacade())
    yield svc
    svc.dispose()
