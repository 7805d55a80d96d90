import logging
from typing import Any, Mapping, Optional

import requests

from ..config import Settings, get_settings
from ..errors import network_unreachable, request_failed, request_timeout
from .base import Reply, TokenSource, raise_for_reply

logger = logging.getLogger(__name__)

# Endpoints that must never carry a bearer token or trigger session teardown.
AUTH_SKIP_PATHS = ("/auth/login", "/auth/register", "/auth/refresh")


def skips_auth(path: str) -> bool:
    return any(skip in path for skip in AUTH_SKIP_PATHS)


class RestTransport:
    """Sends requests to the REST API with `requests`, injecting the bearer token.

    A 401 on an authenticated endpoint calls ``auth.handle_unauthorized()`` before
    the classified error is raised.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        session: Optional[requests.Session] = None,
        auth: Optional[TokenSource] = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.session = session or requests.Session()
        self.auth = auth

    @property
    def base_url(self) -> str:
        return self.settings.api_base_url

    def _url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    @staticmethod
    def _decode(resp: requests.Response) -> Any:
        if "json" not in resp.headers.get("Content-Type", "") or not resp.content:
            return None
        try:
            return resp.json()
        except ValueError:
            return None

    def send(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Mapping[str, str]] = None,
        json: Any = None,
        timeout: float,
    ) -> Reply:
        headers = {"Accept": "application/json"}
        skip_auth = skips_auth(path)
        if self.auth is not None and not skip_auth:
            token = self.auth.current_token()
            if token:
                headers["Authorization"] = f"Bearer {token}"

        url = self._url(path)
        try:
            resp = self.session.request(method, url, params=params, json=json, headers=headers, timeout=timeout)
        except requests.Timeout as e:
            # ConnectTimeout is also a ConnectionError; the budget is what ran out.
            raise request_timeout(timeout) from e
        except (requests.ConnectionError, requests.exceptions.ChunkedEncodingError) as e:
            raise network_unreachable(str(e)) from e
        except requests.RequestException as e:
            raise request_failed(str(e)) from e

        logger.debug("%s %s -> %s", method, url, resp.status_code)
        reply = Reply(
            status=resp.status_code,
            body=self._decode(resp),
            content=resp.content,
            headers=dict(resp.headers),
        )
        if reply.status == 401 and self.auth is not None and not skip_auth:
            self.auth.handle_unauthorized()
        return raise_for_reply(reply)

    def close(self) -> None:
        self.session.close()
