"""Reference REST backend exposing the student and auth API consumed by the client."""
import datetime as dt
from typing import Optional

from flask import Flask, jsonify
from flask_caching import Cache
from werkzeug.exceptions import HTTPException

from ..config import Settings, get_settings
from .auth import TokenService
from .routes import create_auth_blueprint, create_students_blueprint
from .store import StudentStore, UserStore


def _json_http_error(e: HTTPException):
    resp = jsonify({"success": False, "message": e.description})
    resp.status_code = e.code or 500
    return resp


class ServerFactory:
    """Class-based factory for the Flask server and its Cache."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        students: Optional[StudentStore] = None,
        users: Optional[UserStore] = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.students = students if students is not None else StudentStore()
        self.users = users if users is not None else UserStore()
        self.tokens = TokenService(self.settings)

    def create_cache(self, server: Flask) -> Cache:
        cache = Cache(server, config={
            "CACHE_TYPE": self.settings.cache_type,
            "CACHE_DEFAULT_TIMEOUT": self.settings.cache_timeout_seconds,
            **({"CACHE_REDIS_URL": self.settings.redis_url} if self.settings.cache_type == "RedisCache" else {})
        })
        return cache

    def create_server(self) -> Flask:
        server = Flask(__name__)
        server.config["APP_TITLE"] = self.settings.app_title

        @server.route("/health")
        def health():
            return {"status": "ok", "time": dt.datetime.now(dt.timezone.utc).isoformat()}

        cache = self.create_cache(server)
        server.register_error_handler(HTTPException, _json_http_error)
        server.register_blueprint(create_auth_blueprint(self.users, self.tokens), url_prefix="/api/auth")
        server.register_blueprint(
            create_students_blueprint(self.students, cache, self.tokens), url_prefix="/api/students"
        )
        return server


def create_server(settings: Optional[Settings] = None) -> Flask:
    return ServerFactory(settings).create_server()


__all__ = ["ServerFactory", "create_server"]
