from pathlib import Path
from typing import Optional, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# =========================
# Configuration (ENV-DRIVEN via Pydantic)
# =========================


class Settings(BaseSettings):
    """Client and reference-server settings read from environment and validated by Pydantic.

    Only a single `.env` file at the project root is read. Real environment
    variables always take precedence over `.env` values.
    """

    model_config = SettingsConfigDict(
        extra="ignore",
        case_sensitive=False,
        populate_by_name=True,
        env_file=str(Path(__file__).resolve().parent.parent / ".env"),
        env_file_encoding="utf-8",
    )

    # Server
    app_title: str = Field(default="Student Management API", alias="APP_TITLE")
    port: int = Field(default=3000, ge=1, le=65535, alias="PORT")
    debug: bool = Field(default=False, alias="DEBUG")

    # Client: remote API and per-operation budgets
    api_base_url: str = Field(default="http://localhost:3000/api", alias="API_BASE_URL")
    list_timeout_seconds: float = Field(default=10.0, gt=0, alias="LIST_TIMEOUT_SECONDS")
    get_timeout_seconds: float = Field(default=5.0, gt=0, alias="GET_TIMEOUT_SECONDS")
    write_timeout_seconds: float = Field(default=10.0, gt=0, alias="WRITE_TIMEOUT_SECONDS")
    delete_timeout_seconds: float = Field(default=5.0, gt=0, alias="DELETE_TIMEOUT_SECONDS")
    export_timeout_seconds: float = Field(default=30.0, gt=0, alias="EXPORT_TIMEOUT_SECONDS")
    read_retries: int = Field(default=2, ge=0, alias="READ_RETRIES")
    bulk_max_workers: int = Field(default=8, ge=1, alias="BULK_MAX_WORKERS")

    # Auth/JWT
    disable_auth: bool = Field(default=False, alias="DISABLE_AUTH")
    jwt_secret: str = Field(default="dev-secret", alias="JWT_SECRET")
    jwt_refresh_secret: str = Field(default="dev-refresh-secret", alias="JWT_REFRESH_SECRET")
    jwt_issuer: Optional[str] = Field(default=None, alias="JWT_ISSUER")
    jwt_audience: Optional[str] = Field(default=None, alias="JWT_AUDIENCE")
    access_token_ttl_seconds: int = Field(default=15 * 60, ge=1, alias="ACCESS_TOKEN_TTL_SECONDS")
    refresh_token_ttl_seconds: int = Field(default=7 * 24 * 60 * 60, ge=1, alias="REFRESH_TOKEN_TTL_SECONDS")

    # Cache (0 = entries never expire)
    cache_type: Literal["SimpleCache", "RedisCache"] = Field(default="SimpleCache", alias="CACHE_TYPE")
    cache_timeout_seconds: int = Field(default=0, ge=0, alias="CACHE_TIMEOUT_SECONDS")
    cache_threshold: int = Field(default=500, ge=1, alias="CACHE_THRESHOLD")
    redis_url: Optional[str] = Field(default=None, alias="REDIS_URL")

    # Logging
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_file: Optional[str] = Field(default=None, alias="LOG_FILE")

    @field_validator("log_level", mode="before")
    @classmethod
    def _upper_log_level(cls, v):
        if isinstance(v, str):
            return v.strip().upper()
        return str(v)

    @field_validator("api_base_url")
    @classmethod
    def _strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")


# Singleton accessor to avoid repeated disk reads/parsing
_settings_singleton: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the singleton Settings instance, initializing it on first call."""
    global _settings_singleton
    if _settings_singleton is None:
        _settings_singleton = Settings()
    return _settings_singleton
