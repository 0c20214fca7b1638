"""Application configuration loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

PRODUCTION_API_URL = "https://khetsetu.onrender.com/api"
DEVELOPMENT_API_URL = "http://localhost:5000/api"


def resolve_api_base_url(env_value: str | None, environment: str) -> str:
    """Return backend base URL without trailing slashes."""
    raw = (env_value or "").strip()
    if raw:
        return raw.rstrip("/")
    if environment == "production":
        return PRODUCTION_API_URL
    return DEVELOPMENT_API_URL


@dataclass(frozen=True)
class ApiConfig:
    """Backend API client settings."""

    base_url: str
    environment: str
    timeout_seconds: float | None = None


@dataclass(frozen=True)
class StorageConfig:
    """Client-side durable token storage settings."""

    token_file: Path


@dataclass(frozen=True)
class LoggingConfig:
    """Structured logging configuration."""

    level: str


@dataclass(frozen=True)
class AuthConfig:
    """Backend token signing configuration."""

    secret_key: str
    refresh_secret_key: str
    access_token_ttl_seconds: int
    refresh_token_ttl_seconds: int
    reset_token_ttl_seconds: int


@dataclass(frozen=True)
class ServerConfig:
    """Backend perimeter and persistence settings."""

    runtime_dir: Path
    cors_allowed_origins: list[str]
    request_max_bytes: int


@dataclass(frozen=True)
class AppConfig:
    """Top-level application configuration."""

    api: ApiConfig
    storage: StorageConfig
    logging: LoggingConfig
    auth: AuthConfig
    server: ServerConfig

    @staticmethod
    def from_env() -> "AppConfig":
        """Build app config from process environment."""
        environment = os.getenv("KHETSETU_ENV", "development").strip().lower() or "development"
        timeout_raw = os.getenv("KHETSETU_API_TIMEOUT_SECONDS", "").strip()
        token_file = (
            os.getenv("KHETSETU_TOKEN_FILE", "").strip()
            or str(Path.home() / ".khetsetu" / "tokens.json")
        )
        log_level = os.getenv("LOG_LEVEL", "INFO").strip() or "INFO"
        cors_allowed_origins = [
            origin.strip()
            for origin in os.getenv(
                "CORS_ALLOWED_ORIGINS",
                "http://localhost:5173,http://127.0.0.1:5173",
            ).split(",")
            if origin.strip()
        ]

        return AppConfig(
            api=ApiConfig(
                base_url=resolve_api_base_url(os.getenv("KHETSETU_API_URL"), environment),
                environment=environment,
                timeout_seconds=float(timeout_raw) if timeout_raw else None,
            ),
            storage=StorageConfig(token_file=Path(token_file).expanduser()),
            logging=LoggingConfig(level=log_level),
            auth=AuthConfig(
                secret_key=os.getenv("JWT_SECRET", "").strip() or "dev-insecure-secret-change-me",
                refresh_secret_key=(
                    os.getenv("JWT_REFRESH_SECRET", "").strip()
                    or "dev-insecure-refresh-secret-change-me"
                ),
                access_token_ttl_seconds=int(os.getenv("JWT_ACCESS_TTL_SECONDS", str(7 * 24 * 3600))),
                refresh_token_ttl_seconds=int(os.getenv("JWT_REFRESH_TTL_SECONDS", str(30 * 24 * 3600))),
                reset_token_ttl_seconds=int(os.getenv("RESET_TOKEN_TTL_SECONDS", "600")),
            ),
            server=ServerConfig(
                runtime_dir=Path(os.getenv("KHETSETU_RUNTIME_DIR", "runtime").strip() or "runtime"),
                cors_allowed_origins=cors_allowed_origins,
                request_max_bytes=int(os.getenv("REQUEST_MAX_BYTES", str(1024 * 1024))),
            ),
        )
