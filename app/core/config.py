"""Application configuration using Pydantic Settings.

Configuration is environment-aware:
- APP_ENV determines which .env file to load
- Supports: development, testing, staging, production
- Each environment has its own .env.{environment} file

Settings are grouped by concern (server, upstream, rate limit, CORS, logs)
and composed into a single ``Settings`` object that is built once at startup
and handed to ``create_app``.
"""

from __future__ import annotations

import os
from pathlib import Path

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


# Determine which environment to load (default: development)
APP_ENV = os.getenv("APP_ENV", "development")

# Project root (so .env resolution doesn't depend on current working directory)
PROJECT_ROOT = Path(__file__).resolve().parents[2]

ENV_FILE_MAP = {
    "development": ".env.development",
    "testing": ".env.testing",
    "staging": ".env.staging",
    "production": ".env.production",
}

_env_filename = ENV_FILE_MAP.get(APP_ENV, ".env.development")
_env_path = PROJECT_ROOT / _env_filename

# Only load from file if it exists (production injects via env vars only)
_env_file = str(_env_path) if _env_path.is_file() else None


# Nested BaseSettings don't inherit env_file, so populate os.environ early.
if _env_file:
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=False)


class ServerSettings(BaseSettings):
    """HTTP front door configuration."""

    port: int = Field(
        3000,
        validation_alias=AliasChoices("PORT", "APP_PORT"),
        description="TCP port the server listens on",
    )
    host: str = Field(
        "0.0.0.0",
        description="Interface the server binds to",
    )
    service_name: str = Field(
        "ai-math-proxy",
        description="Service name reported by the liveness endpoint",
    )
    max_json_body_mb: float = Field(
        5,
        description="Maximum JSON request body size in megabytes",
        gt=0,
    )
    max_upload_size_mb: float = Field(
        25,
        description="Maximum audio upload size in megabytes",
        gt=0,
    )

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        case_sensitive=False,
        populate_by_name=True,
    )

    @property
    def max_json_body_bytes(self) -> int:
        return int(self.max_json_body_mb * 1024 * 1024)

    @property
    def max_upload_bytes(self) -> int:
        return int(self.max_upload_size_mb * 1024 * 1024)


class UpstreamSettings(BaseSettings):
    """Upstream provider configuration.

    ``api_key`` is read from ``OPENAI_API_KEY``. Its absence never prevents
    startup; forwarding routes answer with a configuration error instead.
    """

    api_key: str | None = Field(
        None,
        description="Server-held credential injected as a bearer token",
    )
    base_url: str = Field(
        "https://api.openai.com/v1",
        description="Base URL of the upstream API",
    )
    timeout_seconds: float = Field(
        60.0,
        description="Upper bound for a single upstream call in seconds",
        gt=0,
    )

    model_config = SettingsConfigDict(
        env_prefix="OPENAI_",
        case_sensitive=False,
    )


class RateLimitSettings(BaseSettings):
    """Per-client rate limiting for forwarding routes."""

    enabled: bool = Field(
        True,
        description="Enable per-client rate limiting",
    )
    requests: int = Field(
        60,
        description="Maximum number of requests allowed per window (per client)",
        ge=1,
    )
    window_seconds: int = Field(
        60,
        description="Rate limit window size in seconds",
        ge=1,
    )
    strategy: str = Field(
        "fixed",
        description="Counting strategy: 'fixed' window or 'sliding' log",
        pattern="^(fixed|sliding)$",
    )
    include_headers: bool = Field(
        True,
        description="Include RateLimit-* headers on limited routes and Retry-After on 429",
    )
    trust_forwarded_for: bool = Field(
        False,
        description="Identify clients by the first X-Forwarded-For hop",
    )

    model_config = SettingsConfigDict(
        env_prefix="RATE_LIMIT_",
        case_sensitive=False,
    )


class CorsSettings(BaseSettings):
    """Cross-origin policy. Permissive by default for mobile and web clients."""

    allow_origins: list[str] = Field(default_factory=lambda: ["*"])
    allow_methods: list[str] = Field(default_factory=lambda: ["GET", "POST", "OPTIONS"])
    allow_headers: list[str] = Field(
        default_factory=lambda: ["Content-Type", "Authorization"]
    )

    model_config = SettingsConfigDict(
        env_prefix="CORS_",
        case_sensitive=False,
    )


class LogSettings(BaseSettings):
    """Logging configuration."""

    level: str = Field("INFO", description="Root log level")
    format: str = Field("json", description="Log format: json or plain")
    output: str = Field("stdout", description="Log output: stdout or file")
    file_path: str | None = Field(None, description="Log file path when output=file")
    max_bytes: int = Field(10 * 1024 * 1024, description="Rotate after this many bytes")
    backup_count: int = Field(5, description="Rotated files to keep")
    request_id_header: str = Field(
        "X-Request-ID",
        description="Header used to propagate the request correlation ID",
    )

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


class Settings(BaseSettings):
    """Main application settings container.

    Nested groups are created via default_factory so each reads its own
    environment prefix. Tests construct this directly with explicit groups.
    """

    app_env: str = APP_ENV
    server: ServerSettings = Field(default_factory=ServerSettings)
    upstream: UpstreamSettings = Field(default_factory=UpstreamSettings)
    rate_limit: RateLimitSettings = Field(default_factory=RateLimitSettings)
    cors: CorsSettings = Field(default_factory=CorsSettings)
    log: LogSettings = Field(default_factory=LogSettings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


def get_settings() -> Settings:
    """Build settings from the current environment."""

    return Settings()  # type: ignore[call-arg]
