"""Application configuration using Pydantic Settings.

Configuration is environment-aware:
- APP_ENV determines which .env file to load
- Supports: development, testing, staging, production
- Each environment has its own .env.{environment} file
"""

from __future__ import annotations

import os
from pathlib import Path

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# Determine which environment to load (default: development)
APP_ENV = os.getenv("APP_ENV", "development")

# Project root (so .env resolution doesn't depend on current working directory)
PROJECT_ROOT = Path(__file__).resolve().parents[2]

# Map environments to their respective .env files (relative to PROJECT_ROOT)
ENV_FILE_MAP = {
    "development": ".env.development",
    "testing": ".env.testing",
    "staging": ".env.staging",
    "production": ".env.production",
}

# Select the .env file for the current environment
_env_filename = ENV_FILE_MAP.get(APP_ENV, ".env.development")
_env_path = PROJECT_ROOT / _env_filename

# Only load from file if it exists (production might inject via env vars only)
_env_file = str(_env_path) if _env_path.is_file() else None


# Load .env file early to populate os.environ before creating nested settings
# This is necessary because Pydantic nested BaseSettings don't inherit env_file
if _env_file and not os.getenv("TESTING"):
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=True)


class LogSettings(BaseSettings):
    """Logging configuration."""

    level: str = Field("INFO", description="Root log level")
    format: str = Field("json", description="Log format: json or plain")
    output: str = Field("stdout", description="Log destination: stdout or file")
    file_path: str | None = Field(None, description="Log file path when output=file")
    max_bytes: int = Field(
        10 * 1024 * 1024,
        description="Rotate the log file after this many bytes (0 disables rotation)",
        ge=0,
    )
    backup_count: int = Field(5, description="Rotated log files to keep", ge=0)
    request_id_header: str = Field(
        "X-Request-ID",
        description="Header used to propagate the request correlation id",
    )

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


class AppSettings(BaseSettings):
    """Application-wide configuration."""

    name: str = Field("Daily Notes", description="Human-readable application name")
    debug: bool = Field(
        False,
        description="Enable debug mode with verbose logging",
    )
    cors_origins: str = Field(
        "*",
        description="Comma-separated list of allowed CORS origins",
    )

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        case_sensitive=False,
    )


class AuthSettings(BaseSettings):
    """JWT issuance and validation settings."""

    jwt_secret: str = Field(
        "default-secret-change-this",
        description="HMAC secret used to sign access tokens",
    )
    jwt_expiry_hours: int = Field(24, description="Access token lifetime in hours", ge=1)
    jwt_issuer: str = Field("daily-notes-api", description="Value of the iss claim")

    model_config = SettingsConfigDict(
        env_prefix="AUTH_",
        case_sensitive=False,
    )


class RateLimitSettings(BaseSettings):
    """Sliding-window rate limit configuration.

    The auth scope defaults to 5 requests per 15 minutes, reaped every
    30 minutes. The general scope covers authenticated API routes.
    """

    enabled: bool = Field(True, description="Enable rate limiting")
    include_headers: bool = Field(
        True,
        description="Include X-RateLimit-* and Retry-After headers",
    )

    auth_requests: int = Field(
        5,
        description="Maximum auth requests allowed per window (per client IP)",
        ge=1,
    )
    auth_window_seconds: int = Field(900, description="Auth window size in seconds", ge=1)
    auth_cleanup_seconds: int = Field(
        1800,
        description="Auth reaper interval / idle eviction threshold in seconds",
        ge=1,
    )

    general_requests: int = Field(
        100,
        description="Maximum API requests allowed per window (per client IP)",
        ge=1,
    )
    general_window_seconds: int = Field(60, description="API window size in seconds", ge=1)
    general_cleanup_seconds: int = Field(
        120,
        description="API reaper interval / idle eviction threshold in seconds",
        ge=1,
    )

    model_config = SettingsConfigDict(
        env_prefix="RATE_LIMIT_",
        case_sensitive=False,
    )

    @model_validator(mode="after")
    def _cleanup_covers_window(self) -> "RateLimitSettings":
        if self.auth_cleanup_seconds < self.auth_window_seconds:
            raise ValueError("auth_cleanup_seconds must be >= auth_window_seconds")
        if self.general_cleanup_seconds < self.general_window_seconds:
            raise ValueError("general_cleanup_seconds must be >= general_window_seconds")
        return self


class CacheSettings(BaseSettings):
    """Response cache configuration."""

    enabled: bool = Field(True, description="Cache authenticated GET responses")
    ttl_seconds: int = Field(1800, description="Time-to-live for cached responses", ge=1)
    max_entries: int = Field(1024, description="Maximum number of cached responses", ge=1)

    model_config = SettingsConfigDict(
        env_prefix="CACHE_",
        case_sensitive=False,
    )


class Settings(BaseSettings):
    """Main application settings container.

    Automatically loads from the appropriate .env.{APP_ENV} file.
    Raises validation errors on startup if settings are invalid.
    """

    app_env: str = APP_ENV
    log: LogSettings = Field(default_factory=LogSettings)
    app: AppSettings = Field(default_factory=AppSettings)
    auth: AuthSettings = Field(default_factory=AuthSettings)
    rate_limit: RateLimitSettings = Field(default_factory=RateLimitSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


# Global settings instance - composed from domain-specific settings
# Nested settings are created via default_factory so env loading works.
settings = Settings()
