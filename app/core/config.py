"""Application configuration using Pydantic Settings.

Configuration is environment-aware:
- APP_ENV determines which .env file to load
- Supports: development, testing, staging, production
- Each environment has its own .env.{environment} file
"""

from __future__ import annotations

import os
from pathlib import Path

from pydantic import Field
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

# Only load from file if it exists (production might inject via env vars only)
_env_file = str(_env_path) if _env_path.is_file() else None


# Load .env file early to populate os.environ before creating nested settings
# This is necessary because Pydantic nested BaseSettings don't inherit env_file
if _env_file:
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=True)


def _build_app_settings() -> "AppSettings":
    """Build app settings from environment."""

    return AppSettings()


def _build_log_settings() -> "LogSettings":
    return LogSettings()


def _build_rate_limit_settings() -> "RateLimitSettings":
    return RateLimitSettings()


class AppSettings(BaseSettings):
    """Application-wide configuration."""

    name: str = Field(
        "EduScope API",
        description="Service name reported by the health endpoint",
    )
    version: str = Field(
        "1.0.0",
        description="Service version reported by the health endpoint",
    )
    debug: bool = Field(
        False,
        description="Enable debug mode with verbose logging",
    )
    host: str = Field("127.0.0.1", description="Bind address when run with `python -m app.main`")
    port: int = Field(8000, description="Bind port when run with `python -m app.main`")

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        case_sensitive=False,
    )


class LogSettings(BaseSettings):
    """Logging configuration."""

    level: str = Field("INFO", description="Root log level")
    format: str = Field(
        "json",
        description="Log format: json (structured) or plain (human readable)",
    )
    output: str = Field("stdout", description="Log destination: stdout or file")
    file_path: str | None = Field(
        None,
        description="Log file path when output=file (defaults to logs/app.log)",
    )
    max_bytes: int = Field(
        10 * 1024 * 1024,
        description="Rotate the log file after this many bytes (0 disables rotation)",
        ge=0,
    )
    backup_count: int = Field(5, description="Number of rotated log files to keep", ge=0)
    request_id_header: str = Field(
        "X-Request-ID",
        description="Header used to read/propagate the request correlation id",
    )

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


class RateLimitSettings(BaseSettings):
    """Per-policy rate limit configuration.

    Each named limiter (general, auth, upload, admin, search, download) has
    its own ceiling and window length. Windows are expressed in milliseconds.
    """

    enabled: bool = Field(
        True,
        description="Enable rate limiting on wrapped endpoints",
    )
    include_headers: bool = Field(
        True,
        description="Include X-RateLimit-* headers on limited responses",
    )
    sweep_interval_seconds: float | None = Field(
        300.0,
        description="Interval of the background sweep of expired entries (None disables it)",
    )

    general_max_requests: int = Field(100, ge=1)
    general_window_ms: int = Field(60 * 1000, ge=1)

    auth_max_requests: int = Field(5, ge=1)
    auth_window_ms: int = Field(15 * 60 * 1000, ge=1)

    upload_max_requests: int = Field(10, ge=1)
    upload_window_ms: int = Field(60 * 60 * 1000, ge=1)

    admin_max_requests: int = Field(200, ge=1)
    admin_window_ms: int = Field(60 * 60 * 1000, ge=1)

    search_max_requests: int = Field(50, ge=1)
    search_window_ms: int = Field(10 * 60 * 1000, ge=1)

    download_max_requests: int = Field(20, ge=1)
    download_window_ms: int = Field(60 * 60 * 1000, ge=1)

    model_config = SettingsConfigDict(
        env_prefix="RATE_LIMIT_",
        case_sensitive=False,
    )


class Settings(BaseSettings):
    """Main application settings container.

    Automatically loads from the appropriate .env.{APP_ENV} file.
    Raises validation errors on startup if settings are invalid.
    """

    app_env: str = APP_ENV
    app: AppSettings = Field(default_factory=_build_app_settings)
    log: LogSettings = Field(default_factory=_build_log_settings)
    rate_limit: RateLimitSettings = Field(default_factory=_build_rate_limit_settings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


# Global settings instance - composed from domain-specific settings
settings = Settings()
