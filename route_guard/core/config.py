"""Settings for route-guard, read from the environment.

``APP_ENV`` picks one of ``.env.development``, ``.env.testing``,
``.env.staging`` or ``.env.production`` at the project root. Values already
present in the process environment are overridden by that file; the file is
optional, so deployments can rely on plain environment variables.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


APP_ENV = os.getenv("APP_ENV", "development")

# .env files are resolved relative to the checkout, not the cwd
PROJECT_ROOT = Path(__file__).resolve().parents[2]

ENV_FILE_MAP = {
    "development": ".env.development",
    "testing": ".env.testing",
    "staging": ".env.staging",
    "production": ".env.production",
}

_env_filename = ENV_FILE_MAP.get(APP_ENV, ".env.development")
_env_path = PROJECT_ROOT / _env_filename

_env_file = str(_env_path) if _env_path.is_file() else None


# nested settings read os.environ only
if _env_file:
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=True)


class AppSettings(BaseSettings):
    """General application metadata."""

    name: str = Field(
        "route-guard",
        description="Service name reported in OpenAPI metadata",
    )
    debug: bool = Field(
        False,
        description="Enable debug mode with verbose logging",
    )

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        case_sensitive=False,
    )


class LimiterSettings(BaseSettings):
    """Route limiter configuration.

    ``rules`` accepts a JSON array in ``LIMITER_RULES``, each element being a
    rule mapping (route, method, window, limit, lockout, treat_head_like_get).
    Invalid entries are skipped at registration time, not here.
    """

    enabled: bool = Field(
        True,
        description="Enable per-route rate limiting",
    )
    store_backend: str = Field(
        "memory",
        description="Counter/lock store backend: 'memory' or 'redis'",
    )
    redis_url: str | None = Field(
        None,
        description="Redis connection URL (required when store_backend=redis)",
    )
    lock_prefix: str = Field(
        "route_guard_lock_",
        description="Key prefix for lock records in the store",
    )
    counter_prefix: str = Field(
        "route_guard_counter_",
        description="Key prefix for counter records in the store",
    )
    include_headers: bool = Field(
        True,
        description="Include Retry-After and Cache-Control headers on 429 responses",
    )
    fail_open: bool = Field(
        True,
        description="Admit requests when the store is unavailable (False returns 503)",
    )
    rules: list[dict[str, Any]] = Field(
        default_factory=list,
        description="Rules registered at startup, as a JSON array",
    )

    model_config = SettingsConfigDict(
        env_prefix="LIMITER_",
        case_sensitive=False,
    )


class LogSettings(BaseSettings):
    """Logging output configuration."""

    level: str = Field("INFO", description="Root log level")
    format: str = Field("json", description="Log format: 'json' or 'plain'")
    output: str = Field("stdout", description="Log destination: 'stdout' or 'file'")
    file_path: str | None = Field(None, description="Log file path when output=file")
    max_bytes: int = Field(
        10_485_760,
        description="Rotate the log file after this many bytes (0 disables rotation)",
    )
    backup_count: int = Field(5, description="Rotated log files to keep")
    request_id_header: str = Field(
        "X-Request-ID",
        description="Header carrying the request correlation id",
    )

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


def _build_app_settings() -> AppSettings:
    return AppSettings()  # type: ignore[call-arg]


def _build_limiter_settings() -> LimiterSettings:
    return LimiterSettings()  # type: ignore[call-arg]


def _build_log_settings() -> LogSettings:
    return LogSettings()  # type: ignore[call-arg]


class Settings(BaseSettings):
    """Top-level container: ``settings.app``, ``settings.limiter``, ``settings.log``."""

    app_env: str = APP_ENV
    app: AppSettings = Field(default_factory=_build_app_settings)
    limiter: LimiterSettings = Field(default_factory=_build_limiter_settings)
    log: LogSettings = Field(default_factory=_build_log_settings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


settings = Settings()
