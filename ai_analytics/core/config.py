"""
Application configuration models and helpers.

Centralizes settings management so the HTTP surface, the orchestrator services
and the command-line tools share a consistent configuration surface.
"""

from functools import lru_cache
from pathlib import Path
from typing import Optional

import os

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _load_env_file(path: str = ".env") -> None:
    """Best-effort load key=value pairs from a .env file without extra deps."""
    env_path = Path(path)
    if not env_path.exists():
        return
    for raw_line in env_path.read_text().splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        key, sep, value = line.partition("=")
        if not sep:
            continue
        key = key.strip()
        if not key or key in os.environ:
            continue
        cleaned = value.strip().strip('"').strip("'")
        os.environ[key] = cleaned


_load_env_file()


class ApiSettings(BaseSettings):
    """Connection details for the AI analytics REST backend."""

    model_config = SettingsConfigDict(populate_by_name=True, extra="ignore")

    base_url: str = Field(..., validation_alias="AI_ANALYTICS_API_BASE_URL")
    api_token: Optional[str] = Field(
        None,
        validation_alias="AI_ANALYTICS_API_TOKEN",
        description="Optional bearer token attached to every backend request.",
    )
    analytics_prefix: str = Field(
        "/ai-analytics", validation_alias="AI_ANALYTICS_PATH_PREFIX"
    )

    @field_validator("base_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")


class StreamSettings(BaseSettings):
    """Configuration for the websocket streaming channel."""

    model_config = SettingsConfigDict(populate_by_name=True, extra="ignore")

    ws_base_url: str = Field(..., validation_alias="AI_ANALYTICS_WS_BASE_URL")
    open_timeout_seconds: float = Field(
        10.0, validation_alias="AI_ANALYTICS_WS_OPEN_TIMEOUT_SECONDS"
    )

    @field_validator("ws_base_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")


class ProbeSettings(BaseSettings):
    """Health probe caching and timing."""

    model_config = SettingsConfigDict(populate_by_name=True, extra="ignore")

    ttl_seconds: float = Field(30.0, validation_alias="AI_ANALYTICS_HEALTH_TTL_SECONDS")
    timeout_seconds: float = Field(
        8.0, validation_alias="AI_ANALYTICS_HEALTH_TIMEOUT_SECONDS"
    )
    wait_attempts: int = Field(50, validation_alias="AI_ANALYTICS_HEALTH_WAIT_ATTEMPTS")
    poll_interval_seconds: float = Field(
        0.1, validation_alias="AI_ANALYTICS_HEALTH_POLL_SECONDS"
    )


class DispatchSettings(BaseSettings):
    """Settings for analysis job dispatching."""

    model_config = SettingsConfigDict(populate_by_name=True, extra="ignore")

    check_availability: bool = Field(
        False,
        validation_alias="AI_ANALYTICS_CHECK_AVAILABILITY",
        description="Consult the health probe before dispatching a job.",
    )
    report_cache_ttl_seconds: float = Field(
        300.0, validation_alias="AI_ANALYTICS_REPORT_CACHE_TTL_SECONDS"
    )
    notifications_enabled: bool = Field(
        True, validation_alias="AI_ANALYTICS_NOTIFICATIONS_ENABLED"
    )


class AppSettings(BaseSettings):
    """Root settings object for the orchestrator application."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        populate_by_name=True,
        extra="ignore",
    )

    environment: str = Field("development", validation_alias="APP_ENV")
    log_level: str = Field("INFO", validation_alias="APP_LOG_LEVEL")
    api: ApiSettings = Field(default_factory=ApiSettings)
    stream: StreamSettings = Field(default_factory=StreamSettings)
    probe: ProbeSettings = Field(default_factory=ProbeSettings)
    dispatch: DispatchSettings = Field(default_factory=DispatchSettings)


@lru_cache()
def get_settings() -> AppSettings:
    """Return a cached settings object."""
    return AppSettings()  # type: ignore[call-arg]


__all__ = [
    "ApiSettings",
    "AppSettings",
    "DispatchSettings",
    "ProbeSettings",
    "StreamSettings",
    "get_settings",
]
