"""Centralized settings for storecast.

All fields can be set via ``STORECAST_*`` environment variables (for
example ``STORECAST_PUBLISH_TIMEOUT_SECONDS=15``) or a ``.env`` file in the
working directory.  Unknown variables are ignored so shared environments do
not break startup.

Tags:
    settings, configuration, pydantic, environment, storecast
"""

from __future__ import annotations

import socket
from enum import Enum

from croniter import croniter
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class SchedulerBackendKind(str, Enum):
    """Supported recurring-trigger timing backends."""

    THREAD = "thread"
    APSCHEDULER = "apscheduler"


class LogFormat(str, Enum):
    CONSOLE = "console"
    JSON = "json"


class StorecastSettings(BaseSettings):
    """Storecast configuration.

    Fields
    ──────
    database_path             : SQLite file (``:memory:`` for throwaway runs)
    scheduler_interval_seconds: Trigger cadence
    scheduler_cron            : Optional cron gate applied on each tick
    lease_ttl_seconds         : Exclusivity lease expiry for one run
    publish_timeout_seconds   : Bound on every external publish call
    max_concurrency           : Parallel publishes within a run (1 = sequential)
    stuck_grace_seconds       : Age after which a Publishing item may be swept
    caption_max_length        : Upper bound on post captions
    """

    model_config = SettingsConfigDict(
        env_prefix="STORECAST_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Storage ──────────────────────────────────────────────────
    database_path: str = Field(default="storecast.db")
    database_dialect: str = Field(default="sqlite")

    # ── Recurring trigger ────────────────────────────────────────
    scheduler_backend: SchedulerBackendKind = Field(default=SchedulerBackendKind.THREAD)
    scheduler_interval_seconds: float = Field(default=60.0)
    scheduler_cron: str | None = Field(default="* * * * *")
    lease_ttl_seconds: int = Field(default=300)
    instance_id: str = Field(default_factory=socket.gethostname)

    # ── Orchestrator ─────────────────────────────────────────────
    publish_timeout_seconds: float = Field(default=30.0)
    max_concurrency: int = Field(default=1)
    stuck_grace_seconds: int = Field(default=900)

    # ── Content ──────────────────────────────────────────────────
    caption_max_length: int = Field(default=2200)

    # ── Destinations ─────────────────────────────────────────────
    graph_api_url: str = Field(default="https://graph.facebook.com/v24.0")

    # ── Observability ────────────────────────────────────────────
    log_level: str = Field(default="INFO")
    log_format: LogFormat = Field(default=LogFormat.CONSOLE)

    @field_validator(
        "scheduler_interval_seconds",
        "lease_ttl_seconds",
        "publish_timeout_seconds",
        "max_concurrency",
        "stuck_grace_seconds",
        "caption_max_length",
    )
    @classmethod
    def _positive(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("must be greater than zero")
        return value

    @field_validator("scheduler_cron")
    @classmethod
    def _valid_cron(cls, value: str | None) -> str | None:
        if value is not None and not value.strip():
            return None
        if value is not None and not croniter.is_valid(value):
            raise ValueError(f"invalid cron expression: {value!r}")
        return value

    @field_validator("log_level")
    @classmethod
    def _upper_level(cls, value: str) -> str:
        level = value.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR"}:
            raise ValueError(f"unsupported log level: {value!r}")
        return level


# ── Settings factory with caching ────────────────────────────────────────

_settings_cache: dict[str, StorecastSettings] = {}


def get_settings(*, _force_reload: bool = False) -> StorecastSettings:
    """Load, validate, and cache a :class:`StorecastSettings` instance."""
    if not _force_reload and "default" in _settings_cache:
        return _settings_cache["default"]
    settings = StorecastSettings()
    _settings_cache["default"] = settings
    return settings


def clear_settings_cache() -> None:
    """Drop the cached settings (tests and reconfiguration)."""
    _settings_cache.clear()


__all__ = [
    "LogFormat",
    "SchedulerBackendKind",
    "StorecastSettings",
    "clear_settings_cache",
    "get_settings",
]
