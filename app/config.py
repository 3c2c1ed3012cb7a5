"""
app/config.py

Frozen, cached settings read from the environment (and `.env` files).
Call `cache_clear()` on a getter after changing variables in tests.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import timedelta
from functools import lru_cache

from db.config import load_env_files

_ALLOWED_APP_MODES = {"cloud", "local"}


@lru_cache(maxsize=1)
def _load_env_once() -> None:
    """
    Ensure project `.env` files are loaded once before reading app settings.
    """

    load_env_files()


def _require_app_mode() -> str:
    """
    Read and validate APP_MODE from the environment.

    APP_MODE must be set explicitly; it also selects which fallback
    database URL db.config reads.
    """

    _load_env_once()
    raw = os.getenv("APP_MODE")
    if raw is None:
        raise RuntimeError(
            f"APP_MODE is not set. Allowed values: {sorted(_ALLOWED_APP_MODES)}."
        )
    mode = raw.strip().lower()
    if mode not in _ALLOWED_APP_MODES:
        raise RuntimeError(
            f"APP_MODE '{raw.strip()}' is not valid. "
            f"Allowed values: {sorted(_ALLOWED_APP_MODES)}."
        )
    return mode


@dataclass(frozen=True)
class AppSettings:
    mode: str


@lru_cache(maxsize=1)
def get_app_settings() -> AppSettings:
    """
    Return cached application settings.

    Raises RuntimeError if APP_MODE is missing or unknown.
    """

    return AppSettings(mode=_require_app_mode())


def _get_bool_env(name: str, default: bool) -> bool:
    """
    Read a boolean from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    return raw_value.strip().lower() in {"1", "true", "yes", "on"}


def _get_int_env(name: str, default: int) -> int:
    """
    Read an integer from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    try:
        return int(raw_value)
    except ValueError:
        return default


@dataclass(frozen=True)
class TripImportSettings:
    """
    Runtime settings for staged trip imports.
    """

    session_ttl_hours: int = 24
    failure_sample_size: int = 20
    max_future_days: int = 365
    min_year: int = 2000
    log_row_failures: bool = True
    max_rows: int = 5000

    @property
    def session_ttl(self) -> timedelta:
        return timedelta(hours=self.session_ttl_hours)


@dataclass(frozen=True)
class SchedulerSettings:
    """
    Background job settings.
    """

    enabled: bool = True
    purge_interval_minutes: int = 60


@lru_cache(maxsize=1)
def get_trip_import_settings() -> TripImportSettings:
    """
    Return cached trip import settings from environment variables.
    """

    return TripImportSettings(
        session_ttl_hours=max(1, _get_int_env("TRIP_IMPORT_SESSION_TTL_HOURS", 24)),
        failure_sample_size=max(1, _get_int_env("TRIP_IMPORT_FAILURE_SAMPLE_SIZE", 20)),
        max_future_days=max(0, _get_int_env("TRIP_IMPORT_MAX_FUTURE_DAYS", 365)),
        min_year=_get_int_env("TRIP_IMPORT_MIN_YEAR", 2000),
        log_row_failures=_get_bool_env("TRIP_IMPORT_LOG_ROW_FAILURES", True),
        max_rows=max(1, _get_int_env("TRIP_IMPORT_MAX_ROWS", 5000)),
    )


@lru_cache(maxsize=1)
def get_scheduler_settings() -> SchedulerSettings:
    """
    Return cached scheduler settings from environment variables.
    """

    return SchedulerSettings(
        enabled=_get_bool_env("SCHEDULER_ENABLED", True),
        purge_interval_minutes=max(1, _get_int_env("SCHEDULER_PURGE_INTERVAL_MINUTES", 60)),
    )
