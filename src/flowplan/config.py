# src/flowplan/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app (normal "settings layer").
- Nothing required at import time; every value has a default.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

from .plan.models import TimerSettings

ENV_PREFIX = "FLOWPLAN"

_DEFAULT_TIMER = TimerSettings()


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


load_dotenv(override=False)


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_positive_int(name: str, default: int) -> int:
    value = _env_int(name, default)
    return value if value > 0 else default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        return default
    return value if value > 0 else default


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return Path(raw).expanduser()


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- App / logging ----
    app_name: str
    log_level: str

    # ---- Switches ----
    console_enabled: bool
    services_enabled: bool
    persist: bool

    # ---- Local data paths (ignored by git) ----
    data_dir: Path
    plans_db_path: Path

    # ---- Timer ----
    pomodoro_minutes: int
    short_break_minutes: int
    long_break_minutes: int
    auto_start_breaks: bool
    auto_start_pomodoros: bool

    # ---- Planning ----
    default_task_minutes: int

    # ---- Periodic services ----
    clock_refresh_seconds: float
    tick_seconds: float
    display_interval_seconds: float

    def timer_settings(self) -> TimerSettings:
        return TimerSettings(
            pomodoro_duration=self.pomodoro_minutes,
            short_break_duration=self.short_break_minutes,
            long_break_duration=self.long_break_minutes,
            auto_start_breaks=self.auto_start_breaks,
            auto_start_pomodoros=self.auto_start_pomodoros,
        )

    @staticmethod
    def from_env() -> "Settings":
        app_name = _env(_k("APP_NAME"), "flowplan") or "flowplan"
        log_level = _env(_k("LOG_LEVEL"), "INFO")

        data_dir = _env_path(_k("DATA_DIR"), Path(".local/flowplan"))
        plans_db_path = _env_path(_k("PLANS_DB_PATH"), data_dir / "plans.sqlite3")

        pomodoro_minutes = _env_positive_int(_k("POMODORO_MINUTES"), _DEFAULT_TIMER.pomodoro_duration)

        return Settings(
            app_name=app_name,
            log_level=log_level,
            console_enabled=_env_bool(_k("CONSOLE_ENABLED"), True),
            services_enabled=_env_bool(_k("SERVICES_ENABLED"), True),
            persist=_env_bool(_k("PERSIST"), True),
            data_dir=data_dir,
            plans_db_path=plans_db_path,
            pomodoro_minutes=pomodoro_minutes,
            short_break_minutes=_env_positive_int(
                _k("SHORT_BREAK_MINUTES"), _DEFAULT_TIMER.short_break_duration
            ),
            long_break_minutes=_env_positive_int(
                _k("LONG_BREAK_MINUTES"), _DEFAULT_TIMER.long_break_duration
            ),
            auto_start_breaks=_env_bool(_k("AUTO_START_BREAKS"), _DEFAULT_TIMER.auto_start_breaks),
            auto_start_pomodoros=_env_bool(
                _k("AUTO_START_POMODOROS"), _DEFAULT_TIMER.auto_start_pomodoros
            ),
            default_task_minutes=_env_positive_int(_k("DEFAULT_TASK_MINUTES"), pomodoro_minutes),
            clock_refresh_seconds=_env_float(_k("CLOCK_REFRESH_SECONDS"), 60.0),
            tick_seconds=_env_float(_k("TICK_SECONDS"), 1.0),
            display_interval_seconds=_env_float(_k("DISPLAY_INTERVAL_SECONDS"), 0.1),
        )


SETTINGS = Settings.from_env()


def get_settings() -> Settings:
    return SETTINGS
