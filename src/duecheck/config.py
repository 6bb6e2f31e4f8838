# src/duecheck/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app (normal "settings layer").
- No secrets required at import time.
- Every scan cadence and path can be overridden per deployment.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

import pytz
from dotenv import load_dotenv

ENV_PREFIX = "DUECHECK"

load_dotenv(override=False)


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_list(name: str, default: List[str]) -> List[str]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return list(default)
    parts = [p.strip() for p in raw.replace(",", " ").split() if p.strip()]
    return parts


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

    # ---- Acting user (single-client engine) ----
    user_id: str
    team_id: Optional[str]
    team_ids: List[str]

    # ---- Calendar ----
    timezone: str

    # ---- Scan cadence ----
    scan_interval_seconds: float
    reminder_interval_seconds: float
    reminders_enabled: bool

    # ---- Connector flags ----
    console_enabled: bool

    # ---- Local data paths (ignored by git) ----
    data_dir: Path
    tracker_db_path: Path
    notifications_db_path: Path

    @property
    def tz(self) -> pytz.BaseTzInfo:
        return pytz.timezone(self.timezone)

    @staticmethod
    def from_env() -> "Settings":
        app_name = _env(_k("APP_NAME"), "duecheck") or "duecheck"
        log_level = _env(_k("LOG_LEVEL"), "INFO")

        user_id = _env(_k("USER_ID"), "local-user").strip() or "local-user"
        team_id = _env(_k("TEAM_ID"), "").strip() or None
        team_ids = _env_list(_k("TEAM_IDS"), [])

        timezone = _env(_k("TIMEZONE"), "UTC").strip() or "UTC"
        try:
            pytz.timezone(timezone)
        except pytz.UnknownTimeZoneError:
            timezone = "UTC"

        scan_interval_seconds = _env_float(_k("SCAN_INTERVAL_SECONDS"), 60.0)
        reminder_interval_seconds = _env_float(_k("REMINDER_INTERVAL_SECONDS"), 60.0)
        reminders_enabled = _env_bool(_k("REMINDERS_ENABLED"), True)

        console_enabled = _env_bool(_k("CONSOLE_ENABLED"), True)

        data_dir = _env_path(_k("DATA_DIR"), Path(".local/duecheck"))
        tracker_db_path = _env_path(_k("TRACKER_DB_PATH"), data_dir / "tracker.sqlite3")
        notifications_db_path = _env_path(
            _k("NOTIFICATIONS_DB_PATH"), data_dir / "notifications.sqlite3"
        )

        return Settings(
            app_name=app_name,
            log_level=log_level,
            user_id=user_id,
            team_id=team_id,
            team_ids=team_ids,
            timezone=timezone,
            scan_interval_seconds=scan_interval_seconds,
            reminder_interval_seconds=reminder_interval_seconds,
            reminders_enabled=reminders_enabled,
            console_enabled=console_enabled,
            data_dir=data_dir,
            tracker_db_path=tracker_db_path,
            notifications_db_path=notifications_db_path,
        )


SETTINGS = Settings.from_env()


def get_settings() -> Settings:
    return SETTINGS
