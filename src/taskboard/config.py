# src/taskboard/config.py

"""Board settings from TASKBOARD_* environment variables and an optional .env.

Everything has a default, so the board runs locally with no configuration;
the calendar integration switches on only when an access token is present.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

from dotenv import find_dotenv, load_dotenv

ENV_PREFIX = "TASKBOARD"


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


def _load_dotenv_if_available() -> None:
    """Load .env from the working directory. Real env vars win."""
    load_dotenv(find_dotenv(usecwd=True), override=False)


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _first_env(*names: str, default: str | None = None) -> str | None:
    for n in names:
        v = os.getenv(n)
        if v is not None and v.strip() != "":
            return v
    return default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


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

    # ---- Local data paths (ignored by git) ----
    data_dir: Path
    tasks_db_path: Path

    # ---- Principal ----
    owner_id: str

    # ---- History / sync tuning ----
    history_limit: int
    autosave_debounce_seconds: float
    autosave_saved_cooldown_seconds: float
    calendar_sync_debounce_seconds: float

    # ---- Google Calendar ----
    google_calendar_base_url: str
    google_calendar_token: str | None
    default_calendar_id: str
    calendar_connect_timeout_seconds: float
    calendar_read_timeout_seconds: float

    @property
    def calendar_enabled(self) -> bool:
        return bool(self.google_calendar_token)

    @staticmethod
    def from_env() -> "Settings":
        _load_dotenv_if_available()

        app_name = _env(_k("APP_NAME"), "taskboard")
        log_level = _env(_k("LOG_LEVEL"), "INFO")

        data_dir = _env_path(_k("DATA_DIR"), Path(".local/taskboard"))
        tasks_db_path = _env_path(_k("TASKS_DB_PATH"), data_dir / "tasks.sqlite3")

        owner_id = (_first_env(_k("OWNER_ID"), "USER", default="local") or "local").strip()

        history_limit = max(1, _env_int(_k("HISTORY_LIMIT"), 50))
        autosave_debounce_seconds = max(0.0, _env_float(_k("AUTOSAVE_DEBOUNCE_SECONDS"), 0.4))
        autosave_saved_cooldown_seconds = max(0.0, _env_float(_k("AUTOSAVE_SAVED_COOLDOWN_SECONDS"), 2.0))
        calendar_sync_debounce_seconds = max(0.0, _env_float(_k("CALENDAR_SYNC_DEBOUNCE_SECONDS"), 0.5))

        google_calendar_base_url = _env(_k("GOOGLE_CALENDAR_BASE_URL"), "https://www.googleapis.com/calendar/v3")
        google_calendar_token = _first_env(_k("GOOGLE_CALENDAR_TOKEN"), "GOOGLE_CALENDAR_TOKEN", default=None)
        default_calendar_id = _env(_k("DEFAULT_CALENDAR_ID"), "primary").strip() or "primary"
        calendar_connect_timeout_seconds = _env_float(_k("CALENDAR_CONNECT_TIMEOUT_SECONDS"), 5.0)
        calendar_read_timeout_seconds = _env_float(_k("CALENDAR_READ_TIMEOUT_SECONDS"), 15.0)

        return Settings(
            app_name=app_name,
            log_level=log_level,
            data_dir=data_dir,
            tasks_db_path=tasks_db_path,
            owner_id=owner_id,
            history_limit=history_limit,
            autosave_debounce_seconds=autosave_debounce_seconds,
            autosave_saved_cooldown_seconds=autosave_saved_cooldown_seconds,
            calendar_sync_debounce_seconds=calendar_sync_debounce_seconds,
            google_calendar_base_url=google_calendar_base_url,
            google_calendar_token=google_calendar_token,
            default_calendar_id=default_calendar_id,
            calendar_connect_timeout_seconds=calendar_connect_timeout_seconds,
            calendar_read_timeout_seconds=calendar_read_timeout_seconds,
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_env()
