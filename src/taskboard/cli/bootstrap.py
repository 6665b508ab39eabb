# src/taskboard/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- wires the concrete TaskStore and (optionally) Google Calendar client
  into a TaskBoard.
"""

from __future__ import annotations

import logging

from ..board.board import TaskBoard
from ..config import Settings, get_settings
from ..core.ports import CalendarClient
from ..integrations.google_calendar import GoogleCalendarClient
from ..tasks.task_store import TaskStore

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings: Settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.tasks_db_path.parent.mkdir(parents=True, exist_ok=True)


def create_calendar_client(settings: Settings) -> GoogleCalendarClient | None:
    if not settings.calendar_enabled:
        logger.info("Google Calendar token not set; calendar sync disabled.")
        return None
    return GoogleCalendarClient(
        settings.google_calendar_token or "",
        base_url=settings.google_calendar_base_url,
        connect_timeout=settings.calendar_connect_timeout_seconds,
        read_timeout=settings.calendar_read_timeout_seconds,
    )


def create_board(*, settings: Settings | None = None, calendar: CalendarClient | None = None) -> TaskBoard:
    """
    Create a TaskBoard from the provided settings.

    Keeping settings injectable makes the app easier to test and avoids hidden global config reads.
    If settings is None, falls back to get_settings().
    """
    if settings is None:
        settings = get_settings()

    _ensure_local_dirs(settings)

    if calendar is None:
        calendar = create_calendar_client(settings)

    store = TaskStore(settings.tasks_db_path, owner_id=settings.owner_id)
    return TaskBoard(
        store,
        calendar,
        history_limit=settings.history_limit,
        autosave_debounce_seconds=settings.autosave_debounce_seconds,
        autosave_saved_cooldown_seconds=settings.autosave_saved_cooldown_seconds,
        calendar_sync_debounce_seconds=settings.calendar_sync_debounce_seconds,
        default_calendar_id=settings.default_calendar_id,
    )
