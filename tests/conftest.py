# tests/conftest.py

from __future__ import annotations

import itertools
from collections.abc import Callable
from datetime import date
from pathlib import Path
from types import SimpleNamespace
from typing import Any

import pytest

from taskboard.board.board import TaskBoard
from taskboard.tasks.task_models import Task
from taskboard.tasks.task_store import TaskStore

from .fakes import FakeCalendar, FakeTaskRepo

# Short timers keep the async tests fast; they only need ordering, not real delays.
FAST_DEBOUNCE = 0.01
TODAY = date(2026, 3, 10)


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with create_board().

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated and deterministic.
    """
    return SimpleNamespace(
        app_name="taskboard-test",
        log_level="DEBUG",
        data_dir=tmp_path,
        tasks_db_path=tmp_path / "tasks.sqlite3",
        owner_id="tester",
        history_limit=50,
        autosave_debounce_seconds=FAST_DEBOUNCE,
        autosave_saved_cooldown_seconds=FAST_DEBOUNCE,
        calendar_sync_debounce_seconds=FAST_DEBOUNCE,
        google_calendar_base_url="https://calendar.test/v3",
        google_calendar_token=None,
        default_calendar_id="primary",
        calendar_connect_timeout_seconds=1.0,
        calendar_read_timeout_seconds=1.0,
        calendar_enabled=False,
    )


@pytest.fixture()
def make_task() -> Callable[..., Task]:
    """Task factory with increasing created_at so default sort order is predictable."""
    counter = itertools.count(1)

    def _make(title: str = "Task", **kwargs: Any) -> Task:
        n = next(counter)
        kwargs.setdefault("id", f"t{n}")
        kwargs.setdefault("created_at", 1000.0 + n)
        kwargs.setdefault("updated_at", kwargs["created_at"])
        return Task(title=title, **kwargs)

    return _make


@pytest.fixture()
def repo() -> FakeTaskRepo:
    return FakeTaskRepo()


@pytest.fixture()
def calendar() -> FakeCalendar:
    return FakeCalendar()


@pytest.fixture()
def store(tmp_path: Path) -> TaskStore:
    return TaskStore(tmp_path / "tasks.sqlite3", owner_id="alice")


@pytest.fixture()
def board(repo: FakeTaskRepo, calendar: FakeCalendar) -> TaskBoard:
    ids = itertools.count(1)
    ticks = itertools.count(5000)
    return TaskBoard(
        repo,
        calendar,
        autosave_debounce_seconds=FAST_DEBOUNCE,
        autosave_saved_cooldown_seconds=FAST_DEBOUNCE,
        calendar_sync_debounce_seconds=FAST_DEBOUNCE,
        clock=lambda: float(next(ticks)),
        today=lambda: TODAY,
        id_factory=lambda: f"new{next(ids)}",
    )
