# src/taskboard/sync/calendar_sync.py

"""
Dependent calendar sync.

Mirrors title/description/due date of one task into an all-day calendar
event, on its own debounce window, only while the task opted in
(task.calendar.enabled).

Compared with autosave:
- failures are logged and swallowed (no status machine),
- there is no retry loop: the synced snapshot only advances on success,
  so the next qualifying edit retries naturally,
- calendar calls for one task never overlap; a run queued behind a slow
  create syncs the latest value and updates the event that create made.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, replace
from datetime import date
from typing import Any

from ..core.ports import CalendarClient
from ..errors import SyncPrecondition
from ..tasks.task_models import CalendarSync, Task

logger = logging.getLogger(__name__)

DEFAULT_SYNC_DEBOUNCE_SECONDS = 0.5
DEFAULT_CALENDAR_ID = "primary"

SyncedCallback = Callable[[str, CalendarSync], Awaitable[Any] | Any]

WatchedFields = tuple[str, str, date | None]

# Snapshot marker meaning "never synced successfully": any observation differs from it.
_UNSYNCED: Any = object()


@dataclass(slots=True, frozen=True)
class SyncIndicator:
    """Passive toggle state for the UI."""

    enabled: bool
    has_event: bool
    pending: bool


def watched_fields(task: Task) -> WatchedFields:
    return (task.title, task.description, task.due_date)


class CalendarSyncScheduler:
    def __init__(
        self,
        task_id: str,
        calendar: CalendarClient,
        *,
        debounce_seconds: float = DEFAULT_SYNC_DEBOUNCE_SECONDS,
        default_calendar_id: str = DEFAULT_CALENDAR_ID,
        on_synced: SyncedCallback | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.task_id = task_id
        self._calendar = calendar
        self._debounce_s = max(0.0, float(debounce_seconds))
        self._default_calendar_id = default_calendar_id
        self._on_synced = on_synced
        self._clock = clock

        self._task: Task | None = None
        self._snapshot: WatchedFields | None = None
        self._sync_state = CalendarSync()
        self._timer: asyncio.TimerHandle | None = None
        self._inflight: set[asyncio.Task[bool]] = set()
        self._lock = asyncio.Lock()

    # ---- read side ----

    @property
    def state(self) -> SyncIndicator:
        return SyncIndicator(
            enabled=self._sync_state.enabled,
            has_event=bool(self._sync_state.event_id),
            pending=self._timer is not None or bool(self._inflight),
        )

    @property
    def calendar_state(self) -> CalendarSync:
        return self._sync_state

    # ---- inputs ----

    def observe(self, task: Task) -> None:
        """Feed the latest task value; arms the debounce timer on a watched-field change."""
        self._task = task
        self._merge_state(task.calendar)

        if not task.calendar_sync_enabled:
            self._cancel_timer()
            return

        current = watched_fields(task)
        if self._snapshot is None:
            self._snapshot = current
            return

        if current == self._snapshot:
            self._cancel_timer()
            return

        self._cancel_timer()
        self._timer = asyncio.get_running_loop().call_later(self._debounce_s, self._on_timer)

    async def enable(self, task: Task, calendar_id: str | None = None) -> bool:
        """Opt in and sync right away. Returns True if an event was written."""
        self._cancel_timer()
        self._sync_state = replace(
            self._sync_state,
            enabled=True,
            calendar_id=calendar_id or self._sync_state.calendar_id or self._default_calendar_id,
        )
        self._task = replace(task, calendar=self._sync_state)
        self._snapshot = _UNSYNCED
        async with self._lock:
            synced = await self._sync(self._task)
        if not synced:
            # Keep the opt-in even though nothing was written yet.
            await self._report(self._sync_state)
        return synced

    async def disable(self, task: Task) -> None:
        """Opt out: delete the event (idempotent) and clear the sync state."""
        self._cancel_timer()
        # Queued timer runs see the opt-out and skip.
        self._task = replace(task, calendar=None)
        async with self._lock:
            self._merge_state(task.calendar)
            state = self._sync_state
            if state.event_id:
                try:
                    await self._calendar.delete_event(state.calendar_id or self._default_calendar_id, state.event_id)
                except Exception:
                    logger.warning("Failed to delete calendar event for task %s", self.task_id, exc_info=True)

            self._sync_state = CalendarSync()
            self._snapshot = None
        await self._report(self._sync_state)

    async def change_calendar(self, task: Task, calendar_id: str) -> bool:
        """Move the event to another calendar (delete old, create new)."""
        self._cancel_timer()
        async with self._lock:
            if task.calendar is not None:
                self._merge_state(task.calendar)
            state = self._sync_state
            if state.event_id and state.calendar_id != calendar_id:
                try:
                    await self._calendar.delete_event(state.calendar_id or self._default_calendar_id, state.event_id)
                except Exception:
                    logger.warning("Failed to delete old calendar event for task %s", self.task_id, exc_info=True)
                state = replace(state, event_id=None)

            self._sync_state = replace(state, calendar_id=calendar_id)
            self._task = replace(task, calendar=self._sync_state)
            if self._sync_state.enabled:
                self._snapshot = _UNSYNCED
                return await self._sync(self._task)
        await self._report(self._sync_state)
        return False

    def close(self) -> None:
        """Drop the pending timer. In-flight calls are not aborted."""
        self._cancel_timer()

    # ---- internals ----

    def _merge_state(self, incoming: CalendarSync | None) -> None:
        if incoming is None:
            self._sync_state = replace(self._sync_state, enabled=False)
            return
        self._sync_state = CalendarSync(
            enabled=incoming.enabled,
            calendar_id=incoming.calendar_id or self._sync_state.calendar_id,
            # An event id learned locally wins over a stale value coming back from the task.
            event_id=self._sync_state.event_id or incoming.event_id,
            last_synced_at=self._sync_state.last_synced_at or incoming.last_synced_at,
        )

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _on_timer(self) -> None:
        self._timer = None
        task = self._task
        if task is None or not task.calendar_sync_enabled:
            return
        job = asyncio.get_running_loop().create_task(self._sync_latest())
        self._inflight.add(job)
        job.add_done_callback(self._inflight.discard)

    async def _sync_latest(self) -> bool:
        """Timer run: waits for any running call, then syncs the newest task value if it still differs."""
        async with self._lock:
            task = self._task
            if task is None or not task.calendar_sync_enabled:
                return False
            if watched_fields(task) == self._snapshot:
                return False
            return await self._sync(task)

    async def _sync(self, task: Task) -> bool:
        """Write one task value to the calendar. Callers hold `_lock`."""
        if task.due_date is None:
            logger.info("Calendar sync skipped for task %s: %s", self.task_id, SyncPrecondition("task has no due date"))
            return False

        watched = watched_fields(task)
        calendar_id = self._sync_state.calendar_id or self._default_calendar_id
        event_id = self._sync_state.event_id

        try:
            if event_id:
                await self._calendar.update_event(calendar_id, event_id, task.title, task.description, task.due_date)
            else:
                event_id = await self._calendar.create_event(calendar_id, task.title, task.description, task.due_date)
        except Exception:
            # Snapshot stays put so the next edit retries.
            logger.warning("Calendar sync failed for task %s", self.task_id, exc_info=True)
            return False

        self._snapshot = watched
        self._sync_state = CalendarSync(
            enabled=True,
            calendar_id=calendar_id,
            event_id=event_id,
            last_synced_at=self._clock(),
        )
        logger.info("Task %s synced to calendar %s event=%s", self.task_id, calendar_id, event_id)
        await self._report(self._sync_state)
        return True

    async def _report(self, state: CalendarSync) -> None:
        if self._on_synced is None:
            return
        try:
            res = self._on_synced(self.task_id, state)
            if inspect.isawaitable(res):
                await res
        except Exception:
            logger.exception("on_synced callback failed for task %s", self.task_id)
