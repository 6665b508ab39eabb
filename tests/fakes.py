# tests/fakes.py

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import date
from typing import Any

from taskboard.errors import NotFoundOrUnauthorized, PersistenceError
from taskboard.tasks.task_codec import apply_record_fields
from taskboard.tasks.task_models import Task


class FakeTaskRepo:
    """
    In-memory TaskRepo.

    - Captures calls for assertions
    - `fail_ids` makes every call touching those ids raise PersistenceError
    - `fail_all` makes every write raise
    - `gate` (an asyncio.Event) holds writes until set, for interleaving tests
    """

    def __init__(self, tasks: list[Task] | None = None) -> None:
        self.tasks: dict[str, Task] = {t.id: t for t in tasks or []}
        self.calls: list[tuple[str, Any]] = []
        self.fail_ids: set[str] = set()
        self.fail_all = False
        self.gate: asyncio.Event | None = None
        self.inbound: dict[str, str] = {}

    def calls_named(self, name: str) -> list[Any]:
        return [args for n, args in self.calls if n == name]

    async def _write(self, name: str, task_id: str, args: Any) -> None:
        self.calls.append((name, args))
        if self.gate is not None:
            await self.gate.wait()
        if self.fail_all or task_id in self.fail_ids:
            raise PersistenceError(f"{name} failed for {task_id}", task_ids=[task_id])

    async def list_tasks(self) -> list[Task]:
        self.calls.append(("list_tasks", None))
        return list(self.tasks.values())

    async def create_task(self, task: Task) -> Task:
        await self._write("create_task", task.id, task)
        self.tasks[task.id] = task
        return task

    async def update_task(self, task_id: str, fields: dict[str, Any]) -> None:
        await self._write("update_task", task_id, (task_id, dict(fields)))
        if task_id not in self.tasks:
            raise NotFoundOrUnauthorized(task_id)
        self.tasks[task_id] = apply_record_fields(self.tasks[task_id], fields)

    async def delete_task(self, task_id: str) -> None:
        await self._write("delete_task", task_id, task_id)
        if self.tasks.pop(task_id, None) is None:
            raise NotFoundOrUnauthorized(task_id)

    async def create_task_from_inbound(self, task: Task, dedup_key: str) -> tuple[str, bool]:
        await self._write("create_task_from_inbound", task.id, (task, dedup_key))
        if dedup_key in self.inbound:
            return self.inbound[dedup_key], True
        self.tasks[task.id] = task
        self.inbound[dedup_key] = task.id
        return task.id, False


@dataclass(slots=True)
class CalendarCall:
    method: str
    calendar_id: str
    event_id: str | None = None
    title: str | None = None
    description: str | None = None
    due_date: date | None = None


@dataclass(slots=True)
class FakeCalendar:
    """
    Fake CalendarClient recording every call.

    Event ids are handed out as evt-1, evt-2, ...
    `gate` (an asyncio.Event) holds create_event until set, to simulate a slow calendar.
    """

    calls: list[CalendarCall] = field(default_factory=list)
    fail: bool = False
    gate: asyncio.Event | None = None
    _next_id: int = 0

    def methods(self) -> list[str]:
        return [c.method for c in self.calls]

    async def create_event(self, calendar_id: str, title: str, description: str, due_date: date) -> str:
        self.calls.append(CalendarCall("create", calendar_id, None, title, description, due_date))
        if self.gate is not None:
            await self.gate.wait()
        if self.fail:
            raise RuntimeError("calendar down")
        self._next_id += 1
        return f"evt-{self._next_id}"

    async def update_event(
        self,
        calendar_id: str,
        event_id: str,
        title: str,
        description: str,
        due_date: date,
    ) -> None:
        self.calls.append(CalendarCall("update", calendar_id, event_id, title, description, due_date))
        if self.fail:
            raise RuntimeError("calendar down")

    async def delete_event(self, calendar_id: str, event_id: str) -> None:
        self.calls.append(CalendarCall("delete", calendar_id, event_id))
        if self.fail:
            raise RuntimeError("calendar down")
