# src/taskboard/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the board core.

The core depends on Protocols instead of concrete implementations.
This keeps the persistence backend and the calendar provider swappable
and makes testing easier.
"""

from datetime import date
from typing import Any, Protocol

from ..tasks.task_models import Task


class TaskRepo(Protocol):
    """
    Persistence collaborator, scoped to one owning principal.

    Missing rows and rows owned by someone else raise NotFoundOrUnauthorized;
    backend failures raise PersistenceError.
    """

    async def list_tasks(self) -> list[Task]: ...

    async def create_task(self, task: Task) -> Task: ...

    async def update_task(self, task_id: str, fields: dict[str, Any]) -> None:
        """Partial update. `fields` holds record-encoded values (see task_codec)."""
        ...

    async def delete_task(self, task_id: str) -> None: ...

    async def create_task_from_inbound(self, task: Task, dedup_key: str) -> tuple[str, bool]:
        """
        Idempotent creation keyed on a delivery/dedup key.
        Returns (task_id, is_duplicate).
        """
        ...


class CalendarClient(Protocol):
    """
    External calendar collaborator (all-day events keyed by calendar id + event id).

    update_event/delete_event on an event that no longer exists must be a no-op.
    """

    async def create_event(self, calendar_id: str, title: str, description: str, due_date: date) -> str: ...

    async def update_event(
        self,
        calendar_id: str,
        event_id: str,
        title: str,
        description: str,
        due_date: date,
    ) -> None: ...

    async def delete_event(self, calendar_id: str, event_id: str) -> None: ...
