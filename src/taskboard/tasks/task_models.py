# src/taskboard/tasks/task_models.py

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from enum import StrEnum


class TaskStatus(StrEnum):
    """
    Board column a task lives in.

    Notes:
    - "done" is the terminal state (overdue tasks exclude it).
    """

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    DONE = "done"

    @classmethod
    def from_db(cls, raw: str | None) -> TaskStatus:
        if not raw:
            return cls.PENDING
        try:
            return cls(raw)
        except ValueError:
            return cls.PENDING

    @property
    def display_name(self) -> str:
        return STATUS_TITLES[self]


STATUS_TITLES: dict[TaskStatus, str] = {
    TaskStatus.PENDING: "To Do",
    TaskStatus.IN_PROGRESS: "In Progress",
    TaskStatus.DONE: "Done",
}


class Priority(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"

    @classmethod
    def from_db(cls, raw: str | None) -> Priority:
        if not raw:
            return cls.MEDIUM
        try:
            return cls(raw)
        except ValueError:
            return cls.MEDIUM

    @property
    def rank(self) -> int:
        return PRIORITY_RANK[self]


# Higher number = higher priority.
PRIORITY_RANK: dict[Priority, int] = {
    Priority.URGENT: 4,
    Priority.HIGH: 3,
    Priority.MEDIUM: 2,
    Priority.LOW: 1,
}


class ActionKind(StrEnum):
    CREATE = "create"
    DELETE = "delete"
    MOVE = "move"
    EDIT = "edit"
    BULK_MOVE = "bulk-move"
    BULK_DELETE = "bulk-delete"
    OTHER = "other"


@dataclass(slots=True, frozen=True)
class ActionMeta:
    """What a history commit did; drives undo notices."""

    kind: ActionKind
    task_ids: tuple[str, ...] = ()
    description: str | None = None


@dataclass(slots=True, frozen=True)
class Label:
    id: str
    name: str
    color: str


@dataclass(slots=True, frozen=True)
class Assignee:
    id: str
    name: str


@dataclass(slots=True, frozen=True)
class ChecklistItem:
    id: str
    text: str
    done: bool = False


@dataclass(slots=True, frozen=True)
class Attachment:
    id: str
    title: str
    url: str


@dataclass(slots=True, frozen=True)
class CalendarSync:
    enabled: bool = False
    calendar_id: str | None = None
    event_id: str | None = None
    last_synced_at: float | None = None


@dataclass(slots=True, frozen=True)
class TaskSource:
    """Where a task came from (manual entry, inbound message, ...)."""

    channel: str = "manual"
    dedup_key: str | None = None
    sender: str | None = None
    received_at: float | None = None


@dataclass(slots=True, frozen=True)
class Task:
    id: str
    title: str
    created_at: float
    updated_at: float

    description: str = ""
    status: TaskStatus = TaskStatus.PENDING
    priority: Priority = Priority.MEDIUM
    due_date: date | None = None

    labels: tuple[Label, ...] = ()
    assignee: Assignee | None = None
    checklist: tuple[ChecklistItem, ...] = ()
    attachments: tuple[Attachment, ...] = ()

    calendar: CalendarSync | None = None
    source: TaskSource | None = None

    @property
    def calendar_sync_enabled(self) -> bool:
        return bool(self.calendar and self.calendar.enabled)


# Fields a client may send in a partial update.
EDITABLE_FIELDS: frozenset[str] = frozenset(
    {
        "title",
        "description",
        "status",
        "priority",
        "due_date",
        "labels",
        "assignee",
        "checklist",
        "attachments",
        "calendar",
    }
)
