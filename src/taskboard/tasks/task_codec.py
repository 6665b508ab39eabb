# src/taskboard/tasks/task_codec.py

"""
Task <-> plain record conversion.

Records hold only JSON-friendly primitives (ISO dates, lists, dicts) so they
can be stored, diffed and sent over the wire. Decoding is tolerant: bad or
legacy values are normalized instead of rejected.
"""

from __future__ import annotations

import logging
from dataclasses import asdict
from datetime import date, datetime
from typing import Any

from .labels import decode_labels
from .task_models import (
    EDITABLE_FIELDS,
    Assignee,
    Attachment,
    CalendarSync,
    ChecklistItem,
    Label,
    Priority,
    Task,
    TaskSource,
    TaskStatus,
)

logger = logging.getLogger(__name__)


def parse_due_date(raw: Any) -> date | None:
    """
    Accepts date/datetime objects, "YYYY-MM-DD", "YYYY-MM-DD HH:MM:SS"
    and ISO timestamps. Returns None for anything unparseable.
    """
    if raw is None or raw == "":
        return None
    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw
    s = str(raw).strip()
    if " " in s:
        s = s.split(" ", 1)[0]
    try:
        return date.fromisoformat(s[:10])
    except ValueError:
        logger.warning("Could not parse due date: %r", raw)
        return None


def encode_field(name: str, value: Any) -> Any:
    """Encode one Task attribute into its record form."""
    if value is None:
        return None
    if name == "due_date":
        return value.isoformat()
    if name in ("status", "priority"):
        return str(value)
    if name in ("labels", "checklist", "attachments"):
        return [asdict(v) for v in value]
    if name in ("assignee", "calendar", "source"):
        return asdict(value)
    return value


def decode_field(name: str, raw: Any) -> Any:
    """Decode one record value into the matching Task attribute."""
    if name == "due_date":
        return parse_due_date(raw)
    if name == "status":
        return TaskStatus.from_db(raw)
    if name == "priority":
        return Priority.from_db(raw)
    if name == "labels":
        return decode_labels(raw)
    if name == "checklist":
        return tuple(
            ChecklistItem(id=str(i.get("id", "")), text=str(i.get("text", "")), done=bool(i.get("done")))
            for i in (raw or [])
            if isinstance(i, dict)
        )
    if name == "attachments":
        return tuple(
            Attachment(id=str(i.get("id", "")), title=str(i.get("title", "")), url=str(i.get("url", "")))
            for i in (raw or [])
            if isinstance(i, dict)
        )
    if name == "assignee":
        if not isinstance(raw, dict) or not raw.get("id"):
            return None
        return Assignee(id=str(raw["id"]), name=str(raw.get("name") or raw["id"]))
    if name == "calendar":
        if not isinstance(raw, dict):
            return None
        return CalendarSync(
            enabled=bool(raw.get("enabled")),
            calendar_id=raw.get("calendar_id"),
            event_id=raw.get("event_id"),
            last_synced_at=raw.get("last_synced_at"),
        )
    if name == "source":
        if not isinstance(raw, dict):
            return None
        return TaskSource(
            channel=str(raw.get("channel") or "manual"),
            dedup_key=raw.get("dedup_key"),
            sender=raw.get("sender"),
            received_at=raw.get("received_at"),
        )
    if name in ("title", "description"):
        return "" if raw is None else str(raw)
    return raw


_RECORD_FIELDS = (
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
    "source",
)


def task_to_record(task: Task) -> dict[str, Any]:
    record: dict[str, Any] = {
        "id": task.id,
        "created_at": task.created_at,
        "updated_at": task.updated_at,
    }
    for name in _RECORD_FIELDS:
        record[name] = encode_field(name, getattr(task, name))
    return record


# Calendar state is written by the calendar sync path, never by autosave.
AUTOSAVE_FIELDS: tuple[str, ...] = tuple(sorted(EDITABLE_FIELDS - {"calendar"}))


def editable_record(task: Task) -> dict[str, Any]:
    """Only the fields the autosave diff may send."""
    return {name: encode_field(name, getattr(task, name)) for name in AUTOSAVE_FIELDS}


def task_from_record(record: dict[str, Any]) -> Task:
    kwargs: dict[str, Any] = {name: decode_field(name, record.get(name)) for name in _RECORD_FIELDS}
    return Task(
        id=str(record["id"]),
        created_at=float(record.get("created_at") or 0.0),
        updated_at=float(record.get("updated_at") or 0.0),
        **kwargs,
    )


def apply_record_fields(task: Task, fields: dict[str, Any], *, updated_at: float | None = None) -> Task:
    """Return a copy of `task` with encoded `fields` decoded and applied."""
    record = task_to_record(task)
    for name, value in fields.items():
        if name not in EDITABLE_FIELDS:
            logger.debug("Ignoring non-editable field %s", name)
            continue
        record[name] = value
    if updated_at is not None:
        record["updated_at"] = updated_at
    return task_from_record(record)


def labels_record(labels: tuple[Label, ...]) -> list[dict[str, Any]]:
    return encode_field("labels", labels)
