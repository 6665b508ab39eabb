# src/taskboard/tasks/labels.py

"""
Label helpers.

Label names are compared case-insensitively everywhere. Uniqueness is
enforced within one task's label set, not globally.
"""

from __future__ import annotations

import logging
import re
import uuid
from collections.abc import Iterable
from typing import Any

from ..errors import ValidationError
from .task_models import Assignee, Label, Task

logger = logging.getLogger(__name__)

# Accessible, distinct colors.
LABEL_COLORS: tuple[str, ...] = (
    "#EF4444",  # red
    "#F59E0B",  # amber
    "#10B981",  # emerald
    "#3B82F6",  # blue
    "#8B5CF6",  # violet
    "#EC4899",  # pink
    "#06B6D4",  # cyan
    "#84CC16",  # lime
    "#F97316",  # orange
    "#6366F1",  # indigo
    "#14B8A6",  # teal
    "#A855F7",  # purple
    "#EAB308",  # yellow
    "#22C55E",  # green
)

_WS_RE = re.compile(r"\s+")


def normalize_label_name(name: str) -> str:
    """Trim and collapse internal whitespace. Case is preserved."""
    return _WS_RE.sub(" ", (name or "").strip())


def _name_of(x: Label | str) -> str:
    return x if isinstance(x, str) else x.name


def labels_equal(a: Label | str, b: Label | str) -> bool:
    return _name_of(a).lower() == _name_of(b).lower()


def _hash_name(name: str) -> int:
    # 32-bit signed rolling hash (h * 31 + c), stable across runs.
    h = 0
    for ch in name.lower():
        h = ((h << 5) - h + ord(ch)) & 0xFFFFFFFF
    if h & 0x80000000:
        h -= 0x100000000
    return abs(h)


def color_for_label(name: str) -> str:
    """Same name (any case) always gets the same color."""
    return LABEL_COLORS[_hash_name(name) % len(LABEL_COLORS)]


def make_label(name: str, color: str | None = None) -> Label:
    normalized = normalize_label_name(name)
    if not normalized:
        raise ValidationError("Label cannot be empty")
    return Label(
        id=f"label-{uuid.uuid4().hex[:12]}",
        name=normalized,
        color=color or color_for_label(normalized),
    )


def has_label(task: Task, name: str) -> bool:
    return any(labels_equal(lbl, name) for lbl in task.labels)


def decode_labels(raw: Any) -> tuple[Label, ...]:
    """
    Decode stored labels into canonical Label values.

    Accepted shapes per item:
    - {"id", "name", "color"} records (color/id filled in when missing)
    - plain strings (legacy)
    Anything else becomes an "Unknown" label. Duplicate names (case-insensitive)
    keep the first occurrence.
    """
    if not isinstance(raw, (list, tuple)):
        return ()

    out: list[Label] = []
    seen: set[str] = set()
    for item in raw:
        label: Label | None = None
        if isinstance(item, Label):
            label = item
        elif isinstance(item, dict) and isinstance(item.get("name"), str):
            name = normalize_label_name(item["name"])
            if name:
                label = Label(
                    id=str(item.get("id") or f"label-{uuid.uuid4().hex[:12]}"),
                    name=name,
                    color=str(item.get("color") or color_for_label(name)),
                )
        elif isinstance(item, str):
            if normalize_label_name(item):
                label = make_label(item)
        else:
            logger.debug("Unrecognized label payload %r; using placeholder", item)
            label = make_label("Unknown")

        if label is None:
            continue
        key = label.name.lower()
        if key in seen:
            continue
        seen.add(key)
        out.append(label)
    return tuple(out)


def unique_labels(tasks: Iterable[Task]) -> list[Label]:
    """All distinct labels across tasks (first spelling wins), sorted by name."""
    by_key: dict[str, Label] = {}
    for task in tasks:
        for lbl in task.labels:
            by_key.setdefault(lbl.name.lower(), lbl)
    return sorted(by_key.values(), key=lambda lbl: lbl.name.lower())


def unique_assignees(tasks: Iterable[Task]) -> list[Assignee]:
    by_id: dict[str, Assignee] = {}
    for task in tasks:
        if task.assignee is not None:
            by_id[task.assignee.id] = task.assignee
    return sorted(by_id.values(), key=lambda a: a.name.lower())
