# src/taskboard/view/filters.py

"""
Pure task filtering.

Nothing here mutates its input; filter_tasks always returns a new list.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date, timedelta
from enum import StrEnum

from ..tasks.task_models import Priority, Task, TaskStatus

ALL = "all"
UNASSIGNED = "unassigned"
NO_LABEL = "__no_label__"


class DuePreset(StrEnum):
    ALL = "all"
    OVERDUE = "overdue"
    TODAY = "today"
    NEXT7 = "next7"
    NONE = "none"
    RANGE = "range"


@dataclass(slots=True, frozen=True)
class DueFilter:
    preset: DuePreset = DuePreset.ALL
    date_from: date | None = None
    date_to: date | None = None


@dataclass(slots=True, frozen=True)
class FilterState:
    query: str = ""
    # Label names (case-insensitive), may include NO_LABEL.
    labels: tuple[str, ...] = ()
    # ALL, UNASSIGNED, or an assignee id.
    assignee_id: str = ALL
    due: DueFilter = field(default_factory=DueFilter)
    priorities: tuple[Priority, ...] = ()


DEFAULT_FILTERS = FilterState()


def _matches_query(task: Task, query: str) -> bool:
    q = query.strip().lower()
    if not q:
        return True
    return q in task.title.lower() or q in task.description.lower()


def _matches_labels(task: Task, labels: tuple[str, ...]) -> bool:
    if not labels:
        return True
    want_unlabeled = NO_LABEL in labels
    wanted = {name.lower() for name in labels if name != NO_LABEL}

    if want_unlabeled and not task.labels:
        return True
    return any(lbl.name.lower() in wanted for lbl in task.labels)


def _matches_assignee(task: Task, assignee_id: str) -> bool:
    if assignee_id == ALL:
        return True
    if assignee_id == UNASSIGNED:
        return task.assignee is None
    return task.assignee is not None and task.assignee.id == assignee_id


def _matches_due(task: Task, due: DueFilter, today: date) -> bool:
    preset = due.preset
    dd = task.due_date

    if preset == DuePreset.ALL:
        return True
    if preset == DuePreset.OVERDUE:
        return dd is not None and dd < today and task.status != TaskStatus.DONE
    if preset == DuePreset.TODAY:
        return dd == today
    if preset == DuePreset.NEXT7:
        return dd is not None and today <= dd <= today + timedelta(days=7)
    if preset == DuePreset.NONE:
        return dd is None
    if preset == DuePreset.RANGE:
        if dd is None:
            return False
        if due.date_from is not None and dd < due.date_from:
            return False
        if due.date_to is not None and dd > due.date_to:
            return False
        return True
    return True


def _matches_priority(task: Task, priorities: tuple[Priority, ...]) -> bool:
    return not priorities or task.priority in priorities


def matches(task: Task, filters: FilterState, today: date) -> bool:
    return (
        _matches_query(task, filters.query)
        and _matches_labels(task, filters.labels)
        and _matches_assignee(task, filters.assignee_id)
        and _matches_due(task, filters.due, today)
        and _matches_priority(task, filters.priorities)
    )


def filter_tasks(tasks: Iterable[Task], filters: FilterState, *, today: date | None = None) -> list[Task]:
    """
    Filter tasks. All criteria are AND-combined; labels and priorities are
    OR-combined within themselves.

    `today` defaults to the local calendar date.
    """
    day = today or date.today()
    return [t for t in tasks if matches(t, filters, day)]


def count_active_filters(filters: FilterState) -> int:
    count = 0
    if filters.query.strip():
        count += 1
    count += len(filters.labels)
    if filters.assignee_id != ALL:
        count += 1
    if filters.due.preset != DuePreset.ALL:
        count += 1
    count += len(filters.priorities)
    return count
