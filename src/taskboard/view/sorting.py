# src/taskboard/view/sorting.py

from __future__ import annotations

import functools
import locale
from collections.abc import Iterable
from dataclasses import dataclass
from enum import StrEnum

from ..tasks.task_models import Task


class SortField(StrEnum):
    CREATED_AT = "created_at"
    DUE_DATE = "due_date"
    PRIORITY = "priority"


class SortOrder(StrEnum):
    ASC = "asc"
    DESC = "desc"


@dataclass(slots=True, frozen=True)
class SortState:
    field: SortField = SortField.CREATED_AT
    order: SortOrder = SortOrder.DESC


# Newest first.
DEFAULT_SORT = SortState()


def _cmp(a: float, b: float) -> int:
    return (a > b) - (a < b)


def _compare_created(a: Task, b: Task) -> int:
    return _cmp(a.created_at, b.created_at)


def _compare_priority(a: Task, b: Task) -> int:
    return _cmp(a.priority.rank, b.priority.rank)


def _compare_due(a: Task, b: Task, order: SortOrder) -> int:
    # Tasks without a due date go last in both directions.
    if a.due_date is None and b.due_date is None:
        return 0
    if a.due_date is None:
        return 1
    if b.due_date is None:
        return -1
    c = _cmp(a.due_date.toordinal(), b.due_date.toordinal())
    return c if order == SortOrder.ASC else -c


def title_sort_key(title: str) -> str:
    """Case-insensitive, locale-aware collation key for titles."""
    try:
        return locale.strxfrm(title.casefold())
    except ValueError:
        # strxfrm rejects embedded NUL characters.
        return title.casefold()


def _compare_title(a: Task, b: Task) -> int:
    ka, kb = title_sort_key(a.title), title_sort_key(b.title)
    c = (ka > kb) - (ka < kb)
    if c == 0:
        c = (a.title > b.title) - (a.title < b.title)
    return c


def compare_tasks(a: Task, b: Task, sort: SortState) -> int:
    if sort.field == SortField.DUE_DATE:
        c = _compare_due(a, b, sort.order)
    else:
        c = _compare_created(a, b) if sort.field == SortField.CREATED_AT else _compare_priority(a, b)
        if sort.order == SortOrder.DESC:
            c = -c

    if c == 0:
        # Tie-break 1: newest first.
        c = -_compare_created(a, b)
    if c == 0:
        # Tie-break 2: title A -> Z.
        c = _compare_title(a, b)
    return c


def sort_tasks(tasks: Iterable[Task], sort: SortState = DEFAULT_SORT) -> list[Task]:
    """Stable sort into a new list."""
    return sorted(tasks, key=functools.cmp_to_key(lambda a, b: compare_tasks(a, b, sort)))
