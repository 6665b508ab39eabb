# src/taskboard/board/selection.py

from __future__ import annotations

from collections.abc import Iterable

from ..tasks.task_models import Task


class Selection:
    """
    Multi-select set of task ids.

    Independent of the current filters: a selected task stays selected when a
    filter hides it (see hidden_count).
    """

    def __init__(self) -> None:
        # dict keeps selection order stable for display and bulk calls.
        self._ids: dict[str, None] = {}

    def __contains__(self, task_id: object) -> bool:
        return task_id in self._ids

    def __len__(self) -> int:
        return len(self._ids)

    @property
    def ids(self) -> tuple[str, ...]:
        return tuple(self._ids)

    @property
    def count(self) -> int:
        return len(self._ids)

    @property
    def is_active(self) -> bool:
        return bool(self._ids)

    def toggle(self, task_id: str) -> bool:
        """Returns True if the task is selected afterwards."""
        if task_id in self._ids:
            del self._ids[task_id]
            return False
        self._ids[task_id] = None
        return True

    def select(self, task_ids: Iterable[str]) -> None:
        for tid in task_ids:
            self._ids.setdefault(tid, None)

    def deselect(self, task_ids: Iterable[str]) -> None:
        for tid in task_ids:
            self._ids.pop(tid, None)

    def clear(self) -> None:
        self._ids.clear()

    def hidden_count(self, visible_tasks: Iterable[Task]) -> int:
        visible = {t.id for t in visible_tasks}
        return sum(1 for tid in self._ids if tid not in visible)

    def prune(self, existing_ids: Iterable[str]) -> None:
        """Drop ids of tasks that no longer exist."""
        existing = set(existing_ids)
        for tid in [t for t in self._ids if t not in existing]:
            del self._ids[tid]
