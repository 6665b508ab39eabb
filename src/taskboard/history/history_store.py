# src/taskboard/history/history_store.py

"""
Undo/redo history over whole-collection snapshots.

Snapshots are stored by reference. Callers must treat committed collections
as immutable and build a new collection for every change; commit() is an
atomic value replacement, never an in-place mutation.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Generic, TypeVar

from ..tasks.task_models import ActionMeta

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_HISTORY_LIMIT = 50

HistoryListener = Callable[["HistoryStore"], None]


class HistoryStore(Generic[T]):
    """
    present + bounded past + future, plus the last commit's ActionMeta.

    Invariants:
    - len(past) <= limit (oldest entries are dropped)
    - future is empty right after a commit
    """

    def __init__(self, initial: T, *, limit: int = DEFAULT_HISTORY_LIMIT) -> None:
        self._limit = max(1, int(limit))
        self._present: T = initial
        self._past: list[T] = []
        self._future: list[T] = []
        self._last_action: ActionMeta | None = None
        # The first commit seeds present without creating an undo step.
        self._initialized = False
        self._listeners: list[HistoryListener] = []

    # ---- read side ----

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def present(self) -> T:
        return self._present

    @property
    def past(self) -> list[T]:
        return list(self._past)

    @property
    def future(self) -> list[T]:
        return list(self._future)

    @property
    def last_action(self) -> ActionMeta | None:
        return self._last_action

    @property
    def can_undo(self) -> bool:
        return bool(self._past)

    @property
    def can_redo(self) -> bool:
        return bool(self._future)

    @property
    def history_size(self) -> int:
        return len(self._past)

    @property
    def future_size(self) -> int:
        return len(self._future)

    # ---- write side ----

    def commit(self, next_state: T, meta: ActionMeta | None = None) -> None:
        if next_state is self._present:
            return

        if not self._initialized:
            self._initialized = True
            self._present = next_state
            self._past = []
            self._future = []
            self._last_action = meta
            logger.debug("History seeded (kind=%s)", meta.kind if meta else None)
            self._notify()
            return

        self._past.append(self._present)
        if len(self._past) > self._limit:
            del self._past[: len(self._past) - self._limit]

        self._present = next_state
        self._future = []
        self._last_action = meta
        logger.debug(
            "History commit kind=%s past=%d",
            meta.kind if meta else None,
            len(self._past),
        )
        self._notify()

    def undo(self) -> None:
        if not self._past:
            return
        previous = self._past.pop()
        self._future.insert(0, self._present)
        self._present = previous
        self._last_action = None
        logger.debug("Undo past=%d future=%d", len(self._past), len(self._future))
        self._notify()

    def redo(self) -> None:
        if not self._future:
            return
        nxt = self._future.pop(0)
        self._past.append(self._present)
        if len(self._past) > self._limit:
            del self._past[: len(self._past) - self._limit]
        self._present = nxt
        self._last_action = None
        logger.debug("Redo past=%d future=%d", len(self._past), len(self._future))
        self._notify()

    def reset(self, new_state: T) -> None:
        """Hard replace (after an authoritative reload)."""
        self._present = new_state
        self._past = []
        self._future = []
        self._last_action = None
        self._initialized = True
        self._notify()

    # ---- listeners ----

    def subscribe(self, listener: HistoryListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception:
                logger.exception("History listener failed")
