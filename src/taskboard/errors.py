# src/taskboard/errors.py

"""
Error taxonomy for the board core.

Validation errors are raised synchronously before any commit.
Everything else is raised from async boundaries (persistence, calendar)
and is attached to the entity or operation that produced it.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping


class TaskBoardError(Exception):
    """Base class for all board errors."""


class ValidationError(TaskBoardError):
    """Empty/whitespace-only title or label name (never enters history)."""


class NotFoundOrUnauthorized(TaskBoardError):
    """The task does not exist or is not owned by the current principal."""

    def __init__(self, task_id: str, message: str | None = None) -> None:
        self.task_id = task_id
        super().__init__(message or f"Task not found: {task_id}")


class PersistenceError(TaskBoardError):
    """
    Backend failure while saving.

    For bulk move/delete `failures` maps task id -> original exception.
    """

    def __init__(
        self,
        message: str,
        *,
        task_ids: Iterable[str] = (),
        failures: Mapping[str, BaseException] | None = None,
    ) -> None:
        super().__init__(message)
        self.task_ids = list(task_ids)
        self.failures = dict(failures or {})


class PartialBulkFailure(TaskBoardError):
    """One or more entities in a bulk label operation failed (not rolled back)."""

    def __init__(self, message: str, *, succeeded: Iterable[str], failures: Mapping[str, BaseException]) -> None:
        super().__init__(message)
        self.succeeded = list(succeeded)
        self.failures = dict(failures)


class SyncPrecondition(TaskBoardError):
    """Calendar sync attempted without a due date. Logged and skipped."""


class CalendarError(TaskBoardError):
    """External calendar call failed."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
