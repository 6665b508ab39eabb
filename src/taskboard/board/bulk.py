# src/taskboard/board/bulk.py

"""
Bulk commands over a set of task ids.

Two failure policies, kept deliberately different:
- move/delete: one optimistic history commit, then parallel persistence.
  Any failure raises PersistenceError and the caller undoes the commit
  (all-or-nothing from the user's point of view).
- label add/remove: independent per-task persistence. Successful tasks are
  committed, failures are aggregated into one PartialBulkFailure and are
  not rolled back.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import replace

from ..core.ports import TaskRepo
from ..errors import PartialBulkFailure, PersistenceError
from ..history.history_store import HistoryStore
from ..tasks.labels import has_label, labels_equal, make_label, normalize_label_name
from ..tasks.task_codec import encode_field
from ..tasks.task_models import ActionKind, ActionMeta, Task, TaskStatus

logger = logging.getLogger(__name__)

TaskCollection = tuple[Task, ...]


async def dispatch_all(
    task_ids: Iterable[str],
    call: Callable[[str], Awaitable[object]],
) -> tuple[list[str], dict[str, BaseException]]:
    """
    Run `call(task_id)` for every id in parallel and wait for all of them,
    regardless of individual outcome. Returns (succeeded, failures).
    """
    ids = list(task_ids)
    results = await asyncio.gather(*(call(tid) for tid in ids), return_exceptions=True)

    succeeded: list[str] = []
    failures: dict[str, BaseException] = {}
    for tid, res in zip(ids, results):
        if isinstance(res, BaseException):
            if isinstance(res, asyncio.CancelledError):
                raise res
            failures[tid] = res
        else:
            succeeded.append(tid)
    return succeeded, failures


class BulkCommands:
    def __init__(
        self,
        history: HistoryStore[TaskCollection],
        repo: TaskRepo,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._history = history
        self._repo = repo
        self._clock = clock

    def _existing_ids(self, task_ids: Iterable[str]) -> list[str]:
        present = {t.id for t in self._history.present}
        out: list[str] = []
        for tid in task_ids:
            if tid in present and tid not in out:
                out.append(tid)
        return out

    async def bulk_move(self, task_ids: Iterable[str], status: TaskStatus) -> list[str]:
        ids = self._existing_ids(task_ids)
        if not ids:
            return []

        wanted = set(ids)
        now = self._clock()
        nxt = tuple(replace(t, status=status, updated_at=now) if t.id in wanted else t for t in self._history.present)
        self._history.commit(
            nxt,
            ActionMeta(
                kind=ActionKind.BULK_MOVE,
                task_ids=tuple(ids),
                description=f"Moved {len(ids)} task(s) to {status.display_name}",
            ),
        )

        _, failures = await dispatch_all(ids, lambda tid: self._repo.update_task(tid, {"status": status.value}))
        if failures:
            logger.warning("Bulk move failed for %d/%d task(s)", len(failures), len(ids))
            raise PersistenceError(
                f"Failed to move {len(failures)} of {len(ids)} task(s)",
                task_ids=ids,
                failures=failures,
            )
        logger.info("Bulk moved %d task(s) -> %s", len(ids), status.value)
        return ids

    async def bulk_delete(self, task_ids: Iterable[str]) -> list[str]:
        ids = self._existing_ids(task_ids)
        if not ids:
            return []

        wanted = set(ids)
        nxt = tuple(t for t in self._history.present if t.id not in wanted)
        self._history.commit(
            nxt,
            ActionMeta(
                kind=ActionKind.BULK_DELETE,
                task_ids=tuple(ids),
                description=f"Deleted {len(ids)} task(s)",
            ),
        )

        _, failures = await dispatch_all(ids, self._repo.delete_task)
        if failures:
            logger.warning("Bulk delete failed for %d/%d task(s)", len(failures), len(ids))
            raise PersistenceError(
                f"Failed to delete {len(failures)} of {len(ids)} task(s)",
                task_ids=ids,
                failures=failures,
            )
        logger.info("Bulk deleted %d task(s)", len(ids))
        return ids

    async def bulk_add_label(self, task_ids: Iterable[str], name: str) -> list[str]:
        label = make_label(name)

        def add(task: Task) -> Task | None:
            if has_label(task, label.name):
                return None
            return replace(task, labels=(*task.labels, label))

        return await self._apply_label_change(
            task_ids, add, describe=lambda n: f'Added label "{label.name}" to {n} task(s)'
        )

    async def bulk_remove_label(self, task_ids: Iterable[str], name: str) -> list[str]:
        target = normalize_label_name(name)

        def remove(task: Task) -> Task | None:
            kept = tuple(lbl for lbl in task.labels if not labels_equal(lbl, target))
            if len(kept) == len(task.labels):
                return None
            return replace(task, labels=kept)

        return await self._apply_label_change(
            task_ids, remove, describe=lambda n: f'Removed label "{target}" from {n} task(s)'
        )

    async def _apply_label_change(
        self,
        task_ids: Iterable[str],
        change: Callable[[Task], Task | None],
        *,
        describe: Callable[[int], str],
    ) -> list[str]:
        by_id = {t.id: t for t in self._history.present}
        planned: dict[str, Task] = {}
        for tid in self._existing_ids(task_ids):
            updated = change(by_id[tid])
            if updated is not None:
                planned[tid] = updated

        if not planned:
            return []

        succeeded, failures = await dispatch_all(
            planned,
            lambda tid: self._repo.update_task(tid, {"labels": encode_field("labels", planned[tid].labels)}),
        )

        if succeeded:
            # Re-read present: other commits may have landed while we were waiting.
            ok = set(succeeded)
            now = self._clock()
            nxt: list[Task] = []
            for task in self._history.present:
                updated = change(task) if task.id in ok else None
                nxt.append(replace(updated, updated_at=now) if updated is not None else task)
            self._history.commit(
                tuple(nxt),
                ActionMeta(
                    kind=ActionKind.OTHER,
                    task_ids=tuple(succeeded),
                    description=describe(len(succeeded)),
                ),
            )

        if failures:
            logger.warning("Bulk label change failed for %d/%d task(s)", len(failures), len(planned))
            raise PartialBulkFailure(
                f"{describe(len(planned))}: failed for {len(failures)} task(s)",
                succeeded=succeeded,
                failures=failures,
            )
        return succeeded
