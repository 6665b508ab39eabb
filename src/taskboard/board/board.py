# src/taskboard/board/board.py

"""
Presentation-facing board facade.

Owns the task history, the persistence port, the selection, the view state
and one autosave controller / calendar scheduler per task that needs one.

Command failure policy:
- single-task commands (create/rename/move/delete) are optimistic; on a
  persistence failure the commit is undone (or compensated when newer
  commits landed meanwhile) and an error notice is raised,
- bulk move/delete are undone as a whole on any failure,
- bulk label changes keep their successes and report one notice,
- autosave failures only surface as editor status + notice, never undo.
"""

from __future__ import annotations

import itertools
import logging
import time
import uuid
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, replace
from datetime import date
from enum import StrEnum
from typing import Any

from ..core.ports import CalendarClient, TaskRepo
from ..errors import (
    NotFoundOrUnauthorized,
    PartialBulkFailure,
    PersistenceError,
    TaskBoardError,
    ValidationError,
)
from ..history.history_store import DEFAULT_HISTORY_LIMIT, HistoryStore
from ..sync.autosave import (
    DEFAULT_DEBOUNCE_SECONDS,
    DEFAULT_SAVED_COOLDOWN_SECONDS,
    AutosaveController,
    SaveStatus,
)
from ..sync.calendar_sync import (
    DEFAULT_CALENDAR_ID,
    DEFAULT_SYNC_DEBOUNCE_SECONDS,
    CalendarSyncScheduler,
    SyncIndicator,
)
from ..sync.diff import field_diff
from ..tasks.labels import has_label, labels_equal, make_label, normalize_label_name
from ..tasks.task_codec import AUTOSAVE_FIELDS, editable_record, encode_field
from ..tasks.task_models import (
    ActionKind,
    ActionMeta,
    Assignee,
    CalendarSync,
    ChecklistItem,
    Label,
    Priority,
    Task,
    TaskStatus,
)
from ..view.filters import DEFAULT_FILTERS, FilterState, filter_tasks
from ..view.lanes import GroupBy, Lane, build_lanes
from ..view.sorting import DEFAULT_SORT, SortState, sort_tasks
from .bulk import BulkCommands, TaskCollection, dispatch_all
from .selection import Selection

logger = logging.getLogger(__name__)

_UNDOABLE_KINDS = frozenset({ActionKind.DELETE, ActionKind.BULK_DELETE, ActionKind.MOVE, ActionKind.BULK_MOVE})

# Errors a single-task command turns into a rollback + notice.
_COMMAND_ERRORS = (PersistenceError, NotFoundOrUnauthorized)


class NoticeLevel(StrEnum):
    INFO = "info"
    ERROR = "error"


@dataclass(slots=True, frozen=True)
class Notice:
    id: int
    message: str
    level: NoticeLevel = NoticeLevel.INFO
    undoable: bool = False


def _new_task_id() -> str:
    return f"task-{uuid.uuid4().hex[:12]}"


def _clean_title(title: str) -> str:
    cleaned = (title or "").strip()
    if not cleaned:
        raise ValidationError("Task title cannot be empty")
    return cleaned


def _clean_item_text(text: str) -> str:
    cleaned = " ".join((text or "").split())
    if not cleaned:
        raise ValidationError("Checklist item text cannot be empty")
    return cleaned


def _item_index(task: Task, item_id: str) -> int:
    for i, item in enumerate(task.checklist):
        if item.id == item_id:
            return i
    raise ValidationError(f"No checklist item {item_id!r} on \"{task.title}\"")


class TaskBoard:
    def __init__(
        self,
        repo: TaskRepo,
        calendar: CalendarClient | None = None,
        *,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
        autosave_debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        autosave_saved_cooldown_seconds: float = DEFAULT_SAVED_COOLDOWN_SECONDS,
        calendar_sync_debounce_seconds: float = DEFAULT_SYNC_DEBOUNCE_SECONDS,
        default_calendar_id: str = DEFAULT_CALENDAR_ID,
        clock: Callable[[], float] = time.time,
        today: Callable[[], date] = date.today,
        id_factory: Callable[[], str] = _new_task_id,
    ) -> None:
        self.repo = repo
        self.calendar = calendar
        self._clock = clock
        self._today = today
        self._id_factory = id_factory

        self._autosave_debounce_s = autosave_debounce_seconds
        self._autosave_cooldown_s = autosave_saved_cooldown_seconds
        self._sync_debounce_s = calendar_sync_debounce_seconds
        self._default_calendar_id = default_calendar_id

        empty: TaskCollection = ()
        self.history: HistoryStore[TaskCollection] = HistoryStore(empty, limit=history_limit)
        self.selection = Selection()
        self.bulk = BulkCommands(self.history, repo, clock=clock)

        self.filters: FilterState = DEFAULT_FILTERS
        self.sort: SortState = DEFAULT_SORT
        self.group_by: GroupBy = GroupBy.NONE

        self._editors: dict[str, AutosaveController[Task]] = {}
        self._syncs: dict[str, CalendarSyncScheduler] = {}

        self._notices: list[Notice] = []
        self._notice_ids = itertools.count(1)
        # (notice id, task ids) of the newest undo-able notice.
        self._last_undo_notice: tuple[int, frozenset[str]] | None = None

        self.history.subscribe(self._on_history_change)

    # ---- read side ----

    @property
    def tasks(self) -> TaskCollection:
        return self.history.present

    @property
    def notices(self) -> tuple[Notice, ...]:
        return tuple(self._notices)

    def get_task(self, task_id: str) -> Task:
        for task in self.history.present:
            if task.id == task_id:
                return task
        raise NotFoundOrUnauthorized(task_id)

    def visible_tasks(self) -> list[Task]:
        return sort_tasks(filter_tasks(self.history.present, self.filters, today=self._today()), self.sort)

    def lanes(self) -> list[Lane]:
        return build_lanes(self.visible_tasks(), self.group_by)

    def hidden_selected_count(self) -> int:
        return self.selection.hidden_count(self.visible_tasks())

    def editor_status(self, task_id: str) -> SaveStatus | None:
        ctrl = self._editors.get(task_id)
        return ctrl.status if ctrl is not None else None

    def sync_indicator(self, task_id: str) -> SyncIndicator:
        sched = self._syncs.get(task_id)
        if sched is not None:
            return sched.state
        task = self.get_task(task_id)
        cal = task.calendar
        return SyncIndicator(enabled=task.calendar_sync_enabled, has_event=bool(cal and cal.event_id), pending=False)

    # ---- notices ----

    def add_notice(self, message: str, level: NoticeLevel = NoticeLevel.INFO, *, undoable: bool = False) -> Notice:
        notice = Notice(id=next(self._notice_ids), message=message, level=level, undoable=undoable)
        self._notices.append(notice)
        if level == NoticeLevel.ERROR:
            logger.warning("Notice: %s", message)
        return notice

    def dismiss_notice(self, notice_id: int) -> bool:
        for i, notice in enumerate(self._notices):
            if notice.id == notice_id:
                del self._notices[i]
                return True
        return False

    def _on_history_change(self, store: HistoryStore[TaskCollection]) -> None:
        meta = store.last_action
        if meta is not None and meta.kind in _UNDOABLE_KINDS and meta.description:
            notice = self.add_notice(meta.description, undoable=True)
            self._last_undo_notice = (notice.id, frozenset(meta.task_ids))
        self.selection.prune(t.id for t in store.present)

    # ---- lifecycle ----

    async def load(self) -> TaskCollection:
        """Replace the board with the authoritative repo contents (clears undo history)."""
        tasks = tuple(await self.repo.list_tasks())
        self.history.reset(tasks)
        by_id = {t.id: t for t in tasks}

        for task_id in list(self._editors):
            if task_id in by_id:
                self._editors[task_id].reset(by_id[task_id])
            else:
                await self._drop_task_state(task_id)

        for task in tasks:
            if task.calendar_sync_enabled:
                self._ensure_scheduler(task)
        logger.info("Board loaded: %d task(s)", len(tasks))
        return tasks

    async def close(self) -> None:
        """Flush open editors and drop pending calendar timers."""
        for task_id in list(self._editors):
            await self.close_editor(task_id)
        for sched in self._syncs.values():
            sched.close()
        self._syncs.clear()

    # ---- single-task commands ----

    async def create_task(
        self,
        title: str,
        *,
        description: str = "",
        status: TaskStatus = TaskStatus.PENDING,
        priority: Priority = Priority.MEDIUM,
        due_date: date | None = None,
        labels: Iterable[str] = (),
        assignee: Assignee | None = None,
    ) -> Task | None:
        clean = _clean_title(title)
        now = self._clock()

        built: list[Label] = []
        for name in labels:
            label = make_label(name)
            if not any(labels_equal(existing, label) for existing in built):
                built.append(label)

        task = Task(
            id=self._id_factory(),
            title=clean,
            created_at=now,
            updated_at=now,
            description=description,
            status=status,
            priority=priority,
            due_date=due_date,
            labels=tuple(built),
            assignee=assignee,
        )

        before = self.history.present
        self.history.commit(
            (task, *before),
            ActionMeta(kind=ActionKind.CREATE, task_ids=(task.id,), description=f'Created "{clean}"'),
        )
        try:
            await self.repo.create_task(task)
        except _COMMAND_ERRORS as exc:
            self._rollback(before, [task.id], f'Could not create "{clean}"', exc)
            return None
        logger.info("Task created id=%s", task.id)
        return task

    async def rename_task(self, task_id: str, title: str) -> Task | None:
        clean = _clean_title(title)
        task = self.get_task(task_id)
        if task.title == clean:
            return task
        return await self._update_one(
            replace(task, title=clean, updated_at=self._clock()),
            {"title": clean},
            ActionMeta(kind=ActionKind.EDIT, task_ids=(task_id,), description=f'Renamed "{task.title}" to "{clean}"'),
            failure=f'Could not rename "{task.title}"',
        )

    async def move_task(self, task_id: str, status: TaskStatus) -> Task | None:
        task = self.get_task(task_id)
        if task.status == status:
            return task
        return await self._update_one(
            replace(task, status=status, updated_at=self._clock()),
            {"status": status.value},
            ActionMeta(
                kind=ActionKind.MOVE,
                task_ids=(task_id,),
                description=f'Moved "{task.title}" to {status.display_name}',
            ),
            failure=f'Could not move "{task.title}"',
        )

    async def delete_task(self, task_id: str) -> bool:
        task = self.get_task(task_id)
        await self._flush_editors([task_id])
        await self._drop_task_state(task_id)

        before = self.history.present
        self.history.commit(
            tuple(t for t in before if t.id != task_id),
            ActionMeta(kind=ActionKind.DELETE, task_ids=(task_id,), description=f'Deleted "{task.title}"'),
        )
        try:
            await self.repo.delete_task(task_id)
        except _COMMAND_ERRORS as exc:
            self._rollback(before, [task_id], f'Could not delete "{task.title}"', exc)
            return False
        logger.info("Task deleted id=%s", task_id)
        return True

    async def _update_one(
        self,
        updated: Task,
        fields: dict[str, Any],
        meta: ActionMeta,
        *,
        failure: str,
    ) -> Task | None:
        # Pending editor changes go out first so the editor snapshot stays coherent.
        await self._flush_editors([updated.id])

        before = self.history.present
        self.history.commit(self._with_task(before, updated), meta)
        try:
            await self.repo.update_task(updated.id, fields)
        except _COMMAND_ERRORS as exc:
            self._rollback(before, [updated.id], failure, exc)
            return None
        self._refresh_editors([updated.id])
        self._observe_sync(updated)
        return updated

    # ---- editing (autosave) ----

    def open_editor(self, task_id: str) -> AutosaveController[Task]:
        ctrl = self._editors.get(task_id)
        if ctrl is not None:
            return ctrl

        task = self.get_task(task_id)

        async def persist(diff: dict[str, Any]) -> None:
            await self.repo.update_task(task_id, diff)

        def on_error(exc: Exception) -> None:
            title = self._title_of(task_id)
            self.add_notice(f'Could not save "{title}": {exc}', NoticeLevel.ERROR)

        ctrl = AutosaveController(
            task,
            persist,
            debounce_seconds=self._autosave_debounce_s,
            saved_cooldown_seconds=self._autosave_cooldown_s,
            on_error=on_error,
            to_fields=editable_record,
            name=f"task {task_id}",
        )
        self._editors[task_id] = ctrl
        return ctrl

    async def close_editor(self, task_id: str) -> None:
        ctrl = self._editors.pop(task_id, None)
        if ctrl is not None:
            await ctrl.close()

    def edit_task(self, task_id: str, **changes: Any) -> Task:
        """
        Apply field edits to a task: commit to history, feed the task's
        autosave controller (opened on demand) and its calendar scheduler.

        Accepts only autosave-able fields; calendar state has its own commands.
        """
        unknown = set(changes) - set(AUTOSAVE_FIELDS)
        if unknown:
            raise ValidationError(f"Unknown or non-editable field(s): {', '.join(sorted(unknown))}")
        if "title" in changes:
            changes["title"] = _clean_title(changes["title"])

        task = self.get_task(task_id)
        updated = replace(task, **changes)
        if updated == task:
            return task
        updated = replace(updated, updated_at=self._clock())

        if task.calendar_sync_enabled:
            self._ensure_scheduler(task)
        # Opened before the commit so its saved snapshot is the pre-edit value.
        editor = self.open_editor(task_id)
        self.history.commit(
            self._with_task(self.history.present, updated),
            ActionMeta(kind=ActionKind.EDIT, task_ids=(task_id,)),
        )
        editor.update(updated)
        self._observe_sync(updated)
        return updated

    def add_label(self, task_id: str, name: str) -> Task:
        label = make_label(name)
        task = self.get_task(task_id)
        if has_label(task, label.name):
            return task
        return self.edit_task(task_id, labels=(*task.labels, label))

    def remove_label(self, task_id: str, name: str) -> Task:
        target = normalize_label_name(name)
        task = self.get_task(task_id)
        kept = tuple(lbl for lbl in task.labels if not labels_equal(lbl, target))
        if len(kept) == len(task.labels):
            return task
        return self.edit_task(task_id, labels=kept)

    # ---- checklist ----
    # Checklist edits are discrete actions: saved right away, not on the typing debounce.

    async def _save_checklist(self, task_id: str, items: tuple[ChecklistItem, ...]) -> Task:
        updated = self.edit_task(task_id, checklist=items)
        await self._flush_editors([task_id])
        return updated

    async def add_checklist_item(self, task_id: str, text: str) -> ChecklistItem:
        item = ChecklistItem(id=uuid.uuid4().hex[:8], text=_clean_item_text(text))
        task = self.get_task(task_id)
        await self._save_checklist(task_id, (*task.checklist, item))
        return item

    async def toggle_checklist_item(self, task_id: str, item_id: str) -> ChecklistItem:
        task = self.get_task(task_id)
        i = _item_index(task, item_id)
        item = replace(task.checklist[i], done=not task.checklist[i].done)
        await self._save_checklist(task_id, (*task.checklist[:i], item, *task.checklist[i + 1 :]))
        return item

    async def update_checklist_item(self, task_id: str, item_id: str, text: str) -> ChecklistItem:
        cleaned = _clean_item_text(text)
        task = self.get_task(task_id)
        i = _item_index(task, item_id)
        item = replace(task.checklist[i], text=cleaned)
        await self._save_checklist(task_id, (*task.checklist[:i], item, *task.checklist[i + 1 :]))
        return item

    async def delete_checklist_item(self, task_id: str, item_id: str) -> Task:
        task = self.get_task(task_id)
        i = _item_index(task, item_id)
        return await self._save_checklist(task_id, (*task.checklist[:i], *task.checklist[i + 1 :]))

    async def reorder_checklist(self, task_id: str, item_ids: Sequence[str]) -> Task:
        """Put the checklist in `item_ids` order; the ids must be exactly the task's item ids."""
        task = self.get_task(task_id)
        by_id = {item.id: item for item in task.checklist}
        if len(item_ids) != len(by_id) or set(item_ids) != set(by_id):
            raise ValidationError("Checklist order must list every item exactly once")
        return await self._save_checklist(task_id, tuple(by_id[i] for i in item_ids))

    async def flush(self) -> None:
        await self._flush_editors(list(self._editors))

    async def _flush_editors(self, task_ids: Iterable[str]) -> None:
        for task_id in task_ids:
            ctrl = self._editors.get(task_id)
            if ctrl is not None:
                await ctrl.flush()

    async def _drop_task_state(self, task_id: str) -> None:
        """Forget the editor and scheduler of a task that no longer exists (unsaved drafts are discarded)."""
        ctrl = self._editors.pop(task_id, None)
        if ctrl is not None:
            ctrl.reset(ctrl.draft)
            await ctrl.close()
        sched = self._syncs.pop(task_id, None)
        if sched is not None:
            sched.close()

    def _refresh_editors(self, task_ids: Iterable[str]) -> None:
        """Treat the current present value as saved for open editors."""
        by_id = {t.id: t for t in self.history.present}
        for task_id in task_ids:
            ctrl = self._editors.get(task_id)
            if ctrl is not None and task_id in by_id:
                ctrl.reset(by_id[task_id])

    # ---- undo / redo ----

    async def undo(self) -> bool:
        if not self.history.can_undo:
            return False
        before = self.history.present
        self.history.undo()
        await self._reconcile(before, self.history.present, "undo")
        return True

    async def redo(self) -> bool:
        if not self.history.can_redo:
            return False
        before = self.history.present
        self.history.redo()
        await self._reconcile(before, self.history.present, "redo")
        return True

    async def _reconcile(
        self,
        before: TaskCollection,
        after: TaskCollection,
        action: str,
        *,
        only: Iterable[str] | None = None,
    ) -> None:
        """Bring persistence in line with a history move from `before` to `after` (optionally for `only` these ids)."""
        old = {t.id: t for t in before}
        new = {t.id: t for t in after}

        ops: dict[str, Callable[[], Any]] = {}
        for task_id, task in old.items():
            if task_id not in new:
                ops[task_id] = lambda tid=task_id: self.repo.delete_task(tid)
        for task_id, task in new.items():
            if task_id not in old:
                ops[task_id] = lambda t=task: self.repo.create_task(t)
                continue
            diff = field_diff(editable_record(old[task_id]), editable_record(task))
            if diff:
                ops[task_id] = lambda tid=task_id, d=diff: self.repo.update_task(tid, d)

        if only is not None:
            keep = set(only)
            ops = {tid: op for tid, op in ops.items() if tid in keep}
        if not ops:
            return

        for task_id in ops:
            if task_id not in new:
                await self._drop_task_state(task_id)
        # Editors stop saving the values history moved away from, whether or not the calls below succeed.
        self._refresh_editors(ops)

        succeeded, failures = await dispatch_all(ops, lambda tid: ops[tid]())
        for task_id in succeeded:
            if task_id in new:
                self._observe_sync(new[task_id])

        if failures:
            logger.warning("%s: persistence failed for %d task(s)", action, len(failures))
            self.add_notice(f"Could not save {action} for {len(failures)} task(s)", NoticeLevel.ERROR)

    # ---- bulk ----

    def _bulk_ids(self, task_ids: Iterable[str] | None) -> list[str]:
        return list(task_ids) if task_ids is not None else list(self.selection.ids)

    async def bulk_move(self, status: TaskStatus, task_ids: Iterable[str] | None = None) -> list[str]:
        ids = self._bulk_ids(task_ids)
        await self._flush_editors(ids)
        before = self.history.present
        try:
            done = await self.bulk.bulk_move(ids, status)
        except PersistenceError as exc:
            await self._rollback_bulk(before, exc, f"Could not move {len(exc.task_ids)} task(s)")
            return []
        self._refresh_editors(done)
        self.selection.clear()
        return done

    async def bulk_delete(self, task_ids: Iterable[str] | None = None) -> list[str]:
        ids = self._bulk_ids(task_ids)
        await self._flush_editors(ids)
        before = self.history.present
        try:
            done = await self.bulk.bulk_delete(ids)
        except PersistenceError as exc:
            await self._rollback_bulk(before, exc, f"Could not delete {len(exc.task_ids)} task(s)")
            return []
        for task_id in done:
            await self._drop_task_state(task_id)
        self.selection.clear()
        return done

    async def bulk_add_label(self, name: str, task_ids: Iterable[str] | None = None) -> list[str]:
        ids = self._bulk_ids(task_ids)
        await self._flush_editors(ids)
        try:
            done = await self.bulk.bulk_add_label(ids, name)
        except PartialBulkFailure as exc:
            self._refresh_editors(exc.succeeded)
            self.add_notice(str(exc), NoticeLevel.ERROR)
            return exc.succeeded
        self._refresh_editors(done)
        self.selection.clear()
        return done

    async def bulk_remove_label(self, name: str, task_ids: Iterable[str] | None = None) -> list[str]:
        ids = self._bulk_ids(task_ids)
        await self._flush_editors(ids)
        try:
            done = await self.bulk.bulk_remove_label(ids, name)
        except PartialBulkFailure as exc:
            self._refresh_editors(exc.succeeded)
            self.add_notice(str(exc), NoticeLevel.ERROR)
            return exc.succeeded
        self._refresh_editors(done)
        self.selection.clear()
        return done

    # ---- calendar sync ----

    async def toggle_calendar_sync(
        self,
        task_id: str,
        enabled: bool | None = None,
        *,
        calendar_id: str | None = None,
    ) -> SyncIndicator:
        """Opt a task in/out of calendar sync. `enabled=None` flips the current state."""
        task = self.get_task(task_id)
        if self.calendar is None:
            self.add_notice("Calendar integration is not configured", NoticeLevel.ERROR)
            return self.sync_indicator(task_id)

        sched = self._ensure_scheduler(task)
        want = (not sched.state.enabled) if enabled is None else enabled

        if want:
            synced = await sched.enable(task, calendar_id)
            if not synced and task.due_date is None:
                self.add_notice(f'Set a due date on "{task.title}" to add it to the calendar')
        else:
            await sched.disable(task)
        return sched.state

    async def change_calendar(self, task_id: str, calendar_id: str) -> SyncIndicator:
        task = self.get_task(task_id)
        if self.calendar is None:
            self.add_notice("Calendar integration is not configured", NoticeLevel.ERROR)
            return self.sync_indicator(task_id)
        sched = self._ensure_scheduler(task)
        await sched.change_calendar(replace(task, calendar=sched.calendar_state), calendar_id)
        return sched.state

    def _ensure_scheduler(self, task: Task) -> CalendarSyncScheduler | None:
        """Create the task's scheduler, seeded with `task` (the last known synced value)."""
        sched = self._syncs.get(task.id)
        if sched is not None or self.calendar is None:
            return sched

        sched = CalendarSyncScheduler(
            task.id,
            self.calendar,
            debounce_seconds=self._sync_debounce_s,
            default_calendar_id=self._default_calendar_id,
            on_synced=self._persist_calendar_state,
            clock=self._clock,
        )
        self._syncs[task.id] = sched
        sched.observe(task)
        return sched

    def _observe_sync(self, task: Task) -> None:
        sched = self._syncs.get(task.id)
        if sched is None:
            return
        # The scheduler owns the calendar state; tasks in history may lag behind it.
        sched.observe(replace(task, calendar=sched.calendar_state))

    async def _persist_calendar_state(self, task_id: str, state: CalendarSync) -> None:
        try:
            await self.repo.update_task(task_id, {"calendar": encode_field("calendar", state)})
        except TaskBoardError as exc:
            logger.warning("Could not store calendar state for task %s: %s", task_id, exc)

    # ---- helpers ----

    def _title_of(self, task_id: str) -> str:
        for task in self.history.present:
            if task.id == task_id:
                return task.title
        return task_id

    @staticmethod
    def _with_task(tasks: TaskCollection, updated: Task) -> TaskCollection:
        return tuple(updated if t.id == updated.id else t for t in tasks)

    def _rollback(self, before: TaskCollection, task_ids: Iterable[str], message: str, exc: Exception) -> None:
        """
        Revert an optimistic commit whose persistence failed.

        Plain undo when the failed commit is still the newest one; otherwise
        restore only the affected tasks on top of the current present.
        """
        ids = set(task_ids)
        history = self.history
        logger.warning("%s: %s", message, exc)

        if history.present is not before:
            past = history.past
            if past and past[-1] is before:
                history.undo()
            else:
                history.commit(self._restore(before, ids), ActionMeta(kind=ActionKind.OTHER, task_ids=tuple(ids)))

        if self._last_undo_notice is not None and self._last_undo_notice[1] & ids:
            self.dismiss_notice(self._last_undo_notice[0])
            self._last_undo_notice = None
        self._refresh_editors(ids)
        self.add_notice(f"{message}: {exc}", NoticeLevel.ERROR)

    async def _rollback_bulk(self, before: TaskCollection, exc: PersistenceError, message: str) -> None:
        """Undo a failed bulk commit, then revert the calls that did succeed."""
        optimistic = self.history.present
        self._rollback(before, exc.task_ids, message, exc)
        persisted = [tid for tid in exc.task_ids if tid not in exc.failures]
        if persisted:
            await self._reconcile(optimistic, self.history.present, "rollback", only=persisted)

    def _restore(self, before: TaskCollection, ids: set[str]) -> TaskCollection:
        previous = {t.id: t for t in before if t.id in ids}
        out: list[Task] = []
        for task in self.history.present:
            if task.id not in ids:
                out.append(task)
            elif task.id in previous:
                out.append(previous.pop(task.id))
            # else: created by the failed command, drop it

        positions = {t.id: i for i, t in enumerate(before)}
        for task_id, task in previous.items():
            out.insert(min(positions[task_id], len(out)), task)
        return tuple(out)
