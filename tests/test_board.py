# tests/test_board.py

from __future__ import annotations

import asyncio
from datetime import date

import pytest

from taskboard.board.board import NoticeLevel
from taskboard.errors import NotFoundOrUnauthorized, ValidationError
from taskboard.sync.autosave import SaveStatus
from taskboard.tasks.task_models import ActionKind, CalendarSync, Priority, TaskStatus
from taskboard.view.filters import FilterState
from taskboard.view.lanes import GroupBy

from .conftest import FAST_DEBOUNCE

SETTLE = FAST_DEBOUNCE * 6


async def _loaded(board, repo, tasks):
    for t in tasks:
        repo.tasks[t.id] = t
    await board.load()
    repo.calls.clear()
    return board


@pytest.mark.asyncio
async def test_create_undo_redo_round_trip(board, repo) -> None:
    await board.load()
    task = await board.create_task("  Buy milk ")
    assert task is not None
    assert [t.title for t in board.tasks] == ["Buy milk"]
    assert board.history.last_action.kind == ActionKind.CREATE
    assert task.id in repo.tasks

    assert await board.undo()
    assert board.tasks == ()
    assert task.id not in repo.tasks

    assert await board.redo()
    assert [t.title for t in board.tasks] == ["Buy milk"]
    assert repo.tasks[task.id].title == "Buy milk"


@pytest.mark.asyncio
async def test_create_rejects_blank_title_without_commit(board) -> None:
    await board.load()
    with pytest.raises(ValidationError):
        await board.create_task("   ")
    assert not board.history.can_undo


@pytest.mark.asyncio
async def test_create_failure_rolls_back_and_notifies(board, repo) -> None:
    await board.load()
    repo.fail_all = True

    assert await board.create_task("Buy milk") is None
    assert board.tasks == ()
    assert not board.history.can_undo
    assert board.notices[-1].level == NoticeLevel.ERROR
    assert "Buy milk" in board.notices[-1].message


@pytest.mark.asyncio
async def test_move_raises_undoable_notice(board, repo, make_task) -> None:
    a = make_task("a")
    await _loaded(board, repo, [a])

    moved = await board.move_task(a.id, TaskStatus.DONE)
    assert moved is not None and moved.status == TaskStatus.DONE
    assert repo.calls_named("update_task") == [(a.id, {"status": "done"})]
    notice = board.notices[-1]
    assert notice.undoable and notice.message == 'Moved "a" to Done'

    assert board.dismiss_notice(notice.id)
    assert board.notices == ()


@pytest.mark.asyncio
async def test_move_failure_undoes_and_drops_undo_notice(board, repo, make_task) -> None:
    a = make_task("a")
    await _loaded(board, repo, [a])
    repo.fail_ids = {a.id}

    assert await board.move_task(a.id, TaskStatus.DONE) is None
    assert board.get_task(a.id).status == TaskStatus.PENDING
    assert not board.history.can_undo
    assert [n.level for n in board.notices] == [NoticeLevel.ERROR]


@pytest.mark.asyncio
async def test_failure_with_newer_commit_is_compensated(board, repo, make_task) -> None:
    a, b = make_task("a"), make_task("b")
    await _loaded(board, repo, [a, b])
    repo.fail_ids = {a.id}
    repo.gate = asyncio.Event()

    rename = asyncio.create_task(board.rename_task(a.id, "a2"))
    await asyncio.sleep(0)
    # another command lands while the rename is still in flight
    board.edit_task(b.id, priority=Priority.HIGH)
    repo.gate.set()
    assert await rename is None

    assert board.get_task(a.id).title == "a"
    assert board.get_task(b.id).priority == Priority.HIGH
    assert board.history.last_action.kind == ActionKind.OTHER


@pytest.mark.asyncio
async def test_delete_and_undo_recreates(board, repo, make_task) -> None:
    a, b = make_task("a"), make_task("b")
    await _loaded(board, repo, [a, b])
    board.selection.select([a.id, b.id])

    assert await board.delete_task(a.id)
    assert [t.id for t in board.tasks] == [b.id]
    assert board.selection.ids == (b.id,)
    assert board.notices[-1].message == 'Deleted "a"'

    await board.undo()
    assert [t.id for t in board.tasks] == [a.id, b.id]
    assert repo.tasks[a.id].title == "a"


@pytest.mark.asyncio
async def test_get_task_unknown_id(board) -> None:
    await board.load()
    with pytest.raises(NotFoundOrUnauthorized):
        board.get_task("nope")


@pytest.mark.asyncio
async def test_edits_are_autosaved_as_one_minimal_diff(board, repo, make_task) -> None:
    a = make_task("a")
    await _loaded(board, repo, [a])

    board.edit_task(a.id, title="ab")
    board.edit_task(a.id, title="abc")
    board.edit_task(a.id, title="abcd")
    assert board.editor_status(a.id) == SaveStatus.DIRTY
    assert board.get_task(a.id).title == "abcd"

    await asyncio.sleep(SETTLE)
    assert repo.calls_named("update_task") == [(a.id, {"title": "abcd"})]
    assert repo.tasks[a.id].title == "abcd"


@pytest.mark.asyncio
async def test_edit_rejects_unknown_fields_and_blank_title(board, repo, make_task) -> None:
    a = make_task("a")
    await _loaded(board, repo, [a])
    with pytest.raises(ValidationError):
        board.edit_task(a.id, calendar=CalendarSync(enabled=True))
    with pytest.raises(ValidationError):
        board.edit_task(a.id, title=" ")
    assert not board.history.can_undo


@pytest.mark.asyncio
async def test_autosave_failure_surfaces_notice_without_undo(board, repo, make_task) -> None:
    a = make_task("a")
    await _loaded(board, repo, [a])
    repo.fail_ids = {a.id}

    board.edit_task(a.id, description="notes")
    await asyncio.sleep(SETTLE)

    assert board.editor_status(a.id) == SaveStatus.ERROR
    assert board.get_task(a.id).description == "notes"
    assert board.notices[-1].level == NoticeLevel.ERROR


@pytest.mark.asyncio
async def test_undo_of_edit_persists_reverse_diff(board, repo, make_task) -> None:
    a = make_task("a")
    await _loaded(board, repo, [a])

    board.edit_task(a.id, priority=Priority.URGENT)
    await board.flush()
    await board.undo()

    assert board.get_task(a.id).priority == Priority.MEDIUM
    assert repo.calls_named("update_task")[-1] == (a.id, {"priority": "medium"})
    assert repo.tasks[a.id].priority == Priority.MEDIUM
    assert board.editor_status(a.id) == SaveStatus.IDLE


@pytest.mark.asyncio
async def test_add_and_remove_label(board, repo, make_task) -> None:
    a = make_task("a")
    await _loaded(board, repo, [a])

    board.add_label(a.id, "Bug")
    board.add_label(a.id, "bug")
    assert [lbl.name for lbl in board.get_task(a.id).labels] == ["Bug"]
    board.remove_label(a.id, "BUG")
    assert board.get_task(a.id).labels == ()


@pytest.mark.asyncio
async def test_bulk_move_failure_undoes_everything(board, repo, make_task) -> None:
    a, b = make_task("a"), make_task("b")
    await _loaded(board, repo, [a, b])
    repo.fail_ids = {b.id}
    board.selection.select([a.id, b.id])

    assert await board.bulk_move(TaskStatus.DONE) == []
    assert [t.status for t in board.tasks] == [TaskStatus.PENDING, TaskStatus.PENDING]
    # the half that did persist is reverted too
    assert repo.tasks[a.id].status == TaskStatus.PENDING
    assert board.selection.count == 2
    assert board.notices[-1].level == NoticeLevel.ERROR
    assert not any(n.undoable for n in board.notices)


@pytest.mark.asyncio
async def test_bulk_delete_clears_selection(board, repo, make_task) -> None:
    a, b, c = make_task("a"), make_task("b"), make_task("c")
    await _loaded(board, repo, [a, b, c])
    board.selection.select([a.id, c.id])

    assert await board.bulk_delete() == [a.id, c.id]
    assert [t.id for t in board.tasks] == [b.id]
    assert board.selection.count == 0
    assert board.notices[-1].message == "Deleted 2 task(s)"


@pytest.mark.asyncio
async def test_bulk_label_partial_failure_notice(board, repo, make_task) -> None:
    a, b = make_task("a"), make_task("b")
    await _loaded(board, repo, [a, b])
    repo.fail_ids = {a.id}

    done = await board.bulk_add_label("api", [a.id, b.id])
    assert done == [b.id]
    assert board.notices[-1].level == NoticeLevel.ERROR
    assert [lbl.name for lbl in board.get_task(b.id).labels] == ["api"]


@pytest.mark.asyncio
async def test_views_filter_sort_group_and_hidden_selection(board, repo, make_task) -> None:
    a = make_task("alpha", priority=Priority.HIGH)
    b = make_task("beta")
    c = make_task("gamma", priority=Priority.HIGH)
    await _loaded(board, repo, [a, b, c])

    assert [t.title for t in board.visible_tasks()] == ["gamma", "beta", "alpha"]

    board.filters = FilterState(priorities=(Priority.HIGH,))
    board.selection.select([a.id, b.id])
    assert [t.title for t in board.visible_tasks()] == ["gamma", "alpha"]
    assert board.hidden_selected_count() == 1

    board.filters = FilterState()
    board.group_by = GroupBy.PRIORITY
    assert [lane.lane_id for lane in board.lanes()] == ["priority-high", "priority-medium"]


@pytest.mark.asyncio
async def test_calendar_sync_via_board(board, repo, calendar, make_task) -> None:
    a = make_task("a", due_date=date(2026, 4, 1))
    await _loaded(board, repo, [a])

    state = await board.toggle_calendar_sync(a.id)
    assert state.enabled and state.has_event
    assert calendar.methods() == ["create"]
    assert repo.tasks[a.id].calendar.event_id == "evt-1"

    board.edit_task(a.id, title="a2")
    await asyncio.sleep(SETTLE)
    assert calendar.methods() == ["create", "update"]
    assert calendar.calls[-1].title == "a2"

    state = await board.toggle_calendar_sync(a.id)
    assert not state.enabled
    assert calendar.methods()[-1] == "delete"
    assert repo.tasks[a.id].calendar.enabled is False


@pytest.mark.asyncio
async def test_calendar_sync_without_due_date_notifies(board, repo, calendar, make_task) -> None:
    a = make_task("a")
    await _loaded(board, repo, [a])

    await board.toggle_calendar_sync(a.id, True)
    assert calendar.calls == []
    assert "due date" in board.notices[-1].message


@pytest.mark.asyncio
async def test_close_flushes_open_editors(board, repo, make_task) -> None:
    a = make_task("a")
    await _loaded(board, repo, [a])
    board.edit_task(a.id, description="last words")
    await board.close()
    assert repo.tasks[a.id].description == "last words"


@pytest.mark.asyncio
async def test_failed_undo_does_not_let_editor_resave_undone_edit(board, repo, make_task) -> None:
    a = make_task("orig")
    await _loaded(board, repo, [a])

    board.edit_task(a.id, title="edited")
    repo.fail_ids = {a.id}
    await board.undo()
    assert board.notices[-1].level == NoticeLevel.ERROR

    repo.fail_ids = set()
    await asyncio.sleep(SETTLE)

    assert board.get_task(a.id).title == "orig"
    assert repo.tasks[a.id].title == "orig"
    assert board.editor_status(a.id) == SaveStatus.IDLE
    assert all(fields.get("title") != "edited" for _, fields in repo.calls_named("update_task"))


def _checklist_saves(repo) -> list[list[tuple[str, bool]]]:
    return [
        [(i["text"], i["done"]) for i in fields["checklist"]]
        for _, fields in repo.calls_named("update_task")
        if "checklist" in fields
    ]


@pytest.mark.asyncio
async def test_checklist_edits_are_saved_immediately(board, repo, make_task) -> None:
    a = make_task("pack")
    await _loaded(board, repo, [a])

    socks = await board.add_checklist_item(a.id, "  socks ")
    assert _checklist_saves(repo) == [[("socks", False)]]
    shirt = await board.add_checklist_item(a.id, "shirt")

    toggled = await board.toggle_checklist_item(a.id, socks.id)
    assert toggled.done
    await board.update_checklist_item(a.id, shirt.id, "two shirts")
    await board.reorder_checklist(a.id, [shirt.id, socks.id])
    assert _checklist_saves(repo)[-1] == [("two shirts", False), ("socks", True)]

    await board.delete_checklist_item(a.id, shirt.id)
    assert [i.text for i in board.get_task(a.id).checklist] == ["socks"]
    assert [i.text for i in repo.tasks[a.id].checklist] == ["socks"]
    assert len(_checklist_saves(repo)) == 6
    assert board.editor_status(a.id) != SaveStatus.DIRTY


@pytest.mark.asyncio
async def test_checklist_rejects_blank_text_and_bad_items(board, repo, make_task) -> None:
    a = make_task("pack")
    await _loaded(board, repo, [a])
    item = await board.add_checklist_item(a.id, "socks")
    repo.calls.clear()

    with pytest.raises(ValidationError):
        await board.add_checklist_item(a.id, "   ")
    with pytest.raises(ValidationError):
        await board.update_checklist_item(a.id, item.id, "")
    with pytest.raises(ValidationError):
        await board.toggle_checklist_item(a.id, "missing")
    with pytest.raises(ValidationError):
        await board.reorder_checklist(a.id, [item.id, item.id])

    assert repo.calls == []
    assert [i.text for i in board.get_task(a.id).checklist] == ["socks"]


@pytest.mark.asyncio
async def test_checklist_edit_can_be_undone(board, repo, make_task) -> None:
    a = make_task("pack")
    await _loaded(board, repo, [a])
    await board.add_checklist_item(a.id, "socks")

    assert await board.undo()
    assert board.get_task(a.id).checklist == ()
    await asyncio.sleep(SETTLE)
    assert repo.tasks[a.id].checklist == ()
