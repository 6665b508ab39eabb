# tests/test_task_store.py

from __future__ import annotations

import sqlite3
from datetime import date
from pathlib import Path

import pytest

from taskboard.errors import NotFoundOrUnauthorized, PersistenceError, ValidationError
from taskboard.tasks.labels import make_label
from taskboard.tasks.task_codec import encode_field
from taskboard.tasks.task_models import Assignee, CalendarSync, Priority, TaskStatus
from taskboard.tasks.task_store import TaskStore


def test_create_list_update_delete(store: TaskStore, make_task) -> None:
    task = make_task(
        "Write report",
        due_date=date(2026, 5, 1),
        labels=(make_label("work"),),
        assignee=Assignee(id="ann", name="Ann"),
    )
    created = store.create_task_sync(task)
    assert created.id == task.id

    (loaded,) = store.list_tasks_sync()
    assert loaded.title == "Write report"
    assert loaded.due_date == date(2026, 5, 1)
    assert [lbl.name for lbl in loaded.labels] == ["work"]
    assert loaded.assignee == Assignee(id="ann", name="Ann")

    store.update_task_sync(
        task.id,
        {
            "status": "done",
            "priority": "urgent",
            "due_date": None,
            "calendar": encode_field("calendar", CalendarSync(enabled=True, event_id="evt-1")),
        },
    )
    updated = store.get_task_sync(task.id)
    assert updated.status == TaskStatus.DONE
    assert updated.priority == Priority.URGENT
    assert updated.due_date is None
    assert updated.calendar == CalendarSync(enabled=True, event_id="evt-1")
    assert updated.title == "Write report"

    store.delete_task_sync(task.id)
    assert store.count_tasks() == 0


def test_other_owner_cannot_see_or_touch(tmp_path: Path, make_task) -> None:
    db = tmp_path / "shared.sqlite3"
    alice = TaskStore(db, owner_id="alice")
    bob = TaskStore(db, owner_id="bob")
    task = alice.create_task_sync(make_task("secret"))

    assert bob.list_tasks_sync() == []
    with pytest.raises(NotFoundOrUnauthorized):
        bob.get_task_sync(task.id)
    with pytest.raises(NotFoundOrUnauthorized):
        bob.update_task_sync(task.id, {"title": "mine now"})
    with pytest.raises(NotFoundOrUnauthorized):
        bob.delete_task_sync(task.id)
    assert alice.get_task_sync(task.id).title == "secret"


def test_blank_title_is_rejected(store: TaskStore, make_task) -> None:
    task = store.create_task_sync(make_task("ok"))
    with pytest.raises(ValidationError):
        store.update_task_sync(task.id, {"title": "   "})
    with pytest.raises(ValidationError):
        store.create_task_sync(make_task(" "))


def test_non_editable_fields_are_ignored(store: TaskStore, make_task) -> None:
    task = store.create_task_sync(make_task("a"))
    store.update_task_sync(task.id, {"owner_id": "bob", "created_at": 0, "description": "d"})
    got = store.get_task_sync(task.id)
    assert got.description == "d"
    assert got.created_at == task.created_at


def test_inbound_creation_is_idempotent(store: TaskStore, make_task) -> None:
    first_id, dup = store.create_task_from_inbound_sync(make_task("from email", id="m1"), "msg-42")
    assert (first_id, dup) == ("m1", False)

    again_id, dup = store.create_task_from_inbound_sync(make_task("from email", id="m2"), "msg-42")
    assert (again_id, dup) == ("m1", True)
    assert store.count_tasks() == 1

    source = store.get_task_sync("m1").source
    assert source is not None and source.dedup_key == "msg-42"
    assert source.received_at is not None


def test_dedup_keys_are_per_owner(tmp_path: Path, make_task) -> None:
    db = tmp_path / "shared.sqlite3"
    alice = TaskStore(db, owner_id="alice")
    bob = TaskStore(db, owner_id="bob")
    assert alice.create_task_from_inbound_sync(make_task("a", id="a1"), "k")[1] is False
    assert bob.create_task_from_inbound_sync(make_task("b", id="b1"), "k")[1] is False


def test_migration_adds_missing_columns(tmp_path: Path) -> None:
    db = tmp_path / "old.sqlite3"
    conn = sqlite3.connect(db)
    conn.execute(
        "CREATE TABLE tasks (id TEXT PRIMARY KEY, owner_id TEXT NOT NULL, created_at REAL NOT NULL, "
        "updated_at REAL NOT NULL, title TEXT NOT NULL, status TEXT NOT NULL DEFAULT 'pending')"
    )
    conn.execute("INSERT INTO tasks VALUES ('old1', 'alice', 1.0, 1.0, 'legacy', 'in_progress')")
    conn.commit()
    conn.close()

    store = TaskStore(db, owner_id="alice")
    (task,) = store.list_tasks_sync()
    assert task.title == "legacy"
    assert task.status == TaskStatus.IN_PROGRESS
    assert task.priority == Priority.MEDIUM
    assert task.labels == ()


@pytest.mark.asyncio
async def test_async_api_round_trip(store: TaskStore, make_task) -> None:
    task = await store.create_task(make_task("async"))
    await store.update_task(task.id, {"title": "async 2"})
    (loaded,) = await store.list_tasks()
    assert loaded.title == "async 2"

    with pytest.raises(NotFoundOrUnauthorized):
        await store.delete_task("missing")

    task_id, dup = await store.create_task_from_inbound(make_task("in", id="i1"), "k1")
    assert (task_id, dup) == ("i1", False)


@pytest.mark.asyncio
async def test_sqlite_errors_become_persistence_errors(store: TaskStore, make_task) -> None:
    task = await store.create_task(make_task("dup"))
    with pytest.raises(PersistenceError):
        await store.create_task(task)


def test_every_call_closes_its_connection(store: TaskStore, make_task, monkeypatch) -> None:
    opened: list[sqlite3.Connection] = []
    get_conn = store._get_conn

    def tracking_conn() -> sqlite3.Connection:
        conn = get_conn()
        opened.append(conn)
        return conn

    monkeypatch.setattr(store, "_get_conn", tracking_conn)
    task = make_task("a")
    store.create_task_sync(task)
    store.update_task_sync(task.id, {"title": "b"})
    store.list_tasks_sync()
    store.delete_task_sync(task.id)

    assert len(opened) >= 4
    for conn in opened:
        with pytest.raises(sqlite3.ProgrammingError):
            conn.execute("SELECT 1")
