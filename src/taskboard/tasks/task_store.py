# src/taskboard/tasks/task_store.py

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import sqlite3
import time
import uuid
from dataclasses import replace
from pathlib import Path
from typing import Any

from ..errors import NotFoundOrUnauthorized, PersistenceError, ValidationError
from .task_codec import task_from_record, task_to_record
from .task_models import EDITABLE_FIELDS, Task, TaskSource

logger = logging.getLogger(__name__)

_JSON_COLUMNS = ("labels", "assignee", "checklist", "attachments", "calendar", "source")
_TEXT_COLUMNS = ("title", "description", "status", "priority", "due_date")


class TaskStore:
    """
    SQLite task store scoped to one owner (the signed-in principal).

    The schema is intentionally simple and migration-safe:
    - create table if missing
    - use PRAGMA table_info to detect missing columns
    - add columns with ALTER TABLE only when needed

    Structured fields (labels, checklist, ...) are stored as JSON text.

    Thread-safety:
    - each call opens its own SQLite connection
    - async methods run the blocking work in a worker thread
    """

    def __init__(self, db_path: str | Path = "tasks.sqlite3", *, owner_id: str = "local") -> None:
        if not owner_id or not owner_id.strip():
            raise ValueError("owner_id is required")
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._owner_id = owner_id.strip()
        self._ensure_schema()
        try:
            total = self.count_tasks()
        except Exception:
            total = -1
        logger.info("TaskStore ready db=%s owner=%s total=%s", self._db_path, self._owner_id, total)

    @property
    def owner_id(self) -> str:
        return self._owner_id

    # ---- low-level helpers ----

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._db_path), timeout=30.0)
        conn.row_factory = sqlite3.Row
        self._configure_conn(conn)
        return conn

    @staticmethod
    def _configure_conn(conn: sqlite3.Connection) -> None:
        with contextlib.suppress(Exception):
            conn.execute("PRAGMA journal_mode=WAL")

    def _ensure_schema(self) -> None:
        conn = self._get_conn()
        try:
            cur = conn.cursor()

            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS tasks (
                    id TEXT PRIMARY KEY,
                    owner_id TEXT NOT NULL,
                    created_at REAL NOT NULL,
                    updated_at REAL NOT NULL,
                    title TEXT NOT NULL,
                    description TEXT NOT NULL DEFAULT '',
                    status TEXT NOT NULL DEFAULT 'pending',
                    priority TEXT NOT NULL DEFAULT 'medium',
                    due_date TEXT,
                    labels TEXT NOT NULL DEFAULT '[]',
                    assignee TEXT,
                    checklist TEXT NOT NULL DEFAULT '[]',
                    attachments TEXT NOT NULL DEFAULT '[]',
                    calendar TEXT,
                    source TEXT,
                    dedup_key TEXT
                )
                """
            )

            # Migrations (safe): add missing columns.
            cur.execute("PRAGMA table_info(tasks)")
            cols = {row["name"] for row in cur.fetchall()}

            def add_col(name: str, decl: str) -> None:
                if name in cols:
                    return
                cur.execute(f"ALTER TABLE tasks ADD COLUMN {name} {decl}")
                logger.info("TaskStore migration: added column %s", name)

            add_col("description", "TEXT NOT NULL DEFAULT ''")
            add_col("priority", "TEXT NOT NULL DEFAULT 'medium'")
            add_col("due_date", "TEXT")
            add_col("labels", "TEXT NOT NULL DEFAULT '[]'")
            add_col("assignee", "TEXT")
            add_col("checklist", "TEXT NOT NULL DEFAULT '[]'")
            add_col("attachments", "TEXT NOT NULL DEFAULT '[]'")
            add_col("calendar", "TEXT")
            add_col("source", "TEXT")
            add_col("dedup_key", "TEXT")

            cur.execute("CREATE INDEX IF NOT EXISTS idx_tasks_owner_created ON tasks(owner_id, created_at)")
            cur.execute(
                "CREATE UNIQUE INDEX IF NOT EXISTS idx_tasks_owner_dedup "
                "ON tasks(owner_id, dedup_key) WHERE dedup_key IS NOT NULL"
            )

            conn.commit()
        finally:
            conn.close()

    @staticmethod
    def _json_to_str(value: Any) -> str | None:
        if value is None:
            return None
        return json.dumps(value, ensure_ascii=False)

    @staticmethod
    def _str_to_json(s: str | None) -> Any:
        if not s:
            return None
        try:
            return json.loads(s)
        except Exception:
            logger.warning("Corrupt JSON column value ignored: %.60r", s)
            return None

    def _row_to_task(self, row: sqlite3.Row) -> Task:
        record: dict[str, Any] = {
            "id": row["id"],
            "created_at": row["created_at"],
            "updated_at": row["updated_at"],
        }
        for name in _TEXT_COLUMNS:
            record[name] = row[name]
        for name in _JSON_COLUMNS:
            record[name] = self._str_to_json(row[name])
        return task_from_record(record)

    def _column_values(self, record: dict[str, Any]) -> dict[str, Any]:
        out: dict[str, Any] = {}
        for name, value in record.items():
            if name in _JSON_COLUMNS:
                if name in ("labels", "checklist", "attachments"):
                    value = value or []
                out[name] = self._json_to_str(value)
            elif name in _TEXT_COLUMNS:
                out[name] = value
        return out

    # ---- sync API ----

    def count_tasks(self) -> int:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute("SELECT COUNT(*) FROM tasks WHERE owner_id = ?", (self._owner_id,))
            (n,) = cur.fetchone()
            return int(n)
        finally:
            conn.close()

    def list_tasks_sync(self) -> list[Task]:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute(
                "SELECT * FROM tasks WHERE owner_id = ? ORDER BY created_at DESC",
                (self._owner_id,),
            )
            return [self._row_to_task(r) for r in cur.fetchall()]
        finally:
            conn.close()

    def get_task_sync(self, task_id: str) -> Task:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute("SELECT * FROM tasks WHERE id = ? AND owner_id = ?", (task_id, self._owner_id))
            row = cur.fetchone()
        finally:
            conn.close()
        if row is None:
            raise NotFoundOrUnauthorized(task_id)
        return self._row_to_task(row)

    def create_task_sync(self, task: Task, *, dedup_key: str | None = None) -> Task:
        if not task.title or not task.title.strip():
            raise ValidationError("Title cannot be empty")

        now = time.time()
        task = replace(
            task,
            id=task.id or uuid.uuid4().hex,
            title=task.title.strip(),
            created_at=task.created_at or now,
            updated_at=now,
        )
        values = self._column_values(task_to_record(task))
        columns = ["id", "owner_id", "created_at", "updated_at", "dedup_key", *values.keys()]
        params = [task.id, self._owner_id, task.created_at, task.updated_at, dedup_key, *values.values()]

        conn = self._get_conn()
        try:
            conn.execute(
                f"INSERT INTO tasks({', '.join(columns)}) VALUES ({', '.join('?' for _ in columns)})",
                params,
            )
            conn.commit()
        finally:
            conn.close()

        logger.debug("Task added id=%s status=%s due=%s", task.id, task.status.value, task.due_date)
        return task

    def update_task_sync(self, task_id: str, fields: dict[str, Any]) -> None:
        unknown = set(fields) - EDITABLE_FIELDS
        if unknown:
            logger.debug("update_task ignoring fields %s", sorted(unknown))

        if "title" in fields and not str(fields["title"] or "").strip():
            raise ValidationError("Title cannot be empty")

        values = self._column_values({k: v for k, v in fields.items() if k in EDITABLE_FIELDS})
        assignments = [f"{name} = ?" for name in values]
        params: list[Any] = list(values.values())

        assignments.append("updated_at = ?")
        params.append(time.time())
        params.extend([task_id, self._owner_id])

        conn = self._get_conn()
        try:
            cur = conn.execute(
                f"UPDATE tasks SET {', '.join(assignments)} WHERE id = ? AND owner_id = ?",
                params,
            )
            conn.commit()
            if cur.rowcount != 1:
                raise NotFoundOrUnauthorized(task_id)
        finally:
            conn.close()
        logger.debug("Task updated id=%s fields=%s", task_id, sorted(values))

    def delete_task_sync(self, task_id: str) -> None:
        conn = self._get_conn()
        try:
            cur = conn.execute("DELETE FROM tasks WHERE id = ? AND owner_id = ?", (task_id, self._owner_id))
            conn.commit()
            if cur.rowcount != 1:
                raise NotFoundOrUnauthorized(task_id)
        finally:
            conn.close()
        logger.debug("Task deleted id=%s", task_id)

    def find_by_dedup_key_sync(self, dedup_key: str) -> str | None:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute(
                "SELECT id FROM tasks WHERE owner_id = ? AND dedup_key = ? LIMIT 1",
                (self._owner_id, dedup_key),
            )
            row = cur.fetchone()
            return str(row["id"]) if row else None
        finally:
            conn.close()

    def create_task_from_inbound_sync(self, task: Task, dedup_key: str) -> tuple[str, bool]:
        if not dedup_key or not dedup_key.strip():
            raise ValidationError("dedup_key is required")

        existing = self.find_by_dedup_key_sync(dedup_key)
        if existing is not None:
            logger.info("Duplicate inbound delivery dedup_key=%s -> task %s", dedup_key, existing)
            return existing, True

        source = task.source or TaskSource(channel="inbound")
        task = replace(task, source=replace(source, dedup_key=dedup_key, received_at=source.received_at or time.time()))
        try:
            created = self.create_task_sync(task, dedup_key=dedup_key)
        except sqlite3.IntegrityError:
            # Lost a race with a concurrent redelivery; the winner's row is authoritative.
            existing = self.find_by_dedup_key_sync(dedup_key)
            if existing is None:
                raise
            return existing, True
        logger.info("Created task %s from inbound delivery %s", created.id, dedup_key)
        return created.id, False

    # ---- async API (TaskRepo) ----

    async def _call(self, op: str, fn: Any, *args: Any, **kwargs: Any) -> Any:
        try:
            return await asyncio.to_thread(fn, *args, **kwargs)
        except (NotFoundOrUnauthorized, ValidationError):
            raise
        except sqlite3.Error as exc:
            logger.exception("TaskStore %s failed", op)
            raise PersistenceError(f"Failed to {op}: {exc}") from exc

    async def list_tasks(self) -> list[Task]:
        return await self._call("list tasks", self.list_tasks_sync)

    async def create_task(self, task: Task) -> Task:
        return await self._call("create task", self.create_task_sync, task)

    async def update_task(self, task_id: str, fields: dict[str, Any]) -> None:
        await self._call("update task", self.update_task_sync, task_id, fields)

    async def delete_task(self, task_id: str) -> None:
        await self._call("delete task", self.delete_task_sync, task_id)

    async def create_task_from_inbound(self, task: Task, dedup_key: str) -> tuple[str, bool]:
        return await self._call("create inbound task", self.create_task_from_inbound_sync, task, dedup_key)
