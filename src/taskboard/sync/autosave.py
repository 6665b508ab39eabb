# src/taskboard/sync/autosave.py

"""
Per-entity debounced autosave.

One controller per edited entity:
- update(draft) marks the entity dirty and (re)arms a debounce timer,
- the timer (or flush()) sends only the fields that changed since the last
  successfully saved snapshot,
- at most one save runs at a time (single-flight),
- a save request version is issued on every change; a completion is applied
  to status/snapshot only if its version is still the latest issued.

Must be driven from the event loop thread (timers use loop.call_later).
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from enum import StrEnum
from typing import Any, Generic, TypeVar

from .diff import as_fields, field_diff, same_fields

logger = logging.getLogger(__name__)

T = TypeVar("T")

PersistFn = Callable[[dict[str, Any]], Awaitable[Any]]
ErrorCallback = Callable[[Exception], None]

DEFAULT_DEBOUNCE_SECONDS = 0.4
DEFAULT_SAVED_COOLDOWN_SECONDS = 2.0


class SaveStatus(StrEnum):
    IDLE = "idle"
    DIRTY = "dirty"
    SAVING = "saving"
    SAVED = "saved"
    ERROR = "error"


class AutosaveController(Generic[T]):
    def __init__(
        self,
        initial: T,
        persist: PersistFn,
        *,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        saved_cooldown_seconds: float = DEFAULT_SAVED_COOLDOWN_SECONDS,
        on_error: ErrorCallback | None = None,
        to_fields: Callable[[T], dict[str, Any]] = as_fields,
        name: str = "entity",
    ) -> None:
        self._persist = persist
        self._to_fields = to_fields
        self._on_error = on_error
        self._debounce_s = max(0.0, float(debounce_seconds))
        self._cooldown_s = max(0.0, float(saved_cooldown_seconds))
        self._name = name

        self._saved_fields: dict[str, Any] = to_fields(initial)
        self._draft: T = initial
        self._draft_fields: dict[str, Any] = self._saved_fields

        # Keys a superseded save may have written remotely without being confirmed.
        self._unconfirmed: set[str] = set()

        self._status = SaveStatus.IDLE
        self._error: str | None = None

        self._version = 0
        self._timer: asyncio.TimerHandle | None = None
        self._cooldown: asyncio.TimerHandle | None = None
        self._inflight: asyncio.Task[None] | None = None
        self._live = True

    # ---- read side ----

    @property
    def status(self) -> SaveStatus:
        return self._status

    @property
    def error(self) -> str | None:
        return self._error

    @property
    def draft(self) -> T:
        return self._draft

    @property
    def is_dirty(self) -> bool:
        return bool(self._unconfirmed) or not same_fields(self._draft_fields, self._saved_fields)

    @property
    def is_saving(self) -> bool:
        return self._inflight is not None and not self._inflight.done()

    @property
    def live(self) -> bool:
        return self._live

    # ---- inputs ----

    def update(self, draft: T) -> None:
        """Feed the latest draft value (call on every change)."""
        if not self._live:
            return

        fields = self._to_fields(draft)
        changed = not same_fields(fields, self._draft_fields)
        self._draft = draft
        self._draft_fields = fields
        if changed:
            self._version += 1

        if not self.is_dirty:
            self._cancel_timer()
            if self._status == SaveStatus.DIRTY:
                self._set_status(SaveStatus.IDLE)
            return

        if not changed and self._timer is not None:
            return

        self._set_status(SaveStatus.DIRTY)
        self._arm_timer()

    async def flush(self) -> None:
        """Cancel the pending timer and save now (waits for an in-flight save first)."""
        self._cancel_timer()
        while self._inflight is not None and not self._inflight.done():
            await asyncio.wait([self._inflight])
        if self._live and self.is_dirty:
            await self._start_save()

    def reset(self, value: T) -> None:
        """Treat `value` as saved; clear status and error."""
        self._cancel_timer()
        self._cancel_cooldown()
        self._draft = value
        self._draft_fields = self._to_fields(value)
        self._saved_fields = self._draft_fields
        self._unconfirmed.clear()
        self._version += 1
        self._error = None
        self._set_status(SaveStatus.IDLE)

    async def close(self) -> None:
        """
        Teardown: drop timers, best-effort flush of dirty state, then stop
        applying results. In-flight calls are not aborted.
        """
        if not self._live:
            return
        self._cancel_timer()
        self._cancel_cooldown()
        try:
            await self.flush()
        except Exception:
            logger.exception("Autosave flush on close failed (%s)", self._name)
        self._live = False
        self._cancel_timer()
        self._cancel_cooldown()

    # ---- internals ----

    def _set_status(self, status: SaveStatus) -> None:
        if status != self._status:
            logger.debug("Autosave %s: %s -> %s", self._name, self._status.value, status.value)
        self._status = status

    def _arm_timer(self) -> None:
        self._cancel_timer()
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self._debounce_s, self._on_timer)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _cancel_cooldown(self) -> None:
        if self._cooldown is not None:
            self._cooldown.cancel()
            self._cooldown = None

    def _on_timer(self) -> None:
        self._timer = None
        if not self._live or self.is_saving:
            # A busy save re-checks dirtiness when it settles.
            return
        if self.is_dirty:
            self._start_save()

    def _on_cooldown(self) -> None:
        self._cooldown = None
        if self._live and self._status == SaveStatus.SAVED:
            self._set_status(SaveStatus.IDLE)

    def _start_save(self) -> asyncio.Task[None]:
        task = asyncio.get_running_loop().create_task(self._perform_save(self._version))
        self._inflight = task
        return task

    def _pending_diff(self) -> dict[str, Any]:
        diff = field_diff(self._saved_fields, self._draft_fields)
        for key in self._unconfirmed:
            if key in self._draft_fields:
                diff[key] = self._draft_fields[key]
        return diff

    async def _perform_save(self, version: int) -> None:
        sent_fields = self._draft_fields
        diff = self._pending_diff()
        failed = False

        self._cancel_cooldown()
        self._set_status(SaveStatus.SAVING)
        self._error = None

        try:
            await self._persist(diff)
        except Exception as exc:
            if self._live and version == self._version:
                failed = True
                self._error = str(exc) or exc.__class__.__name__
                self._set_status(SaveStatus.ERROR)
                logger.warning("Autosave %s failed: %s", self._name, self._error)
                if self._on_error is not None:
                    try:
                        self._on_error(exc)
                    except Exception:
                        logger.exception("Autosave on_error callback failed (%s)", self._name)
            else:
                logger.info("Discarding superseded save failure for %s: %s", self._name, exc)
        else:
            if self._live and version == self._version:
                self._saved_fields = sent_fields
                self._unconfirmed.clear()
                self._set_status(SaveStatus.SAVED)
                self._cooldown = asyncio.get_running_loop().call_later(self._cooldown_s, self._on_cooldown)
                logger.debug("Autosave %s saved fields=%s", self._name, sorted(diff))
            elif self._live:
                # Superseded: the backend may now hold these values; resend them next time.
                self._unconfirmed.update(diff)
                logger.debug("Discarding superseded save result for %s", self._name)
        finally:
            if self._inflight is asyncio.current_task():
                self._inflight = None

        if self._live and not failed and self._timer is None and self.is_dirty:
            self._start_save()
