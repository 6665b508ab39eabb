# src/taskboard/integrations/google_calendar.py

"""
Google Calendar (REST v3) adapter for the CalendarClient port.

Tasks become all-day events: start.date = due date, end.date = due date + 1
(the end date is exclusive). Update/delete of an event that is already gone
(404/410) is logged and treated as success.
"""

from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import Any
from urllib.parse import quote

import httpx

from ..errors import CalendarError

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://www.googleapis.com/calendar/v3"
EVENT_COLOR_ID = "9"  # blue

_GONE = {404, 410}


def _timeout(connect_s: float, read_s: float) -> httpx.Timeout:
    return httpx.Timeout(connect=connect_s, read=read_s, write=10.0, pool=connect_s)


def event_body(title: str, description: str, due_date: date, *, task_id: str | None = None) -> dict[str, Any]:
    body: dict[str, Any] = {
        "summary": title,
        "start": {"date": due_date.isoformat()},
        "end": {"date": (due_date + timedelta(days=1)).isoformat()},
    }
    if description:
        body["description"] = description
    if task_id:
        body["extendedProperties"] = {"private": {"taskId": task_id}}
    return body


def event_url(calendar_id: str, event_id: str) -> str:
    """Link for "open event" in the Google Calendar UI."""
    return f"https://calendar.google.com/calendar/u/0/r/eventedit/{event_id}?cid={quote(calendar_id, safe='')}"


class GoogleCalendarClient:
    """
    Async client; one instance can be shared by all sync schedulers.

    `access_token` is an OAuth bearer token obtained elsewhere (session handling
    is not this module's concern). Pass `client` to inject a preconfigured
    httpx.AsyncClient (tests use httpx.MockTransport).
    """

    def __init__(
        self,
        access_token: str | None,
        *,
        base_url: str = DEFAULT_BASE_URL,
        connect_timeout: float = 5.0,
        read_timeout: float = 15.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._owns_client = client is None
        headers = {"Authorization": f"Bearer {access_token}"} if access_token else {}
        self._client = client or httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=_timeout(connect_timeout, read_timeout),
        )
        if client is not None and headers:
            self._client.headers.update(headers)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> GoogleCalendarClient:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.aclose()

    @staticmethod
    def _events_path(calendar_id: str, event_id: str | None = None) -> str:
        path = f"/calendars/{quote(calendar_id, safe='')}/events"
        if event_id:
            path += f"/{quote(event_id, safe='')}"
        return path

    async def _request(self, method: str, path: str, *, json: dict[str, Any] | None = None) -> httpx.Response:
        try:
            return await self._client.request(method, path, json=json)
        except httpx.HTTPError as exc:
            raise CalendarError(f"Calendar request failed: {exc.__class__.__name__}: {exc}") from exc

    @staticmethod
    def _raise_for(resp: httpx.Response, action: str) -> None:
        if resp.is_success:
            return
        detail = ""
        try:
            detail = str(resp.json().get("error", {}).get("message", ""))
        except Exception:
            detail = resp.text[:200]
        raise CalendarError(
            f"Failed to {action} calendar event: HTTP {resp.status_code} {detail}".strip(),
            status_code=resp.status_code,
        )

    async def list_calendars(self) -> list[dict[str, Any]]:
        resp = await self._request("GET", "/users/me/calendarList")
        self._raise_for(resp, "list")
        items = resp.json().get("items") or []
        return [
            {"id": c.get("id", ""), "name": c.get("summary") or c.get("id") or "Unknown", "primary": bool(c.get("primary"))}
            for c in items
        ]

    async def create_event(self, calendar_id: str, title: str, description: str, due_date: date) -> str:
        body = event_body(title, description, due_date)
        body["colorId"] = EVENT_COLOR_ID
        resp = await self._request("POST", self._events_path(calendar_id), json=body)
        self._raise_for(resp, "create")
        event_id = resp.json().get("id")
        if not event_id:
            raise CalendarError("No event ID returned from Google Calendar")
        logger.debug("Created calendar event %s in %s", event_id, calendar_id)
        return str(event_id)

    async def update_event(
        self,
        calendar_id: str,
        event_id: str,
        title: str,
        description: str,
        due_date: date,
    ) -> None:
        body = event_body(title, description, due_date)
        resp = await self._request("PATCH", self._events_path(calendar_id, event_id), json=body)
        if resp.status_code in _GONE:
            logger.warning("Calendar event %s not found on update; may have been deleted", event_id)
            return
        self._raise_for(resp, "update")

    async def delete_event(self, calendar_id: str, event_id: str) -> None:
        resp = await self._request("DELETE", self._events_path(calendar_id, event_id))
        if resp.status_code in _GONE:
            logger.warning("Calendar event %s not found on delete; may have been already deleted", event_id)
            return
        self._raise_for(resp, "delete")
