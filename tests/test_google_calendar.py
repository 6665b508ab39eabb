# tests/test_google_calendar.py

from __future__ import annotations

import json
from datetime import date

import httpx
import pytest

from taskboard.errors import CalendarError
from taskboard.integrations.google_calendar import GoogleCalendarClient, event_body, event_url

BASE = "https://calendar.test/v3"


def _client(handler, seen: list[httpx.Request]) -> GoogleCalendarClient:
    def _record(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return handler(request)

    http = httpx.AsyncClient(base_url=BASE, transport=httpx.MockTransport(_record))
    return GoogleCalendarClient("tok-123", client=http)


def test_event_body_is_all_day_with_exclusive_end() -> None:
    body = event_body("Pay rent", "", date(2026, 12, 31))
    assert body == {
        "summary": "Pay rent",
        "start": {"date": "2026-12-31"},
        "end": {"date": "2027-01-01"},
    }
    assert "description" not in body


def test_event_url_escapes_calendar_id() -> None:
    assert event_url("me@example.com", "e1").endswith("/eventedit/e1?cid=me%40example.com")


@pytest.mark.asyncio
async def test_create_event_posts_body_and_returns_id() -> None:
    seen: list[httpx.Request] = []
    client = _client(lambda req: httpx.Response(200, json={"id": "evt-77"}), seen)

    event_id = await client.create_event("primary", "Report", "quarterly", date(2026, 4, 1))

    assert event_id == "evt-77"
    (req,) = seen
    assert req.method == "POST"
    assert req.url.path == "/v3/calendars/primary/events"
    assert req.headers["Authorization"] == "Bearer tok-123"
    body = json.loads(req.content)
    assert body["start"] == {"date": "2026-04-01"}
    assert body["end"] == {"date": "2026-04-02"}
    assert body["description"] == "quarterly"


@pytest.mark.asyncio
async def test_create_event_without_id_is_an_error() -> None:
    client = _client(lambda req: httpx.Response(200, json={}), [])
    with pytest.raises(CalendarError):
        await client.create_event("primary", "x", "", date(2026, 4, 1))


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [404, 410])
async def test_missing_event_on_update_and_delete_is_ignored(status: int) -> None:
    seen: list[httpx.Request] = []
    client = _client(lambda req: httpx.Response(status, json={"error": {"message": "gone"}}), seen)

    await client.update_event("primary", "evt-1", "x", "", date(2026, 4, 1))
    await client.delete_event("primary", "evt-1")

    assert [r.method for r in seen] == ["PATCH", "DELETE"]


@pytest.mark.asyncio
async def test_server_error_raises_calendar_error_with_status() -> None:
    client = _client(lambda req: httpx.Response(500, json={"error": {"message": "backend down"}}), [])

    with pytest.raises(CalendarError) as ei:
        await client.update_event("primary", "evt-1", "x", "", date(2026, 4, 1))

    assert ei.value.status_code == 500
    assert "backend down" in str(ei.value)


@pytest.mark.asyncio
async def test_transport_failure_raises_calendar_error() -> None:
    def boom(req: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=req)

    client = _client(boom, [])
    with pytest.raises(CalendarError):
        await client.delete_event("primary", "evt-1")


@pytest.mark.asyncio
async def test_list_calendars_maps_items() -> None:
    payload = {"items": [{"id": "a", "summary": "Work", "primary": True}, {"id": "b"}]}
    client = _client(lambda req: httpx.Response(200, json=payload), [])

    assert await client.list_calendars() == [
        {"id": "a", "name": "Work", "primary": True},
        {"id": "b", "name": "b", "primary": False},
    ]
