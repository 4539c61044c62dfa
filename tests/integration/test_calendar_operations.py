import json
import re
from datetime import UTC, datetime

import httpx
import pytest

from slotwise.models.domain.scheduling_domain import Interval
from slotwise.services.calendar.google_client import GoogleCalendarClient
from slotwise.services.errors import ProviderUnavailable

CALENDAR_LIST_URL = re.compile(r"https://www\.googleapis\.com/calendar/v3/users/me/calendarList\?.*")
FREEBUSY_URL = "https://www.googleapis.com/calendar/v3/freeBusy"

START = datetime(2025, 1, 6, tzinfo=UTC)
END = datetime(2025, 1, 8, tzinfo=UTC)


def _events_url(calendar_id: str) -> re.Pattern:
    return re.compile(
        rf"https://www\.googleapis\.com/calendar/v3/calendars/{re.escape(calendar_id)}/events\?.*"
    )


@pytest.mark.asyncio
async def test_list_calendars_follows_pagination(httpx_mock):
    service = GoogleCalendarClient()

    httpx_mock.add_response(
        method="GET",
        url=CALENDAR_LIST_URL,
        json={"items": [{"id": "primary-cal"}, {"id": "work"}], "nextPageToken": "page-2"},
    )
    httpx_mock.add_response(
        method="GET",
        url=CALENDAR_LIST_URL,
        json={"items": [{"id": "holidays"}]},
    )

    calendars = await service.list_calendars("token")
    await service.close()

    assert calendars == ["primary-cal", "work", "holidays"]
    second = httpx_mock.get_requests()[1]
    assert second.url.params["pageToken"] == "page-2"


@pytest.mark.asyncio
async def test_empty_calendar_list_falls_back_to_primary(httpx_mock):
    service = GoogleCalendarClient()
    httpx_mock.add_response(method="GET", url=CALENDAR_LIST_URL, json={"items": []})

    calendars = await service.list_calendars("token")
    await service.close()

    assert calendars == ["primary"]


@pytest.mark.asyncio
async def test_free_busy_flattens_all_calendars(httpx_mock):
    service = GoogleCalendarClient()

    httpx_mock.add_response(
        method="GET",
        url=CALENDAR_LIST_URL,
        json={"items": [{"id": "primary-cal"}, {"id": "work"}]},
    )
    httpx_mock.add_response(
        method="POST",
        url=FREEBUSY_URL,
        json={
            "calendars": {
                "primary-cal": {
                    "busy": [{"start": "2025-01-06T09:00:00Z", "end": "2025-01-06T10:00:00Z"}]
                },
                "work": {
                    "busy": [
                        {"start": "2025-01-06T09:30:00Z", "end": "2025-01-06T11:00:00Z"},
                        {"start": "2025-01-07T14:00:00+01:00", "end": "2025-01-07T15:00:00+01:00"},
                    ]
                },
            }
        },
    )

    busy = await service.free_busy("token", START, END)
    await service.close()

    assert len(busy) == 3
    assert Interval(
        datetime(2025, 1, 7, 13, tzinfo=UTC), datetime(2025, 1, 7, 14, tzinfo=UTC)
    ) in busy

    query = json.loads(httpx_mock.get_requests(url=FREEBUSY_URL)[0].content)
    assert query["items"] == [{"id": "primary-cal"}, {"id": "work"}]
    assert query["timeMin"] == START.isoformat()


@pytest.mark.asyncio
async def test_free_busy_calendar_errors_raise(httpx_mock):
    service = GoogleCalendarClient()
    httpx_mock.add_response(
        method="POST",
        url=FREEBUSY_URL,
        json={
            "calendars": {
                "primary": {"busy": []},
                "shared": {"errors": [{"domain": "global", "reason": "notFound"}]},
            }
        },
    )

    with pytest.raises(ProviderUnavailable) as exc:
        await service.free_busy("token", START, END, ["primary", "shared"])
    await service.close()

    assert exc.value.response_data["calendar_id"] == "shared"


@pytest.mark.asyncio
async def test_free_busy_server_error_never_returns_empty(httpx_mock):
    service = GoogleCalendarClient()
    httpx_mock.add_response(
        method="POST",
        url=FREEBUSY_URL,
        status_code=500,
        json={"error": {"code": 500, "message": "Backend Error"}},
    )

    with pytest.raises(ProviderUnavailable) as exc:
        await service.free_busy("token", START, END, ["primary"])
    await service.close()

    assert exc.value.status_code == 500


@pytest.mark.asyncio
async def test_free_busy_timeout_is_flagged(httpx_mock):
    service = GoogleCalendarClient()
    httpx_mock.add_exception(httpx.ReadTimeout("timed out"), method="POST", url=FREEBUSY_URL)

    with pytest.raises(ProviderUnavailable) as exc:
        await service.free_busy("token", START, END, ["primary"])
    await service.close()

    assert exc.value.timed_out is True


@pytest.mark.asyncio
async def test_unauthorized_carries_status_code(httpx_mock):
    service = GoogleCalendarClient()
    httpx_mock.add_response(method="GET", url=CALENDAR_LIST_URL, status_code=401, json={})

    with pytest.raises(ProviderUnavailable) as exc:
        await service.list_calendars("expired-token")
    await service.close()

    assert exc.value.status_code == 401
    assert "reconnect" in str(exc.value)


@pytest.mark.asyncio
async def test_events_are_normalized(httpx_mock):
    service = GoogleCalendarClient()
    httpx_mock.add_response(
        method="GET",
        url=_events_url("primary"),
        json={
            "items": [
                {
                    "id": "evt-1",
                    "summary": "Standup",
                    "start": {"dateTime": "2025-01-06T09:00:00-05:00"},
                    "end": {"dateTime": "2025-01-06T09:15:00-05:00"},
                    "location": "Room 4",
                    "htmlLink": "https://calendar.google.com/event?eid=evt-1",
                },
                {
                    "id": "evt-2",
                    "start": {"date": "2025-01-07"},
                    "end": {"date": "2025-01-08"},
                },
                {"id": "evt-3", "status": "cancelled"},
            ],
            "nextPageToken": "next",
        },
    )
    httpx_mock.add_response(method="GET", url=_events_url("primary"), json={"items": []})

    events = await service.events("token", START, END, ["primary"])
    await service.close()

    assert [e.id for e in events] == ["evt-1", "evt-2"]

    standup = events[0].to_dict()
    assert standup["calendarId"] == "primary"
    assert standup["title"] == "Standup"
    assert standup["allDay"] is False
    assert standup["link"] == "https://calendar.google.com/event?eid=evt-1"
    assert events[0].start == datetime(2025, 1, 6, 14, tzinfo=UTC)

    all_day = events[1]
    assert all_day.title == "(no title)"
    assert all_day.all_day is True
    assert all_day.start == datetime(2025, 1, 7, tzinfo=UTC)
    assert all_day.end == datetime(2025, 1, 8, tzinfo=UTC)

    first_request = httpx_mock.get_requests()[0]
    assert first_request.url.params["singleEvents"] == "true"
    assert first_request.url.params["orderBy"] == "startTime"


@pytest.mark.asyncio
async def test_primary_email_is_best_effort(httpx_mock):
    service = GoogleCalendarClient()
    httpx_mock.add_response(
        method="GET",
        url="https://www.googleapis.com/calendar/v3/users/me/calendarList/primary",
        status_code=403,
        json={},
    )

    assert await service.primary_email("token") is None
    await service.close()


@pytest.mark.asyncio
async def test_free_busy_period_without_end_raises(httpx_mock):
    service = GoogleCalendarClient()
    httpx_mock.add_response(
        method="POST",
        url=FREEBUSY_URL,
        json={"calendars": {"primary": {"busy": [{"start": "2025-01-06T09:00:00Z"}]}}},
    )

    with pytest.raises(ProviderUnavailable) as exc:
        await service.free_busy("token", START, END, ["primary"])
    await service.close()

    assert exc.value.operation == "free_busy"


@pytest.mark.asyncio
async def test_free_busy_non_dict_period_raises(httpx_mock):
    service = GoogleCalendarClient()
    httpx_mock.add_response(
        method="POST",
        url=FREEBUSY_URL,
        json={"calendars": {"primary": {"busy": ["2025-01-06T09:00:00Z"]}}},
    )

    with pytest.raises(ProviderUnavailable):
        await service.free_busy("token", START, END, ["primary"])
    await service.close()


@pytest.mark.asyncio
async def test_free_busy_without_calendars_raises(httpx_mock):
    service = GoogleCalendarClient()
    httpx_mock.add_response(method="POST", url=FREEBUSY_URL, json={"kind": "calendar#freeBusy"})

    with pytest.raises(ProviderUnavailable):
        await service.free_busy("token", START, END, ["primary", "work"])
    await service.close()


@pytest.mark.asyncio
async def test_free_busy_missing_requested_calendar_raises(httpx_mock):
    service = GoogleCalendarClient()
    httpx_mock.add_response(
        method="POST",
        url=FREEBUSY_URL,
        json={"calendars": {"primary": {"busy": []}}},
    )

    with pytest.raises(ProviderUnavailable) as exc:
        await service.free_busy("token", START, END, ["primary", "work"])
    await service.close()

    assert exc.value.response_data["missing_calendars"] == ["work"]
