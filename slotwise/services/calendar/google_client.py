"""
Google Calendar API client for free/busy aggregation and event listing.
Read-only: lists calendars, queries freeBusy across all of them and
normalizes events. Every failure is raised; nothing degrades to empty data.
"""

from datetime import datetime
from typing import Any
from urllib.parse import quote

import httpx

from slotwise.config import settings
from slotwise.infrastructure.observability.logging import get_logger
from slotwise.models.domain.calendar_domain import CalendarEvent
from slotwise.models.domain.scheduling_domain import Interval, parse_instant
from slotwise.services.errors import ProviderUnavailable

logger = get_logger(__name__)

# Google Calendar API configuration
CALENDAR_API_BASE_URL = "https://www.googleapis.com/calendar/v3"
CALENDAR_PRIMARY = "primary"
CALENDAR_LIST_PAGE_SIZE = 250
EVENTS_PAGE_SIZE = 2500


class GoogleCalendarClient:
    """
    Free/busy aggregator over a user's Google calendars.

    No retries: the only retry in the system is the gateway's refresh after
    a 401, which this client signals with ProviderUnavailable(status_code=401).
    """

    def __init__(self):
        self._client: httpx.AsyncClient | None = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            timeout = httpx.Timeout(settings.PROVIDER_TIMEOUT_SECONDS)
            limits = httpx.Limits(max_keepalive_connections=20, max_connections=50)
            self._client = httpx.AsyncClient(timeout=timeout, limits=limits)
        return self._client

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def _get_auth_headers(self, access_token: str) -> dict:
        return {
            "Authorization": f"Bearer {access_token}",
            "Accept": "application/json",
        }

    async def _request(
        self, method: str, url: str, access_token: str, operation: str, **kwargs
    ) -> dict[str, Any]:
        try:
            response = await self._get_client().request(
                method, url, headers=self._get_auth_headers(access_token), **kwargs
            )
        except httpx.TimeoutException as e:
            logger.error("Calendar API timed out", operation=operation)
            raise ProviderUnavailable(
                f"Calendar {operation} timed out", operation=operation, timed_out=True
            ) from e
        except httpx.RequestError as e:
            logger.error(
                "Calendar API request error",
                operation=operation,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise ProviderUnavailable(
                f"Calendar {operation} failed: {e}", operation=operation
            ) from e

        return self._handle_api_response(response, operation)

    def _handle_api_response(self, response: httpx.Response, operation: str) -> dict:
        """
        Parse a Calendar API response.

        Raises:
            ProviderUnavailable: Non-success status or unparseable body
        """
        logger.debug(
            f"Calendar API {operation} response",
            status_code=response.status_code,
            response_size=len(response.content),
        )

        if response.is_success:
            try:
                return response.json() if response.content else {}
            except ValueError as e:
                logger.error(f"Failed to parse Calendar API {operation} response", error=str(e))
                raise ProviderUnavailable(
                    f"Invalid response format: {e}",
                    operation=operation,
                    status_code=response.status_code,
                ) from e

        try:
            error_data = response.json()
        except ValueError:
            error_data = {}
        if not isinstance(error_data, dict):
            error_data = {}

        error_info = error_data.get("error")
        if not isinstance(error_info, dict):
            error_info = {}
        error_message = error_info.get("message", "Unknown Calendar API error")

        logger.error(
            f"Calendar API {operation} failed",
            status_code=response.status_code,
            error_message=error_message,
        )
        raise ProviderUnavailable(
            self._map_calendar_error(response.status_code, error_message),
            operation=operation,
            status_code=response.status_code,
            response_data=error_data,
        )

    def _map_calendar_error(self, status_code: int, error_message: str) -> str:
        error_mappings = {
            401: "Calendar authorization expired. Please reconnect.",
            403: "Calendar access denied. Please check permissions.",
            404: "Calendar not found.",
            429: "Too many calendar requests. Please try again later.",
        }
        return error_mappings.get(status_code, f"Calendar error: {error_message}")

    async def list_calendars(self, access_token: str) -> list[str]:
        """
        List every calendar id on the user's calendar list, following pagination.

        Returns:
            Calendar ids, or ["primary"] when the list is empty
        """
        url = f"{CALENDAR_API_BASE_URL}/users/me/calendarList"
        calendar_ids: list[str] = []
        page_token: str | None = None

        while True:
            params: dict[str, Any] = {"maxResults": CALENDAR_LIST_PAGE_SIZE}
            if page_token:
                params["pageToken"] = page_token

            data = await self._request("GET", url, access_token, "list_calendars", params=params)
            calendar_ids.extend(item["id"] for item in data.get("items", []) if item.get("id"))

            page_token = data.get("nextPageToken")
            if not page_token:
                break

        if not calendar_ids:
            calendar_ids = [CALENDAR_PRIMARY]

        logger.info("Calendars listed", calendar_count=len(calendar_ids))
        return calendar_ids

    async def free_busy(
        self,
        access_token: str,
        start: datetime,
        end: datetime,
        calendar_ids: list[str] | None = None,
    ) -> list[Interval]:
        """
        Busy intervals across all calendars in [start, end), unsorted.

        Raises:
            ProviderUnavailable: Request failed, a calendar reported errors or is
                missing from the response, or a busy period is malformed
        """
        if calendar_ids is None:
            calendar_ids = await self.list_calendars(access_token)

        query = {
            "timeMin": start.isoformat(),
            "timeMax": end.isoformat(),
            "items": [{"id": cal_id} for cal_id in calendar_ids],
        }
        data = await self._request(
            "POST", f"{CALENDAR_API_BASE_URL}/freeBusy", access_token, "free_busy", json=query
        )

        calendars = data.get("calendars") if isinstance(data, dict) else None
        if not isinstance(calendars, dict):
            logger.error("Free/busy response has no calendars", calendar_ids=calendar_ids)
            raise ProviderUnavailable(
                "Free/busy response did not include any calendars", operation="free_busy"
            )

        missing = [cal_id for cal_id in calendar_ids if cal_id not in calendars]
        if missing:
            logger.error("Free/busy response missing calendars", missing=missing)
            raise ProviderUnavailable(
                f"Free/busy unavailable for calendars: {', '.join(missing)}",
                operation="free_busy",
                response_data={"missing_calendars": missing},
            )

        busy: list[Interval] = []
        for cal_id, calendar in calendars.items():
            if not isinstance(calendar, dict):
                raise ProviderUnavailable(
                    f"Malformed free/busy entry for calendar {cal_id}", operation="free_busy"
                )

            errors = calendar.get("errors") or []
            if errors:
                logger.error("Free/busy errors for calendar", calendar_id=cal_id, errors=errors)
                raise ProviderUnavailable(
                    f"Free/busy unavailable for calendar {cal_id}",
                    operation="free_busy",
                    response_data={"calendar_id": cal_id, "errors": errors},
                )

            for period in calendar.get("busy") or []:
                try:
                    interval = Interval(parse_instant(period["start"]), parse_instant(period["end"]))
                except (KeyError, ValueError, TypeError, AttributeError) as e:
                    logger.error("Malformed busy period", calendar_id=cal_id, error=str(e))
                    raise ProviderUnavailable(
                        f"Malformed busy period for calendar {cal_id}",
                        operation="free_busy",
                        response_data={"calendar_id": cal_id, "period": period},
                    ) from e
                if not interval.is_degenerate:
                    busy.append(interval)

        logger.info(
            "Free/busy fetched",
            calendar_count=len(calendar_ids),
            busy_count=len(busy),
        )
        return busy

    async def events(
        self,
        access_token: str,
        start: datetime,
        end: datetime,
        calendar_ids: list[str] | None = None,
    ) -> list[CalendarEvent]:
        """Normalized single events from every calendar in [start, end)."""
        if calendar_ids is None:
            calendar_ids = await self.list_calendars(access_token)

        events: list[CalendarEvent] = []
        for cal_id in calendar_ids:
            url = f"{CALENDAR_API_BASE_URL}/calendars/{quote(cal_id, safe='')}/events"
            page_token: str | None = None

            while True:
                params: dict[str, Any] = {
                    "timeMin": start.isoformat(),
                    "timeMax": end.isoformat(),
                    "singleEvents": "true",
                    "orderBy": "startTime",
                    "maxResults": EVENTS_PAGE_SIZE,
                }
                if page_token:
                    params["pageToken"] = page_token

                data = await self._request("GET", url, access_token, "list_events", params=params)
                for item in data.get("items", []):
                    event = CalendarEvent.from_google(cal_id, item)
                    if event is not None:
                        events.append(event)

                page_token = data.get("nextPageToken")
                if not page_token:
                    break

        logger.info("Events listed", calendar_count=len(calendar_ids), event_count=len(events))
        return events

    async def primary_email(self, access_token: str) -> str | None:
        """Id of the primary calendar (the account email); None if unavailable."""
        try:
            data = await self._request(
                "GET",
                f"{CALENDAR_API_BASE_URL}/users/me/calendarList/{CALENDAR_PRIMARY}",
                access_token,
                "primary_calendar",
            )
        except ProviderUnavailable as e:
            logger.warning("Could not look up primary calendar email", error=str(e))
            return None
        return data.get("id")


# Singleton instance for application use
google_calendar_client = GoogleCalendarClient()
