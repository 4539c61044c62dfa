"""
Read-only calendar routes: busy intervals and normalized events
across every calendar of the caller.
"""

from datetime import UTC, datetime, timedelta

from fastapi import APIRouter, Depends, HTTPException, Query, status

from slotwise.auth.verify import auth_dependency
from slotwise.db.helpers import DatabaseError
from slotwise.infrastructure.observability.logging import get_logger
from slotwise.models.api.schedule_response import BusyResponse, EventsResponse
from slotwise.models.domain.scheduling_domain import ensure_utc
from slotwise.routes.errors import require_user_id, to_http_exception
from slotwise.services.calendar.google_client import google_calendar_client
from slotwise.services.errors import SchedulingEngineError
from slotwise.services.oauth.calendar_gateway import calendar_gateway
from slotwise.services.scheduling.interval_algebra import merge

router = APIRouter(tags=["calendar"])
logger = get_logger(__name__)

DEFAULT_RANGE_DAYS = 7


def _resolve_range(start: datetime | None, end: datetime | None) -> tuple[datetime, datetime]:
    start = ensure_utc(start) if start else datetime.now(UTC)
    end = ensure_utc(end) if end else start + timedelta(days=DEFAULT_RANGE_DAYS)
    if end <= start:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="end must be after start"
        )
    return start, end


@router.get("/freebusy", response_model=BusyResponse)
async def get_freebusy(
    start: datetime | None = Query(default=None, description="Range start (default now)"),
    end: datetime | None = Query(default=None, description="Range end (default start + 7 days)"),
    claims: dict = Depends(auth_dependency),
):
    """Busy intervals across all of the caller's calendars, merged and ascending."""
    user_id = require_user_id(claims)
    range_start, range_end = _resolve_range(start, end)

    try:
        busy = await calendar_gateway.with_valid_token(
            user_id,
            lambda token: google_calendar_client.free_busy(token, range_start, range_end),
        )
    except (SchedulingEngineError, DatabaseError) as e:
        logger.error("Free/busy request failed", user_id=user_id, error=str(e))
        raise to_http_exception(e) from e

    merged = merge(busy)
    return BusyResponse(busy=[b.to_dict() for b in merged], count=len(merged))


@router.get("/events", response_model=EventsResponse)
async def get_events(
    start: datetime | None = Query(default=None, description="Range start (default now)"),
    end: datetime | None = Query(default=None, description="Range end (default start + 7 days)"),
    claims: dict = Depends(auth_dependency),
):
    """Normalized single events across all of the caller's calendars."""
    user_id = require_user_id(claims)
    range_start, range_end = _resolve_range(start, end)

    try:
        events = await calendar_gateway.with_valid_token(
            user_id,
            lambda token: google_calendar_client.events(token, range_start, range_end),
        )
    except (SchedulingEngineError, DatabaseError) as e:
        logger.error("Events request failed", user_id=user_id, error=str(e))
        raise to_http_exception(e) from e

    return EventsResponse(events=[e.to_dict() for e in events], count=len(events))
