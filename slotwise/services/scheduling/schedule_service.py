"""
Schedule service: orchestrates one scheduling request.

lock -> timezone offset -> delegated token -> working hours over the horizon
-> minus provider busy -> minus caller busy -> placement -> optional commit.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from slotwise.config import settings
from slotwise.infrastructure.observability.logging import get_logger
from slotwise.models.api.schedule_request import ScheduleRequest
from slotwise.models.domain.scheduling_domain import Interval, ScheduledSession, parse_instant
from slotwise.services import profile_service
from slotwise.services.calendar.google_client import GoogleCalendarClient, google_calendar_client
from slotwise.services.errors import CommitFailure, InvalidWorkingHours
from slotwise.services.oauth.calendar_gateway import DelegatedOAuthGateway, calendar_gateway
from slotwise.services.scheduling import plan_committer
from slotwise.services.scheduling.interval_algebra import subtract, total_minutes
from slotwise.services.scheduling.session_placer import place_sessions
from slotwise.services.scheduling.user_lock import scheduling_lock
from slotwise.services.scheduling.working_hours import DEFAULT_TEMPLATE, generate_working_intervals

logger = get_logger(__name__)


@dataclass
class ScheduleResult:
    sessions: list[ScheduledSession]
    tz_offset_minutes: int
    horizon: Interval
    free_minutes: int
    free_minutes_remaining: int
    goal_id: str | None = None
    task_ids: dict[str, str] = field(default_factory=dict)

    @property
    def committed(self) -> bool:
        return self.goal_id is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            "sessions": [s.to_dict() for s in self.sessions],
            "committed": self.committed,
            "goalId": self.goal_id,
            "taskIds": self.task_ids,
            "tzOffsetMinutes": self.tz_offset_minutes,
            "horizon": self.horizon.to_dict(),
            "freeMinutes": self.free_minutes,
            "freeMinutesRemaining": self.free_minutes_remaining,
        }


def parse_extra_busy(entries: list[dict[str, Any]]) -> list[Interval]:
    """Caller busy windows; unparseable or degenerate entries are dropped."""
    intervals: list[Interval] = []
    for entry in entries:
        try:
            interval = Interval(parse_instant(entry.get("start")), parse_instant(entry.get("end")))
        except (AttributeError, TypeError, ValueError, OverflowError, OSError):
            logger.debug("Dropping unparseable extra busy entry")
            continue
        if not interval.is_degenerate:
            intervals.append(interval)
    return intervals


def offset_for_timezone(tz_name: str, at: datetime) -> int:
    """UTC offset of an IANA zone at an instant, in minutes east of UTC."""
    try:
        zone = ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise InvalidWorkingHours(f"Unknown timezone: {tz_name}") from e
    return int(at.astimezone(zone).utcoffset().total_seconds() // 60)


class ScheduleService:
    """Builds (and optionally commits) a schedule for one user request."""

    def __init__(
        self,
        gateway: DelegatedOAuthGateway | None = None,
        calendar_client: GoogleCalendarClient | None = None,
    ):
        self.gateway = gateway or calendar_gateway
        self.calendar_client = calendar_client or google_calendar_client

    async def resolve_tz_offset(self, user_id: str, request: ScheduleRequest, now: datetime) -> int:
        """Explicit offset, then request timezone, then profile timezone, then UTC."""
        if request.tz_offset_minutes is not None:
            return request.tz_offset_minutes
        if request.timezone:
            return offset_for_timezone(request.timezone, now)
        return offset_for_timezone(await profile_service.get_user_timezone(user_id), now)

    async def build_schedule(
        self, user_id: str, request: ScheduleRequest, now: datetime | None = None
    ) -> ScheduleResult:
        """
        Compute sessions for the request's plan, committing them when asked.

        Raises:
            SchedulingInProgress: Another request for this user is running
            NotConnected / ProviderUnavailable: Calendar access failed
            InvalidWorkingHours / InvalidPlan / InsufficientCapacity: Plan cannot be placed
            CommitFailure: Placement succeeded but persistence failed
        """
        now = now or datetime.now(UTC)

        async with scheduling_lock(user_id):
            tz_offset = await self.resolve_tz_offset(user_id, request, now)
            horizon_days = request.horizon_days or settings.DEFAULT_HORIZON_DAYS
            horizon = Interval(now, now + timedelta(days=horizon_days))

            template = request.working_hours.to_template() if request.working_hours else DEFAULT_TEMPLATE
            working = generate_working_intervals(horizon.start, horizon.end, tz_offset, template)

            busy = await self.gateway.with_valid_token(
                user_id,
                lambda token: self.calendar_client.free_busy(token, horizon.start, horizon.end),
            )
            free = subtract(working, busy)
            free = subtract(free, parse_extra_busy(request.extra_busy))
            free_minutes = total_minutes(free)

            placement = place_sessions(request.plan.tasks, free)

            result = ScheduleResult(
                sessions=placement.sessions,
                tz_offset_minutes=tz_offset,
                horizon=horizon,
                free_minutes=free_minutes,
                free_minutes_remaining=total_minutes(placement.free),
            )

            logger.info(
                "Schedule built",
                user_id=user_id,
                tz_offset_minutes=tz_offset,
                horizon_days=horizon_days,
                busy_count=len(busy),
                session_count=len(placement.sessions),
                commit=request.commit,
            )

            if not request.commit:
                return result

            try:
                committed = await plan_committer.commit_plan(
                    user_id, request.plan.goal, placement.task_order, placement.sessions
                )
            except CommitFailure as e:
                e.sessions = [s.to_dict() for s in placement.sessions]
                raise

            result.goal_id = committed.goal_id
            result.task_ids = committed.task_ids
            return result


# Singleton instance for application use
schedule_service = ScheduleService()
