"""
Working-hours generator.

Expands a weekly availability template into absolute UTC intervals across a
horizon. Offsets are minutes east of UTC (UTC+02:00 is 120); weekdays use
0 = Sunday.
"""

import re
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

from slotwise.infrastructure.observability.logging import get_logger
from slotwise.models.domain.scheduling_domain import Interval, ensure_utc
from slotwise.services.errors import InvalidWorkingHours
from slotwise.services.scheduling.interval_algebra import clip

logger = get_logger(__name__)

_HHMM = re.compile(r"^(\d{2}):(\d{2})$")
MAX_OFFSET_MINUTES = 14 * 60


@dataclass(frozen=True)
class WorkingHoursTemplate:
    start_local: str = "09:00"
    end_local: str = "17:00"
    days_of_week: tuple[int, ...] = field(default=(1, 2, 3, 4, 5))


DEFAULT_TEMPLATE = WorkingHoursTemplate()


def _minutes_of_day(value: str, label: str) -> int:
    match = _HHMM.match(value or "")
    if not match:
        raise InvalidWorkingHours(f"{label} must be HH:MM, got {value!r}")

    hours, minutes = int(match.group(1)), int(match.group(2))
    total = hours * 60 + minutes
    if minutes > 59 or total > 24 * 60:
        raise InvalidWorkingHours(f"{label} is not a valid time of day: {value!r}")
    return total


def validate_template(template: WorkingHoursTemplate) -> tuple[int, int, frozenset[int]]:
    """Return (start minute, end minute, weekdays) or raise InvalidWorkingHours."""
    start = _minutes_of_day(template.start_local, "startLocal")
    end = _minutes_of_day(template.end_local, "endLocal")

    if end < start:
        raise InvalidWorkingHours(
            f"endLocal {template.end_local} precedes startLocal {template.start_local}"
        )

    days = frozenset(template.days_of_week)
    invalid = sorted(d for d in days if not 0 <= d <= 6)
    if invalid:
        raise InvalidWorkingHours(f"daysOfWeek must be within 0..6, got {invalid}")

    return start, end, days


def generate_working_intervals(
    horizon_start: datetime,
    horizon_end: datetime,
    tz_offset_minutes: int = 0,
    template: WorkingHoursTemplate = DEFAULT_TEMPLATE,
) -> list[Interval]:
    """
    Build working intervals for every local day touched by the horizon.

    Args:
        horizon_start: First instant considered
        horizon_end: Instant the horizon stops (exclusive)
        tz_offset_minutes: User's UTC offset in minutes east of UTC
        template: Weekly availability template

    Returns:
        Ascending, non-empty intervals clipped to the horizon
    """
    start_minute, end_minute, days = validate_template(template)

    if abs(tz_offset_minutes) > MAX_OFFSET_MINUTES:
        raise InvalidWorkingHours(f"tz offset out of range: {tz_offset_minutes}")

    horizon_start = ensure_utc(horizon_start)
    horizon_end = ensure_utc(horizon_end)
    if horizon_end <= horizon_start:
        return []

    offset = timedelta(minutes=tz_offset_minutes)
    day = (horizon_start + offset).date()
    last_day = (horizon_end + offset).date()

    intervals: list[Interval] = []
    while day <= last_day:
        weekday = (day.weekday() + 1) % 7
        if weekday in days:
            local_midnight = datetime(day.year, day.month, day.day, tzinfo=UTC)
            window = Interval(
                local_midnight + timedelta(minutes=start_minute) - offset,
                local_midnight + timedelta(minutes=end_minute) - offset,
            )
            clipped = clip(window, horizon_start, horizon_end)
            if clipped is not None:
                intervals.append(clipped)
        day += timedelta(days=1)

    logger.debug(
        "Generated working intervals",
        count=len(intervals),
        tz_offset_minutes=tz_offset_minutes,
        days_of_week=sorted(days),
    )
    return intervals
