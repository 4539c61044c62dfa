# slotwise/models/domain/scheduling_domain.py
"""
Scheduling Domain Models
Intervals, plans (goal + tasks) and placed sessions used by the scheduling services.
"""

from dataclasses import dataclass
from datetime import UTC, date, datetime, time
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_SESSION_MIN_MINUTES = 30
DEFAULT_SESSION_MAX_MINUTES = 90
SESSION_FLOOR_MINUTES = 15


def ensure_utc(value: datetime) -> datetime:
    """Normalize a datetime to aware UTC; naive values are taken as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def parse_instant(value: Any) -> datetime:
    """
    Parse an absolute instant from the wire.

    Accepts aware/naive datetimes, ISO 8601 strings (a trailing Z is fine),
    date-only strings (midnight UTC) and epoch milliseconds.
    """
    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, date):
        return datetime.combine(value, time.min, tzinfo=UTC)
    if isinstance(value, bool):
        raise ValueError("boolean is not a timestamp")
    if isinstance(value, int | float):
        return datetime.fromtimestamp(value / 1000, tz=UTC)
    if isinstance(value, str):
        text = value.strip()
        if len(text) == 10:
            return datetime.combine(date.fromisoformat(text), time.min, tzinfo=UTC)
        return ensure_utc(datetime.fromisoformat(text.replace("Z", "+00:00")))
    raise ValueError(f"Unsupported timestamp value: {value!r}")


@dataclass(frozen=True)
class Interval:
    """Half-open time range [start, end) in absolute UTC time."""

    start: datetime
    end: datetime

    @property
    def is_degenerate(self) -> bool:
        return self.end <= self.start

    @property
    def minutes(self) -> int:
        """Whole minutes covered (floored)."""
        if self.is_degenerate:
            return 0
        return int((self.end - self.start).total_seconds() // 60)

    def overlaps(self, other: "Interval") -> bool:
        return self.start < other.end and other.start < self.end

    def to_dict(self) -> dict[str, str]:
        return {"start": self.start.isoformat(), "end": self.end.isoformat()}


class Task(BaseModel):
    """Estimated-duration unit of work owned by a goal."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1, max_length=300)
    notes: str | None = None
    estimated_minutes: int = Field(..., alias="estimatedMinutes", gt=0)
    due_date: datetime | None = Field(default=None, alias="dueDate")
    earliest_start_date: datetime | None = Field(default=None, alias="earliestStartDate")
    dependencies: list[str] = Field(default_factory=list)
    session_min_minutes: int | None = Field(default=None, alias="sessionMinMinutes", gt=0)
    session_max_minutes: int | None = Field(default=None, alias="sessionMaxMinutes", gt=0)
    allow_splitting: bool = Field(default=True, alias="allowSplitting")
    priority: str | int | None = None

    @field_validator("due_date", "earliest_start_date", mode="before")
    @classmethod
    def _parse_dates(cls, value: Any) -> datetime | None:
        if value in (None, ""):
            return None
        return parse_instant(value)

    @field_validator("dependencies", mode="before")
    @classmethod
    def _none_is_empty(cls, value: Any) -> Any:
        return [] if value is None else value

    def session_bounds(self) -> tuple[int, int]:
        """Effective (min, max) session length in minutes."""
        low = max(SESSION_FLOOR_MINUTES, self.session_min_minutes or DEFAULT_SESSION_MIN_MINUTES)
        high = max(low, self.session_max_minutes or DEFAULT_SESSION_MAX_MINUTES)
        return low, high


class Goal(BaseModel):
    """Unit of commit together with its tasks and their sessions."""

    model_config = ConfigDict(populate_by_name=True)

    title: str = Field(..., min_length=1, max_length=300)
    description: str | None = None
    target_date: datetime | None = Field(default=None, alias="targetDate")
    success_criteria: list[str] = Field(default_factory=list, alias="successCriteria")
    status: Literal["active", "paused", "completed", "archived"] = "active"

    @field_validator("target_date", mode="before")
    @classmethod
    def _parse_target(cls, value: Any) -> datetime | None:
        if value in (None, ""):
            return None
        return parse_instant(value)


class Plan(BaseModel):
    """A goal and its ordered tasks, as produced by the planner or the client."""

    goal: Goal
    tasks: list[Task] = Field(default_factory=list)


@dataclass(frozen=True)
class ScheduledSession:
    """One contiguous block of time assigned to a single task."""

    task_id: str
    task_title: str
    start: datetime
    end: datetime

    @property
    def minutes(self) -> int:
        return int((self.end - self.start).total_seconds() // 60)

    @property
    def interval(self) -> Interval:
        return Interval(self.start, self.end)

    def to_dict(self) -> dict[str, Any]:
        return {
            "taskId": self.task_id,
            "taskTitle": self.task_title,
            "start": self.start.isoformat(),
            "end": self.end.isoformat(),
            "minutes": self.minutes,
        }
