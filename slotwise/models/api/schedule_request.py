# slotwise/models/api/schedule_request.py
"""
Scheduling and planning API request models.
Used by routes for input validation.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from slotwise.models.domain.scheduling_domain import Plan
from slotwise.services.scheduling.working_hours import WorkingHoursTemplate


class WorkingHoursInput(BaseModel):
    """Weekly availability template (local wall-clock times, 0 = Sunday)."""

    model_config = ConfigDict(populate_by_name=True)

    start_local: str = Field(default="09:00", alias="startLocal", description="Local start HH:MM")
    end_local: str = Field(default="17:00", alias="endLocal", description="Local end HH:MM")
    days_of_week: list[int] = Field(
        default_factory=lambda: [1, 2, 3, 4, 5],
        alias="daysOfWeek",
        description="Weekdays included, 0 = Sunday",
    )

    def to_template(self) -> WorkingHoursTemplate:
        return WorkingHoursTemplate(
            start_local=self.start_local,
            end_local=self.end_local,
            days_of_week=tuple(self.days_of_week),
        )


class ScheduleRequest(BaseModel):
    """Request for computing (and optionally persisting) a schedule."""

    model_config = ConfigDict(populate_by_name=True)

    plan: Plan = Field(..., description="Goal and ordered tasks to place")
    commit: bool = Field(default=False, description="Persist goal, tasks and sessions")
    extra_busy: list[dict[str, Any]] = Field(
        default_factory=list,
        alias="extraBusy",
        description="Additional busy windows {start, end} as ISO strings or epoch ms",
    )
    timezone: str | None = Field(default=None, description="IANA timezone for working hours")
    tz_offset_minutes: int | None = Field(
        default=None,
        alias="tzOffsetMinutes",
        ge=-840,
        le=840,
        description="Explicit UTC offset in minutes east of UTC",
    )
    horizon_days: int | None = Field(
        default=None, alias="horizonDays", ge=1, le=90, description="Days ahead to schedule"
    )
    working_hours: WorkingHoursInput | None = Field(default=None, alias="workingHours")


class PlannerRequest(BaseModel):
    """Request for generating a plan from a user's intent."""

    model_config = ConfigDict(populate_by_name=True)

    intent: str = Field(..., min_length=1, max_length=4000, description="What the user wants")
    constraints: dict[str, Any] = Field(default_factory=dict)
    chat_summary: str | None = Field(default=None, alias="chatSummary", max_length=8000)
