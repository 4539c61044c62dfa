# slotwise/models/api/schedule_response.py
"""
Scheduling and calendar API response models.
Used by routes for output formatting.
"""

from typing import Any

from pydantic import BaseModel, Field


class BusyResponse(BaseModel):
    """Busy intervals across all of the user's calendars."""

    busy: list[dict[str, str]] = Field(..., description="Busy intervals {start, end}")
    count: int


class EventsResponse(BaseModel):
    """Normalized events across all of the user's calendars."""

    events: list[dict[str, Any]]
    count: int


class ScheduleResponse(BaseModel):
    """Placed sessions, free-time summary and commit outcome."""

    sessions: list[dict[str, Any]]
    committed: bool
    goal_id: str | None = Field(default=None, alias="goalId")
    task_ids: dict[str, str] = Field(default_factory=dict, alias="taskIds")
    tz_offset_minutes: int = Field(..., alias="tzOffsetMinutes")
    horizon: dict[str, str]
    free_minutes: int = Field(..., alias="freeMinutes")
    free_minutes_remaining: int = Field(..., alias="freeMinutesRemaining")

    model_config = {"populate_by_name": True}


class PlannerResponse(BaseModel):
    """Generated plan in wire (camelCase) form."""

    plan: dict[str, Any]
