# slotwise/models/domain/calendar_domain.py
"""
Calendar Domain Models
Delegated calendar credentials and normalized calendar events.
"""

from datetime import UTC, datetime, timedelta
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

REFRESH_SKEW_SECONDS = 60


class CalendarAccount(BaseModel):
    """Decrypted delegated credential for one user and provider."""

    user_id: str
    provider: Literal["google"] = "google"
    email: str | None = None
    access_token: str
    refresh_token: str | None = None
    token_expiry: datetime | None = None
    scopes: list[str] = Field(default_factory=list)
    updated_at: datetime | None = None

    def needs_refresh(self, skew_seconds: int = REFRESH_SKEW_SECONDS) -> bool:
        """True when the token expires within the skew, or expiry is unknown."""
        if self.token_expiry is None:
            return True
        return datetime.now(UTC) > self.token_expiry - timedelta(seconds=skew_seconds)

    def can_refresh(self) -> bool:
        return bool(self.refresh_token)


class CalendarEvent(BaseModel):
    """Flat event record returned by /events."""

    model_config = ConfigDict(populate_by_name=True)

    id: str | None = None
    calendar_id: str = Field(..., alias="calendarId")
    title: str = "(no title)"
    start: datetime
    end: datetime
    all_day: bool = Field(default=False, alias="allDay")
    location: str | None = None
    link: str | None = None

    @classmethod
    def from_google(cls, calendar_id: str, item: dict[str, Any]) -> "CalendarEvent | None":
        """
        Normalize a Google Calendar event item.

        All-day events (date only) span midnight to midnight UTC. Items
        without a usable start or end return None.
        """
        start, all_day = _parse_google_time(item.get("start") or {})
        end, _ = _parse_google_time(item.get("end") or {})
        if start is None or end is None:
            return None

        return cls(
            id=item.get("id"),
            calendar_id=calendar_id,
            title=item.get("summary") or "(no title)",
            start=start,
            end=end,
            all_day=all_day,
            location=item.get("location"),
            link=item.get("htmlLink"),
        )

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


def _parse_google_time(value: dict) -> tuple[datetime | None, bool]:
    """Parse a Google {dateTime|date} object into (aware UTC datetime, all_day)."""
    if value.get("dateTime"):
        try:
            parsed = datetime.fromisoformat(value["dateTime"].replace("Z", "+00:00"))
        except ValueError:
            return None, False
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=UTC)
        return parsed.astimezone(UTC), False

    if value.get("date"):
        try:
            return datetime.strptime(value["date"], "%Y-%m-%d").replace(tzinfo=UTC), True
        except ValueError:
            return None, True

    return None, False
