"""
Profile lookups used by scheduling and planning (user timezone).
"""

from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from slotwise.db.helpers import fetch_one, with_db_retry
from slotwise.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

DEFAULT_TIMEZONE = "UTC"


@with_db_retry(max_retries=3, base_delay=0.1)
async def get_user_timezone(user_id: str) -> str:
    """IANA timezone from profiles.tz, falling back to UTC when unset or unknown."""
    row = await fetch_one("SELECT tz FROM profiles WHERE id = %s", (user_id,))
    tz_name = (row or {}).get("tz") or DEFAULT_TIMEZONE

    try:
        ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown profile timezone, using UTC", user_id=user_id, tz=tz_name)
        return DEFAULT_TIMEZONE

    return tz_name
