"""
Per-user scheduling lock backed by Redis (SET NX EX).

Two concurrent scheduling requests for one user would place sessions over
the same free time; the lock serializes them. When Redis is unreachable the
request proceeds unlocked.
"""

import uuid
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from slotwise.config import settings
from slotwise.infrastructure.observability.logging import get_logger
from slotwise.services.errors import SchedulingInProgress
from slotwise.services.infrastructure.redis_client import redis_client

logger = get_logger(__name__)

LOCK_KEY_PREFIX = "schedule_lock:"


def lock_key(user_id: str) -> str:
    return f"{LOCK_KEY_PREFIX}{user_id}"


@asynccontextmanager
async def scheduling_lock(user_id: str) -> AsyncGenerator[bool, None]:
    """
    Hold the scheduling lock for a user for the duration of the block.

    Yields:
        True if the lock is held, False if running unlocked

    Raises:
        SchedulingInProgress: Another request holds the lock
    """
    if not settings.SCHEDULING_LOCK_ENABLED:
        yield False
        return

    key = lock_key(user_id)
    token = uuid.uuid4().hex
    acquired = await redis_client.set_if_absent(key, token, settings.SCHEDULING_LOCK_TTL_SECONDS)

    if acquired is None:
        logger.warning("Scheduling lock unavailable, proceeding unlocked", user_id=user_id)
        yield False
        return

    if not acquired:
        logger.info("Scheduling lock contention", user_id=user_id)
        raise SchedulingInProgress(user_id)

    try:
        yield True
    finally:
        # Only release our own lock; an expired one may belong to a newer request
        await redis_client.delete_if_equals(key, token)
