"""
Plan committer: persists a goal, its tasks and their sessions atomically.
"""

from dataclasses import dataclass

import psycopg

from slotwise.db.helpers import DatabaseError, fetch_one
from slotwise.db.pool import db_pool
from slotwise.infrastructure.observability.logging import get_logger
from slotwise.models.domain.scheduling_domain import Goal, ScheduledSession, Task
from slotwise.services.errors import CommitFailure

logger = get_logger(__name__)

_INSERT_GOAL = """
INSERT INTO goals (user_id, title, description, target_date, status)
VALUES (%s, %s, %s, %s, %s)
RETURNING id::text AS id
"""

_INSERT_TASK = """
INSERT INTO tasks (goal_id, user_id, title, notes, due_at, duration_minutes, seq)
VALUES (%s, %s, %s, %s, %s, %s, %s)
RETURNING id::text AS id
"""

_INSERT_SESSION = """
INSERT INTO task_sessions (task_id, user_id, start_at, end_at)
VALUES (%s, %s, %s, %s)
"""


@dataclass(frozen=True)
class CommitResult:
    goal_id: str
    task_ids: dict[str, str]
    session_count: int


async def commit_plan(
    user_id: str, goal: Goal, tasks: list[Task], sessions: list[ScheduledSession]
) -> CommitResult:
    """
    Write goal, tasks (in the given order, numbered by seq) and sessions in
    one transaction. Ephemeral task ids map to the persisted ids.

    Raises:
        CommitFailure: Any database error; nothing is left behind
    """
    try:
        async with db_pool.transaction() as conn:
            goal_row = await fetch_one(
                _INSERT_GOAL,
                (user_id, goal.title, goal.description, goal.target_date, goal.status),
                connection=conn,
            )
            goal_id = goal_row["id"]

            task_ids: dict[str, str] = {}
            for seq, task in enumerate(tasks):
                task_row = await fetch_one(
                    _INSERT_TASK,
                    (
                        goal_id,
                        user_id,
                        task.title,
                        task.notes,
                        task.due_date,
                        task.estimated_minutes,
                        seq,
                    ),
                    connection=conn,
                )
                task_ids[task.id] = task_row["id"]

            if sessions:
                async with conn.cursor() as cur:
                    await cur.executemany(
                        _INSERT_SESSION,
                        [(task_ids[s.task_id], user_id, s.start, s.end) for s in sessions],
                    )

    except (DatabaseError, psycopg.Error, RuntimeError) as e:
        logger.error(
            "Plan commit failed, transaction rolled back",
            user_id=user_id,
            goal_title=goal.title,
            error=str(e),
            error_type=type(e).__name__,
        )
        raise CommitFailure(f"Could not save plan: {e}") from e

    logger.info(
        "Plan committed",
        user_id=user_id,
        goal_id=goal_id,
        task_count=len(task_ids),
        session_count=len(sessions),
    )
    return CommitResult(goal_id=goal_id, task_ids=task_ids, session_count=len(sessions))
