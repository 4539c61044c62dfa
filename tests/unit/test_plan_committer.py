"""
Tests for atomic plan persistence.
"""

from contextlib import asynccontextmanager
from datetime import UTC, datetime

import psycopg
import pytest

from slotwise.models.domain.scheduling_domain import Goal, ScheduledSession, Task
from slotwise.services.errors import CommitFailure
from slotwise.services.scheduling import plan_committer


class FakeCursor:
    def __init__(self, conn):
        self.conn = conn

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    async def executemany(self, query, params_seq):
        self.conn.session_rows.extend(params_seq)


class FakeConnection:
    def __init__(self):
        self.session_rows: list[tuple] = []

    def cursor(self):
        return FakeCursor(self)


class FakePool:
    def __init__(self):
        self.conn = FakeConnection()
        self.committed = False
        self.rolled_back = False

    @asynccontextmanager
    async def transaction(self):
        try:
            yield self.conn
        except BaseException:
            self.rolled_back = True
            raise
        self.committed = True


def _plan():
    goal = Goal(title="Learn Spanish")
    tasks = [
        Task(id="t1", title="Vocabulary", estimated_minutes=30),
        Task(id="t2", title="Grammar", estimated_minutes=30),
    ]
    sessions = [
        ScheduledSession("t1", "Vocabulary", datetime(2025, 1, 6, 9, tzinfo=UTC), datetime(2025, 1, 6, 9, 30, tzinfo=UTC)),
        ScheduledSession("t2", "Grammar", datetime(2025, 1, 6, 9, 30, tzinfo=UTC), datetime(2025, 1, 6, 10, tzinfo=UTC)),
    ]
    return goal, tasks, sessions


@pytest.fixture
def fake_pool(monkeypatch):
    pool = FakePool()
    monkeypatch.setattr("slotwise.services.scheduling.plan_committer.db_pool", pool)
    return pool


@pytest.mark.asyncio
async def test_commit_maps_ephemeral_task_ids(monkeypatch, fake_pool):
    calls = []

    async def fake_fetch_one(query, params=(), *, connection=None):
        assert connection is fake_pool.conn
        calls.append(params)
        return {"id": f"db-{len(calls)}"}

    monkeypatch.setattr("slotwise.services.scheduling.plan_committer.fetch_one", fake_fetch_one)
    goal, tasks, sessions = _plan()

    result = await plan_committer.commit_plan("user-123", goal, tasks, sessions)

    assert result.goal_id == "db-1"
    assert result.task_ids == {"t1": "db-2", "t2": "db-3"}
    # seq follows placement order
    assert [params[-1] for params in calls[1:]] == [0, 1]
    assert [row[0] for row in fake_pool.conn.session_rows] == ["db-2", "db-3"]
    assert fake_pool.committed is True


@pytest.mark.asyncio
async def test_database_error_rolls_back_and_raises_commit_failure(monkeypatch, fake_pool):
    calls = []

    async def failing_fetch_one(query, params=(), *, connection=None):
        calls.append(params)
        if len(calls) == 3:
            raise psycopg.errors.CheckViolation("task insert failed")
        return {"id": f"db-{len(calls)}"}

    monkeypatch.setattr("slotwise.services.scheduling.plan_committer.fetch_one", failing_fetch_one)
    goal, tasks, sessions = _plan()

    with pytest.raises(CommitFailure) as exc:
        await plan_committer.commit_plan("user-123", goal, tasks, sessions)

    assert exc.value.error_code == "commit_failed"
    assert fake_pool.rolled_back is True
    assert fake_pool.committed is False
    assert fake_pool.conn.session_rows == []
