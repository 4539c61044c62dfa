"""
Tests for the per-user scheduling lock.
"""

import pytest

from slotwise.services.errors import SchedulingInProgress
from slotwise.services.infrastructure.redis_client import FastRedisClient
from slotwise.services.scheduling.user_lock import lock_key, scheduling_lock


@pytest.fixture
def lock_env(monkeypatch, fake_redis):
    monkeypatch.setattr("slotwise.services.scheduling.user_lock.settings.SCHEDULING_LOCK_ENABLED", True)
    monkeypatch.setattr("slotwise.services.scheduling.user_lock.redis_client", fake_redis)
    return fake_redis


@pytest.mark.asyncio
async def test_lock_is_held_and_released(lock_env):
    async with scheduling_lock("user-123") as held:
        assert held is True
        assert lock_key("user-123") in lock_env.store

    assert lock_key("user-123") not in lock_env.store


@pytest.mark.asyncio
async def test_second_request_is_rejected_while_held(lock_env):
    async with scheduling_lock("user-123"):
        with pytest.raises(SchedulingInProgress):
            async with scheduling_lock("user-123"):
                pass

        async with scheduling_lock("user-456") as other:
            assert other is True


@pytest.mark.asyncio
async def test_lock_released_when_block_raises(lock_env):
    with pytest.raises(ValueError):
        async with scheduling_lock("user-123"):
            raise ValueError("boom")

    assert lock_env.store == {}


@pytest.mark.asyncio
async def test_unreachable_redis_runs_unlocked(lock_env):
    lock_env.available = False

    async with scheduling_lock("user-123") as held:
        assert held is False


@pytest.mark.asyncio
async def test_foreign_lock_is_not_deleted(lock_env):
    async with scheduling_lock("user-123"):
        # Simulate expiry and takeover by a newer request
        lock_env.store[lock_key("user-123")] = "someone-else"

    assert lock_env.store[lock_key("user-123")] == "someone-else"


@pytest.mark.asyncio
async def test_disabled_lock_skips_redis(monkeypatch, fake_redis):
    monkeypatch.setattr("slotwise.services.scheduling.user_lock.settings.SCHEDULING_LOCK_ENABLED", False)
    monkeypatch.setattr("slotwise.services.scheduling.user_lock.redis_client", fake_redis)

    async with scheduling_lock("user-123") as held:
        assert held is False

    assert fake_redis.store == {}


@pytest.mark.asyncio
async def test_release_is_a_single_compare_and_delete(lock_env):
    async with scheduling_lock("user-123"):
        token = lock_env.store[lock_key("user-123")]

    assert lock_env.released == [lock_key("user-123")]
    assert token not in lock_env.store.values()


class RecordingRedis:
    def __init__(self, result=1, error=None):
        self.result = result
        self.error = error
        self.calls = []

    async def eval(self, script, numkeys, *args):
        self.calls.append((script, numkeys, args))
        if self.error:
            raise self.error
        return self.result


def _ready_client(redis_conn) -> FastRedisClient:
    client = FastRedisClient()
    client.client = redis_conn
    client._initialized = True
    return client


@pytest.mark.asyncio
async def test_compare_and_delete_runs_server_side_script():
    conn = RecordingRedis(result=1)

    assert await _ready_client(conn).delete_if_equals("schedule_lock:user-123", "tok") is True

    script, numkeys, args = conn.calls[0]
    assert numkeys == 1
    assert args == ("schedule_lock:user-123", "tok")
    assert 'redis.call("get", KEYS[1]) == ARGV[1]' in script
    assert 'redis.call("del", KEYS[1])' in script


@pytest.mark.asyncio
async def test_compare_and_delete_reports_mismatch_and_errors():
    assert await _ready_client(RecordingRedis(result=0)).delete_if_equals("k", "tok") is False

    broken = RecordingRedis(error=ConnectionError("redis down"))
    assert await _ready_client(broken).delete_if_equals("k", "tok") is False
