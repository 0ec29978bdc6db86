"""
Tests for the lock strategies used by the booking engine.
"""

import asyncio

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from tutorbook.services import redis_lock_service
from tutorbook.services.interfaces.local_lock import LocalResourceLock
from tutorbook.services.redis_lock_service import RedisResourceLock
from tutorbook.services.strategy_factory import get_lock_strategy


@pytest.mark.asyncio
async def test_local_lock_serializes_same_key():
    locks = LocalResourceLock()
    order = []

    async def worker(name):
        async with locks.hold("shift:1:2026-11-03:16:00-17:30"):
            order.append(f"{name}-in")
            await asyncio.sleep(0.01)
            order.append(f"{name}-out")

    await asyncio.gather(worker("a"), worker("b"))

    assert order in (["a-in", "a-out", "b-in", "b-out"], ["b-in", "b-out", "a-in", "a-out"])


@pytest.mark.asyncio
async def test_local_lock_opposite_key_order_does_not_deadlock():
    locks = LocalResourceLock()

    async def worker(*keys):
        async with locks.hold(*keys):
            await asyncio.sleep(0.01)
        return True

    results = await asyncio.wait_for(
        asyncio.gather(worker("shift:1", "tickets:student:1"), worker("tickets:student:1", "shift:1")),
        timeout=2,
    )
    assert results == [True, True]


@pytest.mark.asyncio
async def test_local_lock_independent_keys_overlap():
    locks = LocalResourceLock()
    inside = asyncio.Event()

    async def first():
        async with locks.hold("shift:1"):
            inside.set()
            await asyncio.sleep(0.05)

    async def second():
        await inside.wait()
        async with locks.hold("shift:2"):
            return "entered"

    _, result = await asyncio.wait_for(asyncio.gather(first(), second()), timeout=1)
    assert result == "entered"


@pytest.mark.asyncio
async def test_redis_lock_runs_block_without_redis(monkeypatch):
    async def no_redis():
        return None

    monkeypatch.setattr(redis_lock_service, "get_redis", no_redis)
    ran = False
    async with RedisResourceLock().hold("shift:1"):
        ran = True
    assert ran


class _BrokenRedis:
    def lock(self, name, timeout=None, blocking_timeout=None):
        raise RedisConnectionError("connection refused")


@pytest.mark.asyncio
async def test_redis_lock_fails_open_on_errors(monkeypatch):
    async def broken():
        return _BrokenRedis()

    monkeypatch.setattr(redis_lock_service, "get_redis", broken)
    ran = False
    async with RedisResourceLock().hold("shift:1", "tickets:user:1"):
        ran = True
    assert ran


def test_strategy_follows_settings():
    assert isinstance(get_lock_strategy(), LocalResourceLock)
