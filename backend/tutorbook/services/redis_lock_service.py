"""
Redis-backed resource locks for multi-process deployments.

Circuit Breaker Pattern:
  On Redis failure or lock timeout the block still runs ("fails open").
  PostgreSQL row locks and the partial unique index on active bookings
  remain authoritative, so correctness does not depend on Redis; we only
  lose the cheap early serialization.
"""

import time
from contextlib import asynccontextmanager
from typing import AsyncIterator

from redis.exceptions import LockError, RedisError

from tutorbook.core.config import get_settings
from tutorbook.core.logging import get_logger
from tutorbook.core.metrics import lock_wait, redis_connection_errors
from tutorbook.infrastructure.redis_client import get_redis
from tutorbook.services.interfaces.resource_lock import ResourceLock

logger = get_logger(__name__)

LOCK_PREFIX = "lock:"


class RedisResourceLock(ResourceLock):
    """
    Use when more than one API worker serves bookings for the same tutors.
    """

    @asynccontextmanager
    async def hold(self, *keys: str) -> AsyncIterator[None]:
        settings = get_settings()
        client = await get_redis()
        held = []
        start = time.perf_counter()

        if client is not None:
            try:
                for key in sorted(set(keys)):
                    lock = client.lock(
                        LOCK_PREFIX + key,
                        timeout=settings.LOCK_TIMEOUT_SECONDS,
                        blocking_timeout=settings.LOCK_BLOCKING_TIMEOUT_SECONDS,
                    )
                    if not await lock.acquire():
                        logger.warning("resource_lock_timeout", key=key)
                        break
                    held.append(lock)
            except RedisError as e:
                redis_connection_errors.inc()
                logger.error("resource_lock_unavailable", error=str(e))

        lock_wait.labels(backend="redis").observe(time.perf_counter() - start)
        try:
            yield
        finally:
            for lock in reversed(held):
                try:
                    await lock.release()
                except (LockError, RedisError) as e:
                    # Expired while held; the database already decided the outcome
                    logger.warning("resource_lock_release_failed", error=str(e))
