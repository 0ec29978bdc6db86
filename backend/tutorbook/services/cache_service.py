"""
Redis caching for open-shift listings.

CACHING STRATEGY
================

What we cache:
  - The "who is free" listing for a date (optionally narrowed by band and
    subject), JSON-serialized
  - Key pattern: "shifts:open:{date}:{time_slot}:{subject}"

Invalidation strategy:
  - Booking created / cancelled: delete every open-shift key for that date
  - Tutor availability changed: same
  - TTL as a safety net (REDIS_CACHE_TTL)

Why NOT cache bookability checks:
  - The booking engine re-checks the shift under lock inside its
    transaction, so a stale listing only ever shows a shift that then
    fails with ShiftNotAvailable; it can never cause a double booking.
"""

import json
from datetime import date
from typing import Optional

from redis.exceptions import RedisError

from tutorbook.core.config import get_settings
from tutorbook.core.logging import get_logger
from tutorbook.core.metrics import record_cache_operation
from tutorbook.infrastructure.redis_client import get_redis

logger = get_logger(__name__)


def _open_shifts_key(shift_date: date, time_slot: Optional[str], subject: Optional[str]) -> str:
    subject_part = (subject or "").strip().lower()
    return f"shifts:open:{shift_date.isoformat()}:{time_slot or '*'}:{subject_part}"


async def get_cached_open_shifts(
    shift_date: date, time_slot: Optional[str], subject: Optional[str]
) -> Optional[list]:
    client = await get_redis()
    if not client:
        return None

    key = _open_shifts_key(shift_date, time_slot, subject)
    try:
        data = await client.get(key)
        record_cache_operation("get", hit=data is not None)
        if data:
            return json.loads(data)
    except RedisError as e:
        logger.error("cache_get_error", key=key, error=str(e))

    return None


async def set_cached_open_shifts(
    shift_date: date, time_slot: Optional[str], subject: Optional[str], data: list
) -> None:
    client = await get_redis()
    if not client:
        return

    settings = get_settings()
    key = _open_shifts_key(shift_date, time_slot, subject)
    try:
        await client.setex(key, settings.REDIS_CACHE_TTL, json.dumps(data, default=str))
        record_cache_operation("set", hit=False)
    except RedisError as e:
        logger.error("cache_set_error", key=key, error=str(e))


async def invalidate_open_shifts(shift_date: date) -> None:
    """Drop every cached listing for the date whose availability changed."""
    client = await get_redis()
    if not client:
        return

    try:
        deleted = 0
        async for key in client.scan_iter(match=f"shifts:open:{shift_date.isoformat()}:*", count=100):
            await client.delete(key)
            deleted += 1
        logger.info("cache_invalidated", date=shift_date.isoformat(), keys_deleted=deleted)
    except RedisError as e:
        logger.error("cache_invalidation_error", error=str(e))


async def get_cache_stats() -> dict:
    """Redis cache statistics for /health."""
    client = await get_redis()
    if not client:
        return {"status": "disabled"}

    try:
        info = await client.info("stats")
        hits = info.get("keyspace_hits", 0)
        misses = info.get("keyspace_misses", 0)
        return {
            "status": "connected",
            "hits": hits,
            "misses": misses,
            "hit_rate": round(hits / max(hits + misses, 1) * 100, 2),
        }
    except RedisError as e:
        return {"status": "error", "error": str(e)}
