"""
Resource lock strategy interface.
Serializes work on a shift or a ticket holder across concurrent requests.
"""

from abc import ABC, abstractmethod
from typing import AsyncContextManager


class ResourceLock(ABC):
    """
    Interface for per-resource serialization.

    Implementations:
    - LocalResourceLock: asyncio locks, one process
    - RedisResourceLock: Redis locks shared by every worker process

    The database guards (row locks, version column, partial unique index)
    stay authoritative; a lock only keeps losers from doing wasted work and
    makes the outcome deterministic under contention.
    """

    @abstractmethod
    def hold(self, *keys: str) -> AsyncContextManager[None]:
        """
        Hold every key for the duration of the block.

        Keys are acquired in sorted order so two callers locking the same
        shift and ticket holder can never deadlock.
        """
