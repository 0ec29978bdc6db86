"""
Resource lock strategy factory.
Configures which lock backend the booking engine uses.
"""

from typing import Optional

from tutorbook.core.config import get_settings
from tutorbook.services.interfaces.resource_lock import ResourceLock
from tutorbook.services.interfaces.local_lock import LocalResourceLock
from tutorbook.services.redis_lock_service import RedisResourceLock


def get_lock_strategy() -> ResourceLock:
    """
    Strategy selection via LOCK_BACKEND:
    - local: single worker, development and tests
    - redis: several workers behind a load balancer
    """
    if get_settings().LOCK_BACKEND == "redis":
        return RedisResourceLock()
    return LocalResourceLock()


_strategy: Optional[ResourceLock] = None


def get_resource_lock() -> ResourceLock:
    """Get lock strategy singleton (also usable as a FastAPI dependency)."""
    global _strategy
    if _strategy is None:
        _strategy = get_lock_strategy()
    return _strategy
