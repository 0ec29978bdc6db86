"""
Service interfaces for dependency inversion.
Allows swapping implementations without changing business logic.
"""

from .resource_lock import ResourceLock
from .local_lock import LocalResourceLock

__all__ = ['ResourceLock', 'LocalResourceLock']
