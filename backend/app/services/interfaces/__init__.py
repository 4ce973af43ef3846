"""
Service interfaces for dependency inversion.
Allows swapping implementations without changing business logic.
"""

from .room_lock import RoomLockStrategy
from .optimistic_room_lock import OptimisticRoomLock

__all__ = ['RoomLockStrategy', 'OptimisticRoomLock']
