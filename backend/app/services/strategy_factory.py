"""
Room lock strategy factory.
Configures which concurrency control strategy guards allocations.
"""

from typing import Optional

from app.services.interfaces.room_lock import RoomLockStrategy
from app.services.interfaces.optimistic_room_lock import OptimisticRoomLock
from app.services.room_lock_service import RedisRoomLock
from app.core.config import get_settings


def get_room_lock_strategy() -> RoomLockStrategy:
    """
    Get configured room lock strategy.

    Strategy selection via ROOM_LOCK_STRATEGY:
    - optimistic (default): OptimisticRoomLock
    - redis: RedisRoomLock
    """
    strategy = get_settings().ROOM_LOCK_STRATEGY

    if strategy == 'redis':
        return RedisRoomLock()
    else:
        return OptimisticRoomLock()


# Singleton instance
_strategy: Optional[RoomLockStrategy] = None

def get_room_lock() -> RoomLockStrategy:
    """Get room lock strategy singleton."""
    global _strategy
    if _strategy is None:
        _strategy = get_room_lock_strategy()
    return _strategy
