"""
Optimistic room lock - no pre-check.
Relies entirely on the database conditional bed claim.
"""

from contextlib import asynccontextmanager

from app.core.metrics import record_room_lock
from app.services.interfaces.room_lock import RoomLockStrategy


class OptimisticRoomLock(RoomLockStrategy):
    """
    No lock - always proceed.
    Concurrent claims on the same bed are settled by the conditional UPDATE.

    Use when:
    - A single hostel office allocates beds
    - Simplicity preferred over fail-fast
    """

    @asynccontextmanager
    async def hold(self, room_id: int):
        record_room_lock("bypassed")
        yield
