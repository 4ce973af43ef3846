"""
Room lock strategy interface.
Allows swapping between different concurrency control approaches.
"""

from abc import ABC, abstractmethod
from typing import AsyncContextManager


class RoomLockStrategy(ABC):
    """
    Interface for serializing allocate / end-allocation per room.

    The lock only narrows the window; it never replaces the conditional bed
    claim, which stays authoritative.

    Implementations:
    - OptimisticRoomLock: No lock, rely on the conditional UPDATE
    - RedisRoomLock: Mutex keyed by room id, shared across workers
    """

    @abstractmethod
    def hold(self, room_id: int) -> AsyncContextManager[None]:
        """
        Hold the room for the duration of the `async with` block.

        Args:
            room_id: Room whose beds are about to change

        Raises:
            ConflictError: the room stayed busy past the configured wait
        """
        pass
