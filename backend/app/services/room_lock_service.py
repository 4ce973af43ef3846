"""
Redis-backed room lock for multi-worker deployments.
Implements RoomLockStrategy interface using a Redis lock per room.

Circuit Breaker Pattern:
  On Redis failure, the lock "fails open" (proceeds unlocked).
  This prevents Redis outages from blocking all allocations.
  Database remains authoritative - Redis is advisory only.

  Tradeoff: During Redis outage, two requests for the same room both reach
  the database. The conditional bed claim still lets only one of them win.
"""

from contextlib import asynccontextmanager

from redis.exceptions import LockError, RedisError

from app.core.config import get_settings
from app.core.exceptions import ConflictError
from app.core.logging import get_logger
from app.core.metrics import record_room_lock, redis_connection_errors
from app.infrastructure.redis_client import get_redis
from app.services.interfaces.room_lock import RoomLockStrategy

logger = get_logger(__name__)
settings = get_settings()


class RedisRoomLock(RoomLockStrategy):
    """
    Mutex keyed by room id, scoped to the allocate / end-allocation
    critical section rather than the whole request.

    Use when:
    - Several API workers allocate into the same rooms
    - Move-in days with bursts of allocations per room
    """

    def __init__(self, timeout: int = None, wait: float = None):
        self.timeout = timeout or settings.ROOM_LOCK_TIMEOUT
        self.wait = wait or settings.ROOM_LOCK_WAIT

    @asynccontextmanager
    async def hold(self, room_id: int):
        client = await get_redis()
        if client is None:
            record_room_lock("bypassed")
            yield
            return

        lock = client.lock(
            f"room-lock:{room_id}",
            timeout=self.timeout,
            blocking_timeout=self.wait,
        )
        try:
            acquired = await lock.acquire()
        except RedisError as e:
            # Circuit breaker: On Redis failure, fail open
            redis_connection_errors.inc()
            logger.warning("room_lock_unavailable", room_id=room_id, error=str(e))
            record_room_lock("bypassed")
            yield
            return

        if not acquired:
            record_room_lock("busy")
            logger.info("room_lock_busy", room_id=room_id, waited=self.wait)
            raise ConflictError("Room is busy with another allocation. Please try again.")

        record_room_lock("acquired")
        try:
            yield
        finally:
            try:
                await lock.release()
            except (LockError, RedisError) as e:
                # Expired under us; the database write already decided the outcome
                logger.warning("room_lock_release_failed", room_id=room_id, error=str(e))
