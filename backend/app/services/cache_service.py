"""
Redis caching service for room listings.

CACHING STRATEGY
================

What we cache:
  - The public room listings (all rooms, available rooms), JSON-serialized
  - Cache key pattern: "rooms:list:{kind}"

Why:
  - "Which rooms have a free bed?" is the most frequent read in the hostel
  - Computing it joins every available room with a bed count

Invalidation strategy:
  - On allocate / end allocation: the set of free beds changed
  - On room create / update / delete and bed status changes
  - TTL-based expiry as safety net (5 minutes)

  All listing keys start with "rooms:list:" so we can SCAN and delete them.

Why NOT cache single rooms or beds:
  - The allocation ledger needs real-time bed state (stale data = double allocation)
  - Those reads are cheap primary-key lookups anyway
"""

import json
from typing import Optional

from app.core.config import get_settings
from app.core.logging import get_logger
from app.core.metrics import record_cache_operation
from app.infrastructure.redis_client import get_redis

logger = get_logger(__name__)
settings = get_settings()

ROOM_LIST_PREFIX = "rooms:list:"


def _make_room_list_key(kind: str) -> str:
    return f"{ROOM_LIST_PREFIX}{kind}"


async def get_cached_rooms(kind: str) -> Optional[list]:
    """Retrieve a cached room listing."""
    client = await get_redis()
    if not client:
        return None

    key = _make_room_list_key(kind)
    try:
        data = await client.get(key)
        record_cache_operation("get", hit=data is not None)
        if data:
            logger.debug("cache_hit", key=key)
            return json.loads(data)
        logger.debug("cache_miss", key=key)
    except Exception as e:
        logger.error("cache_get_error", key=key, error=str(e))

    return None


async def set_cached_rooms(kind: str, data: list) -> None:
    """Cache a room listing with TTL."""
    client = await get_redis()
    if not client:
        return

    key = _make_room_list_key(kind)
    try:
        await client.setex(key, settings.REDIS_CACHE_TTL, json.dumps(data, default=str))
        logger.debug("cache_set", key=key, ttl=settings.REDIS_CACHE_TTL)
    except Exception as e:
        logger.error("cache_set_error", key=key, error=str(e))


async def invalidate_room_cache() -> None:
    """
    Invalidate all cached room listings.
    Uses SCAN to find and delete all keys matching the prefix.
    """
    client = await get_redis()
    if not client:
        return

    try:
        deleted = 0
        async for key in client.scan_iter(match=f"{ROOM_LIST_PREFIX}*", count=100):
            await client.delete(key)
            deleted += 1
        logger.info("cache_invalidated", keys_deleted=deleted)
    except Exception as e:
        logger.error("cache_invalidation_error", error=str(e))


async def get_cache_stats() -> dict:
    """Get Redis cache statistics for monitoring."""
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
    except Exception as e:
        return {"status": "error", "error": str(e)}
