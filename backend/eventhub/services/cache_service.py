"""
Redis caching service for event reads.

CACHING STRATEGY
================

What we cache:
  - Event listing responses, one key per filter combination:
    "events:list:page={page}&limit={limit}&date={date}&name={name}&location={location}"
  - Event detail responses: "event:{event_id}"
  - Popular events ranking: "events:popular"

Invalidation strategy:
  - Any committed change to an event's capacity or reservations calls
    publish_invalidation() exactly once, after the commit.
  - That drops the event's detail key, the ranking key, and every listing key
    (filter combinations are unbounded, so listings are invalidated coarsely
    by SCANning the "events:list:" prefix).
  - TTL-based expiry as safety net.

Caching is best effort. A Redis failure never fails a request or rolls back
a reservation: correctness lives in the capacity ledger, not here.
"""

import json
from typing import Optional

import redis.asyncio as redis
from eventhub.core.config import get_settings
from eventhub.core.logging import get_logger
from eventhub.core.metrics import cache_invalidation_failures, record_cache_operation
from eventhub.services.interfaces.cache_sink import CacheSink

logger = get_logger(__name__)
settings = get_settings()

EVENT_LIST_PREFIX = "events:list:"
POPULAR_EVENTS_KEY = "events:popular"

_redis_client: Optional[redis.Redis] = None


async def get_redis() -> Optional[redis.Redis]:
    """Get or create Redis connection. Returns None if Redis is disabled."""
    global _redis_client

    if not settings.REDIS_ENABLED:
        return None

    if _redis_client is None:
        try:
            _redis_client = redis.from_url(
                settings.REDIS_URL,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
                retry_on_timeout=True,
            )
            # Test connection
            await _redis_client.ping()
            logger.info("redis_connected", url=settings.REDIS_URL)
        except Exception as e:
            logger.error("redis_connection_failed", error=str(e))
            _redis_client = None
            return None

    return _redis_client


async def close_redis() -> None:
    """Close Redis connection on shutdown."""
    global _redis_client
    if _redis_client:
        await _redis_client.close()
        _redis_client = None


def event_list_key(
    page: int,
    limit: int,
    date: Optional[str] = None,
    name: Optional[str] = None,
    location: Optional[str] = None,
) -> str:
    return (
        f"{EVENT_LIST_PREFIX}page={page}&limit={limit}"
        f"&date={date or 'all'}&name={name or 'all'}&location={location or 'all'}"
    )


def event_detail_key(event_id: int) -> str:
    return f"event:{event_id}"


async def get_json(key: str) -> Optional[dict]:
    """Retrieve a cached JSON response."""
    client = await get_redis()
    if not client:
        return None

    try:
        data = await client.get(key)
        if data:
            logger.debug("cache_hit", key=key)
            record_cache_operation("get", hit=True)
            return json.loads(data)
        logger.debug("cache_miss", key=key)
        record_cache_operation("get", hit=False)
    except Exception as e:
        logger.error("cache_get_error", key=key, error=str(e))

    return None


async def set_json(key: str, data: dict, ttl: int) -> None:
    """Cache a JSON response with TTL."""
    client = await get_redis()
    if not client:
        return

    try:
        await client.setex(key, ttl, json.dumps(data, default=str))
        logger.debug("cache_set", key=key, ttl=ttl)
    except Exception as e:
        logger.error("cache_set_error", key=key, error=str(e))


class RedisCacheSink(CacheSink):
    """Deletes the Redis keys made stale by a change to one event."""

    async def invalidate_event(self, event_id: int) -> None:
        client = await get_redis()
        if not client:
            return

        await client.delete(event_detail_key(event_id), POPULAR_EVENTS_KEY)
        deleted = 0
        async for key in client.scan_iter(match=f"{EVENT_LIST_PREFIX}*", count=100):
            await client.delete(key)
            deleted += 1
        logger.info("cache_invalidated", event_id=event_id, list_keys_deleted=deleted)


async def publish_invalidation(sink: CacheSink, event_id: int) -> None:
    """
    Post-commit hook. Called once after every committed reservation create,
    cancel, capacity resize and event write. Never raises.
    """
    try:
        await sink.invalidate_event(event_id)
    except Exception as e:
        cache_invalidation_failures.inc()
        logger.error("cache_invalidation_error", event_id=event_id, error=str(e))


async def get_cache_stats() -> dict:
    """Get Redis cache statistics for monitoring."""
    client = await get_redis()
    if not client:
        return {"status": "disabled"}

    try:
        info = await client.info("stats")
        keyspace = await client.info("keyspace")
        return {
            "status": "connected",
            "hits": info.get("keyspace_hits", 0),
            "misses": info.get("keyspace_misses", 0),
            "hit_rate": (
                round(
                    info.get("keyspace_hits", 0)
                    / max(info.get("keyspace_hits", 0) + info.get("keyspace_misses", 0), 1)
                    * 100,
                    2,
                )
            ),
            "keys": keyspace,
        }
    except Exception as e:
        return {"status": "error", "error": str(e)}
