"""
Cache invalidation sink interface.
Lets the reservation core signal cache staleness without knowing the cache.
"""

from abc import ABC, abstractmethod


class CacheSink(ABC):
    """
    Interface for post-commit cache invalidation.

    Implementations:
    - RedisCacheSink: deletes Redis keys (eventhub.services.cache_service)
    - NullCacheSink: caching disabled, nothing to invalidate
    """

    @abstractmethod
    async def invalidate_event(self, event_id: int) -> None:
        """
        Drop every cached view that a change to this event makes stale:
        the event's detail entry, all event listings and the popular ranking.

        Args:
            event_id: Event whose capacity or reservations changed
        """
        pass


class NullCacheSink(CacheSink):
    """No caching configured - nothing to invalidate."""

    async def invalidate_event(self, event_id: int) -> None:
        pass
