"""
Cache sink factory.
Configures which cache invalidation sink the reservation core talks to.
"""

from eventhub.services.interfaces.cache_sink import CacheSink, NullCacheSink
from eventhub.services.cache_service import RedisCacheSink
from eventhub.core.config import settings


def build_cache_sink() -> CacheSink:
    """
    Sink selection based on settings:
    - REDIS_ENABLED: RedisCacheSink
    - otherwise: NullCacheSink (no cache, nothing goes stale)
    """
    if settings.REDIS_ENABLED:
        return RedisCacheSink()
    return NullCacheSink()


# Singleton instance
_sink: CacheSink | None = None


def get_cache_sink() -> CacheSink:
    """Get cache sink singleton. Also used as a FastAPI dependency."""
    global _sink
    if _sink is None:
        _sink = build_cache_sink()
    return _sink
