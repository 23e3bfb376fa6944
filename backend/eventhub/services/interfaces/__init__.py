"""
Service interfaces for dependency inversion.
Allows swapping implementations without changing business logic.
"""

from .cache_sink import CacheSink, NullCacheSink

__all__ = ['CacheSink', 'NullCacheSink']
