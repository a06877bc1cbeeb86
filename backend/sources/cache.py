"""Key-value caches for source responses and loaded data."""

import logging
from collections import OrderedDict
from datetime import datetime, timedelta
from typing import Any, Optional, Protocol

from tree_config import CACHE_MAX_SIZE, CACHE_TTL_SECONDS

logger = logging.getLogger("familygraph.sources.cache")


class KeyValueCache(Protocol):
    """Storage-agnostic cache injected into loaders."""

    def get(self, key: str) -> Optional[Any]:
        ...

    def put(self, key: str, value: Any) -> None:
        ...

    def clear(self) -> None:
        ...


class LRUTTLCache:
    """LRU cache with TTL expiration.

    Args:
        max_size: Maximum number of entries
        ttl_seconds: Time-to-live in seconds
    """

    def __init__(self, max_size: int = CACHE_MAX_SIZE, ttl_seconds: int = CACHE_TTL_SECONDS):
        self._cache: OrderedDict[str, tuple[Any, datetime]] = OrderedDict()
        self._max_size = max_size
        self._ttl = timedelta(seconds=ttl_seconds)

    def get(self, key: str) -> Optional[Any]:
        """Get cached value if exists and not expired."""
        if key not in self._cache:
            return None

        value, timestamp = self._cache[key]

        # Check TTL expiration
        if datetime.now() - timestamp > self._ttl:
            del self._cache[key]
            logger.debug(f"Cache entry expired for: '{key}'")
            return None

        # Move to end (most recently used)
        self._cache.move_to_end(key)
        logger.debug(f"Cache hit for: '{key}'")
        return value

    def put(self, key: str, value: Any) -> None:
        """Store value in cache with LRU eviction."""
        if key in self._cache:
            self._cache[key] = (value, datetime.now())
            self._cache.move_to_end(key)
            return

        while len(self._cache) >= self._max_size:
            oldest_key = next(iter(self._cache))
            del self._cache[oldest_key]
            logger.debug(f"Cache evicted oldest entry: '{oldest_key}'")

        self._cache[key] = (value, datetime.now())

    def clear(self) -> None:
        """Clear all cached entries."""
        self._cache.clear()
        logger.info("Cache cleared")
