"""In-process TTL cache for provider responses."""

import time
from typing import Any, Callable, Dict, Hashable, Optional, Tuple

from market_moves.core.logger import logger


class TTLCache:
    """A minimal in-memory key-value cache whose entries expire after a fixed TTL."""

    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.monotonic) -> None:
        """
        Initialize the cache.

        Args:
            ttl_seconds (float): Lifetime of each entry in seconds.
            clock (Callable[[], float]): Monotonic time source, injectable for tests.
        """
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[Hashable, Tuple[float, Any]] = {}

    def get(self, key: Hashable) -> Optional[Any]:
        """
        Retrieve a cached value if it has not expired.

        Args:
            key (Hashable): The cache key.

        Returns:
            Optional[Any]: The cached value, or None on miss or expiry.
        """
        entry = self._entries.get(key)
        if entry is None:
            logger.debug(f"Cache miss for key: {key}")
            return None

        expires_at, value = entry
        if expires_at <= self._clock():
            del self._entries[key]
            logger.debug(f"Cache expired for key: {key}")
            return None

        logger.debug(f"Cache hit for key: {key}")
        return value

    def set(self, key: Hashable, value: Any) -> None:
        """
        Store a value under ``key`` for the configured TTL.

        Args:
            key (Hashable): The cache key.
            value (Any): The value to store.
        """
        self._entries[key] = (self._clock() + self.ttl_seconds, value)

    def __contains__(self, key: Hashable) -> bool:
        return self.get(key) is not None

    def clear(self) -> None:
        self._entries.clear()
