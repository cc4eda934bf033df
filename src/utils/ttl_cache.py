"""TTL (time-to-live) cache for async lookups that tolerate slightly stale data."""

import asyncio
import time
from typing import Any


class TTLCache:
    """Keyed value cache whose entries expire ``ttl`` seconds after being set.

    Expired entries are not dropped on read, so a caller whose refresh fails can
    still fall back to the last known value via ``get_stale``.
    """

    def __init__(self, ttl: float):
        self.ttl = ttl
        self.cache: dict[tuple, tuple[float, Any]] = {}
        self.lock = asyncio.Lock()

    async def get(self, key: tuple) -> Any | None:
        """Get value from cache if not expired."""
        async with self.lock:
            if key in self.cache:
                timestamp, value = self.cache[key]
                if time.monotonic() - timestamp < self.ttl:
                    return value
            return None

    async def get_stale(self, key: tuple) -> Any | None:
        """Get value from cache regardless of age."""
        async with self.lock:
            entry = self.cache.get(key)
            return entry[1] if entry else None

    async def set(self, key: tuple, value: Any) -> None:
        async with self.lock:
            self.cache[key] = (time.monotonic(), value)

    async def invalidate(self, key: tuple) -> None:
        async with self.lock:
            self.cache.pop(key, None)

    async def clear(self) -> None:
        async with self.lock:
            self.cache.clear()
