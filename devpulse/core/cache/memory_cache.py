"""
In-process and layered caches.

``MultiLevelCache`` checks a short-lived in-memory layer before Redis and
back-fills the memory layer on Redis hits.
"""

import time
from typing import Any, Callable, Dict, Optional, Tuple

from ..logging import get_logger
from .redis_cache import RedisCache

logger = get_logger("cache.memory")


class MemoryCache:
    """Dictionary cache with per-entry expiry."""

    def __init__(
        self, max_entries: int = 1000, clock: Callable[[], float] = time.monotonic
    ) -> None:
        self.max_entries = max_entries
        self._clock = clock
        self._entries: Dict[str, Tuple[float, Any]] = {}
        self.hits = 0
        self.misses = 0

    def get(self, key: str) -> Optional[Any]:
        entry = self._entries.get(key)
        if entry is None:
            self.misses += 1
            return None
        expires_at, value = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            self.misses += 1
            return None
        self.hits += 1
        return value

    def set(self, key: str, value: Any, ttl: int) -> None:
        if len(self._entries) >= self.max_entries and key not in self._entries:
            self._evict()
        self._entries[key] = (self._clock() + ttl, value)

    def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    def delete_prefix(self, prefix: str) -> int:
        keys = [key for key in self._entries if key.startswith(prefix)]
        for key in keys:
            del self._entries[key]
        return len(keys)

    def clear(self) -> None:
        self._entries.clear()

    def _evict(self) -> None:
        now = self._clock()
        expired = [k for k, (expires_at, _) in self._entries.items() if expires_at <= now]
        for key in expired:
            del self._entries[key]
        if len(self._entries) >= self.max_entries:
            # Drop the entry closest to expiry
            oldest = min(self._entries, key=lambda k: self._entries[k][0])
            del self._entries[oldest]

    def get_stats(self) -> Dict[str, Any]:
        return {"entries": len(self._entries), "hits": self.hits, "misses": self.misses}


class MultiLevelCache:
    """Memory cache in front of an optional Redis cache."""

    def __init__(
        self,
        memory: Optional[MemoryCache] = None,
        redis_cache: Optional[RedisCache] = None,
        memory_ttl: int = 300,
        redis_ttl: int = 900,
    ) -> None:
        self.memory = memory or MemoryCache()
        self.redis = redis_cache
        self.memory_ttl = memory_ttl
        self.redis_ttl = redis_ttl

    async def get(self, key: str) -> Optional[Any]:
        value = self.memory.get(key)
        if value is not None:
            return value
        if self.redis is None:
            return None
        value = await self.redis.get(key)
        if value is not None:
            self.memory.set(key, value, self.memory_ttl)
        return value

    async def set(self, key: str, value: Any) -> None:
        self.memory.set(key, value, self.memory_ttl)
        if self.redis is not None:
            await self.redis.set(key, value, ttl=self.redis_ttl)

    async def delete(self, key: str) -> None:
        self.memory.delete(key)
        if self.redis is not None:
            await self.redis.delete(key)

    async def delete_prefix(self, prefix: str) -> None:
        self.memory.delete_prefix(prefix)
        if self.redis is not None:
            await self.redis.clear_pattern(f"{prefix}*")

    def get_stats(self) -> Dict[str, Any]:
        return {"memory": self.memory.get_stats(), "redis_enabled": self.redis is not None}
