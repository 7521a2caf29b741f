"""Caching services for DevPulse."""

from .memory_cache import MemoryCache, MultiLevelCache
from .redis_cache import RedisCache, get_cache

__all__ = ["MemoryCache", "MultiLevelCache", "RedisCache", "get_cache"]
