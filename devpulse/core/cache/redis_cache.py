"""
Redis-backed caching for DevPulse.

Values are stored as JSON under a key prefix. Redis being unreachable is
never fatal: failures are logged and reported as cache misses.
"""

import json
from typing import Any, Dict, Optional

from redis.asyncio import Redis
from redis.exceptions import RedisError

from ..config import get_config
from ..logging import get_logger

logger = get_logger("cache.redis")


class RedisCache:
    """Redis-based caching service."""

    def __init__(
        self, key_prefix: str = "devpulse:cache:", client: Optional[Redis] = None
    ) -> None:
        """
        Initialize Redis cache service.

        Args:
            key_prefix: Prefix for all cache keys
            client: Existing client to use instead of one built from config
        """
        if client is None:
            config = get_config()
            client = Redis(
                host=config.redis.host,
                port=config.redis.port,
                password=config.redis.password,
                db=config.redis.db,
                decode_responses=True,
                socket_timeout=config.redis.socket_timeout,
                socket_connect_timeout=config.redis.socket_connect_timeout,
            )
        self.redis_client = client
        self.key_prefix = key_prefix

    def _get_key(self, key: str) -> str:
        """Get the full Redis key with prefix."""
        return f"{self.key_prefix}{key}"

    async def get(self, key: str) -> Optional[Any]:
        """
        Get a value from the cache.

        Args:
            key: Cache key

        Returns:
            Cached value or None if not found
        """
        try:
            value = await self.redis_client.get(self._get_key(key))
        except RedisError as e:
            logger.warning("Redis get failed", key=key, error=str(e))
            return None

        if value is None:
            return None
        try:
            return json.loads(value)
        except (json.JSONDecodeError, TypeError):
            return value

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        """
        Set a value in the cache.

        Args:
            key: Cache key
            value: JSON-serializable value
            ttl: Time to live in seconds (None for no expiration)

        Returns:
            True if successful, False otherwise
        """
        serialized = json.dumps(value, default=str)
        try:
            if ttl is not None:
                result = await self.redis_client.setex(self._get_key(key), ttl, serialized)
            else:
                result = await self.redis_client.set(self._get_key(key), serialized)
        except RedisError as e:
            logger.warning("Redis set failed", key=key, error=str(e))
            return False
        return bool(result)

    async def delete(self, key: str) -> bool:
        """Delete a value from the cache."""
        try:
            return bool(await self.redis_client.delete(self._get_key(key)))
        except RedisError as e:
            logger.warning("Redis delete failed", key=key, error=str(e))
            return False

    async def clear_pattern(self, pattern: str) -> int:
        """
        Clear all keys matching a pattern.

        Args:
            pattern: Pattern to match (without prefix)

        Returns:
            Number of keys deleted
        """
        try:
            keys = [
                key
                async for key in self.redis_client.scan_iter(
                    match=self._get_key(pattern)
                )
            ]
            if not keys:
                return 0
            return int(await self.redis_client.delete(*keys))
        except RedisError as e:
            logger.warning("Redis clear failed", pattern=pattern, error=str(e))
            return 0

    async def get_stats(self) -> Dict[str, Any]:
        """Get cache statistics."""
        try:
            info = await self.redis_client.info()
        except RedisError as e:
            return {"redis_connected": False, "error": str(e)}
        return {
            "redis_connected": True,
            "redis_version": info.get("redis_version", "unknown"),
            "used_memory": info.get("used_memory_human", "unknown"),
            "connected_clients": info.get("connected_clients", 0),
        }

    async def health_check(self) -> bool:
        """Check if Redis connection is healthy."""
        try:
            await self.redis_client.ping()
            return True
        except RedisError as e:
            logger.warning("Redis health check failed", error=str(e))
            return False


# Global cache instance
_cache_instance: Optional[RedisCache] = None


def get_cache() -> RedisCache:
    """Get the global cache instance."""
    global _cache_instance
    if _cache_instance is None:
        _cache_instance = RedisCache()
    return _cache_instance
