"""Cache abstraction for registry lookups and read-heavy queries.

Backends are created with ``create_cache`` and passed to the components
that use them. There is no module-level cache instance; callers own the
lifetime and invalidate explicitly.
"""

import asyncio
import fnmatch
import json
import time
from typing import Any

import redis.asyncio as redis

from .config import Settings
from .logging import get_context_logger

logger = get_context_logger(__name__)

# Cache key prefixes
KEY_PREFIX = "ehs:"


class CacheBackend:
    """Abstract cache backend interface."""

    async def get(self, key: str) -> Any | None:
        """Get value from cache."""
        raise NotImplementedError

    async def set(self, key: str, value: Any, ttl: int | None = None) -> bool:
        """Set value in cache."""
        raise NotImplementedError

    async def delete(self, key: str) -> bool:
        """Delete value from cache."""
        raise NotImplementedError

    async def delete_pattern(self, pattern: str) -> int:
        """Delete all keys matching pattern."""
        raise NotImplementedError

    async def exists(self, key: str) -> bool:
        """Check if key exists."""
        raise NotImplementedError

    async def invalidate(self) -> int:
        """Drop every key owned by this application."""
        return await self.delete_pattern(f"{KEY_PREFIX}*")

    async def close(self) -> None:
        """Close the cache connection."""
        pass


class InMemoryCache(CacheBackend):
    """In-process cache holding key -> (value, expiry)."""

    def __init__(self):
        self._cache: dict[str, tuple[Any, float | None]] = {}
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> Any | None:
        async with self._lock:
            if key not in self._cache:
                return None

            value, expires_at = self._cache[key]
            if expires_at and time.time() > expires_at:
                del self._cache[key]
                return None

            return value

    async def set(self, key: str, value: Any, ttl: int | None = None) -> bool:
        async with self._lock:
            expires_at = time.time() + ttl if ttl else None
            self._cache[key] = (value, expires_at)
            return True

    async def delete(self, key: str) -> bool:
        async with self._lock:
            if key in self._cache:
                del self._cache[key]
                return True
            return False

    async def delete_pattern(self, pattern: str) -> int:
        async with self._lock:
            keys_to_delete = [
                k for k in self._cache.keys() if fnmatch.fnmatch(k, pattern)
            ]
            for key in keys_to_delete:
                del self._cache[key]
            return len(keys_to_delete)

    async def exists(self, key: str) -> bool:
        return await self.get(key) is not None


class RedisCache(CacheBackend):
    """Redis-based cache for production.

    Cache failures are logged and reported as misses; they never fail the
    caller.
    """

    def __init__(self, redis_client):
        self._redis = redis_client

    async def get(self, key: str) -> Any | None:
        try:
            data = await self._redis.get(key)
            if data:
                return json.loads(data)
            return None
        except (redis.RedisError, ValueError) as e:
            logger.warning(f"Redis cache get error: {e}")
            return None

    async def set(self, key: str, value: Any, ttl: int | None = None) -> bool:
        try:
            data = json.dumps(value, default=str)
            if ttl:
                await self._redis.setex(key, ttl, data)
            else:
                await self._redis.set(key, data)
            return True
        except redis.RedisError as e:
            logger.warning(f"Redis cache set error: {e}")
            return False

    async def delete(self, key: str) -> bool:
        try:
            result = await self._redis.delete(key)
            return result > 0
        except redis.RedisError as e:
            logger.warning(f"Redis cache delete error: {e}")
            return False

    async def delete_pattern(self, pattern: str) -> int:
        try:
            cursor = 0
            deleted = 0
            while True:
                cursor, keys = await self._redis.scan(cursor, match=pattern, count=100)
                if keys:
                    deleted += await self._redis.delete(*keys)
                if cursor == 0:
                    break
            return deleted
        except redis.RedisError as e:
            logger.warning(f"Redis cache delete pattern error: {e}")
            return 0

    async def exists(self, key: str) -> bool:
        try:
            return await self._redis.exists(key) > 0
        except redis.RedisError as e:
            logger.warning(f"Redis cache exists error: {e}")
            return False

    async def close(self) -> None:
        await self._redis.aclose()


def create_cache(settings: Settings) -> CacheBackend:
    """Create the cache backend selected by settings."""
    if settings.cache_backend == "redis":
        client = redis.from_url(settings.redis_url)
        logger.info("Using Redis cache backend")
        return RedisCache(client)

    logger.info("Using in-memory cache backend")
    return InMemoryCache()


# =========================
# Cache Key Builders
# =========================


def registry_company_key(company_number: str) -> str:
    """Build cache key for a company registry lookup."""
    return f"{KEY_PREFIX}registry:company:{company_number}"
