"""Distributed key-value cache used for list caches and lookup memoization."""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

if TYPE_CHECKING:
    from warninglist.config import EngineConfig

logger = logging.getLogger("warninglist.cache")

# (key, value, ttl seconds or None for no expiry)
CacheItem = tuple[bytes, bytes, Optional[int]]


class CacheUnavailableError(Exception):
    """Raised when the distributed cache cannot be reached or times out."""

    pass


class DistributedCache(ABC):
    """Batch read / batch write key-value store shared across processes."""

    @abstractmethod
    async def batch_get(self, keys: list[bytes]) -> list[Optional[bytes]]:
        """
        Fetch several keys in one round trip.

        Returns:
            One entry per key, None where the key is absent

        Raises:
            CacheUnavailableError: If the cache cannot be reached
        """
        ...

    @abstractmethod
    async def batch_set(self, items: list[CacheItem]) -> None:
        """
        Store several keys in one round trip, each with its own expiry.

        Raises:
            CacheUnavailableError: If the cache cannot be reached
        """
        ...

    @abstractmethod
    async def invalidate_prefix(self, prefix: bytes) -> int:
        """
        Delete every key starting with prefix.

        Returns:
            Number of keys removed
        """
        ...

    @abstractmethod
    async def ping(self) -> bool:
        """Return True if the cache is currently usable."""
        ...

    async def close(self) -> None:
        """Release connections, if any."""
        return None


class MemoryCache(DistributedCache):
    """Process-local stand-in for a distributed cache, honoring expiry."""

    def __init__(self) -> None:
        self._data: dict[bytes, tuple[bytes, Optional[float]]] = {}

    def _alive(self, key: bytes) -> bool:
        stored = self._data.get(key)
        if stored is None:
            return False
        _, expires_at = stored
        if expires_at is not None and expires_at <= time.monotonic():
            del self._data[key]
            return False
        return True

    async def batch_get(self, keys: list[bytes]) -> list[Optional[bytes]]:
        return [self._data[k][0] if self._alive(k) else None for k in keys]

    async def batch_set(self, items: list[CacheItem]) -> None:
        now = time.monotonic()
        for key, value, ttl in items:
            self._data[key] = (value, now + ttl if ttl else None)

    async def invalidate_prefix(self, prefix: bytes) -> int:
        doomed = [k for k in self._data if k.startswith(prefix)]
        for key in doomed:
            del self._data[key]
        return len(doomed)

    async def ping(self) -> bool:
        return True

    def __len__(self) -> int:
        return sum(1 for k in list(self._data) if self._alive(k))


class RedisCache(DistributedCache):
    """Redis-backed cache using pipelined, non-transactional batches."""

    SCAN_COUNT = 1000
    UNLINK_CHUNK = 500

    def __init__(self, client: Any, timeout: float = 1.0):
        """
        Initialize the Redis cache.

        Args:
            client: A redis.asyncio.Redis client (binary responses)
            timeout: Upper bound in seconds for any single cache operation
        """
        self.client = client
        self.timeout = timeout

    @classmethod
    def from_url(cls, url: str, timeout: float = 1.0) -> "RedisCache":
        client = redis.from_url(
            url,
            socket_timeout=timeout,
            socket_connect_timeout=timeout,
            decode_responses=False,
        )
        return cls(client, timeout=timeout)

    async def _call(self, operation: str, coro: Any) -> Any:
        try:
            return await asyncio.wait_for(coro, timeout=self.timeout)
        except (RedisError, OSError, asyncio.TimeoutError) as e:
            raise CacheUnavailableError(f"Redis {operation} failed: {e}") from e

    async def batch_get(self, keys: list[bytes]) -> list[Optional[bytes]]:
        if not keys:
            return []
        return list(await self._call("MGET", self.client.mget(keys)))

    async def batch_set(self, items: list[CacheItem]) -> None:
        if not items:
            return

        async def _execute() -> None:
            async with self.client.pipeline(transaction=False) as pipe:
                for key, value, ttl in items:
                    if ttl:
                        pipe.setex(key, ttl, value)
                    else:
                        pipe.set(key, value)
                await pipe.execute()

        await self._call("pipeline SET", _execute())

    async def invalidate_prefix(self, prefix: bytes) -> int:
        async def _execute() -> int:
            keys = [k async for k in self.client.scan_iter(match=prefix + b"*", count=self.SCAN_COUNT)]
            for start in range(0, len(keys), self.UNLINK_CHUNK):
                await self.client.unlink(*keys[start:start + self.UNLINK_CHUNK])
            return len(keys)

        removed = await self._call("UNLINK", _execute())
        logger.debug(f"Removed {removed} keys with prefix {prefix!r}")
        return removed

    async def ping(self) -> bool:
        try:
            return bool(await self._call("PING", self.client.ping()))
        except CacheUnavailableError as e:
            logger.warning(f"Distributed cache unavailable: {e}")
            return False

    async def close(self) -> None:
        await self.client.aclose()


def create_cache(config: "EngineConfig") -> DistributedCache:
    """Build the distributed cache, falling back to a process-local one without a Redis URL."""
    if config.redis_url:
        logger.info("Using Redis for warninglist caches")
        return RedisCache.from_url(config.redis_url, timeout=config.cache_timeout)
    logger.info("No Redis URL configured, warninglist caches are process-local")
    return MemoryCache()
