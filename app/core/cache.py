"""
Redis connection manager.

Backs state that must be shared across API instances (rate-limit
counters). Retrieval results are cached in the database instead, see
app.services.retrieval_cache.
"""

from typing import Optional

import redis.asyncio as redis

from app.core.config import settings


class RedisCache:
    """
    Redis client wrapper with typed key patterns.

    Key Patterns:
    - ratelimit:{scope}:{identifier} - Fixed-window request counter (TTL: window)
    """

    def __init__(self, url: Optional[str] = None):
        self._url = url or str(settings.redis_url)
        self._client: Optional[redis.Redis] = None

    async def connect(self) -> None:
        """Establish Redis connection."""
        if self._client is None:
            client = redis.from_url(
                self._url,
                encoding="utf-8",
                decode_responses=True,
            )
            await client.ping()
            self._client = client

    async def disconnect(self) -> None:
        """Close Redis connection."""
        if self._client:
            await self._client.aclose()
            self._client = None

    @property
    def connected(self) -> bool:
        return self._client is not None

    @property
    def client(self) -> redis.Redis:
        """Get Redis client, raising if not connected."""
        if self._client is None:
            raise RuntimeError("Redis not connected. Call connect() first.")
        return self._client

    async def increment_window(self, key: str, window_seconds: int) -> tuple[int, int]:
        """
        Increment a fixed-window counter.

        Returns the new count and the seconds left in the window. The TTL
        is set only when the key is created so the window does not slide.
        """
        async with self.client.pipeline(transaction=True) as pipe:
            pipe.incr(key)
            pipe.ttl(key)
            count, ttl = await pipe.execute()

        if ttl < 0:
            await self.client.expire(key, window_seconds)
            ttl = window_seconds
        return int(count), int(ttl)


# Global cache instance
cache = RedisCache()
