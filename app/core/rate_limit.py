"""
Per-user request rate limiting.

The counter store is an injected interface: an in-process store for
single-instance deployments and tests, and a Redis store when several API
instances must share one budget.
"""

import asyncio
import time
from abc import ABC, abstractmethod
from typing import Callable, Optional

import structlog

from app.core.cache import RedisCache
from app.core.config import settings
from app.core.errors import RateLimitError

logger = structlog.get_logger(__name__)


class RateLimitStore(ABC):
    """Fixed-window counter storage."""

    @abstractmethod
    async def hit(self, key: str, window_seconds: int) -> tuple[int, int]:
        """Record one request; return (count in window, seconds until reset)."""

    @abstractmethod
    async def reset(self) -> None:
        """Forget every counter."""


class InMemoryRateLimitStore(RateLimitStore):
    """
    Dictionary-backed store. State lives on the instance, not the module.

    Expired windows are swept out at most once per window length.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._windows: dict[str, tuple[int, float]] = {}
        self._next_sweep = 0.0
        self._lock = asyncio.Lock()

    async def hit(self, key: str, window_seconds: int) -> tuple[int, int]:
        async with self._lock:
            now = self._clock()
            if now >= self._next_sweep:
                self._evict_expired(now)
                self._next_sweep = now + window_seconds
            count, reset_at = self._windows.get(key, (0, 0.0))
            if now >= reset_at:
                count, reset_at = 0, now + window_seconds
            count += 1
            self._windows[key] = (count, reset_at)
            return count, max(1, int(reset_at - now))

    def _evict_expired(self, now: float) -> None:
        expired = [key for key, (_, reset_at) in self._windows.items() if now >= reset_at]
        for key in expired:
            del self._windows[key]

    async def reset(self) -> None:
        async with self._lock:
            self._windows.clear()


class RedisRateLimitStore(RateLimitStore):
    """Redis-backed store shared across instances."""

    KEY_PREFIX = "ratelimit"

    def __init__(self, redis_cache: RedisCache):
        self._cache = redis_cache

    async def hit(self, key: str, window_seconds: int) -> tuple[int, int]:
        return await self._cache.increment_window(f"{self.KEY_PREFIX}:{key}", window_seconds)

    async def reset(self) -> None:
        async for key in self._cache.client.scan_iter(match=f"{self.KEY_PREFIX}:*"):
            await self._cache.client.delete(key)


class RateLimiter:
    """
    Applies per-scope request budgets.

    Scopes: generate, retrieve, ingest. A store failure is logged and the
    request is let through.
    """

    def __init__(
        self,
        store: RateLimitStore,
        limits: Optional[dict[str, int]] = None,
        window_seconds: Optional[int] = None,
    ):
        self.store = store
        self.window_seconds = window_seconds or settings.rate_limit_window_seconds
        self.limits = limits or {
            "generate": settings.rate_limit_generate_per_window,
            "retrieve": settings.rate_limit_retrieve_per_window,
            "ingest": settings.rate_limit_ingest_per_window,
        }

    async def check(self, scope: str, identifier: str) -> None:
        """Raise RateLimitError when ``identifier`` exhausted its budget for ``scope``."""
        limit = self.limits.get(scope)
        if not limit:
            return

        try:
            count, retry_after = await self.store.hit(f"{scope}:{identifier}", self.window_seconds)
        except Exception as e:
            logger.warning("Rate limit store unavailable", scope=scope, error=str(e))
            return

        if count > limit:
            logger.info(
                "Rate limit exceeded",
                scope=scope,
                identifier=identifier,
                count=count,
                limit=limit,
            )
            raise RateLimitError(retry_after=retry_after)


def build_rate_limit_store(redis_cache: Optional[RedisCache] = None) -> RateLimitStore:
    """Select the store configured by ``rate_limit_backend``."""
    if settings.rate_limit_backend == "redis" and redis_cache is not None and redis_cache.connected:
        return RedisRateLimitStore(redis_cache)
    if settings.rate_limit_backend == "redis":
        logger.warning("Redis unavailable, falling back to in-memory rate limiting")
    return InMemoryRateLimitStore()
