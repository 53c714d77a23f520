"""
Retrieval Cache.

Memoizes the ids selected for a (user, topic, intent) so repeated topics
skip embedding and similarity search. Entries hold ids only; readers
re-resolve them to current content.

Every operation is best-effort: a storage error is logged and behaves like
a miss (get) or a failed BestEffortResult (put).
"""

import hashlib
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

import structlog
from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.config import settings
from app.core.database import AsyncSessionLocal
from app.core.errors import BestEffortResult
from app.models import RetrievalCacheEntry

logger = structlog.get_logger(__name__)

WILDCARD_INTENT = "all"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes even for timezone-aware columns
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def build_key(user_id: str, topic: str, intent: Optional[str] = None) -> str:
    """Stable MD5 key over user id, trimmed topic and intent."""
    raw = f"{user_id}:{topic.strip()}:{intent or WILDCARD_INTENT}"
    return hashlib.md5(raw.encode("utf-8")).hexdigest()


@dataclass
class CacheHit:
    query_hash: str
    query_embedding: list[float]
    user_post_ids: list[str]
    viral_post_ids: list[str]
    hit_count: int
    created_at: datetime
    viral_fallback: bool = False


class RetrievalCache:
    """Time-bounded cache of retrieval results, stored in the database."""

    def __init__(
        self,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
        ttl_hours: Optional[float] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.session_factory = session_factory or AsyncSessionLocal
        hours = ttl_hours if ttl_hours is not None else settings.rag_cache_ttl_hours
        self.ttl = timedelta(hours=hours)
        self.clock = clock or _utcnow

    def _is_fresh(self, entry: RetrievalCacheEntry, now: datetime) -> bool:
        return now - _as_utc(entry.created_at) < self.ttl

    async def get(self, key: str, user_id: str) -> Optional[CacheHit]:
        """Return a fresh entry for ``key`` or None. Expired entries are misses."""
        now = self.clock()
        try:
            async with self.session_factory() as session:
                entry = await session.get(RetrievalCacheEntry, key)
                if entry is None or entry.user_id != user_id:
                    logger.debug("Retrieval cache miss", query_hash=key)
                    return None
                if not self._is_fresh(entry, now):
                    logger.debug("Retrieval cache entry expired", query_hash=key)
                    return None

                hit = CacheHit(
                    query_hash=entry.query_hash,
                    query_embedding=list(entry.query_embedding),
                    user_post_ids=list(entry.top_user_posts or []),
                    viral_post_ids=list(entry.top_viral_posts or []),
                    hit_count=entry.hit_count + 1,
                    created_at=_as_utc(entry.created_at),
                    viral_fallback=bool(entry.viral_fallback),
                )

                try:
                    await session.execute(
                        update(RetrievalCacheEntry)
                        .where(RetrievalCacheEntry.query_hash == key)
                        .values(hit_count=RetrievalCacheEntry.hit_count + 1)
                    )
                    await session.commit()
                except Exception as e:
                    await session.rollback()
                    logger.warning("Failed to record cache hit", query_hash=key, error=str(e))

        except Exception as e:
            logger.warning("Retrieval cache read failed", query_hash=key, error=str(e))
            return None

        logger.info("Retrieval cache hit", query_hash=key, hit_count=hit.hit_count)
        return hit

    async def put(
        self,
        key: str,
        user_id: str,
        query_vector: list[float],
        user_post_ids: list[str],
        viral_post_ids: list[str],
        viral_fallback: bool = False,
    ) -> BestEffortResult[str]:
        """
        Upsert an entry.

        Overwriting an existing key starts the entry over: payload replaced,
        expiry reset and hit_count back to 0. The user's expired entries are
        evicted in the same write.

        ``viral_fallback`` marks viral ids that came from the engagement
        ranking, so readers do not score them by similarity.
        """
        now = self.clock()
        try:
            async with self.session_factory() as session:
                await session.execute(
                    delete(RetrievalCacheEntry).where(
                        RetrievalCacheEntry.user_id == user_id,
                        RetrievalCacheEntry.expires_at <= now,
                        RetrievalCacheEntry.query_hash != key,
                    )
                )

                entry = await session.get(RetrievalCacheEntry, key)
                if entry is None:
                    entry = RetrievalCacheEntry(query_hash=key)
                    session.add(entry)

                entry.user_id = user_id
                entry.query_embedding = list(query_vector)
                entry.top_user_posts = list(user_post_ids)
                entry.top_viral_posts = list(viral_post_ids)
                entry.viral_fallback = viral_fallback
                entry.hit_count = 0
                entry.created_at = now
                entry.expires_at = now + self.ttl

                await session.commit()

        except Exception as e:
            logger.warning("Retrieval cache write failed", query_hash=key, error=str(e))
            return BestEffortResult.failure("cache_write", e)

        logger.debug(
            "Retrieval cache stored",
            query_hash=key,
            user_posts=len(user_post_ids),
            viral_posts=len(viral_post_ids),
        )
        return BestEffortResult.success("cache_write", key)
