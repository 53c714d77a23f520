"""
Similarity Store.

Nearest-neighbour lookups over the two embedded corpora: a user's own
posts and the curated viral corpus. Only vectors tagged with the current
embedding model are compared, so a model upgrade never mixes vector
spaces.

Lookups degrade to empty results on storage errors or timeouts; retrieval
failing must not block generation.
"""

import asyncio
from datetime import datetime
from typing import Awaitable, Callable, Literal, Optional, TypeVar

import structlog
from pydantic import BaseModel
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.config import settings
from app.core.database import AsyncSessionLocal
from app.models import UserPost, UserPostEmbedding, ViralPost, ViralPostEmbedding
from app.services.embedding_service import cosine_similarity

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class SimilarPost(BaseModel):
    """A post retrieved as grounding context."""
    id: str
    content: str
    similarity: float
    engagement_rate: Optional[float] = None
    type: Literal["user", "viral"]


def _recency_key(created_at: Optional[datetime]) -> float:
    return created_at.timestamp() if created_at else 0.0


class SimilarityStore:
    """Query embedded posts by cosine similarity."""

    def __init__(
        self,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
        model_version: Optional[str] = None,
        timeout: Optional[float] = None,
        fallback_similarity: Optional[float] = None,
    ):
        self.session_factory = session_factory or AsyncSessionLocal
        self.model_version = model_version or settings.embedding_model
        self.timeout = timeout if timeout is not None else settings.similarity_store_timeout
        self.fallback_similarity = (
            fallback_similarity
            if fallback_similarity is not None
            else settings.viral_fallback_similarity
        )

    async def _guarded(self, operation: str, call: Callable[[], Awaitable[list[T]]]) -> list[T]:
        """Run a query with the store timeout; errors become an empty result."""
        try:
            return await asyncio.wait_for(call(), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.error("Similarity store timed out", operation=operation, timeout=self.timeout)
        except Exception as e:
            logger.error("Similarity store query failed", operation=operation, error=str(e))
        return []

    # ==================== User corpus ====================

    async def find_similar_user_posts(
        self,
        user_id: str,
        query_vector: list[float],
        limit: int,
    ) -> list[SimilarPost]:
        """The user's own posts, most similar first, ties broken by most recent."""

        async def _query() -> list[SimilarPost]:
            async with self.session_factory() as session:
                stmt = (
                    select(
                        UserPost.id,
                        UserPost.content,
                        UserPost.created_at,
                        UserPostEmbedding.embedding,
                    )
                    .join(UserPostEmbedding, UserPostEmbedding.post_id == UserPost.id)
                    .where(
                        UserPost.user_id == user_id,
                        UserPostEmbedding.user_id == user_id,
                        UserPostEmbedding.model_version == self.model_version,
                    )
                )
                rows = (await session.execute(stmt)).all()

            scored = [
                (cosine_similarity(query_vector, row.embedding), _recency_key(row.created_at), row)
                for row in rows
                if len(row.embedding) == len(query_vector)
            ]
            scored.sort(key=lambda item: (item[0], item[1]), reverse=True)
            return [
                SimilarPost(id=row.id, content=row.content, similarity=score, type="user")
                for score, _, row in scored[:limit]
            ]

        results = await self._guarded("find_similar_user_posts", _query)
        logger.debug("User posts retrieved", user_id=user_id, count=len(results))
        return results

    async def fetch_user_posts_by_ids(
        self,
        user_id: str,
        ids: list[str],
        query_vector: Optional[list[float]] = None,
    ) -> list[SimilarPost]:
        """Re-resolve cached ids in their cached order."""
        if not ids:
            return []

        async def _query() -> list[SimilarPost]:
            async with self.session_factory() as session:
                stmt = (
                    select(UserPost.id, UserPost.content, UserPostEmbedding.embedding)
                    .outerjoin(UserPostEmbedding, UserPostEmbedding.post_id == UserPost.id)
                    .where(UserPost.id.in_(ids), UserPost.user_id == user_id)
                )
                rows = {row.id: row for row in (await session.execute(stmt)).all()}

            return [
                SimilarPost(
                    id=post_id,
                    content=rows[post_id].content,
                    similarity=self._rescore(query_vector, rows[post_id].embedding),
                    type="user",
                )
                for post_id in ids
                if post_id in rows
            ]

        return await self._guarded("fetch_user_posts_by_ids", _query)

    # ==================== Viral corpus ====================

    async def find_similar_viral_posts(
        self,
        query_vector: list[float],
        intent: Optional[str] = None,
        limit: int = 5,
    ) -> list[SimilarPost]:
        """Active viral posts, optionally restricted to one intent, most similar first."""

        async def _query() -> list[SimilarPost]:
            async with self.session_factory() as session:
                stmt = (
                    select(
                        ViralPost.id,
                        ViralPost.content,
                        ViralPost.engagement_rate,
                        ViralPost.created_at,
                        ViralPostEmbedding.embedding,
                    )
                    .join(ViralPostEmbedding, ViralPostEmbedding.viral_post_id == ViralPost.id)
                    .where(
                        ViralPost.is_active.is_(True),
                        ViralPostEmbedding.model_version == self.model_version,
                    )
                )
                if intent:
                    stmt = stmt.where(ViralPost.intent == intent)
                rows = (await session.execute(stmt)).all()

            scored = [
                (cosine_similarity(query_vector, row.embedding), _recency_key(row.created_at), row)
                for row in rows
                if len(row.embedding) == len(query_vector)
            ]
            scored.sort(key=lambda item: (item[0], item[1]), reverse=True)
            return [
                SimilarPost(
                    id=row.id,
                    content=row.content,
                    similarity=score,
                    engagement_rate=float(row.engagement_rate),
                    type="viral",
                )
                for score, _, row in scored[:limit]
            ]

        results = await self._guarded("find_similar_viral_posts", _query)
        logger.debug("Viral posts retrieved", intent=intent, count=len(results))
        return results

    async def top_viral_by_engagement(
        self,
        intent: Optional[str],
        limit: int,
    ) -> list[SimilarPost]:
        """
        Fallback ranking by engagement rate alone.

        No semantic comparison happens here, so every result carries the
        fixed placeholder similarity.
        """

        async def _query() -> list[SimilarPost]:
            async with self.session_factory() as session:
                stmt = select(ViralPost.id, ViralPost.content, ViralPost.engagement_rate).where(
                    ViralPost.is_active.is_(True)
                )
                if intent:
                    stmt = stmt.where(ViralPost.intent == intent)
                stmt = stmt.order_by(
                    ViralPost.engagement_rate.desc(),
                    ViralPost.created_at.desc(),
                ).limit(limit)
                rows = (await session.execute(stmt)).all()

            return [
                SimilarPost(
                    id=row.id,
                    content=row.content,
                    similarity=self.fallback_similarity,
                    engagement_rate=float(row.engagement_rate),
                    type="viral",
                )
                for row in rows
            ]

        results = await self._guarded("top_viral_by_engagement", _query)
        logger.info("Viral fallback by engagement", intent=intent, count=len(results))
        return results

    async def fetch_viral_posts_by_ids(
        self,
        ids: list[str],
        query_vector: Optional[list[float]] = None,
    ) -> list[SimilarPost]:
        """
        Re-resolve cached viral ids in cached order, skipping deactivated posts.

        Without ``query_vector`` every post carries the placeholder similarity.
        """
        if not ids:
            return []

        async def _query() -> list[SimilarPost]:
            async with self.session_factory() as session:
                stmt = (
                    select(
                        ViralPost.id,
                        ViralPost.content,
                        ViralPost.engagement_rate,
                        ViralPostEmbedding.embedding,
                    )
                    .outerjoin(ViralPostEmbedding, ViralPostEmbedding.viral_post_id == ViralPost.id)
                    .where(ViralPost.id.in_(ids), ViralPost.is_active.is_(True))
                )
                rows = {row.id: row for row in (await session.execute(stmt)).all()}

            return [
                SimilarPost(
                    id=post_id,
                    content=rows[post_id].content,
                    similarity=self._rescore(query_vector, rows[post_id].embedding),
                    engagement_rate=float(rows[post_id].engagement_rate),
                    type="viral",
                )
                for post_id in ids
                if post_id in rows
            ]

        return await self._guarded("fetch_viral_posts_by_ids", _query)

    # ==================== Maintenance ====================

    async def count_stale_embeddings(self) -> dict[str, int]:
        """Count vectors produced by a model other than the current one."""
        async with self.session_factory() as session:
            user_stale = await session.scalar(
                select(func.count())
                .select_from(UserPostEmbedding)
                .where(UserPostEmbedding.model_version != self.model_version)
            )
            viral_stale = await session.scalar(
                select(func.count())
                .select_from(ViralPostEmbedding)
                .where(ViralPostEmbedding.model_version != self.model_version)
            )
        counts = {"user_posts": int(user_stale or 0), "viral_posts": int(viral_stale or 0)}
        if any(counts.values()):
            logger.warning(
                "Embeddings from a previous model found; re-embedding required",
                current_model=self.model_version,
                **counts,
            )
        return counts

    def _rescore(
        self,
        query_vector: Optional[list[float]],
        embedding: Optional[list[float]],
    ) -> float:
        # Cached ids keep their order. Without two comparable vectors the placeholder applies.
        if not query_vector or not embedding or len(query_vector) != len(embedding):
            return self.fallback_similarity
        return cosine_similarity(query_vector, embedding)
