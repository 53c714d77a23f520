"""
Post Ingestion Service.

Bulk-loads user posts and curated viral posts together with their
embeddings. A batch is all-or-nothing: content rows whose embedding could
not be stored are deleted again before the error is returned.
"""

import time
from typing import Any, Callable, Optional, Sequence, TypeVar

import structlog
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.auth import AuthenticatedUser
from app.core.config import settings
from app.core.database import AsyncSessionLocal
from app.core.errors import (
    ExternalServiceError,
    ForbiddenError,
    NotFoundError,
    RAGError,
    StorageError,
    ValidationError,
)
from app.models import UserPost, UserPostEmbedding, ViralPost, ViralPostEmbedding
from app.services.embedding_service import EmbeddingService, get_embedding_service

from .schemas import DeactivateResponse, IngestionResponse, UserPostInput, ViralPostInput

logger = structlog.get_logger(__name__)

ItemT = TypeVar("ItemT", bound=BaseModel)


def compute_engagement_rate(likes: int, comments: int, shares: int, views: Optional[int]) -> float:
    """Interactions per view as a percentage, 2 decimals; 0.0 without views."""
    if not views or views <= 0:
        return 0.0
    return round((likes + comments + shares) / views * 100, 2)


def count_words(content: str) -> int:
    return len(content.strip().split())


class PostIngestionService:
    """
    Ingest batches of posts with strict all-or-nothing semantics.

    Write sequence:
    1. Insert content rows and capture their ids
    2. Batch-embed the inserted content
    3. Insert one embedding row per content row

    A failure in step 2 or 3 removes everything written for the batch.
    """

    def __init__(
        self,
        embedding_service: Optional[EmbeddingService] = None,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    ):
        self.embedding_service = embedding_service or get_embedding_service()
        self.session_factory = session_factory or AsyncSessionLocal

    # ==================== Validation ====================

    def _validate_batch(
        self,
        posts: Sequence[Any],
        schema: type[ItemT],
        max_items: int,
    ) -> list[ItemT]:
        """Validate every item before any write. First failure aborts the batch."""
        if not posts:
            raise ValidationError(
                "At least one post is required",
                fields={"posts": "must not be empty"},
            )
        if len(posts) > max_items:
            raise ValidationError(
                f"At most {max_items} posts per batch",
                fields={"posts": f"received {len(posts)}, maximum is {max_items}"},
            )

        validated: list[ItemT] = []
        for index, item in enumerate(posts):
            try:
                validated.append(schema.model_validate(item))
            except PydanticValidationError as e:
                first = e.errors()[0]
                field = ".".join(str(part) for part in first.get("loc", ())) or "post"
                raise ValidationError(
                    f"Invalid post at index {index}: {first.get('msg', 'invalid value')}",
                    details={"index": index, "field": field},
                ) from e
        return validated

    # ==================== Pipelines ====================

    async def ingest_user_posts(self, user_id: str, posts: Sequence[Any]) -> IngestionResponse:
        """
        Ingest up to 100 of the caller's own posts.

        Raises:
            ValidationError: Empty or oversized batch, or an invalid item
            ExternalServiceError: Embedding failed (batch rolled back)
            StorageError: A write or the rollback failed
        """
        items = self._validate_batch(posts, UserPostInput, settings.ingest_max_user_posts)

        rows = [
            UserPost(
                user_id=user_id,
                content=item.content,
                linkedin_post_id=item.linkedin_post_id,
                published_at=item.published_at,
                likes=item.likes,
                comments=item.comments,
                shares=item.shares,
                views=item.views,
                engagement_rate=(
                    compute_engagement_rate(item.likes, item.comments, item.shares, item.views)
                    if item.views > 0
                    else None
                ),
                word_count=count_words(item.content),
            )
            for item in items
        ]

        model_version = self.embedding_service.model_version
        return await self._ingest(
            corpus="user",
            rows=rows,
            content_model=UserPost,
            embedding_model=UserPostEmbedding,
            embedding_fk=UserPostEmbedding.post_id,
            make_embedding=lambda row, vector: UserPostEmbedding(
                post_id=row.id,
                user_id=user_id,
                embedding=vector,
                model_version=model_version,
            ),
        )

    async def ingest_viral_posts(
        self,
        curator: AuthenticatedUser,
        posts: Sequence[Any],
    ) -> IngestionResponse:
        """
        Ingest up to 50 curated viral posts. Admin only, checked first.

        Raises:
            ForbiddenError: Caller is not an admin
            ValidationError: Empty or oversized batch, or an invalid item
            ExternalServiceError: Embedding failed (batch rolled back)
            StorageError: A write or the rollback failed
        """
        if not curator.is_admin:
            logger.warning("Viral ingestion refused", user_id=curator.id)
            raise ForbiddenError("Admin capability required to curate viral posts")

        items = self._validate_batch(posts, ViralPostInput, settings.ingest_max_viral_posts)

        rows = [
            ViralPost(
                content=item.content,
                author_industry=item.author_industry,
                author_follower_range=item.author_follower_range,
                likes=item.likes,
                comments=item.comments,
                shares=item.shares,
                views=item.views,
                engagement_rate=compute_engagement_rate(
                    item.likes, item.comments, item.shares, item.views
                ),
                topics=item.topics,
                intent=item.intent.value,
                post_format=item.post_format,
                has_hook=item.has_hook,
                has_cta=item.has_cta,
                uses_emojis=item.uses_emojis,
                uses_hashtags=item.uses_hashtags,
                word_count=count_words(item.content),
                published_at=item.published_at,
                source_url=item.source_url,
                curated_by=curator.id,
                is_active=True,
            )
            for item in items
        ]

        model_version = self.embedding_service.model_version
        return await self._ingest(
            corpus="viral",
            rows=rows,
            content_model=ViralPost,
            embedding_model=ViralPostEmbedding,
            embedding_fk=ViralPostEmbedding.viral_post_id,
            make_embedding=lambda row, vector: ViralPostEmbedding(
                viral_post_id=row.id,
                embedding=vector,
                model_version=model_version,
            ),
        )

    async def deactivate_viral_post(
        self,
        curator: AuthenticatedUser,
        viral_post_id: str,
    ) -> DeactivateResponse:
        """Soft-delete a viral post so retrieval stops returning it."""
        if not curator.is_admin:
            raise ForbiddenError("Admin capability required to curate viral posts")

        async with self.session_factory() as session:
            post = await session.get(ViralPost, viral_post_id)
            if post is None:
                raise NotFoundError("Viral post")
            post.is_active = False
            await session.commit()

        logger.info("Viral post deactivated", viral_post_id=viral_post_id, curator=curator.id)
        return DeactivateResponse(id=viral_post_id, is_active=False)

    # ==================== Shared write path ====================

    async def _ingest(
        self,
        corpus: str,
        rows: list[Any],
        content_model: type,
        embedding_model: type,
        embedding_fk: Any,
        make_embedding: Callable[[Any, list[float]], Any],
    ) -> IngestionResponse:
        start_time = time.time()
        log = logger.bind(corpus=corpus, batch_size=len(rows))
        log.info("Starting post ingestion")

        # 1. Content rows
        try:
            async with self.session_factory() as session:
                session.add_all(rows)
                await session.flush()
                post_ids = [row.id for row in rows]
                await session.commit()
        except Exception as e:
            log.error("Content insert failed", error=str(e))
            raise StorageError("ingest_content", e) from e

        # 2 + 3. Embeddings
        try:
            vectors = await self.embedding_service.embed_batch([row.content for row in rows])
            if len(vectors) != len(rows):
                raise ExternalServiceError(
                    "embedding",
                    ValueError(f"expected {len(rows)} embeddings, got {len(vectors)}"),
                )

            async with self.session_factory() as session:
                session.add_all(make_embedding(row, vector) for row, vector in zip(rows, vectors))
                await session.commit()

        except Exception as e:
            log.error("Embedding stage failed, rolling back batch", error=str(e))
            await self._compensate(content_model, embedding_model, embedding_fk, post_ids)
            if isinstance(e, RAGError):
                raise
            raise StorageError("ingest_embeddings", e) from e

        elapsed_ms = int((time.time() - start_time) * 1000)
        log.info("Post ingestion complete", posts_created=len(post_ids), elapsed_ms=elapsed_ms)

        return IngestionResponse(
            posts_created=len(post_ids),
            embeddings_created=len(post_ids),
            post_ids=post_ids,
        )

    async def _compensate(
        self,
        content_model: type,
        embedding_model: type,
        embedding_fk: Any,
        post_ids: list[str],
    ) -> None:
        """Delete every row written for a failed batch, embeddings first."""
        try:
            async with self.session_factory() as session:
                await session.execute(delete(embedding_model).where(embedding_fk.in_(post_ids)))
                await session.execute(delete(content_model).where(content_model.id.in_(post_ids)))
                await session.commit()

                remaining = await session.scalars(
                    select(content_model.id).where(content_model.id.in_(post_ids))
                )
                orphaned = list(remaining)
        except Exception as e:
            logger.error("Ingestion rollback failed", orphaned_ids=post_ids, error=str(e))
            raise StorageError(
                "ingest_rollback",
                e,
                details={"orphaned_ids": post_ids},
            ) from e

        if orphaned:
            logger.error("Ingestion rollback left rows behind", orphaned_ids=orphaned)
            raise StorageError("ingest_rollback", details={"orphaned_ids": orphaned})

        logger.info("Ingestion batch rolled back", rows_deleted=len(post_ids))


# Singleton instance
_ingestion_service: PostIngestionService | None = None


def get_ingestion_service() -> PostIngestionService:
    """Get or create the ingestion service singleton."""
    global _ingestion_service
    if _ingestion_service is None:
        _ingestion_service = PostIngestionService()
    return _ingestion_service
