"""
RAG (Retrieval Augmented Generation) Retriever Service.

Selects the grounding posts for a topic: the user's own most similar posts
and the most similar viral posts for the requested intent, memoized in the
retrieval cache.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Optional

import structlog

from app.core.config import settings
from app.services.embedding_service import EmbeddingService, get_embedding_service
from app.services.retrieval_cache import RetrievalCache, build_key
from app.services.similarity_store import SimilarityStore, SimilarPost

logger = structlog.get_logger(__name__)


@dataclass
class RetrievalResult:
    user_posts: list[SimilarPost]
    viral_posts: list[SimilarPost]
    cache_hit: bool
    query_hash: str
    query_embedding: list[float] = field(default_factory=list)

    @property
    def user_post_ids(self) -> list[str]:
        return [p.id for p in self.user_posts]

    @property
    def viral_post_ids(self) -> list[str]:
        return [p.id for p in self.viral_posts]


def clamp_top_k(value: Optional[int], default: int, maximum: int) -> int:
    if value is None:
        return default
    return max(1, min(int(value), maximum))


class RAGRetriever:
    """
    Semantic retrieval over the user and viral corpora.

    Flow:
    - Cache lookup (optional); a hit re-resolves the cached ids
    - Miss: embed the topic, query both corpora concurrently
    - Empty viral result falls back to engagement ranking for the intent,
      on a miss and when every cached viral post has since been deactivated
    - The new entry is written before returning
    """

    def __init__(
        self,
        embedding_service: Optional[EmbeddingService] = None,
        store: Optional[SimilarityStore] = None,
        cache: Optional[RetrievalCache] = None,
    ):
        self.embedding_service = embedding_service or get_embedding_service()
        self.store = store or SimilarityStore(model_version=self.embedding_service.model_version)
        self.cache = cache or RetrievalCache()

    async def retrieve(
        self,
        user_id: str,
        topic: str,
        intent: Optional[str] = None,
        top_k_user: Optional[int] = None,
        top_k_viral: Optional[int] = None,
        use_cache: bool = True,
        query_vector: Optional[list[float]] = None,
    ) -> RetrievalResult:
        """
        Retrieve grounding posts for a topic.

        Args:
            user_id: Owner of the user corpus to search
            topic: Free-text topic
            intent: Viral corpus filter (None searches all intents)
            top_k_user: User posts to return (clamped to the configured max)
            top_k_viral: Viral posts to return (clamped to the configured max)
            use_cache: Read and write the retrieval cache
            query_vector: Precomputed topic embedding, skips the embed call

        Raises:
            ExternalServiceError: If the topic has to be embedded and that fails
        """
        k_user = clamp_top_k(top_k_user, settings.rag_default_top_k_user, settings.rag_max_top_k_user)
        k_viral = clamp_top_k(
            top_k_viral, settings.rag_default_top_k_viral, settings.rag_max_top_k_viral
        )
        query_hash = build_key(user_id, topic, intent)

        if use_cache:
            hit = await self.cache.get(query_hash, user_id)
            if hit is not None:
                # Fallback entries were never matched on similarity; keep their placeholder score
                viral_vector = None if hit.viral_fallback else hit.query_embedding
                user_posts, viral_posts = await asyncio.gather(
                    self.store.fetch_user_posts_by_ids(
                        user_id, hit.user_post_ids[:k_user], hit.query_embedding
                    ),
                    self.store.fetch_viral_posts_by_ids(
                        hit.viral_post_ids[:k_viral], viral_vector
                    ),
                )
                if not viral_posts:
                    logger.info(
                        "Cached viral posts no longer active, using engagement fallback",
                        intent=intent,
                    )
                    viral_posts = await self.store.top_viral_by_engagement(intent, k_viral)
                return RetrievalResult(
                    user_posts=user_posts,
                    viral_posts=viral_posts,
                    cache_hit=True,
                    query_hash=query_hash,
                    query_embedding=hit.query_embedding,
                )

        if query_vector is None:
            query_vector = await self.embedding_service.embed(topic.strip())

        user_posts, viral_posts = await asyncio.gather(
            self.store.find_similar_user_posts(user_id, query_vector, k_user),
            self.store.find_similar_viral_posts(query_vector, intent, k_viral),
        )

        viral_fallback = not viral_posts
        if viral_fallback:
            logger.info("No similar viral posts, using engagement fallback", intent=intent)
            viral_posts = await self.store.top_viral_by_engagement(intent, k_viral)

        if use_cache and (user_posts or viral_posts):
            write = await self.cache.put(
                query_hash,
                user_id,
                query_vector,
                [p.id for p in user_posts],
                [p.id for p in viral_posts],
                viral_fallback=viral_fallback,
            )
            if not write.ok:
                logger.warning("Retrieval not cached", query_hash=query_hash, error=write.error)

        logger.info(
            "Retrieval complete",
            user_id=user_id,
            intent=intent,
            user_posts=len(user_posts),
            viral_posts=len(viral_posts),
        )
        return RetrievalResult(
            user_posts=user_posts,
            viral_posts=viral_posts,
            cache_hit=False,
            query_hash=query_hash,
            query_embedding=query_vector,
        )
