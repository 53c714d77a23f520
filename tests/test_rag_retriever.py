"""
RAG retriever tests.
"""

import pytest

from app.core.auth import AuthenticatedUser
from app.models import RetrievalCacheEntry, ViralPost, ViralPostEmbedding
from app.services.post_ingestion import PostIngestionService
from app.services.rag_retriever import RAGRetriever
from tests.fakes import vector_for

ADMIN = AuthenticatedUser(id="admin-1", email="admin@example.com", is_admin=True)


@pytest.mark.asyncio
async def test_cache_hit_falls_back_when_cached_virals_are_deactivated(
    retriever: RAGRetriever,
    ingestion_service: PostIngestionService,
    sample_viral_post,
):
    second = {**sample_viral_post, "content": "My startup failed twice. The third time I listened."}
    ingested = await ingestion_service.ingest_viral_posts(ADMIN, [sample_viral_post, second])

    first = await retriever.retrieve("u1", "hard lessons", intent="storytelling", top_k_viral=1)
    assert first.cache_hit is False
    assert len(first.viral_post_ids) == 1

    await ingestion_service.deactivate_viral_post(ADMIN, first.viral_post_ids[0])
    again = await retriever.retrieve("u1", "hard lessons", intent="storytelling", top_k_viral=1)

    remaining = set(ingested.post_ids) - set(first.viral_post_ids)
    assert again.cache_hit is True
    assert again.viral_post_ids == list(remaining)
    assert again.viral_posts[0].similarity == 0.5


@pytest.mark.asyncio
async def test_fallback_virals_keep_placeholder_score_on_cache_hit(
    retriever: RAGRetriever, session_factory
):
    """Vectors from a retired model never match, so the cached ids are engagement-ranked."""
    async with session_factory() as session:
        for i in range(3):
            post = ViralPost(
                content=f"Big announcement number {i}",
                topics=["launch"],
                intent="promocional",
                engagement_rate=float(i),
                word_count=3,
                curated_by="admin",
            )
            session.add(post)
            await session.flush()
            session.add(ViralPostEmbedding(
                viral_post_id=post.id,
                embedding=vector_for(post.content),
                model_version="retired-embedding-model",
            ))
        await session.commit()

    first = await retriever.retrieve("u1", "product launch", intent="promocional")
    second = await retriever.retrieve("u1", "product launch", intent="promocional")

    assert second.cache_hit is True
    assert second.viral_post_ids == first.viral_post_ids
    assert [p.similarity for p in second.viral_posts] == [0.5, 0.5, 0.5]

    async with session_factory() as session:
        entry = await session.get(RetrievalCacheEntry, first.query_hash)
    assert entry.viral_fallback is True


@pytest.mark.asyncio
async def test_similarity_matches_are_rescored_on_cache_hit(
    retriever: RAGRetriever,
    ingestion_service: PostIngestionService,
    sample_viral_post,
):
    await ingestion_service.ingest_viral_posts(ADMIN, [sample_viral_post])

    first = await retriever.retrieve("u1", "hard lessons", intent="storytelling")
    second = await retriever.retrieve("u1", "hard lessons", intent="storytelling")

    assert second.cache_hit is True
    assert second.viral_posts[0].similarity == pytest.approx(first.viral_posts[0].similarity)
