"""
Retrieval API routes.

Exposes the retrieval step on its own, mainly for previewing which posts
would ground a generation.
"""

from typing import Any

import structlog
from fastapi import APIRouter, Depends
from pydantic import BaseModel

from app.api.deps import get_retriever, rate_limit
from app.core.auth import AuthenticatedUser
from app.services.rag_retriever import RAGRetriever
from app.services.similarity_store import SimilarPost
from app.utils.validators import validate_retrieve_request

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/rag", tags=["retrieval"])


class RagRetrieveRequest(BaseModel):
    """Raw request body; field rules are enforced by the domain validator."""
    topic: Any = None
    intent: Any = None
    top_k_user: Any = None
    top_k_viral: Any = None
    use_cache: Any = None


class RagRetrieveResponse(BaseModel):
    user_posts: list[SimilarPost]
    viral_posts: list[SimilarPost]
    cache_hit: bool
    query_hash: str


@router.post("/retrieve", response_model=RagRetrieveResponse)
async def retrieve(
    request: RagRetrieveRequest,
    user: AuthenticatedUser = Depends(rate_limit("retrieve")),
    retriever: RAGRetriever = Depends(get_retriever),
) -> RagRetrieveResponse:
    """
    Return the caller's most similar posts and the most similar viral posts.

    Does not consume credits.
    """
    params = validate_retrieve_request(request.model_dump())

    result = await retriever.retrieve(
        user_id=user.id,
        topic=params.topic,
        intent=params.intent,
        top_k_user=params.top_k_user,
        top_k_viral=params.top_k_viral,
        use_cache=params.use_cache,
    )

    logger.info(
        "Retrieve request served",
        user_id=user.id,
        cache_hit=result.cache_hit,
        user_posts=len(result.user_posts),
        viral_posts=len(result.viral_posts),
    )

    return RagRetrieveResponse(
        user_posts=result.user_posts,
        viral_posts=result.viral_posts,
        cache_hit=result.cache_hit,
        query_hash=result.query_hash,
    )
