"""
Post Ingestion API Routes.

Bulk-loads the caller's historical posts and, for admins, the curated
viral corpus. Batches are all-or-nothing.
"""

import structlog
from fastapi import APIRouter, Depends, status

from app.api.deps import get_post_ingestion_service, rate_limit
from app.core.auth import AuthenticatedUser
from app.services.post_ingestion import (
    DeactivateResponse,
    IngestionResponse,
    PostIngestionService,
    UserPostsIngestRequest,
    ViralPostsIngestRequest,
)

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/ingest", tags=["ingestion"])


@router.post(
    "/user-posts",
    response_model=IngestionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Ingest the caller's own posts",
)
async def ingest_user_posts(
    request: UserPostsIngestRequest,
    user: AuthenticatedUser = Depends(rate_limit("ingest")),
    service: PostIngestionService = Depends(get_post_ingestion_service),
) -> IngestionResponse:
    """
    Store up to 100 posts with their embeddings.

    Returns 400 with the offending index when any item is invalid; nothing
    is written in that case.
    """
    return await service.ingest_user_posts(user.id, request.posts)


@router.post(
    "/viral-posts",
    response_model=IngestionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Ingest curated viral posts (admin only)",
)
async def ingest_viral_posts(
    request: ViralPostsIngestRequest,
    user: AuthenticatedUser = Depends(rate_limit("ingest")),
    service: PostIngestionService = Depends(get_post_ingestion_service),
) -> IngestionResponse:
    """Store up to 50 viral reference posts. 403 unless the caller is an admin."""
    return await service.ingest_viral_posts(user, request.posts)


@router.post(
    "/viral-posts/{viral_post_id}/deactivate",
    response_model=DeactivateResponse,
    summary="Remove a viral post from retrieval (admin only)",
)
async def deactivate_viral_post(
    viral_post_id: str,
    user: AuthenticatedUser = Depends(rate_limit("ingest")),
    service: PostIngestionService = Depends(get_post_ingestion_service),
) -> DeactivateResponse:
    return await service.deactivate_viral_post(user, viral_post_id)
