"""
Post Ingestion Service.

Handles all-or-nothing ingestion of user posts and curated viral posts
with their embeddings.
"""

from .service import (
    PostIngestionService,
    compute_engagement_rate,
    count_words,
    get_ingestion_service,
)
from .schemas import (
    DeactivateResponse,
    IngestionResponse,
    UserPostInput,
    UserPostsIngestRequest,
    ViralPostInput,
    ViralPostsIngestRequest,
)

__all__ = [
    "PostIngestionService",
    "get_ingestion_service",
    "compute_engagement_rate",
    "count_words",
    "DeactivateResponse",
    "IngestionResponse",
    "UserPostInput",
    "UserPostsIngestRequest",
    "ViralPostInput",
    "ViralPostsIngestRequest",
]
