"""Database models"""

from app.models.user import UserProfile, SubscriptionPlan
from app.models.post import UserPost, UserPostEmbedding
from app.models.viral import ContentIntent, ViralPost, ViralPostEmbedding
from app.models.retrieval import GenerationRecord, RetrievalCacheEntry

__all__ = [
    "UserProfile",
    "SubscriptionPlan",
    "UserPost",
    "UserPostEmbedding",
    "ContentIntent",
    "ViralPost",
    "ViralPostEmbedding",
    "RetrievalCacheEntry",
    "GenerationRecord",
]
