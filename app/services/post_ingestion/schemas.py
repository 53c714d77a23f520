"""
Pydantic schemas for the post ingestion API.

Items arrive as raw dicts and are validated one by one by the service, so a
failure can be reported with the offending index before anything is
written.
"""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.models import ContentIntent


# ============================================================================
# Items
# ============================================================================

class UserPostInput(BaseModel):
    """One historical post written by the caller."""
    content: str = Field(..., min_length=1, description="Post text")
    linkedin_post_id: Optional[str] = Field(None, max_length=128)
    published_at: Optional[datetime] = None
    likes: int = Field(default=0, ge=0)
    comments: int = Field(default=0, ge=0)
    shares: int = Field(default=0, ge=0)
    views: int = Field(default=0, ge=0)

    @field_validator("content")
    @classmethod
    def validate_content(cls, v: str) -> str:
        """Ensure content is not empty or just whitespace."""
        if not v.strip():
            raise ValueError("Content cannot be empty")
        return v.strip()


class ViralPostInput(BaseModel):
    """One curated high-engagement reference post."""
    content: str = Field(..., min_length=1, description="Post text")
    topics: list[str] = Field(..., min_length=1, description="At least one topic tag")
    intent: ContentIntent
    likes: int = Field(..., ge=0)
    comments: int = Field(..., ge=0)
    shares: int = Field(..., ge=0)
    views: Optional[int] = Field(None, ge=0)

    author_industry: Optional[str] = Field(None, max_length=100)
    author_follower_range: Optional[str] = Field(None, max_length=20)
    post_format: Optional[str] = Field(None, max_length=20)
    has_hook: bool = False
    has_cta: bool = False
    uses_emojis: bool = False
    uses_hashtags: bool = False
    published_at: Optional[datetime] = None
    source_url: Optional[str] = Field(None, max_length=1000)

    @field_validator("content")
    @classmethod
    def validate_content(cls, v: str) -> str:
        """Ensure content is not empty or just whitespace."""
        if not v.strip():
            raise ValueError("Content cannot be empty")
        return v.strip()

    @field_validator("topics")
    @classmethod
    def validate_topics(cls, v: list[str]) -> list[str]:
        """Drop blank tags; at least one must remain."""
        cleaned = [t.strip() for t in v if t and t.strip()]
        if not cleaned:
            raise ValueError("At least one non-empty topic is required")
        return cleaned


# ============================================================================
# Request / Response
# ============================================================================

class UserPostsIngestRequest(BaseModel):
    """Batch of user posts (at most 100)."""
    posts: list[Any] = Field(default_factory=list)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "posts": [
                    {
                        "content": "Three things I learned leading a remote team...",
                        "likes": 120,
                        "comments": 14,
                        "shares": 3,
                        "views": 4200,
                    }
                ]
            }
        }
    )


class ViralPostsIngestRequest(BaseModel):
    """Batch of curated viral posts (at most 50)."""
    posts: list[Any] = Field(default_factory=list)


class IngestionResponse(BaseModel):
    """All-or-nothing ingestion outcome."""
    posts_created: int
    embeddings_created: int
    post_ids: list[str]


class DeactivateResponse(BaseModel):
    id: str
    is_active: bool
