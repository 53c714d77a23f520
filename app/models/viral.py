"""
Curated viral reference corpus and its embeddings.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import JSON, Boolean, DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base
from app.models.post import _utcnow, _uuid


class ContentIntent(str, Enum):
    """Coarse purpose of a post, used to filter the viral corpus."""
    EDUCATIONAL = "educativo"
    INSPIRATIONAL = "inspiracional"
    PERSONAL = "personal"
    STORYTELLING = "storytelling"
    PROMOTIONAL = "promocional"
    THOUGHT_LEADERSHIP = "thought-leadership"

    @classmethod
    def values(cls) -> list[str]:
        return [intent.value for intent in cls]


class ViralPost(Base):
    """
    High-engagement reference post.

    Rows are immutable; ``is_active`` is the only field that changes
    (soft delete).
    """

    __tablename__ = "viral_corpus"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    author_industry: Mapped[Optional[str]] = mapped_column(String(100))
    author_follower_range: Mapped[Optional[str]] = mapped_column(String(20))

    likes: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    comments: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    shares: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    views: Mapped[Optional[int]] = mapped_column(Integer)
    engagement_rate: Mapped[float] = mapped_column(Float, default=0.0, nullable=False, index=True)

    topics: Mapped[list[str]] = mapped_column(JSON, nullable=False)
    intent: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    post_format: Mapped[Optional[str]] = mapped_column(String(20))
    has_hook: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    has_cta: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    uses_emojis: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    uses_hashtags: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    word_count: Mapped[int] = mapped_column(Integer, nullable=False)

    published_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    source_url: Mapped[Optional[str]] = mapped_column(String(1000))
    curated_by: Mapped[str] = mapped_column(String(64), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False, index=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False
    )

    def __repr__(self) -> str:
        return f"<ViralPost(id={self.id}, intent={self.intent}, active={self.is_active})>"


class ViralPostEmbedding(Base):
    """Embedding of a ViralPost (global, not per-user)."""

    __tablename__ = "viral_embeddings"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    viral_post_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("viral_corpus.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )
    embedding: Mapped[list[float]] = mapped_column(JSON, nullable=False)
    model_version: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False
    )
