"""
Retrieval cache and generation history models.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, Boolean, DateTime, Float, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base
from app.models.post import _utcnow, _uuid


class RetrievalCacheEntry(Base):
    """
    Memoized top-K retrieval for one (user, topic, intent).

    Stores post ids only; consumers re-resolve them to current content.
    """

    __tablename__ = "rag_cache"

    query_hash: Mapped[str] = mapped_column(String(32), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    query_embedding: Mapped[list[float]] = mapped_column(JSON, nullable=False)
    top_user_posts: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    top_viral_posts: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    # Viral ids came from the engagement ranking, not a similarity match
    viral_fallback: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    hit_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)

    def __repr__(self) -> str:
        return f"<RetrievalCacheEntry(hash={self.query_hash}, hits={self.hit_count})>"


class GenerationRecord(Base):
    """One A/B content generation and the grounding posts it used."""

    __tablename__ = "generations"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    topic: Mapped[str] = mapped_column(Text, nullable=False)
    intent: Mapped[str] = mapped_column(String(50), nullable=False)
    additional_context: Mapped[Optional[str]] = mapped_column(Text)

    variant_a: Mapped[str] = mapped_column(Text, nullable=False)
    variant_b: Mapped[str] = mapped_column(Text, nullable=False)
    model_used: Mapped[str] = mapped_column(String(100), nullable=False)
    temperature: Mapped[float] = mapped_column(Float, nullable=False)

    user_examples_used: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    viral_examples_used: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)

    # Filled in later by the publishing flow
    variant_selected: Mapped[Optional[str]] = mapped_column(String(1))
    was_published: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False, index=True
    )

    def __repr__(self) -> str:
        return f"<GenerationRecord(id={self.id}, user_id={self.user_id})>"
