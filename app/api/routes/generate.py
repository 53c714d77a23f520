"""
Personalized generation API routes.

Generates two LinkedIn post variants grounded on the caller's own posts and
on the viral corpus. Each successful generation costs one credit.
"""

from datetime import datetime
from typing import Any, Optional

import structlog
from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field

from app.api.deps import get_orchestrator, rate_limit
from app.core.auth import AuthenticatedUser
from app.services.generation_orchestrator import GenerationOrchestrator

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/personalized", tags=["generation"])


class GenerateContentRequest(BaseModel):
    """Raw request body; field rules are enforced by the domain validator."""
    topic: Any = None
    intent: Any = None
    additional_context: Any = None
    temperature: Any = None
    top_k_user: Any = None
    top_k_viral: Any = None

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "topic": "remote leadership lessons",
                "intent": "educativo",
                "additional_context": "Focus on async communication",
                "temperature": 0.7,
            }
        }
    )


class GenerateContentResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    generation_id: str
    variant_a: str = Field(..., alias="variantA")
    variant_b: str = Field(..., alias="variantB")
    user_examples_used: list[str]
    viral_examples_used: list[str]
    created_at: datetime
    credits_remaining: Optional[int] = None


@router.post(
    "/generate",
    response_model=GenerateContentResponse,
    summary="Generate two personalized LinkedIn post variants",
)
async def generate_content(
    request: GenerateContentRequest,
    user: AuthenticatedUser = Depends(rate_limit("generate")),
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
) -> GenerateContentResponse:
    """
    Generate variant A (150-300 words) and variant B (300-600 words).

    Errors:
    - 400: invalid fields (all violations listed)
    - 401: missing or invalid token
    - 402: no credits left
    - 429: too many requests
    - 500: the model returned unusable output (not charged)
    - 503: embedding or generation model unavailable (not charged)
    """
    result = await orchestrator.generate(user.id, request.model_dump())

    return GenerateContentResponse(
        generation_id=result.generation_id,
        variant_a=result.variant_a,
        variant_b=result.variant_b,
        user_examples_used=result.user_examples_used,
        viral_examples_used=result.viral_examples_used,
        created_at=result.created_at,
        credits_remaining=result.credits_remaining,
    )
