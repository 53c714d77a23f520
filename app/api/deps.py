"""
FastAPI dependencies for authentication and common operations.
"""

from typing import Awaitable, Callable, Optional

from fastapi import Depends, Header, Request

from app.core.auth import AuthenticatedUser, decode_access_token
from app.core.errors import UnauthorizedError
from app.core.rate_limit import RateLimiter, build_rate_limit_store
from app.services.credit_service import CreditService
from app.services.generation_orchestrator import (
    GenerationOrchestrator,
    get_generation_orchestrator,
)
from app.services.post_ingestion import PostIngestionService, get_ingestion_service
from app.services.rag_retriever import RAGRetriever


async def get_current_user(
    authorization: Optional[str] = Header(None, alias="Authorization"),
) -> AuthenticatedUser:
    """
    Resolve the caller from a ``Bearer <token>`` header.

    Raises:
        UnauthorizedError: Missing header, wrong scheme or invalid token
    """
    if not authorization:
        raise UnauthorizedError("Missing authorization header")

    try:
        scheme, token = authorization.split()
    except ValueError:
        raise UnauthorizedError("Invalid authorization header format")

    if scheme.lower() != "bearer":
        raise UnauthorizedError("Invalid authentication scheme")

    return decode_access_token(token)


def get_rate_limiter(request: Request) -> RateLimiter:
    """Limiter built at startup; created on first use when the lifespan did not run."""
    limiter = getattr(request.app.state, "rate_limiter", None)
    if limiter is None:
        limiter = RateLimiter(build_rate_limit_store())
        request.app.state.rate_limiter = limiter
    return limiter


def rate_limit(scope: str) -> Callable[..., Awaitable[AuthenticatedUser]]:
    """Dependency that authenticates the caller and charges one request to ``scope``."""

    async def _check(
        user: AuthenticatedUser = Depends(get_current_user),
        limiter: RateLimiter = Depends(get_rate_limiter),
    ) -> AuthenticatedUser:
        await limiter.check(scope, user.id)
        return user

    return _check


def get_orchestrator() -> GenerationOrchestrator:
    return get_generation_orchestrator()


def get_retriever() -> RAGRetriever:
    return get_generation_orchestrator().retriever


def get_credit_service() -> CreditService:
    return get_generation_orchestrator().credits


def get_post_ingestion_service() -> PostIngestionService:
    return get_ingestion_service()
