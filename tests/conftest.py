"""
Pytest configuration and fixtures.
"""

import os
from typing import AsyncGenerator, Optional

os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE_URL_OVERRIDE", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("OPENAI_API_KEY", "test-key")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret")

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.api import deps
from app.api.main import app
from app.core.auth import create_access_token
from app.core.database import Base
from app.core.rate_limit import InMemoryRateLimitStore, RateLimiter
from app.models import UserProfile
from app.services.credit_service import CreditService
from app.services.embedding_service import EmbeddingService
from app.services.generation_orchestrator import GenerationOrchestrator
from app.services.post_ingestion import PostIngestionService
from app.services.rag_retriever import RAGRetriever
from app.services.retrieval_cache import RetrievalCache
from app.services.similarity_store import SimilarityStore
from tests.fakes import (
    TEST_DIMENSIONS,
    TEST_MODEL,
    FakeClock,
    FakeEmbeddingProvider,
    FakeLLMClient,
)


# ==================== Database ====================

@pytest_asyncio.fixture
async def session_factory(tmp_path) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Fresh SQLite schema per test (file-backed so concurrent sessions share it)."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


# ==================== Services ====================

@pytest.fixture
def embedding_provider() -> FakeEmbeddingProvider:
    return FakeEmbeddingProvider()


@pytest.fixture
def embedding_service(embedding_provider: FakeEmbeddingProvider) -> EmbeddingService:
    return EmbeddingService(
        provider=embedding_provider,
        model=TEST_MODEL,
        dimensions=TEST_DIMENSIONS,
        batch_size=10,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def similarity_store(session_factory) -> SimilarityStore:
    return SimilarityStore(session_factory, model_version=TEST_MODEL, timeout=5.0)


@pytest.fixture
def retrieval_cache(session_factory, clock: FakeClock) -> RetrievalCache:
    return RetrievalCache(session_factory, ttl_hours=24, clock=clock)


@pytest.fixture
def retriever(embedding_service, similarity_store, retrieval_cache) -> RAGRetriever:
    return RAGRetriever(
        embedding_service=embedding_service,
        store=similarity_store,
        cache=retrieval_cache,
    )


@pytest.fixture
def credit_service(session_factory) -> CreditService:
    return CreditService(session_factory)


@pytest.fixture
def llm_client() -> FakeLLMClient:
    return FakeLLMClient()


@pytest.fixture
def orchestrator(
    llm_client, embedding_service, retriever, credit_service, session_factory
) -> GenerationOrchestrator:
    return GenerationOrchestrator(
        llm_client=llm_client,
        embedding_service=embedding_service,
        retriever=retriever,
        credits=credit_service,
        session_factory=session_factory,
    )


@pytest.fixture
def ingestion_service(embedding_service, session_factory) -> PostIngestionService:
    return PostIngestionService(embedding_service=embedding_service, session_factory=session_factory)


# ==================== Users ====================

@pytest.fixture
def mock_user_id() -> str:
    """Return mock user ID for testing."""
    return "test-user-001"


@pytest.fixture
def admin_user_id() -> str:
    return "admin-user-001"


@pytest_asyncio.fixture
async def make_profile(session_factory):
    async def _make(user_id: str, credits: int = 1, email: Optional[str] = None) -> None:
        async with session_factory() as session:
            session.add(UserProfile(id=user_id, email=email, credits=credits))
            await session.commit()

    return _make


@pytest.fixture
def auth_headers(mock_user_id: str) -> dict:
    token = create_access_token(mock_user_id, email="user@example.com")
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def admin_headers(admin_user_id: str) -> dict:
    token = create_access_token(admin_user_id, email="admin@example.com", role="admin")
    return {"Authorization": f"Bearer {token}"}


# ==================== HTTP ====================

@pytest.fixture
def rate_limiter() -> RateLimiter:
    return RateLimiter(InMemoryRateLimitStore())


@pytest_asyncio.fixture
async def client(
    orchestrator, retriever, credit_service, ingestion_service, rate_limiter
) -> AsyncGenerator[AsyncClient, None]:
    """Create test HTTP client wired to the test services."""
    app.dependency_overrides[deps.get_orchestrator] = lambda: orchestrator
    app.dependency_overrides[deps.get_retriever] = lambda: retriever
    app.dependency_overrides[deps.get_credit_service] = lambda: credit_service
    app.dependency_overrides[deps.get_post_ingestion_service] = lambda: ingestion_service
    app.dependency_overrides[deps.get_rate_limiter] = lambda: rate_limiter

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# ==================== Sample payloads ====================

@pytest.fixture
def sample_generate_request() -> dict:
    """Return sample generation request."""
    return {
        "topic": "remote leadership lessons",
        "intent": "educativo",
        "additional_context": "Focus on async communication",
    }


@pytest.fixture
def sample_user_posts() -> list[dict]:
    return [
        {
            "content": "Leading a remote team taught me to write everything down.",
            "likes": 120, "comments": 14, "shares": 6, "views": 4000,
        },
        {
            "content": "Async standups saved my team five hours a week.",
            "likes": 80, "comments": 9, "shares": 1, "views": 0,
        },
        {
            "content": "Trust is the only management tool that scales across time zones.",
            "likes": 300, "comments": 40, "shares": 20,
        },
    ]


@pytest.fixture
def sample_viral_post() -> dict:
    return {
        "content": "I fired my best performer. Here's what happened next...",
        "topics": ["leadership", "management"],
        "intent": "storytelling",
        "likes": 900,
        "comments": 120,
        "shares": 80,
        "views": 50000,
        "has_hook": True,
    }
