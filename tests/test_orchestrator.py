"""
Generation orchestrator tests.
"""

import asyncio

import pytest
from sqlalchemy import func, select

from app.core.errors import (
    ExternalServiceError,
    InsufficientCreditsError,
    MalformedGenerationError,
    ValidationError,
)
from app.models import GenerationRecord, ViralPost, ViralPostEmbedding
from app.services import generation_orchestrator
from app.services.credit_service import CreditService
from app.services.generation_orchestrator import GenerationOrchestrator
from tests.fakes import FlakySessionFactory, vector_for


async def count_generations(session_factory) -> int:
    async with session_factory() as session:
        return await session.scalar(select(func.count()).select_from(GenerationRecord))


@pytest.mark.asyncio
async def test_end_to_end_generation(
    orchestrator: GenerationOrchestrator,
    ingestion_service,
    credit_service: CreditService,
    session_factory,
    make_profile,
    mock_user_id,
    sample_user_posts,
    sample_generate_request,
    llm_client,
):
    await make_profile(mock_user_id, credits=1)
    ingested = await ingestion_service.ingest_user_posts(mock_user_id, sample_user_posts)

    result = await orchestrator.generate(mock_user_id, sample_generate_request)

    assert result.variant_a.strip()
    assert result.variant_b.strip()
    assert result.generation_id
    assert 0 < len(result.user_examples_used) <= 3
    assert set(result.user_examples_used) <= set(ingested.post_ids)
    assert result.credits_remaining == 0
    assert await credit_service.get_balance(mock_user_id) == 0

    async with session_factory() as session:
        record = await session.get(GenerationRecord, result.generation_id)
    assert record.topic == "remote leadership lessons"
    assert record.intent == "educativo"
    assert record.user_examples_used == result.user_examples_used

    system_prompt = llm_client.calls[0][0].content
    assert "Leading a remote team" in system_prompt


@pytest.mark.asyncio
async def test_malformed_model_output_is_not_charged(
    orchestrator: GenerationOrchestrator,
    credit_service: CreditService,
    session_factory,
    make_profile,
    mock_user_id,
    sample_generate_request,
    llm_client,
):
    await make_profile(mock_user_id, credits=1)
    llm_client.content = "Here are your posts: variant A ..."

    with pytest.raises(MalformedGenerationError) as exc_info:
        await orchestrator.generate(mock_user_id, sample_generate_request)

    assert exc_info.value.status_code == 500
    assert await credit_service.get_balance(mock_user_id) == 1
    assert await count_generations(session_factory) == 0


@pytest.mark.asyncio
async def test_missing_variant_is_malformed(
    orchestrator: GenerationOrchestrator,
    credit_service: CreditService,
    make_profile,
    mock_user_id,
    sample_generate_request,
    llm_client,
):
    await make_profile(mock_user_id, credits=1)
    llm_client.content = '{"variantA": "only one", "variantB": "   "}'

    with pytest.raises(MalformedGenerationError):
        await orchestrator.generate(mock_user_id, sample_generate_request)

    assert await credit_service.get_balance(mock_user_id) == 1


@pytest.mark.asyncio
async def test_concurrent_requests_with_one_credit(
    orchestrator: GenerationOrchestrator,
    credit_service: CreditService,
    make_profile,
    mock_user_id,
    sample_generate_request,
):
    await make_profile(mock_user_id, credits=1)

    outcomes = await asyncio.gather(
        orchestrator.generate(mock_user_id, sample_generate_request),
        orchestrator.generate(mock_user_id, sample_generate_request),
        return_exceptions=True,
    )

    failures = [o for o in outcomes if isinstance(o, Exception)]
    successes = [o for o in outcomes if not isinstance(o, Exception)]
    assert len(successes) == 1
    assert len(failures) == 1
    assert isinstance(failures[0], InsufficientCreditsError)
    assert await credit_service.get_balance(mock_user_id) == 0


@pytest.mark.asyncio
async def test_no_credits_rejected_before_model_calls(
    orchestrator: GenerationOrchestrator,
    make_profile,
    mock_user_id,
    sample_generate_request,
    embedding_provider,
    llm_client,
):
    await make_profile(mock_user_id, credits=0)

    with pytest.raises(InsufficientCreditsError) as exc_info:
        await orchestrator.generate(mock_user_id, sample_generate_request)

    assert exc_info.value.status_code == 402
    assert exc_info.value.details == {"required": 1, "available": 0}
    assert embedding_provider.calls == []
    assert llm_client.calls == []


@pytest.mark.asyncio
async def test_embedding_outage_refunds_credit(
    orchestrator: GenerationOrchestrator,
    credit_service: CreditService,
    make_profile,
    mock_user_id,
    sample_generate_request,
    embedding_provider,
    llm_client,
):
    await make_profile(mock_user_id, credits=1)
    embedding_provider.fail_on_call = 1

    with pytest.raises(ExternalServiceError) as exc_info:
        await orchestrator.generate(mock_user_id, sample_generate_request)

    assert exc_info.value.status_code == 503
    assert llm_client.calls == []
    assert await credit_service.get_balance(mock_user_id) == 1


@pytest.mark.asyncio
async def test_generation_outage_refunds_credit(
    orchestrator: GenerationOrchestrator,
    credit_service: CreditService,
    make_profile,
    mock_user_id,
    sample_generate_request,
    llm_client,
):
    await make_profile(mock_user_id, credits=1)
    llm_client.error = TimeoutError("model timed out")

    with pytest.raises(ExternalServiceError) as exc_info:
        await orchestrator.generate(mock_user_id, sample_generate_request)

    assert exc_info.value.service == "generation"
    assert await credit_service.get_balance(mock_user_id) == 1


@pytest.mark.asyncio
async def test_validation_lists_every_invalid_field(
    orchestrator: GenerationOrchestrator,
    credit_service: CreditService,
    make_profile,
    mock_user_id,
):
    await make_profile(mock_user_id, credits=1)

    with pytest.raises(ValidationError) as exc_info:
        await orchestrator.generate(
            mock_user_id,
            {"topic": "", "intent": "entertainment", "temperature": 3.5, "top_k_user": 0},
        )

    assert set(exc_info.value.fields) == {"topic", "intent", "temperature", "top_k_user"}
    assert await credit_service.get_balance(mock_user_id) == 1


@pytest.mark.asyncio
async def test_viral_examples_fall_back_to_engagement(
    orchestrator: GenerationOrchestrator,
    session_factory,
    make_profile,
    mock_user_id,
):
    """Viral vectors from a retired model are unusable; top performers are used instead."""
    await make_profile(mock_user_id, credits=1)
    async with session_factory() as session:
        for i in range(10):
            post = ViralPost(
                content=f"Limited offer number {i}",
                topics=["sales"],
                intent="promocional",
                engagement_rate=float(i),
                word_count=4,
                curated_by="admin",
            )
            session.add(post)
            await session.flush()
            session.add(ViralPostEmbedding(
                viral_post_id=post.id,
                embedding=vector_for(post.content),
                model_version="retired-embedding-model",
            ))
        await session.commit()

    result = await orchestrator.generate(
        mock_user_id,
        {"topic": "launching our new coaching program", "intent": "promocional"},
    )

    assert len(result.viral_examples_used) == 5
    assert result.user_examples_used == []

    async with session_factory() as session:
        top = await session.get(ViralPost, result.viral_examples_used[0])
    assert top.engagement_rate == 9.0


@pytest.mark.asyncio
async def test_persist_failure_still_returns_content(
    orchestrator: GenerationOrchestrator,
    credit_service: CreditService,
    session_factory,
    make_profile,
    mock_user_id,
    sample_generate_request,
    monkeypatch,
):
    await make_profile(mock_user_id, credits=1)
    orchestrator.session_factory = FlakySessionFactory(session_factory, fail_sessions={1})
    anomalies = []
    monkeypatch.setattr(
        generation_orchestrator,
        "capture_anomaly",
        lambda message, **context: anomalies.append(context),
    )

    result = await orchestrator.generate(mock_user_id, sample_generate_request)

    assert result.generation_id == ""
    assert result.variant_a
    assert result.credits_remaining == 0
    assert await credit_service.get_balance(mock_user_id) == 0
    assert await count_generations(session_factory) == 0
    assert len(anomalies) == 1
    assert anomalies[0]["operation"] == "persist_generation"
    assert "disk I/O error" in anomalies[0]["error"]


@pytest.mark.asyncio
async def test_cancelled_generation_refunds_credit(
    orchestrator: GenerationOrchestrator,
    credit_service: CreditService,
    session_factory,
    make_profile,
    mock_user_id,
    sample_generate_request,
    llm_client,
):
    """A client disconnect mid-generation must not cost a credit."""
    await make_profile(mock_user_id, credits=1)
    llm_client.hold = asyncio.Event()

    task = asyncio.create_task(orchestrator.generate(mock_user_id, sample_generate_request))
    while not llm_client.calls:
        await asyncio.sleep(0.01)
    assert await credit_service.get_balance(mock_user_id) == 0

    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert await credit_service.get_balance(mock_user_id) == 1
    assert await count_generations(session_factory) == 0
