"""
Generation Orchestrator.

Runs one personalized generation request end to end:

    VALIDATE -> CREDIT_CHECK -> EMBED_QUERY -> RETRIEVE -> PROMPT_BUILD
    -> GENERATE -> PERSIST -> DEBIT_CREDIT -> RESPOND

Authentication happens before this point, in the API layer.

A credit is held at CREDIT_CHECK. Any failure or cancellation before
PERSIST returns it, so failed requests are never charged. PERSIST and DEBIT_CREDIT are
best-effort: their failures are logged and the content is still returned.
"""

import asyncio
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.config import settings
from app.core.database import AsyncSessionLocal
from app.core.errors import BestEffortResult, ExternalServiceError, RAGError
from app.core.llm_clients import BaseLLMClient, LLMMessage, get_openai_client
from app.core.observability import capture_anomaly
from app.models import GenerationRecord
from app.services.credit_service import CreditService
from app.services.embedding_service import EmbeddingService, get_embedding_service
from app.services.rag_retriever import RAGRetriever, RetrievalResult
from app.utils.prompts import LinkedInPromptBuilder, parse_variants
from app.utils.validators import GenerationRequest, validate_generation_request

logger = structlog.get_logger(__name__)


@dataclass
class GenerationResult:
    generation_id: str
    variant_a: str
    variant_b: str
    user_examples_used: list[str]
    viral_examples_used: list[str]
    created_at: datetime
    credits_remaining: Optional[int] = None


@dataclass
class _StageTimer:
    """Wall-clock milliseconds per stage, logged with the outcome."""
    timings: dict[str, float] = field(default_factory=dict)
    _stage: Optional[str] = None
    _started: float = 0.0

    def start(self, stage: str) -> None:
        self.stop()
        self._stage = stage
        self._started = time.perf_counter()

    def stop(self) -> None:
        if self._stage is not None:
            self.timings[self._stage] = round((time.perf_counter() - self._started) * 1000, 1)
            self._stage = None

    @property
    def current(self) -> Optional[str]:
        return self._stage


class GenerationOrchestrator:
    """Personalized A/B LinkedIn post generation grounded on retrieved posts."""

    def __init__(
        self,
        llm_client: Optional[BaseLLMClient] = None,
        embedding_service: Optional[EmbeddingService] = None,
        retriever: Optional[RAGRetriever] = None,
        credits: Optional[CreditService] = None,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
        prompt_builder: Optional[LinkedInPromptBuilder] = None,
    ):
        self.session_factory = session_factory or AsyncSessionLocal
        self.embedding_service = embedding_service or get_embedding_service()
        self.retriever = retriever or RAGRetriever(embedding_service=self.embedding_service)
        self.credits = credits or CreditService(self.session_factory)
        self.prompt_builder = prompt_builder or LinkedInPromptBuilder()
        self._llm_client = llm_client

    @property
    def llm_client(self) -> BaseLLMClient:
        if self._llm_client is None:
            self._llm_client = get_openai_client()
        return self._llm_client

    async def generate(self, user_id: str, payload: dict[str, Any]) -> GenerationResult:
        """
        Generate two post variants for an authenticated user.

        Args:
            user_id: Caller resolved by authentication
            payload: Raw request fields (topic, intent, additional_context,
                temperature, top_k_user, top_k_viral)

        Raises:
            ValidationError: Invalid request fields (all of them listed)
            InsufficientCreditsError: No credit left
            ExternalServiceError: Embedding or generation model unavailable
            MalformedGenerationError: Model output was not the expected JSON
        """
        timer = _StageTimer()
        log = logger.bind(user_id=user_id)

        try:
            timer.start("validate")
            request = validate_generation_request(payload)

            timer.start("credit_check")
            await self.credits.reserve(user_id)
        except RAGError as e:
            timer.stop()
            log.info("Generation rejected", code=e.code, timings=timer.timings)
            raise

        try:
            variant_a, variant_b, retrieval = await self._run_paid_stages(
                user_id, request, timer
            )
        except BaseException as e:
            # Cancellation lands here too; the refund is shielded so it still commits.
            failed_stage = timer.current
            timer.stop()
            refund = await asyncio.shield(self.credits.refund(user_id))
            self._log_best_effort(refund, user_id=user_id)
            log.warning(
                "Generation failed",
                stage=failed_stage,
                error=str(e),
                credit_refunded=refund.ok,
                timings=timer.timings,
            )
            raise

        timer.start("persist")
        created_at = datetime.now(timezone.utc)
        persisted = await self._persist(user_id, request, variant_a, variant_b, retrieval, created_at)
        self._log_best_effort(persisted, user_id=user_id)
        generation_id = persisted.value if persisted.ok and persisted.value else ""

        timer.start("debit_credit")
        credits_remaining = await self._finalize_debit(user_id)
        timer.stop()

        log.info(
            "Generation complete",
            generation_id=generation_id,
            intent=request.intent,
            cache_hit=retrieval.cache_hit,
            user_examples=len(retrieval.user_posts),
            viral_examples=len(retrieval.viral_posts),
            credits_remaining=credits_remaining,
            timings=timer.timings,
        )

        return GenerationResult(
            generation_id=generation_id,
            variant_a=variant_a,
            variant_b=variant_b,
            user_examples_used=retrieval.user_post_ids,
            viral_examples_used=retrieval.viral_post_ids,
            created_at=created_at,
            credits_remaining=credits_remaining,
        )

    async def _run_paid_stages(
        self,
        user_id: str,
        request: GenerationRequest,
        timer: _StageTimer,
    ) -> tuple[str, str, RetrievalResult]:
        timer.start("embed_query")
        query_vector = await self.embedding_service.embed(request.topic)

        timer.start("retrieve")
        retrieval = await self.retriever.retrieve(
            user_id=user_id,
            topic=request.topic,
            intent=request.intent,
            top_k_user=request.top_k_user,
            top_k_viral=request.top_k_viral,
            use_cache=True,
            query_vector=query_vector,
        )

        timer.start("prompt_build")
        messages = [
            LLMMessage(
                role="system",
                content=self.prompt_builder.build_system_prompt(
                    retrieval.user_posts, retrieval.viral_posts
                ),
            ),
            LLMMessage(
                role="user",
                content=self.prompt_builder.build_user_prompt(
                    request.topic, request.intent, request.additional_context
                ),
            ),
        ]

        timer.start("generate")
        try:
            response = await self.llm_client.generate(
                messages=messages,
                model=settings.generation_model,
                temperature=request.temperature,
                max_tokens=settings.generation_max_tokens,
                json_mode=True,
            )
        except RAGError:
            raise
        except Exception as e:
            raise ExternalServiceError("generation", e) from e

        variant_a, variant_b = parse_variants(response.content)
        logger.debug(
            "Generation model responded",
            model=response.model,
            tokens_used=response.tokens_used,
            estimated_cost=response.estimated_cost,
        )
        return variant_a, variant_b, retrieval

    async def _persist(
        self,
        user_id: str,
        request: GenerationRequest,
        variant_a: str,
        variant_b: str,
        retrieval: RetrievalResult,
        created_at: datetime,
    ) -> BestEffortResult[str]:
        try:
            async with self.session_factory() as session:
                record = GenerationRecord(
                    user_id=user_id,
                    topic=request.topic,
                    intent=request.intent,
                    additional_context=request.additional_context,
                    variant_a=variant_a,
                    variant_b=variant_b,
                    model_used=settings.generation_model,
                    temperature=request.temperature,
                    user_examples_used=retrieval.user_post_ids,
                    viral_examples_used=retrieval.viral_post_ids,
                    created_at=created_at,
                )
                session.add(record)
                await session.commit()
                return BestEffortResult.success("persist_generation", record.id)
        except Exception as e:
            return BestEffortResult.failure("persist_generation", e)

    async def _finalize_debit(self, user_id: str) -> Optional[int]:
        """The credit held at CREDIT_CHECK becomes the charge; report what is left."""
        try:
            remaining = await self.credits.get_balance(user_id)
        except Exception as e:
            logger.warning("Could not read balance after debit", user_id=user_id, error=str(e))
            return None
        logger.info("Credit debited", user_id=user_id, remaining=remaining)
        return remaining

    @staticmethod
    def _log_best_effort(result: BestEffortResult, **context: Any) -> None:
        if not result.ok:
            capture_anomaly(
                "Best-effort operation failed",
                operation=result.operation,
                error=result.error,
                **context,
            )


_orchestrator: Optional[GenerationOrchestrator] = None


def get_generation_orchestrator() -> GenerationOrchestrator:
    """Get or create the orchestrator singleton."""
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = GenerationOrchestrator()
    return _orchestrator
