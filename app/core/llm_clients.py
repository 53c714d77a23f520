"""
OpenAI client abstraction for embeddings and chat completions.
Provides a narrow interface with timeouts, token tracking, and cost estimation.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Optional

import structlog
from openai import AsyncOpenAI
from pydantic import BaseModel
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from app.core.config import settings

logger = structlog.get_logger(__name__)


class LLMMessage(BaseModel):
    """Message format for LLM conversations."""
    role: str  # "system", "user", "assistant"
    content: str


class LLMResponse(BaseModel):
    """Standardized LLM response."""
    content: str
    model: str
    tokens_used: int
    prompt_tokens: int
    completion_tokens: int
    estimated_cost: float = 0.0


class EmbeddingItem(BaseModel):
    """One embedding as returned by the provider, tagged with its input index."""
    index: int
    embedding: list[float]


class BaseEmbeddingProvider(ABC):
    """Anything that turns a list of strings into indexed vectors."""

    @abstractmethod
    async def create_embeddings(self, inputs: list[str]) -> list[EmbeddingItem]:
        """Embed ``inputs``. Items may come back in any order."""


class BaseLLMClient(ABC):
    """Abstract base class for chat completion clients."""

    @abstractmethod
    async def generate(
        self,
        messages: list[LLMMessage],
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        json_mode: bool = False,
    ) -> LLMResponse:
        """Generate completion from messages."""


class OpenAIClient(BaseLLMClient, BaseEmbeddingProvider):
    """OpenAI API client for chat completions and embeddings."""

    # Pricing per 1K tokens (as of 2024)
    PRICING = {
        "gpt-4o": {"input": 0.0025, "output": 0.01},
        "gpt-4o-mini": {"input": 0.00015, "output": 0.0006},
        "gpt-4-turbo": {"input": 0.01, "output": 0.03},
    }

    def __init__(
        self,
        api_key: Optional[str] = None,
        embedding_model: Optional[str] = None,
        embedding_dimensions: Optional[int] = None,
    ):
        client_kwargs = {"api_key": api_key or settings.openai_api_key}
        if settings.openai_base_url:
            client_kwargs["base_url"] = settings.openai_base_url
        self.client = AsyncOpenAI(**client_kwargs)
        self.default_model = settings.generation_model
        self.embedding_model = embedding_model or settings.embedding_model
        self.embedding_dimensions = embedding_dimensions or settings.embedding_dimensions

    def _estimate_cost(self, model: str, prompt_tokens: int, completion_tokens: int) -> float:
        """Estimate cost based on token usage."""
        pricing = self.PRICING.get(model, self.PRICING["gpt-4o"])
        input_cost = (prompt_tokens / 1000) * pricing["input"]
        output_cost = (completion_tokens / 1000) * pricing["output"]
        return round(input_cost + output_cost, 6)

    # Generation is deliberately not wrapped in @retry: a repeated call is a
    # second, different generation.
    async def generate(
        self,
        messages: list[LLMMessage],
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        json_mode: bool = False,
    ) -> LLMResponse:
        """Generate completion using OpenAI API."""
        model = model or self.default_model
        temperature = temperature if temperature is not None else settings.generation_temperature
        max_tokens = max_tokens or settings.generation_max_tokens

        request_params = {
            "model": model,
            "messages": [{"role": m.role, "content": m.content} for m in messages],
            "temperature": temperature,
            "max_tokens": max_tokens,
            "frequency_penalty": settings.generation_frequency_penalty,
            "presence_penalty": settings.generation_presence_penalty,
        }

        if json_mode:
            request_params["response_format"] = {"type": "json_object"}

        logger.debug("OpenAI request", model=model, message_count=len(messages))

        response = await asyncio.wait_for(
            self.client.chat.completions.create(**request_params),
            timeout=settings.llm_timeout,
        )

        prompt_tokens = response.usage.prompt_tokens if response.usage else 0
        completion_tokens = response.usage.completion_tokens if response.usage else 0

        return LLMResponse(
            content=response.choices[0].message.content or "",
            model=model,
            tokens_used=prompt_tokens + completion_tokens,
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            estimated_cost=self._estimate_cost(model, prompt_tokens, completion_tokens),
        )

    @retry(
        retry=retry_if_exception_type((TimeoutError, ConnectionError)),
        stop=stop_after_attempt(settings.embedding_max_retries),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def create_embeddings(self, inputs: list[str]) -> list[EmbeddingItem]:
        """Embed a batch of inputs with the configured embedding model."""
        logger.debug("OpenAI embeddings request", model=self.embedding_model, inputs=len(inputs))

        response = await asyncio.wait_for(
            self.client.embeddings.create(
                model=self.embedding_model,
                input=inputs,
                dimensions=self.embedding_dimensions,
            ),
            timeout=settings.llm_timeout,
        )
        return [
            EmbeddingItem(index=item.index, embedding=item.embedding)
            for item in response.data
        ]


_openai_client: Optional[OpenAIClient] = None


def get_openai_client() -> OpenAIClient:
    """Lazily create the shared OpenAI client."""
    global _openai_client
    if _openai_client is None:
        _openai_client = OpenAIClient()
    return _openai_client
