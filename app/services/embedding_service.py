"""
Embedding Service.

Turns text into fixed-length vectors through an embedding provider and
provides the vector math used by the similarity store.
"""

import math
from typing import Any, Optional, Sequence

import structlog

from app.core.config import settings
from app.core.errors import (
    DimensionMismatchError,
    EmptyBatchError,
    EmptyInputError,
    ExternalServiceError,
    RAGError,
)
from app.core.llm_clients import BaseEmbeddingProvider, get_openai_client

logger = structlog.get_logger(__name__)


# ==================== Vector math ====================

def _check_same_length(a: Sequence[float], b: Sequence[float]) -> None:
    if len(a) != len(b):
        raise DimensionMismatchError(expected=len(a), received=len(b))


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    Cosine similarity of two vectors.

    Returns 0.0 when either vector has zero magnitude.

    Raises:
        DimensionMismatchError: If the vectors differ in length
    """
    _check_same_length(a, b)

    dot = 0.0
    norm_a = 0.0
    norm_b = 0.0
    for x, y in zip(a, b):
        dot += x * y
        norm_a += x * x
        norm_b += y * y

    magnitude = math.sqrt(norm_a) * math.sqrt(norm_b)
    if magnitude == 0:
        return 0.0
    return dot / magnitude


def normalize(vector: Sequence[float]) -> list[float]:
    """Scale to unit length. Zero vectors are returned unchanged."""
    magnitude = math.sqrt(sum(v * v for v in vector))
    if magnitude == 0:
        return list(vector)
    return [v / magnitude for v in vector]


def euclidean_distance(a: Sequence[float], b: Sequence[float]) -> float:
    """Euclidean distance between two vectors of equal length."""
    _check_same_length(a, b)
    return math.sqrt(sum((x - y) ** 2 for x, y in zip(a, b)))


def validate_embedding(vector: Any, expected_dimensions: int) -> bool:
    """True only for a list/tuple of exactly ``expected_dimensions`` finite numbers."""
    if not isinstance(vector, (list, tuple)):
        return False
    if len(vector) != expected_dimensions:
        return False
    return all(
        isinstance(v, (int, float)) and not isinstance(v, bool) and math.isfinite(v)
        for v in vector
    )


# ==================== Service ====================

class EmbeddingService:
    """
    Generates embeddings with a configured model and dimensionality.

    The provider returns items tagged with the index of the input they
    belong to; results are always re-ordered by that index.
    """

    def __init__(
        self,
        provider: Optional[BaseEmbeddingProvider] = None,
        model: Optional[str] = None,
        dimensions: Optional[int] = None,
        max_chars: Optional[int] = None,
        batch_size: Optional[int] = None,
    ):
        self._provider = provider
        self.model = model or settings.embedding_model
        self.dimensions = dimensions or settings.embedding_dimensions
        self.max_chars = max_chars or settings.embedding_max_chars
        self.batch_size = batch_size or settings.embedding_batch_size

    @property
    def provider(self) -> BaseEmbeddingProvider:
        if self._provider is None:
            self._provider = get_openai_client()
        return self._provider

    @property
    def model_version(self) -> str:
        """Tag stored next to every vector produced by this service."""
        return self.model

    def _truncate(self, text: str) -> str:
        if len(text) > self.max_chars:
            logger.debug(
                "Text truncated for embedding",
                original_length=len(text),
                truncated_length=self.max_chars,
            )
            return text[: self.max_chars]
        return text

    def _check_dimensions(self, vector: list[float]) -> list[float]:
        if len(vector) != self.dimensions:
            raise DimensionMismatchError(expected=self.dimensions, received=len(vector))
        return vector

    async def _call_provider(self, inputs: list[str]) -> list[list[float]]:
        try:
            items = await self.provider.create_embeddings(inputs)
        except RAGError:
            raise
        except Exception as e:
            logger.error("Embedding provider call failed", inputs=len(inputs), error=str(e))
            raise ExternalServiceError("embedding", e) from e

        if len(items) != len(inputs):
            raise ExternalServiceError(
                "embedding",
                ValueError(f"expected {len(inputs)} embeddings, got {len(items)}"),
            )

        ordered = sorted(items, key=lambda item: item.index)
        return [self._check_dimensions(list(item.embedding)) for item in ordered]

    async def embed(self, text: str) -> list[float]:
        """
        Embed a single text.

        Raises:
            EmptyInputError: If the text is blank
            DimensionMismatchError: If the provider returns the wrong length
            ExternalServiceError: If the provider call fails
        """
        if not text or not text.strip():
            raise EmptyInputError()

        vectors = await self._call_provider([self._truncate(text)])
        return vectors[0]

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """
        Embed many texts, skipping blank entries.

        Chunks are sent one after another; a failing chunk aborts the whole
        batch.

        Raises:
            EmptyBatchError: If no non-blank text remains
        """
        valid = [self._truncate(t) for t in texts if t and t.strip()]
        if not valid:
            raise EmptyBatchError()

        vectors: list[list[float]] = []
        for start in range(0, len(valid), self.batch_size):
            chunk = valid[start:start + self.batch_size]
            vectors.extend(await self._call_provider(chunk))
            logger.debug(
                "Embedding chunk complete",
                chunk_start=start,
                chunk_size=len(chunk),
                total=len(valid),
            )

        return vectors


_embedding_service: Optional[EmbeddingService] = None


def get_embedding_service() -> EmbeddingService:
    """Get or create the embedding service singleton."""
    global _embedding_service
    if _embedding_service is None:
        _embedding_service = EmbeddingService()
    return _embedding_service
