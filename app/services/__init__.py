"""
Services layer for the personalization backend.
Contains business logic for embeddings, retrieval, credits and generation.
"""

from app.services.embedding_service import EmbeddingService, get_embedding_service
from app.services.similarity_store import SimilarityStore, SimilarPost
from app.services.retrieval_cache import RetrievalCache, build_key
from app.services.credit_service import CreditService
from app.services.rag_retriever import RAGRetriever, RetrievalResult
from app.services.generation_orchestrator import (
    GenerationOrchestrator,
    GenerationResult,
    get_generation_orchestrator,
)

__all__ = [
    "EmbeddingService",
    "get_embedding_service",
    "SimilarityStore",
    "SimilarPost",
    "RetrievalCache",
    "build_key",
    "CreditService",
    "RAGRetriever",
    "RetrievalResult",
    "GenerationOrchestrator",
    "GenerationResult",
    "get_generation_orchestrator",
]
