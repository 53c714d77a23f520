"""API Route modules"""

from app.api.routes.generate import router as generate_router
from app.api.routes.rag import router as rag_router
from app.api.routes.ingest import router as ingest_router
from app.api.routes.credits import router as credits_router

__all__ = [
    "generate_router",
    "rag_router",
    "ingest_router",
    "credits_router",
]
