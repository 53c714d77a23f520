"""
FastAPI application main entry point.
"""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api.routes import credits_router, generate_router, ingest_router, rag_router
from app.core.cache import cache
from app.core.config import settings
from app.core.database import close_db, init_db
from app.core.errors import RAGError
from app.core.observability import configure_logging, init_sentry
from app.core.rate_limit import RateLimiter, build_rate_limit_store

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.
    Handles startup and shutdown events.
    """
    # Startup
    configure_logging()
    logger.info("Starting personalization backend", environment=settings.environment)

    # Initialize Sentry for error tracking
    try:
        init_sentry()
    except Exception as e:
        logger.warning("Sentry initialization failed", error=str(e))

    # Connect to Redis (shared rate-limit store)
    try:
        await cache.connect()
        logger.info("Redis connected")
    except Exception as e:
        logger.warning("Redis connection failed", error=str(e))

    app.state.rate_limiter = RateLimiter(build_rate_limit_store(cache))

    # Initialize database
    try:
        await init_db()
        logger.info("Database initialized")
    except Exception as e:
        logger.warning("Database initialization failed", error=str(e))

    # Report vectors left over from a previous embedding model
    try:
        from app.services.similarity_store import SimilarityStore
        await SimilarityStore().count_stale_embeddings()
    except Exception as e:
        logger.warning("Stale embedding check failed", error=str(e))

    yield

    # Shutdown
    logger.info("Shutting down personalization backend")
    await cache.disconnect()
    await close_db()


# Create FastAPI application
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="""
    LinkedIn content personalization backend

    - Ingest a user's historical posts and a curated viral corpus
    - Retrieve the most similar posts for a topic
    - Generate two grounded post variants per request (one credit each)
    """,
    docs_url="/docs" if settings.environment != "production" else None,
    redoc_url="/redoc" if settings.environment != "production" else None,
    lifespan=lifespan,
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RAGError)
async def rag_error_handler(request: Request, exc: RAGError) -> JSONResponse:
    """Render domain errors as ``{"error", "code", "details"}`` with their status."""
    headers = {}
    if exc.retry_after is not None:
        headers["Retry-After"] = str(exc.retry_after)

    log = logger.warning if exc.status_code < 500 else logger.error
    log(
        "Request failed",
        path=request.url.path,
        kind=exc.kind.value,
        code=exc.code,
        status=exc.status_code,
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)


# Include API routes
app.include_router(generate_router, prefix=settings.api_v1_prefix)
app.include_router(rag_router, prefix=settings.api_v1_prefix)
app.include_router(ingest_router, prefix=settings.api_v1_prefix)
app.include_router(credits_router, prefix=settings.api_v1_prefix)


# Health check endpoint
@app.get("/health")
async def health_check() -> dict:
    """Health check endpoint."""
    return {
        "status": "healthy",
        "version": settings.app_version,
        "environment": settings.environment,
        "redis": cache.connected,
    }


# Root endpoint
@app.get("/")
async def root() -> dict:
    """Root endpoint with API information."""
    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "docs": "/docs",
        "endpoints": {
            "generate": f"{settings.api_v1_prefix}/personalized/generate",
            "retrieve": f"{settings.api_v1_prefix}/rag/retrieve",
            "ingest_user_posts": f"{settings.api_v1_prefix}/ingest/user-posts",
            "ingest_viral_posts": f"{settings.api_v1_prefix}/ingest/viral-posts",
            "credits": f"{settings.api_v1_prefix}/credits",
        },
    }
