"""
Application configuration using Pydantic Settings.
Loads from environment variables with sensible defaults.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, RedisDsn
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "Kolink Personalization Backend"
    app_version: str = "1.0.0"
    debug: bool = False
    environment: Literal["development", "staging", "production", "test"] = "development"

    # API
    api_v1_prefix: str = "/api/v1"
    cors_origins: list[str] = ["http://localhost:3000", "http://localhost:8000"]

    # Database - Individual settings (recommended)
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_database: str = "kolink"
    postgres_user: str = "postgres"
    postgres_password: str = "postgres"

    # Database pool settings
    database_pool_size: int = 20
    database_max_overflow: int = 10

    # Full URL override (tests point this at sqlite+aiosqlite)
    database_url_override: str = ""

    @property
    def database_url(self) -> str:
        """Build database URL from individual components."""
        if self.database_url_override:
            return self.database_url_override
        return f"postgresql+asyncpg://{self.postgres_user}:{self.postgres_password}@{self.postgres_host}:{self.postgres_port}/{self.postgres_database}"

    # Redis
    redis_url: RedisDsn = Field(default="redis://localhost:6379/0")

    # OpenAI
    openai_api_key: str = ""
    openai_base_url: str = ""

    # Embeddings
    embedding_model: str = "text-embedding-3-small"
    embedding_dimensions: int = 1536
    embedding_max_chars: int = 30000  # ~8k tokens
    embedding_batch_size: int = 100
    embedding_max_retries: int = 3

    # Generation
    generation_model: str = "gpt-4o"
    generation_temperature: float = 0.7
    generation_max_tokens: int = 2000
    generation_frequency_penalty: float = 0.3
    generation_presence_penalty: float = 0.2
    llm_timeout: int = 60

    # Similarity store
    similarity_store_timeout: float = 10.0
    viral_fallback_similarity: float = 0.5

    # RAG retrieval
    rag_cache_ttl_hours: int = 24
    rag_default_top_k_user: int = 3
    rag_max_top_k_user: int = 10
    rag_default_top_k_viral: int = 5
    rag_max_top_k_viral: int = 20
    topic_min_length: int = 3
    topic_max_length: int = 500
    additional_context_max_length: int = 2000

    # Ingestion batch limits
    ingest_max_user_posts: int = 100
    ingest_max_viral_posts: int = 50

    # Authentication (JWTs issued by the hosted auth provider)
    jwt_secret_key: str = "your-secret-key-change-in-production"
    jwt_algorithm: str = "HS256"
    jwt_audience: str = ""
    admin_emails: list[str] = []

    # Rate Limiting
    rate_limit_backend: Literal["memory", "redis"] = "memory"
    rate_limit_window_seconds: int = 60
    rate_limit_generate_per_window: int = 10
    rate_limit_retrieve_per_window: int = 30
    rate_limit_ingest_per_window: int = 5

    # Logging
    log_level: str = "INFO"
    log_format: Literal["json", "console"] = "console"

    # Sentry (Error Tracking)
    sentry_dsn: str = ""
    sentry_environment: str = "development"
    sentry_traces_sample_rate: float = 0.1


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
