"""Core infrastructure modules"""

from app.core.config import settings
from app.core.database import AsyncSessionLocal
from app.core.cache import RedisCache
from app.core.llm_clients import OpenAIClient

__all__ = ["settings", "AsyncSessionLocal", "RedisCache", "OpenAIClient"]
