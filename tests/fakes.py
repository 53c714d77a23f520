"""
Test doubles for the model providers, the clock and failing storage.
"""

import asyncio
import hashlib
import json
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional

from app.core.llm_clients import (
    BaseEmbeddingProvider,
    BaseLLMClient,
    EmbeddingItem,
    LLMMessage,
    LLMResponse,
)

TEST_DIMENSIONS = 8
TEST_MODEL = "test-embedding-model"


def vector_for(text: str, dimensions: int = TEST_DIMENSIONS) -> list[float]:
    """Deterministic pseudo-embedding derived from the text."""
    digest = hashlib.sha256(text.encode("utf-8")).digest()
    return [(digest[i] - 127.5) / 127.5 for i in range(dimensions)]


class FakeEmbeddingProvider(BaseEmbeddingProvider):
    """
    Returns text-derived vectors in reverse order, the way a provider that
    does not preserve ordering would.
    """

    def __init__(self, dimensions: int = TEST_DIMENSIONS):
        self.dimensions = dimensions
        self.calls: list[list[str]] = []
        self.fail_on_call: Optional[int] = None
        self.error: Exception = ConnectionError("embedding provider unavailable")

    async def create_embeddings(self, inputs: list[str]) -> list[EmbeddingItem]:
        self.calls.append(list(inputs))
        if self.fail_on_call is not None and len(self.calls) >= self.fail_on_call:
            raise self.error
        items = [
            EmbeddingItem(index=i, embedding=vector_for(text, self.dimensions))
            for i, text in enumerate(inputs)
        ]
        return list(reversed(items))


class FakeLLMClient(BaseLLMClient):
    """Chat client returning a canned reply."""

    def __init__(self, content: Optional[str] = None):
        self.content = content or json.dumps({
            "variantA": "Short variant about the topic. What do you think?",
            "variantB": "Long variant about the topic with a story. Share yours below!",
        })
        self.error: Optional[Exception] = None
        self.calls: list[list[LLMMessage]] = []
        # When set, generate waits on it, leaving the request in flight
        self.hold: Optional[asyncio.Event] = None

    async def generate(
        self,
        messages: list[LLMMessage],
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        json_mode: bool = False,
    ) -> LLMResponse:
        self.calls.append(messages)
        if self.hold is not None:
            await self.hold.wait()
        if self.error is not None:
            raise self.error
        return LLMResponse(
            content=self.content,
            model=model or "fake-model",
            tokens_used=100,
            prompt_tokens=80,
            completion_tokens=20,
        )


class FakeClock:
    """Injectable UTC clock that only moves when told to."""

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class CommitFailingSession:
    """A real session whose commit raises."""

    def __init__(self, session, error: Exception):
        self._session = session
        self._error = error

    def __getattr__(self, name):
        return getattr(self._session, name)

    async def commit(self) -> None:
        raise self._error


class FlakySessionFactory:
    """
    Session factory whose sessions fail on commit at the given positions.

    Positions are 1-based in the order sessions are opened; every other
    session is a normal one from the wrapped factory.
    """

    def __init__(self, session_factory, fail_sessions: Iterable[int], error: Optional[Exception] = None):
        self.session_factory = session_factory
        self.fail_sessions = set(fail_sessions)
        self.error = error or OSError("disk I/O error")
        self.opened = 0

    @asynccontextmanager
    async def __call__(self):
        self.opened += 1
        position = self.opened
        async with self.session_factory() as session:
            if position in self.fail_sessions:
                yield CommitFailingSession(session, self.error)
            else:
                yield session
