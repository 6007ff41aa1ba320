"""Shared fixtures and test doubles."""

from __future__ import annotations

from pathlib import Path

import pytest

from course_assistant.application.conversation_cache import ConversationCache
from course_assistant.application.exceptions import ServiceUnavailableError
from course_assistant.application.knowledge_service import KnowledgeService
from course_assistant.application.use_cases.chat import ChatUseCase
from course_assistant.domain.models import CompletionChunk, CompletionResult
from course_assistant.infrastructure.chat_store import ChatStore
from course_assistant.infrastructure.knowledge_store import KnowledgeStore

STUDENT_ID = "507f1f77bcf86cd799439011"
OTHER_STUDENT_ID = "507f1f77bcf86cd799439099"
COURSE_ID = "64b7f0c2a1e4d3b2c1a09f11"


def pytest_configure(config):
    """Set pytest-asyncio mode to auto so async test functions work without markers."""
    config.option.asyncio_mode = "auto"


# ---------------------------------------------------------------------------
# Test doubles
# ---------------------------------------------------------------------------


class FakeEmbedder:
    """Returns fixed vectors per text; texts listed in ``fail_on`` raise."""

    def __init__(self, vectors=None, default=(1.0, 0.0, 0.0), fail_on=()):
        self.vectors = dict(vectors or {})
        self.default = list(default)
        self.fail_on = set(fail_on)
        self.calls: list[str] = []

    async def embed(self, text: str) -> list[float]:
        self.calls.append(text)
        if text in self.fail_on:
            raise ServiceUnavailableError()
        return list(self.vectors.get(text, self.default))


class FakeCompletionClient:
    """Canned completions; records every prompt it receives."""

    def __init__(
        self,
        content: str = "React es una biblioteca de JavaScript para construir interfaces.",
        tokens_used: int = 42,
        model: str = "gpt-4",
        stream_chunks: tuple[str, ...] = ("Hola", ", ", "mundo"),
        error: Exception | None = None,
        stream_error: Exception | None = None,
    ):
        self.content = content
        self.tokens_used = tokens_used
        self.model = model
        self.stream_chunks = stream_chunks
        self.error = error
        self.stream_error = stream_error
        self.calls: list = []
        self.stream_closed = False

    async def complete(self, messages):
        self.calls.append(messages)
        if self.error:
            raise self.error
        return CompletionResult(content=self.content, tokens_used=self.tokens_used, model=self.model)

    async def stream_complete(self, messages):
        self.calls.append(messages)
        if self.error:
            raise self.error
        try:
            for piece in self.stream_chunks:
                yield CompletionChunk(content=piece, model=self.model)
            if self.stream_error:
                raise self.stream_error
            yield CompletionChunk(tokens_used=self.tokens_used, model=self.model)
        finally:
            self.stream_closed = True


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def knowledge_store(tmp_path: Path) -> KnowledgeStore:
    store = KnowledgeStore(db_path=tmp_path / "knowledge.sqlite")
    store.connect()
    yield store
    store.close()


@pytest.fixture()
def chat_store(tmp_path: Path) -> ChatStore:
    store = ChatStore(db_path=tmp_path / "chat.sqlite")
    store.connect()
    yield store
    store.close()


@pytest.fixture()
def embedder() -> FakeEmbedder:
    return FakeEmbedder()


@pytest.fixture()
def completion() -> FakeCompletionClient:
    return FakeCompletionClient()


@pytest.fixture()
def knowledge_service(knowledge_store: KnowledgeStore, embedder: FakeEmbedder) -> KnowledgeService:
    return KnowledgeService(knowledge_store, embedder)


@pytest.fixture()
def cache() -> ConversationCache:
    return ConversationCache()


@pytest.fixture()
def chat_use_case(
    chat_store: ChatStore,
    knowledge_service: KnowledgeService,
    completion: FakeCompletionClient,
    cache: ConversationCache,
) -> ChatUseCase:
    return ChatUseCase(
        chat_store=chat_store,
        knowledge_service=knowledge_service,
        completion_client=completion,
        cache=cache,
    )
