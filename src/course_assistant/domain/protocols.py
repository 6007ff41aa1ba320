"""Domain service interfaces (ports).

These protocols define the contracts that infrastructure implementations
must satisfy.  The application layer depends on these abstractions,
not on concrete classes.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Protocol, runtime_checkable

from course_assistant.domain.models import (
    ChatMessage,
    CompletionChunk,
    CompletionResult,
    Conversation,
    KnowledgeChunk,
    Message,
    MessageMetadata,
)

# ---------------------------------------------------------------------------
# Upstream clients
# ---------------------------------------------------------------------------


@runtime_checkable
class IEmbeddingClient(Protocol):
    """Interface for text embedding.

    Implementations: OpenAIEmbeddingClient.
    """

    async def embed(self, text: str) -> list[float]: ...


@runtime_checkable
class ICompletionClient(Protocol):
    """Interface for chat completion (blocking and streaming).

    Implementations: OpenAICompletionClient.
    """

    async def complete(self, messages: list[ChatMessage]) -> CompletionResult: ...

    def stream_complete(self, messages: list[ChatMessage]) -> AsyncIterator[CompletionChunk]: ...


# ---------------------------------------------------------------------------
# Knowledge store
# ---------------------------------------------------------------------------


@runtime_checkable
class IKnowledgeStore(Protocol):
    """Interface for flat chunk storage with bulk scan.

    Implementations: KnowledgeStore (SQLModel / SQLite).
    """

    def connect(self) -> None: ...

    def close(self) -> None: ...

    def add_chunk(self, chunk: KnowledgeChunk) -> None: ...

    def delete_by_source(self, course_id: str, source_file: str) -> int: ...

    def delete_by_course(self, course_id: str) -> int: ...

    def list_chunks(self, course_id: str | None = None) -> list[KnowledgeChunk]: ...

    def get_stats(self) -> dict: ...


# ---------------------------------------------------------------------------
# Chat store
# ---------------------------------------------------------------------------


@runtime_checkable
class IChatStore(Protocol):
    """Interface for conversation and message persistence.

    Implementations: ChatStore (SQLite-backed).
    """

    def connect(self) -> None: ...

    def close(self) -> None: ...

    def create_conversation(self, student_id: str, title: str) -> Conversation: ...

    def get_conversation(self, conversation_id: str) -> Conversation | None: ...

    def deactivate_other_conversations(self, student_id: str, keep_id: str) -> int: ...

    def find_previous_conversation(self, student_id: str, exclude_id: str) -> Conversation | None: ...

    def find_current_conversation(self, student_id: str) -> Conversation | None: ...

    def list_student_conversations(self, student_id: str) -> list[Conversation]: ...

    def record_turn(self, conversation_id: str) -> None: ...

    def delete_conversation(self, conversation_id: str) -> None: ...

    def create_message(
        self,
        conversation_id: str,
        role: str,
        content: str,
        metadata: MessageMetadata | None = None,
    ) -> Message: ...

    def get_recent_messages(self, conversation_id: str, limit: int) -> list[Message]: ...

    def get_messages(self, conversation_id: str, offset: int = 0, limit: int = 50) -> list[Message]: ...

    def count_messages(self, conversation_id: str) -> int: ...

    def delete_messages(self, conversation_id: str) -> int: ...
