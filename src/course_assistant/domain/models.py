"""Domain entities and value objects.

These are the core data structures of the course assistant domain,
independent of any infrastructure or framework concerns.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

from pydantic import BaseModel, Field

Role = Literal["user", "assistant", "system"]

# ---------------------------------------------------------------------------
# Chat domain entities (persisted in the chat store)
# ---------------------------------------------------------------------------


@dataclass
class Conversation:
    id: str
    student_id: str
    title: str
    is_active: bool
    last_message_at: str
    message_count: int
    created_at: str


@dataclass
class MessageMetadata:
    """Bookkeeping attached to every assistant message."""

    tokens_used: int = 0
    model: str | None = None
    used_rag: bool = False
    relevant_chunks: int = 0


@dataclass
class Message:
    id: str
    conversation_id: str
    role: str
    content: str
    metadata: MessageMetadata | None = None
    created_at: str = ""


@dataclass
class ChatTurnResult:
    """Outcome of a completed (non-streaming) chat turn."""

    conversation_id: str
    user_message: Message
    assistant_message: Message


@dataclass
class ChatHistoryPage:
    conversation_id: str
    messages: list[Message]
    total: int
    page: int
    limit: int


# ---------------------------------------------------------------------------
# Knowledge domain entities
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ChunkMetadata:
    token_count: int
    page_number: int | None = None
    section: str | None = None


@dataclass(frozen=True)
class KnowledgeChunk:
    """A segment of course text with its embedding. Never mutated after creation."""

    id: str
    course_id: str
    source_file: str
    chunk_index: int
    content: str
    embedding: tuple[float, ...]
    metadata: ChunkMetadata
    created_at: str = ""


@dataclass
class SearchResult:
    """A single semantic-search hit."""

    content: str
    course_id: str
    score: float
    metadata: ChunkMetadata | None = None


@dataclass
class IndexResult:
    chunks_created: int


@dataclass
class KnowledgeStats:
    total_chunks: int
    courses_covered: int


# ---------------------------------------------------------------------------
# Upstream results
# ---------------------------------------------------------------------------


@dataclass
class CompletionResult:
    content: str
    tokens_used: int = 0
    model: str | None = None


@dataclass
class CompletionChunk:
    """One streamed piece of a completion.

    ``tokens_used`` is only set on the terminal chunk that carries usage.
    """

    content: str = ""
    tokens_used: int | None = None
    model: str | None = None


# ---------------------------------------------------------------------------
# Streaming chat events
# ---------------------------------------------------------------------------


@dataclass
class StartEvent:
    conversation_id: str
    user_message_id: str
    type: str = field(default="start", init=False)


@dataclass
class TokenEvent:
    content: str
    type: str = field(default="token", init=False)


@dataclass
class DoneEvent:
    assistant_message_id: str
    metadata: MessageMetadata
    type: str = field(default="done", init=False)


@dataclass
class ErrorEvent:
    message: str
    type: str = field(default="error", init=False)


StreamEvent = StartEvent | TokenEvent | DoneEvent | ErrorEvent


# ---------------------------------------------------------------------------
# Shared DTO (used by the cache, the use case and the completion client)
# ---------------------------------------------------------------------------


class ChatMessage(BaseModel):
    """A single message in the conversation history sent to the model."""

    role: Role = Field(description="Message role: 'user', 'assistant' or 'system'")
    content: str = Field(description="Message content")
