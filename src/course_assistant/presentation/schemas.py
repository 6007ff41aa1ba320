"""HTTP request/response schemas (Pydantic models) for the REST API.

Field names are snake_case in Python and camelCase on the wire.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from course_assistant.domain.models import (
    ChatHistoryPage,
    ChatTurnResult,
    ChunkMetadata,
    Conversation,
    Message,
    MessageMetadata,
    SearchResult,
)


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Knowledge
# ---------------------------------------------------------------------------


class IndexRequest(CamelModel):
    """Request body for POST /knowledge/index."""

    course_id: str = Field(description="Course the content belongs to")
    content: str = Field(description="Raw course text to index")
    source_file: str = Field(description="Name of the source the text was extracted from")


class IndexResponse(CamelModel):
    chunks_created: int


class ChunkMetadataResponse(CamelModel):
    token_count: int
    page_number: int | None = None
    section: str | None = None

    @classmethod
    def from_domain(cls, metadata: ChunkMetadata) -> ChunkMetadataResponse:
        return cls(
            token_count=metadata.token_count,
            page_number=metadata.page_number,
            section=metadata.section,
        )


class SearchResultResponse(CamelModel):
    """A single semantic-search hit."""

    content: str
    course_id: str
    score: float
    metadata: ChunkMetadataResponse | None = None

    @classmethod
    def from_domain(cls, result: SearchResult) -> SearchResultResponse:
        return cls(
            content=result.content,
            course_id=result.course_id,
            score=result.score,
            metadata=ChunkMetadataResponse.from_domain(result.metadata) if result.metadata else None,
        )


class StatsResponse(CamelModel):
    total_chunks: int
    courses_covered: int


class DeleteCourseResponse(CamelModel):
    deleted_count: int


# ---------------------------------------------------------------------------
# Chat
# ---------------------------------------------------------------------------


class ChatRequest(CamelModel):
    """Request body for POST /chat/message and POST /chat/stream."""

    student_id: str = Field(description="Student sending the message")
    message: str = Field(description="The new user message")
    conversation_id: str | None = Field(
        default=None,
        description="Existing conversation to continue. None starts a new one.",
    )


class NewConversationRequest(CamelModel):
    """Request body for POST /chat/conversation/new."""

    student_id: str
    initial_context: str | None = Field(
        default=None,
        description="Optional system message the conversation starts with",
    )


class MessageMetadataResponse(CamelModel):
    tokens_used: int = 0
    model: str | None = None
    used_rag: bool = False
    relevant_chunks: int = 0

    @classmethod
    def from_domain(cls, metadata: MessageMetadata) -> MessageMetadataResponse:
        return cls(
            tokens_used=metadata.tokens_used,
            model=metadata.model,
            used_rag=metadata.used_rag,
            relevant_chunks=metadata.relevant_chunks,
        )


class MessageResponse(CamelModel):
    """A single persisted message."""

    id: str
    conversation_id: str
    role: str
    content: str
    metadata: MessageMetadataResponse | None = None
    created_at: str

    @classmethod
    def from_domain(cls, message: Message) -> MessageResponse:
        return cls(
            id=message.id,
            conversation_id=message.conversation_id,
            role=message.role,
            content=message.content,
            metadata=(
                MessageMetadataResponse.from_domain(message.metadata) if message.metadata else None
            ),
            created_at=message.created_at,
        )


class ChatResponse(CamelModel):
    """Response body from POST /chat/message."""

    conversation_id: str
    user_message: MessageResponse
    assistant_message: MessageResponse

    @classmethod
    def from_domain(cls, result: ChatTurnResult) -> ChatResponse:
        return cls(
            conversation_id=result.conversation_id,
            user_message=MessageResponse.from_domain(result.user_message),
            assistant_message=MessageResponse.from_domain(result.assistant_message),
        )


class ConversationResponse(CamelModel):
    id: str
    student_id: str
    title: str
    is_active: bool
    last_message_at: str
    message_count: int
    created_at: str

    @classmethod
    def from_domain(cls, conversation: Conversation) -> ConversationResponse:
        return cls(
            id=conversation.id,
            student_id=conversation.student_id,
            title=conversation.title,
            is_active=conversation.is_active,
            last_message_at=conversation.last_message_at,
            message_count=conversation.message_count,
            created_at=conversation.created_at,
        )


class HistoryResponse(CamelModel):
    """One page of a conversation's messages, oldest first."""

    conversation_id: str
    messages: list[MessageResponse]
    total: int
    page: int
    limit: int

    @classmethod
    def from_domain(cls, page: ChatHistoryPage) -> HistoryResponse:
        return cls(
            conversation_id=page.conversation_id,
            messages=[MessageResponse.from_domain(m) for m in page.messages],
            total=page.total,
            page=page.page,
            limit=page.limit,
        )
