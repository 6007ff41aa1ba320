"""Chat routes: message, streaming, conversation lifecycle and history endpoints."""

from __future__ import annotations

import json
from collections.abc import AsyncIterator
from contextlib import aclosing
from dataclasses import asdict

from fastapi import APIRouter, Query, Request, Response
from fastapi.responses import StreamingResponse
from loguru import logger
from pydantic.alias_generators import to_camel

from course_assistant.application.use_cases.chat import ChatUseCase
from course_assistant.domain.models import ErrorEvent, StreamEvent
from course_assistant.presentation.schemas import (
    ChatRequest,
    ChatResponse,
    ConversationResponse,
    HistoryResponse,
    NewConversationRequest,
)

router = APIRouter(prefix="/chat", tags=["chat"])


# ---------------------------------------------------------------------------
# Helper: server-sent event framing
# ---------------------------------------------------------------------------


def _camelize(value):
    if isinstance(value, dict):
        return {to_camel(k): _camelize(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_camelize(v) for v in value]
    return value


def to_sse(event: StreamEvent) -> str:
    """Frame one stream event as ``data: <json>\\n\\n``."""
    return f"data: {json.dumps(_camelize(asdict(event)), ensure_ascii=False)}\n\n"


# ---------------------------------------------------------------------------
# Chat (non-streaming)
# ---------------------------------------------------------------------------


@router.post("/message", response_model=ChatResponse)
async def send_message(request: ChatRequest, raw_request: Request):
    """Send a message and receive a course-grounded answer (non-streaming).

    Send ``conversationId=null`` to start a new conversation, or pass an
    existing ID to continue one.
    """
    uc: ChatUseCase = raw_request.app.state.chat_uc

    logger.info(
        "POST /chat/message | student={} conversation={} msg={}",
        request.student_id,
        request.conversation_id,
        request.message[:60],
    )
    result = await uc.send_message(request.student_id, request.message, request.conversation_id)
    return ChatResponse.from_domain(result)


# ---------------------------------------------------------------------------
# Chat (streaming, server-sent events)
# ---------------------------------------------------------------------------


@router.post("/stream")
async def stream_message(request: ChatRequest, raw_request: Request):
    """Send a message and receive the answer as server-sent events.

    Events, each framed as ``data: <json>\\n\\n``:
    - ``{"type": "start", "conversationId", "userMessageId"}``
    - ``{"type": "token", "content"}``: one per streamed delta
    - ``{"type": "done", "assistantMessageId", "metadata"}`` or
      ``{"type": "error", "message"}``: exactly one, last
    """
    uc: ChatUseCase = raw_request.app.state.chat_uc

    logger.info(
        "POST /chat/stream | student={} conversation={} msg={}",
        request.student_id,
        request.conversation_id,
        request.message[:60],
    )

    events = uc.stream_message(request.student_id, request.message, request.conversation_id)
    # Pull the start event here so validation errors become a normal 4xx response
    first = await anext(events)

    async def event_generator() -> AsyncIterator[str]:
        async with aclosing(events):
            yield to_sse(first)
            try:
                async for event in events:
                    yield to_sse(event)
            except Exception as exc:
                logger.exception("Chat stream aborted: {}", exc)
                yield to_sse(ErrorEvent(message="Internal server error"))

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "X-Accel-Buffering": "no",
        },
    )


# ---------------------------------------------------------------------------
# Conversations and history
# ---------------------------------------------------------------------------


@router.post("/conversation/new", response_model=ConversationResponse, status_code=201)
async def new_conversation(request: NewConversationRequest, raw_request: Request):
    """Start a fresh conversation; the student's other conversations become inactive."""
    uc: ChatUseCase = raw_request.app.state.chat_uc
    conversation = uc.start_new_conversation(request.student_id, request.initial_context)
    return ConversationResponse.from_domain(conversation)


@router.get("/conversations/{student_id}", response_model=list[ConversationResponse])
async def list_conversations(student_id: str, raw_request: Request):
    """List a student's conversations, most recent activity first."""
    uc: ChatUseCase = raw_request.app.state.chat_uc
    return [ConversationResponse.from_domain(c) for c in uc.list_conversations(student_id)]


@router.get("/history/{student_id}", response_model=HistoryResponse)
async def get_history(
    student_id: str,
    raw_request: Request,
    conversation_id: str | None = Query(default=None, alias="conversationId"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=50, ge=1, le=100),
):
    """Get one page of messages, oldest first.

    Without ``conversationId`` the student's active conversation is used.
    """
    uc: ChatUseCase = raw_request.app.state.chat_uc
    history = uc.get_history(student_id, conversation_id, page=page, limit=limit)
    return HistoryResponse.from_domain(history)


@router.delete("/history/{student_id}/{conversation_id}", status_code=204)
async def delete_history(student_id: str, conversation_id: str, raw_request: Request):
    """Delete a conversation and all of its messages."""
    uc: ChatUseCase = raw_request.app.state.chat_uc
    deleted = uc.delete_history(student_id, conversation_id)
    logger.info("DELETE /chat/history | conversation={} messages={}", conversation_id, deleted)
    return Response(status_code=204)
