"""Chat use case: orchestrates a conversation turn with retrieval-augmented context.

This module contains all business logic for handling a chat turn:
conversation resolution, message persistence, history caching, knowledge
retrieval, prompt assembly and completion (blocking or streaming). It has
**no dependency on FastAPI** and can be invoked from any transport layer
(HTTP, CLI, WebSocket, ...).
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import aclosing

from loguru import logger

from course_assistant.application.conversation_cache import ConversationCache
from course_assistant.application.exceptions import (
    CourseAssistantError,
    NotFoundError,
    UpstreamError,
)
from course_assistant.application.knowledge_service import KnowledgeService
from course_assistant.application.validation import require_identifier, require_text
from course_assistant.domain.models import (
    ChatHistoryPage,
    ChatMessage,
    ChatTurnResult,
    Conversation,
    DoneEvent,
    ErrorEvent,
    Message,
    MessageMetadata,
    SearchResult,
    StartEvent,
    StreamEvent,
    TokenEvent,
)
from course_assistant.domain.protocols import IChatStore, ICompletionClient

NEW_CONVERSATION_TITLE = "New conversation"

BASE_SYSTEM_PROMPT = """\
You are a friendly and helpful study assistant for students of an online course platform.

Your goals:
- Help students with questions about the content of their courses
- Motivate them and offer encouragement when they need it
- Suggest resources and study techniques
- Answer clearly, concisely and kindly

Rules:
- Never hand out exam answers directly; guide the student towards the answer
- If you don't know something, admit it and suggest where to look for help
- Keep a positive, motivating tone
- Use practical examples whenever possible"""

CONTEXT_PROMPT_TEMPLATE = """\


RELEVANT COURSE CONTEXT:
Use the following course material to answer the student's question. If the \
question is unrelated to this context, answer in a general but friendly way.

{context}

Additional instructions:
- Base your answer primarily on the context provided
- If the context is not enough, say so and give a general answer
- Quote specific examples from the context when appropriate
- Keep an educational and motivating tone"""


def build_system_prompt(context_chunks: list[str]) -> str:
    """Return the base instruction, plus a numbered context block when chunks exist."""
    if not context_chunks:
        return BASE_SYSTEM_PROMPT
    context = "\n\n".join(f"[{i}] {chunk}" for i, chunk in enumerate(context_chunks, start=1))
    return BASE_SYSTEM_PROMPT + CONTEXT_PROMPT_TEMPLATE.format(context=context)


class ChatUseCase:
    """Orchestrates chat turns and conversation lifecycle for students.

    Parameters
    ----------
    chat_store:
        Durable storage for conversations and messages.
    knowledge_service:
        Semantic search over indexed course content.
    completion_client:
        Upstream chat-completion client (blocking and streaming).
    cache:
        Process-wide conversation history cache, owned by the application.
    """

    def __init__(
        self,
        chat_store: IChatStore,
        knowledge_service: KnowledgeService,
        completion_client: ICompletionClient,
        cache: ConversationCache,
        *,
        context_limit: int = 5,
        context_min_score: float = 0.5,
        history_prompt_limit: int = 10,
        history_hydrate_limit: int = 20,
    ) -> None:
        self.chat_store = chat_store
        self.knowledge_service = knowledge_service
        self.completion_client = completion_client
        self.cache = cache
        self.context_limit = context_limit
        self.context_min_score = context_min_score
        self.history_prompt_limit = history_prompt_limit
        self.history_hydrate_limit = history_hydrate_limit

    # ------------------------------------------------------------------
    # Public API: non-streaming
    # ------------------------------------------------------------------

    async def send_message(
        self,
        student_id: str,
        message: str,
        conversation_id: str | None = None,
    ) -> ChatTurnResult:
        """Run one chat turn and return both persisted messages.

        The user message is written before the model is called and is kept
        even if the call fails. Conversation metadata and the cache are only
        touched once the assistant message has been persisted.

        Raises:
            ValidationError: On a malformed student id or empty message.
            UpstreamError: If retrieval or completion fails.
        """
        text = self._validate_turn(student_id, message)
        conversation = self._resolve_conversation(student_id, conversation_id)

        user_message = self.chat_store.create_message(conversation.id, "user", text)
        history = self._get_history(conversation.id, exclude_id=user_message.id)

        logger.info(
            "Chat turn | student={} conversation={} msg={}",
            student_id,
            conversation.id,
            text[:60],
        )

        try:
            results = await self._retrieve_context(text)
            prompt = self._build_messages(text, history, results)
            completion = await self.completion_client.complete(prompt)
        except CourseAssistantError as exc:
            logger.error("Chat turn failed | conversation={} | {}", conversation.id, exc)
            raise

        metadata = MessageMetadata(
            tokens_used=completion.tokens_used,
            model=completion.model,
            used_rag=bool(results),
            relevant_chunks=len(results),
        )
        assistant_message = self._complete_turn(conversation.id, text, completion.content, metadata)

        return ChatTurnResult(
            conversation_id=conversation.id,
            user_message=user_message,
            assistant_message=assistant_message,
        )

    # ------------------------------------------------------------------
    # Public API: streaming
    # ------------------------------------------------------------------

    async def stream_message(
        self,
        student_id: str,
        message: str,
        conversation_id: str | None = None,
    ) -> AsyncIterator[StreamEvent]:
        """Run a streaming chat turn.

        Yields:
            ``StartEvent`` once the user message is stored, a ``TokenEvent``
            per content delta, then exactly one ``DoneEvent`` (assistant
            message persisted) or ``ErrorEvent`` (nothing else persisted).

        Raises:
            ValidationError: Before any event, on malformed input.
        """
        text = self._validate_turn(student_id, message)
        conversation = self._resolve_conversation(student_id, conversation_id)

        user_message = self.chat_store.create_message(conversation.id, "user", text)
        yield StartEvent(conversation_id=conversation.id, user_message_id=user_message.id)

        logger.info(
            "Chat stream | student={} conversation={} msg={}",
            student_id,
            conversation.id,
            text[:60],
        )

        parts: list[str] = []
        tokens_used = 0
        model: str | None = None

        try:
            history = self._get_history(conversation.id, exclude_id=user_message.id)
            results = await self._retrieve_context(text)
            prompt = self._build_messages(text, history, results)

            async with aclosing(self.completion_client.stream_complete(prompt)) as stream:
                async for chunk in stream:
                    if chunk.tokens_used is not None:
                        tokens_used = chunk.tokens_used
                    if chunk.model:
                        model = chunk.model
                    if chunk.content:
                        parts.append(chunk.content)
                        yield TokenEvent(content=chunk.content)

            content = "".join(parts)
            if not content.strip():
                raise UpstreamError(500, "Empty response content")
        except CourseAssistantError as exc:
            logger.error(
                "Chat stream failed | conversation={} | discarded {} partial chunk(s) | {}",
                conversation.id,
                len(parts),
                exc,
            )
            yield ErrorEvent(message=str(exc))
            return

        metadata = MessageMetadata(
            tokens_used=tokens_used,
            model=model,
            used_rag=bool(results),
            relevant_chunks=len(results),
        )
        assistant_message = self._complete_turn(conversation.id, text, content, metadata)

        logger.info(
            "Stream completed | conversation={} | chunks={} | tokens={}",
            conversation.id,
            len(parts),
            tokens_used,
        )
        yield DoneEvent(assistant_message_id=assistant_message.id, metadata=metadata)

    # ------------------------------------------------------------------
    # Public API: conversation lifecycle
    # ------------------------------------------------------------------

    def start_new_conversation(
        self, student_id: str, initial_context: str | None = None
    ) -> Conversation:
        """Create a fresh active conversation for *student_id*.

        The new cache entry is seeded from a copy of the student's previous
        conversation and reset, so the previous history is never touched.
        An *initial_context* becomes the conversation's first (system) message.
        """
        require_identifier(student_id, "studentId")

        conversation = self.chat_store.create_conversation(student_id, NEW_CONVERSATION_TITLE)
        previous = self.chat_store.find_previous_conversation(student_id, conversation.id)

        if initial_context:
            self.chat_store.create_message(conversation.id, "system", initial_context)
        self.cache.seed_from(conversation.id, previous.id if previous else None, initial_context)

        self.chat_store.deactivate_other_conversations(student_id, conversation.id)
        logger.info("New conversation started: {}", conversation.id)
        return conversation

    def list_conversations(self, student_id: str) -> list[Conversation]:
        require_identifier(student_id, "studentId")
        return self.chat_store.list_student_conversations(student_id)

    def get_history(
        self,
        student_id: str,
        conversation_id: str | None = None,
        page: int = 1,
        limit: int = 50,
    ) -> ChatHistoryPage:
        """Return one page of a conversation's messages, oldest first.

        Without *conversation_id* the student's active (else most recent)
        conversation is used.

        Raises:
            NotFoundError: If the conversation does not exist or is not the student's.
        """
        require_identifier(student_id, "studentId")
        page = max(1, page)
        limit = min(100, max(1, limit))

        if conversation_id:
            conversation = self._get_owned_conversation(student_id, conversation_id)
        else:
            conversation = self.chat_store.find_current_conversation(student_id)
            if conversation is None:
                raise NotFoundError(f"No conversations found for student {student_id}")

        total = self.chat_store.count_messages(conversation.id)
        messages = self.chat_store.get_messages(
            conversation.id, offset=(page - 1) * limit, limit=limit
        )
        return ChatHistoryPage(
            conversation_id=conversation.id,
            messages=messages,
            total=total,
            page=page,
            limit=limit,
        )

    def delete_history(self, student_id: str, conversation_id: str) -> int:
        """Delete a conversation with all its messages and drop its cache entry.

        Returns:
            Number of messages deleted.
        """
        require_identifier(student_id, "studentId")
        conversation = self._get_owned_conversation(student_id, conversation_id)

        deleted = self.chat_store.delete_messages(conversation.id)
        self.chat_store.delete_conversation(conversation.id)
        self.cache.discard(conversation.id)

        logger.info("Deleted conversation {} ({} messages)", conversation.id, deleted)
        return deleted

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _validate_turn(student_id: str, message: str) -> str:
        require_identifier(student_id, "studentId")
        return require_text(message, "Message cannot be empty")

    def _resolve_conversation(self, student_id: str, conversation_id: str | None) -> Conversation:
        if conversation_id:
            conversation = self.chat_store.get_conversation(conversation_id)
            if conversation:
                return conversation
            logger.warning("Conversation {} not found, starting a new one", conversation_id)

        conversation = self.chat_store.create_conversation(student_id, NEW_CONVERSATION_TITLE)
        self.chat_store.deactivate_other_conversations(student_id, conversation.id)
        self.cache.set(conversation.id, [])
        return conversation

    def _get_owned_conversation(self, student_id: str, conversation_id: str) -> Conversation:
        conversation = self.chat_store.get_conversation(conversation_id)
        if conversation is None or conversation.student_id != student_id:
            raise NotFoundError(f"Conversation {conversation_id} not found")
        return conversation

    def _get_history(self, conversation_id: str, exclude_id: str) -> list[ChatMessage]:
        """Return the cached history, hydrating it from storage on a miss."""
        cached = self.cache.get(conversation_id)
        if cached is not None:
            return cached

        stored = self.chat_store.get_recent_messages(conversation_id, self.history_hydrate_limit)
        history = [
            ChatMessage(role=m.role, content=m.content) for m in stored if m.id != exclude_id
        ]
        self.cache.set(conversation_id, history)
        logger.debug("Hydrated {} messages for conversation {}", len(history), conversation_id)
        return history

    async def _retrieve_context(self, text: str) -> list[SearchResult]:
        results = await self.knowledge_service.search_similar(
            text,
            limit=self.context_limit,
            min_score=self.context_min_score,
        )
        if results:
            logger.info("Found {} relevant chunks", len(results))
        else:
            logger.info("No relevant context found, answering without RAG")
        return results

    def _build_messages(
        self,
        text: str,
        history: list[ChatMessage],
        results: list[SearchResult],
    ) -> list[ChatMessage]:
        system_prompt = build_system_prompt([r.content for r in results])
        recent = history[-self.history_prompt_limit :] if self.history_prompt_limit else []
        return [
            ChatMessage(role="system", content=system_prompt),
            *recent,
            ChatMessage(role="user", content=text),
        ]

    def _complete_turn(
        self,
        conversation_id: str,
        user_text: str,
        assistant_text: str,
        metadata: MessageMetadata,
    ) -> Message:
        """Persist the assistant reply, then update conversation metadata and cache."""
        assistant_message = self.chat_store.create_message(
            conversation_id, "assistant", assistant_text, metadata
        )
        self.chat_store.record_turn(conversation_id)
        self.cache.append(
            conversation_id,
            ChatMessage(role="user", content=user_text),
            ChatMessage(role="assistant", content=assistant_text),
        )
        return assistant_message
