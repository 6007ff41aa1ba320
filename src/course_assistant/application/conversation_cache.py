"""In-memory conversation history cache.

Each conversation id owns its own list of its own message objects. Nothing
stored here is ever shared by reference with another entry or with a caller:
values are copied on the way in and on the way out.
"""

from __future__ import annotations

from collections.abc import Iterable

from course_assistant.domain.models import ChatMessage

DEFAULT_MAX_MESSAGES = 10


def _copy_history(history: Iterable[ChatMessage]) -> list[ChatMessage]:
    return [message.model_copy() for message in history]


class ConversationCache:
    """Maps conversation id to a capped, independently owned message history.

    Created once per process (no persistence). Storage stays the source of
    truth; a miss is resolved by the caller re-reading the chat store.
    """

    def __init__(self, max_messages: int = DEFAULT_MAX_MESSAGES) -> None:
        self.max_messages = max_messages
        self._entries: dict[str, list[ChatMessage]] = {}

    def __contains__(self, conversation_id: object) -> bool:
        return conversation_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, conversation_id: str) -> list[ChatMessage] | None:
        """Return a copy of the cached history, or None on a miss."""
        history = self._entries.get(conversation_id)
        return _copy_history(history) if history is not None else None

    def set(self, conversation_id: str, history: Iterable[ChatMessage]) -> None:
        """Replace the entry with a private copy of *history*."""
        self._entries[conversation_id] = _copy_history(history)

    def append(self, conversation_id: str, *messages: ChatMessage) -> None:
        """Extend the entry and keep only the most recent ``max_messages``."""
        history = self._entries.setdefault(conversation_id, [])
        history.extend(_copy_history(messages))
        if len(history) > self.max_messages:
            del history[: len(history) - self.max_messages]

    def seed_from(
        self,
        new_id: str,
        source_id: str | None,
        initial_context: str | None = None,
    ) -> list[ChatMessage]:
        """Start *new_id* from a copy of *source_id*'s history, reset to empty.

        The new conversation starts without the previous turns; when
        *initial_context* is given it starts with a single system message.
        The source entry is left exactly as it was.
        """
        source = self._entries.get(source_id) if source_id else None
        history = _copy_history(source or [])
        history.clear()

        if initial_context:
            history.append(ChatMessage(role="system", content=initial_context))

        self._entries[new_id] = history
        return _copy_history(history)

    def discard(self, conversation_id: str) -> None:
        self._entries.pop(conversation_id, None)

    def clear(self) -> None:
        self._entries.clear()
