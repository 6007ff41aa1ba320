"""Conversation and message persistence.

Keeps conversations and messages in SQLite. This store is the source of truth
for chat history; the in-memory conversation cache only mirrors it.
"""

from __future__ import annotations

import json
import sqlite3
import uuid
from dataclasses import asdict
from datetime import UTC, datetime
from pathlib import Path

from loguru import logger

from course_assistant.domain.models import Conversation, Message, MessageMetadata

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_SCHEMA_SQL = """\
CREATE TABLE IF NOT EXISTS conversations (
    id TEXT PRIMARY KEY,
    student_id TEXT NOT NULL,
    title TEXT NOT NULL,
    is_active BOOLEAN NOT NULL DEFAULT 1,
    last_message_at TEXT NOT NULL,
    message_count INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS messages (
    id TEXT PRIMARY KEY,
    conversation_id TEXT NOT NULL REFERENCES conversations(id) ON DELETE CASCADE,
    role TEXT NOT NULL CHECK(role IN ('user', 'assistant', 'system')),
    content TEXT NOT NULL,
    metadata TEXT,
    created_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_messages_conversation_id ON messages(conversation_id);
CREATE INDEX IF NOT EXISTS idx_conversations_student_id ON conversations(student_id);
"""


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


def _utcnow() -> str:
    # Microseconds keep messages written in the same second ordered
    return datetime.now(UTC).strftime("%Y-%m-%d %H:%M:%S.%f")


class ChatStore:
    """CRUD operations for conversations and messages stored in SQLite."""

    def __init__(self, db_path: Path) -> None:
        self.db_path = db_path
        self.conn: sqlite3.Connection | None = None

    def connect(self) -> None:
        """Open (or create) the database and ensure the schema exists."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA journal_mode=WAL")
        self.conn.execute("PRAGMA foreign_keys=ON")
        self.conn.executescript(_SCHEMA_SQL)
        self.conn.commit()
        logger.info("Chat store ready at {}", self.db_path)

    def close(self) -> None:
        if self.conn:
            self.conn.close()

    # ------------------------------------------------------------------
    # Conversations
    # ------------------------------------------------------------------

    def create_conversation(self, student_id: str, title: str) -> Conversation:
        """Create a new active conversation and return it."""
        assert self.conn
        conversation_id = str(uuid.uuid4())
        now = _utcnow()
        self.conn.execute(
            "INSERT INTO conversations "
            "(id, student_id, title, is_active, last_message_at, message_count, created_at) "
            "VALUES (?, ?, ?, 1, ?, 0, ?)",
            (conversation_id, student_id, title, now, now),
        )
        self.conn.commit()
        logger.info("Created conversation {} for student {}", conversation_id, student_id)
        return Conversation(
            id=conversation_id,
            student_id=student_id,
            title=title,
            is_active=True,
            last_message_at=now,
            message_count=0,
            created_at=now,
        )

    def get_conversation(self, conversation_id: str) -> Conversation | None:
        """Return a conversation by ID, or None if not found."""
        assert self.conn
        row = self.conn.execute(
            "SELECT * FROM conversations WHERE id = ?", (conversation_id,)
        ).fetchone()
        return self._row_to_conversation(row) if row else None

    def deactivate_other_conversations(self, student_id: str, keep_id: str) -> int:
        """Mark every conversation of *student_id* except *keep_id* inactive."""
        assert self.conn
        cursor = self.conn.execute(
            "UPDATE conversations SET is_active = 0 "
            "WHERE student_id = ? AND id != ? AND is_active = 1",
            (student_id, keep_id),
        )
        self.conn.commit()
        return cursor.rowcount

    def find_previous_conversation(self, student_id: str, exclude_id: str) -> Conversation | None:
        """Return the student's most recently created conversation other than *exclude_id*."""
        assert self.conn
        row = self.conn.execute(
            "SELECT * FROM conversations WHERE student_id = ? AND id != ? "
            "ORDER BY created_at DESC, rowid DESC LIMIT 1",
            (student_id, exclude_id),
        ).fetchone()
        return self._row_to_conversation(row) if row else None

    def find_current_conversation(self, student_id: str) -> Conversation | None:
        """Return the active conversation, falling back to the most recent one."""
        assert self.conn
        row = self.conn.execute(
            "SELECT * FROM conversations WHERE student_id = ? "
            "ORDER BY is_active DESC, last_message_at DESC, rowid DESC LIMIT 1",
            (student_id,),
        ).fetchone()
        return self._row_to_conversation(row) if row else None

    def list_student_conversations(self, student_id: str) -> list[Conversation]:
        """Return all conversations for a student, most recent activity first."""
        assert self.conn
        rows = self.conn.execute(
            "SELECT * FROM conversations WHERE student_id = ? "
            "ORDER BY last_message_at DESC, rowid DESC",
            (student_id,),
        ).fetchall()
        return [self._row_to_conversation(row) for row in rows]

    def record_turn(self, conversation_id: str) -> None:
        """Bump ``last_message_at`` and add one user+assistant pair to ``message_count``."""
        assert self.conn
        self.conn.execute(
            "UPDATE conversations SET last_message_at = ?, message_count = message_count + 2 "
            "WHERE id = ?",
            (_utcnow(), conversation_id),
        )
        self.conn.commit()

    def delete_conversation(self, conversation_id: str) -> None:
        assert self.conn
        self.conn.execute("DELETE FROM conversations WHERE id = ?", (conversation_id,))
        self.conn.commit()

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    def create_message(
        self,
        conversation_id: str,
        role: str,
        content: str,
        metadata: MessageMetadata | None = None,
    ) -> Message:
        """Persist a message and return it."""
        assert self.conn
        msg_id = str(uuid.uuid4())
        now = _utcnow()
        self.conn.execute(
            "INSERT INTO messages (id, conversation_id, role, content, metadata, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            (
                msg_id,
                conversation_id,
                role,
                content,
                json.dumps(asdict(metadata)) if metadata else None,
                now,
            ),
        )
        self.conn.commit()
        return Message(
            id=msg_id,
            conversation_id=conversation_id,
            role=role,
            content=content,
            metadata=metadata,
            created_at=now,
        )

    def get_recent_messages(self, conversation_id: str, limit: int) -> list[Message]:
        """Return the *limit* most recent messages, ordered oldest first."""
        assert self.conn
        rows = self.conn.execute(
            """
            SELECT * FROM (
                SELECT *, rowid AS seq FROM messages
                WHERE conversation_id = ?
                ORDER BY created_at DESC, rowid DESC
                LIMIT ?
            )
            ORDER BY created_at ASC, seq ASC
            """,
            (conversation_id, limit),
        ).fetchall()
        return [self._row_to_message(row) for row in rows]

    def get_messages(self, conversation_id: str, offset: int = 0, limit: int = 50) -> list[Message]:
        """Return a page of messages in chronological order."""
        assert self.conn
        rows = self.conn.execute(
            "SELECT * FROM messages WHERE conversation_id = ? "
            "ORDER BY created_at ASC, rowid ASC LIMIT ? OFFSET ?",
            (conversation_id, limit, offset),
        ).fetchall()
        return [self._row_to_message(row) for row in rows]

    def count_messages(self, conversation_id: str) -> int:
        assert self.conn
        row = self.conn.execute(
            "SELECT COUNT(*) AS n FROM messages WHERE conversation_id = ?", (conversation_id,)
        ).fetchone()
        return row["n"]

    def delete_messages(self, conversation_id: str) -> int:
        """Delete every message of a conversation and return how many were removed."""
        assert self.conn
        cursor = self.conn.execute(
            "DELETE FROM messages WHERE conversation_id = ?", (conversation_id,)
        )
        self.conn.commit()
        return cursor.rowcount

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _row_to_conversation(row: sqlite3.Row) -> Conversation:
        return Conversation(
            id=row["id"],
            student_id=row["student_id"],
            title=row["title"],
            is_active=bool(row["is_active"]),
            last_message_at=row["last_message_at"],
            message_count=row["message_count"],
            created_at=row["created_at"],
        )

    @staticmethod
    def _row_to_message(row: sqlite3.Row) -> Message:
        metadata = None
        raw = row["metadata"]
        if raw:
            try:
                metadata = MessageMetadata(**json.loads(raw))
            except (json.JSONDecodeError, TypeError):
                logger.warning("Ignoring unreadable metadata on message {}", row["id"])
        return Message(
            id=row["id"],
            conversation_id=row["conversation_id"],
            role=row["role"],
            content=row["content"],
            metadata=metadata,
            created_at=row["created_at"],
        )
