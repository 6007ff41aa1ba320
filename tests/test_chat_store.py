"""Tests for ChatStore: CRUD operations on conversations and messages."""

from __future__ import annotations

import sqlite3

import pytest
from conftest import OTHER_STUDENT_ID, STUDENT_ID

from course_assistant.domain.models import MessageMetadata
from course_assistant.infrastructure.chat_store import ChatStore


class TestConversations:
    def test_create_conversation(self, chat_store: ChatStore):
        conv = chat_store.create_conversation(STUDENT_ID, "New conversation")
        assert conv.id
        assert conv.student_id == STUDENT_ID
        assert conv.is_active is True
        assert conv.message_count == 0

    def test_get_conversation(self, chat_store: ChatStore):
        conv = chat_store.create_conversation(STUDENT_ID, "New conversation")
        assert chat_store.get_conversation(conv.id) == conv

    def test_get_conversation_not_found(self, chat_store: ChatStore):
        assert chat_store.get_conversation("nonexistent") is None

    def test_deactivate_others_keeps_one_active(self, chat_store: ChatStore):
        first = chat_store.create_conversation(STUDENT_ID, "a")
        second = chat_store.create_conversation(STUDENT_ID, "b")
        foreign = chat_store.create_conversation(OTHER_STUDENT_ID, "c")

        assert chat_store.deactivate_other_conversations(STUDENT_ID, second.id) == 1

        assert chat_store.get_conversation(first.id).is_active is False
        assert chat_store.get_conversation(second.id).is_active is True
        assert chat_store.get_conversation(foreign.id).is_active is True

    def test_find_previous_conversation(self, chat_store: ChatStore):
        assert chat_store.find_previous_conversation(STUDENT_ID, "x") is None

        chat_store.create_conversation(STUDENT_ID, "a")
        second = chat_store.create_conversation(STUDENT_ID, "b")
        third = chat_store.create_conversation(STUDENT_ID, "c")

        assert chat_store.find_previous_conversation(STUDENT_ID, third.id).id == second.id
        assert chat_store.find_previous_conversation(STUDENT_ID, second.id).id == third.id

    def test_find_current_prefers_active(self, chat_store: ChatStore):
        first = chat_store.create_conversation(STUDENT_ID, "a")
        chat_store.create_conversation(STUDENT_ID, "b")
        chat_store.deactivate_other_conversations(STUDENT_ID, first.id)

        assert chat_store.find_current_conversation(STUDENT_ID).id == first.id
        assert chat_store.find_current_conversation(OTHER_STUDENT_ID) is None

    def test_record_turn_counts_two_messages(self, chat_store: ChatStore):
        conv = chat_store.create_conversation(STUDENT_ID, "a")
        chat_store.record_turn(conv.id)
        chat_store.record_turn(conv.id)

        updated = chat_store.get_conversation(conv.id)
        assert updated.message_count == 4
        assert updated.last_message_at >= conv.last_message_at

    def test_list_student_conversations(self, chat_store: ChatStore):
        chat_store.create_conversation(STUDENT_ID, "a")
        chat_store.create_conversation(STUDENT_ID, "b")
        chat_store.create_conversation(OTHER_STUDENT_ID, "c")

        titles = {c.title for c in chat_store.list_student_conversations(STUDENT_ID)}
        assert titles == {"a", "b"}


class TestMessages:
    def test_create_and_page_messages(self, chat_store: ChatStore):
        conv = chat_store.create_conversation(STUDENT_ID, "a")
        for i in range(5):
            chat_store.create_message(conv.id, "user", f"message {i}")

        assert chat_store.count_messages(conv.id) == 5
        page = chat_store.get_messages(conv.id, offset=2, limit=2)
        assert [m.content for m in page] == ["message 2", "message 3"]

    def test_metadata_round_trip(self, chat_store: ChatStore):
        conv = chat_store.create_conversation(STUDENT_ID, "a")
        metadata = MessageMetadata(tokens_used=120, model="gpt-4", used_rag=True, relevant_chunks=3)
        chat_store.create_message(conv.id, "assistant", "answer", metadata)

        [stored] = chat_store.get_messages(conv.id)
        assert stored.metadata == metadata

    def test_user_messages_have_no_metadata(self, chat_store: ChatStore):
        conv = chat_store.create_conversation(STUDENT_ID, "a")
        message = chat_store.create_message(conv.id, "user", "hi")
        assert message.metadata is None
        assert chat_store.get_messages(conv.id)[0].metadata is None

    def test_recent_messages_are_latest_oldest_first(self, chat_store: ChatStore):
        conv = chat_store.create_conversation(STUDENT_ID, "a")
        for i in range(25):
            chat_store.create_message(conv.id, "user" if i % 2 == 0 else "assistant", f"m{i}")

        recent = chat_store.get_recent_messages(conv.id, 20)
        assert [m.content for m in recent] == [f"m{i}" for i in range(5, 25)]

    def test_invalid_role_is_rejected(self, chat_store: ChatStore):
        conv = chat_store.create_conversation(STUDENT_ID, "a")
        with pytest.raises(sqlite3.IntegrityError):
            chat_store.create_message(conv.id, "robot", "beep")

    def test_delete_messages_and_conversation(self, chat_store: ChatStore):
        conv = chat_store.create_conversation(STUDENT_ID, "a")
        chat_store.create_message(conv.id, "user", "q")
        chat_store.create_message(conv.id, "assistant", "a")

        assert chat_store.delete_messages(conv.id) == 2
        chat_store.delete_conversation(conv.id)

        assert chat_store.get_conversation(conv.id) is None
        assert chat_store.count_messages(conv.id) == 0
