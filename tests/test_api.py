"""Tests for the FastAPI presentation layer (routes, schemas, error mapping)."""

from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import patch

import pytest
from conftest import COURSE_ID, OTHER_STUDENT_ID, STUDENT_ID, FakeCompletionClient, FakeEmbedder
from fastapi.testclient import TestClient

from course_assistant.application.exceptions import ServiceUnavailableError
from course_assistant.config import Settings


def _test_settings(tmp_path: Path) -> Settings:
    """Create a Settings instance suitable for tests.

    Uses ``_env_file=None`` so a local .env is never loaded.
    """
    return Settings(
        _env_file=None,
        openai_api_key="test-key",
        db_path=tmp_path / "test.sqlite",
    )


@pytest.fixture()
def completion() -> FakeCompletionClient:
    return FakeCompletionClient()


@pytest.fixture()
def client(tmp_path: Path, completion: FakeCompletionClient):
    """App with real SQLite stores and fake upstream clients."""
    settings = _test_settings(tmp_path)
    with patch("course_assistant.main.get_settings", return_value=settings):
        from course_assistant.main import app

        with TestClient(app) as c:
            app.state.knowledge.embedder = FakeEmbedder()
            app.state.chat_uc.completion_client = completion
            yield c


def _sse_events(body: str) -> list[dict]:
    return [
        json.loads(block[len("data: "):])
        for block in body.split("\n\n")
        if block.startswith("data: ")
    ]


class TestHealthEndpoint:
    def test_health_returns_ok(self, client: TestClient):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}


class TestSettings:
    def test_validate_runtime_requires_api_key(self, tmp_path: Path, monkeypatch):
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        settings = Settings(_env_file=None, db_path=tmp_path / "x.sqlite")
        with pytest.raises(ValueError, match="OPENAI_API_KEY"):
            settings.validate_runtime()

    def test_defaults(self, tmp_path: Path):
        settings = _test_settings(tmp_path)
        assert settings.chat_model == "gpt-4"
        assert settings.embedding_model == "text-embedding-3-small"
        assert settings.search_min_score == 0.7
        assert settings.chat_context_min_score == 0.5


# ---------------------------------------------------------------------------
# Knowledge
# ---------------------------------------------------------------------------


class TestKnowledgeEndpoints:
    def _index(self, client: TestClient, content="React builds user interfaces.", source="react.txt"):
        return client.post(
            "/knowledge/index",
            json={"courseId": COURSE_ID, "content": content, "sourceFile": source},
        )

    def test_index_returns_created_count(self, client: TestClient):
        response = self._index(client)
        assert response.status_code == 201
        assert response.json() == {"chunksCreated": 1}

    def test_index_rejects_invalid_course_id(self, client: TestClient):
        response = client.post(
            "/knowledge/index",
            json={"courseId": "nope", "content": "Text.", "sourceFile": "a.txt"},
        )
        assert response.status_code == 400
        assert response.json()["detail"] == "Invalid courseId"

    def test_search_returns_camel_case_results(self, client: TestClient):
        self._index(client)

        response = client.get("/knowledge/search", params={"q": "What is React?", "courseId": COURSE_ID})

        assert response.status_code == 200
        [hit] = response.json()
        assert hit["courseId"] == COURSE_ID
        assert hit["score"] == pytest.approx(1.0)
        assert hit["metadata"]["tokenCount"] > 0

    def test_search_limit_is_bounded(self, client: TestClient):
        response = client.get("/knowledge/search", params={"q": "x", "limit": 50})
        assert response.status_code == 422

    def test_stats_and_delete_course(self, client: TestClient):
        self._index(client, source="a.txt")
        self._index(client, source="b.txt")

        assert client.get("/knowledge/stats").json() == {"totalChunks": 2, "coursesCovered": 1}

        response = client.delete(f"/knowledge/course/{COURSE_ID}")
        assert response.json() == {"deletedCount": 2}
        assert client.get("/knowledge/stats").json()["totalChunks"] == 0


# ---------------------------------------------------------------------------
# Chat
# ---------------------------------------------------------------------------


class TestChatEndpoints:
    def test_send_message(self, client: TestClient, completion: FakeCompletionClient):
        response = client.post("/chat/message", json={"studentId": STUDENT_ID, "message": "¿Qué es React?"})

        assert response.status_code == 200
        body = response.json()
        assert body["conversationId"]
        assert body["userMessage"]["content"] == "¿Qué es React?"
        assert body["assistantMessage"]["content"] == completion.content
        assert body["assistantMessage"]["metadata"]["tokensUsed"] == 42

    def test_empty_message_is_rejected(self, client: TestClient):
        response = client.post("/chat/message", json={"studentId": STUDENT_ID, "message": " "})
        assert response.status_code == 400

    def test_upstream_failure_maps_to_status(self, client: TestClient, completion: FakeCompletionClient):
        completion.error = ServiceUnavailableError()
        response = client.post("/chat/message", json={"studentId": STUDENT_ID, "message": "hola"})
        assert response.status_code == 503

    def test_stream_emits_sse_events(self, client: TestClient):
        response = client.post("/chat/stream", json={"studentId": STUDENT_ID, "message": "¿Qué es React?"})

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        events = _sse_events(response.text)
        assert [e["type"] for e in events] == ["start", "token", "token", "token", "done"]
        assert events[0]["conversationId"]
        assert events[0]["userMessageId"]
        assert "".join(e["content"] for e in events[1:4]) == "Hola, mundo"
        assert events[-1]["metadata"]["tokensUsed"] == 42
        assert events[-1]["assistantMessageId"]

    def test_stream_failure_ends_with_error_event(self, client: TestClient, completion: FakeCompletionClient):
        completion.stream_error = ServiceUnavailableError()

        response = client.post("/chat/stream", json={"studentId": STUDENT_ID, "message": "hola"})

        events = _sse_events(response.text)
        assert events[0]["type"] == "start"
        assert events[-1]["type"] == "error"
        assert events[-1]["message"]

    def test_stream_validation_error_is_plain_400(self, client: TestClient):
        response = client.post("/chat/stream", json={"studentId": "bad", "message": "hola"})
        assert response.status_code == 400

    def test_conversation_history_lifecycle(self, client: TestClient):
        created = client.post(
            "/chat/conversation/new",
            json={"studentId": STUDENT_ID, "initialContext": "Module 1"},
        )
        assert created.status_code == 201
        conversation_id = created.json()["id"]
        assert created.json()["isActive"] is True

        client.post(
            "/chat/message",
            json={"studentId": STUDENT_ID, "message": "hola", "conversationId": conversation_id},
        )

        history = client.get(f"/chat/history/{STUDENT_ID}", params={"limit": 2, "page": 1})
        assert history.status_code == 200
        body = history.json()
        assert body["conversationId"] == conversation_id
        assert body["total"] == 3
        assert [m["role"] for m in body["messages"]] == ["system", "user"]

        listed = client.get(f"/chat/conversations/{STUDENT_ID}").json()
        assert [c["id"] for c in listed] == [conversation_id]

        deleted = client.delete(f"/chat/history/{STUDENT_ID}/{conversation_id}")
        assert deleted.status_code == 204

        missing = client.get(f"/chat/history/{STUDENT_ID}", params={"conversationId": conversation_id})
        assert missing.status_code == 404

    def test_history_of_other_student_is_not_found(self, client: TestClient):
        created = client.post("/chat/conversation/new", json={"studentId": OTHER_STUDENT_ID}).json()

        response = client.get(f"/chat/history/{STUDENT_ID}", params={"conversationId": created["id"]})
        assert response.status_code == 404
