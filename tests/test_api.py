"""Tests for the FastAPI endpoints."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient
from google.events.cloud import firestore as firestore_events

from youdoyou.api.routes import extract_thread_id
from youdoyou.errors import (
    HistoryFetchFailed,
    MessageAlreadyClaimed,
    ModelInvocationFailed,
    NoPendingMessage,
)
from youdoyou.models import AgentResult, ToolCall
from youdoyou.server import app


def _document_event(path: str, role: str | None = "user", status: str | None = None) -> dict:
    fields = {"content": {"stringValue": "hello"}}
    if role is not None:
        fields["role"] = {"stringValue": role}
    if status is not None:
        fields["status"] = {"stringValue": status}
    return {"value": {"name": f"projects/p/databases/(default)/documents/{path}", "fields": fields}}


def _protobuf_event(path: str, role: str = "user") -> bytes:
    event = firestore_events.DocumentEventData(
        value=firestore_events.Document(
            name=f"projects/p/databases/(default)/documents/{path}",
            fields={
                "content": firestore_events.Value(string_value="hello"),
                "role": firestore_events.Value(string_value=role),
            },
        ),
    )
    return firestore_events.DocumentEventData.serialize(event)


@pytest.fixture
def mock_service():
    """Create a mock service and attach it to app state (mirrors the lifespan)."""
    service = MagicMock()
    service.chat.return_value = AgentResult(
        thread_id="T1",
        trigger_message_id="m1",
        reply_message_id="m2",
        response="こんにちは！",
        tool_calls=[ToolCall(name="getNotion", parameters={"filters": {"property": "Status"}}, result="...")],
        turns=2,
    )

    # Attach to app state the same way the lifespan does
    app.state.service = service
    yield service
    # Clean up
    app.state.service = None


@pytest.fixture
def client(mock_service):
    """FastAPI test client with the mock service wired up."""
    return TestClient(app)


class TestHealthEndpoint:
    def test_health_returns_ok(self, client):
        response = client.get("/v1/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["service"] == "youdoyou-agent"

    def test_ping_returns_pong(self, client):
        response = client.get("/v1/ping")
        assert response.status_code == 200
        assert response.text == "pong"


class TestAgentChatEndpoint:
    def test_chat_returns_reply(self, client, mock_service):
        response = client.post("/v1/agent/chat", json={"threadId": "T1"})
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["threadId"] == "T1"
        assert data["messageId"] == "m2"
        assert data["reply"] == "こんにちは！"
        assert data["turns"] == 2
        assert data["toolCalls"] == [{"name": "getNotion", "parameters": {"filters": {"property": "Status"}}}]
        mock_service.chat.assert_called_once_with("T1")

    def test_snake_case_body_is_accepted(self, client, mock_service):
        client.post("/v1/agent/chat", json={"thread_id": "T9"})
        mock_service.chat.assert_called_once_with("T9")

    def test_missing_thread_id_is_ignored(self, client, mock_service):
        response = client.post("/v1/agent/chat", json={})
        assert response.status_code == 200
        assert response.json() == {"status": "ignored"}
        mock_service.chat.assert_not_called()

    def test_empty_body_is_ignored(self, client, mock_service):
        response = client.post("/v1/agent/chat")
        assert response.status_code == 200
        assert response.json()["status"] == "ignored"

    @pytest.mark.parametrize(
        ("error", "status_code"),
        [
            (NoPendingMessage("T1"), 409),
            (MessageAlreadyClaimed("T1", "m1"), 409),
            (HistoryFetchFailed("firestore down"), 503),
            (ModelInvocationFailed("rate limited"), 502),
        ],
    )
    def test_agent_errors_map_to_status_codes(self, client, mock_service, error, status_code):
        mock_service.chat.side_effect = error
        response = client.post("/v1/agent/chat", json={"threadId": "T1"})
        assert response.status_code == status_code

    def test_chat_handles_unexpected_error(self, client, mock_service):
        mock_service.chat.side_effect = RuntimeError("LLM exploded")
        response = client.post("/v1/agent/chat", json={"threadId": "T1"})
        assert response.status_code == 500
        # Verify we do NOT leak the internal error message to the client
        detail = response.json()["detail"]
        assert "LLM exploded" not in detail
        assert "internal error" in detail.lower()

    def test_response_includes_request_id_header(self, client):
        response = client.post("/v1/agent/chat", json={"threadId": "T1"})
        assert "X-Request-ID" in response.headers

    def test_client_supplied_request_id_is_echoed(self, client):
        response = client.post(
            "/v1/agent/chat",
            json={"threadId": "T1"},
            headers={"X-Request-ID": "my-trace-id-123"},
        )
        assert response.headers["X-Request-ID"] == "my-trace-id-123"


class TestFirestoreHook:
    def test_user_message_is_accepted_and_run(self, client, mock_service):
        response = client.post("/v1/hooks/firestore", json=_document_event("threads/T1/messages/M1"))
        assert response.status_code == 202
        assert response.json() == {"status": "accepted", "threadId": "T1"}
        # TestClient runs background tasks before returning
        mock_service.chat.assert_called_once_with("T1")

    def test_cloud_event_envelope_is_unwrapped(self, client, mock_service):
        body = {"data": _document_event("threads/T2/messages/M1")}
        response = client.post("/v1/hooks/firestore", json=body)
        assert response.status_code == 202
        mock_service.chat.assert_called_once_with("T2")

    def test_assistant_message_is_ignored(self, client, mock_service):
        response = client.post(
            "/v1/hooks/firestore",
            json=_document_event("threads/T1/messages/M2", role="assistant"),
        )
        assert response.status_code == 200
        assert response.json()["status"] == "ignored"
        mock_service.chat.assert_not_called()

    def test_path_without_thread_is_ignored(self, client, mock_service):
        response = client.post("/v1/hooks/firestore", json=_document_event("users/U1"))
        assert response.json()["status"] == "ignored"
        mock_service.chat.assert_not_called()

    def test_missing_role_field_is_still_run(self, client, mock_service):
        response = client.post(
            "/v1/hooks/firestore",
            json=_document_event("threads/T1/messages/M1", role=None),
        )
        assert response.status_code == 202

    def test_event_without_value_is_ignored(self, client, mock_service):
        response = client.post("/v1/hooks/firestore", json={})
        assert response.json()["status"] == "ignored"

    def test_truncated_protobuf_is_rejected(self, client, mock_service):
        response = client.post(
            "/v1/hooks/firestore",
            content=b"\x0a\x05ab",
            headers={"Content-Type": "application/protobuf"},
        )
        assert response.status_code == 400
        mock_service.chat.assert_not_called()

    def test_malformed_json_is_rejected(self, client):
        response = client.post(
            "/v1/hooks/firestore",
            content=b"{not json",
            headers={"Content-Type": "application/json"},
        )
        assert response.status_code == 400

    def test_protobuf_event_is_accepted_and_run(self, client, mock_service):
        response = client.post(
            "/v1/hooks/firestore",
            content=_protobuf_event("threads/T1/messages/M1"),
            headers={"Content-Type": "application/protobuf"},
        )
        assert response.status_code == 202
        assert response.json() == {"status": "accepted", "threadId": "T1"}
        mock_service.chat.assert_called_once_with("T1")

    def test_protobuf_assistant_message_is_ignored(self, client, mock_service):
        response = client.post(
            "/v1/hooks/firestore",
            content=_protobuf_event("threads/T1/messages/M2", role="assistant"),
            headers={"Content-Type": "application/protobuf"},
        )
        assert response.json()["status"] == "ignored"
        mock_service.chat.assert_not_called()

    def test_unread_status_is_run(self, client, mock_service):
        response = client.post(
            "/v1/hooks/firestore",
            json=_document_event("threads/T1/messages/M1", status="unread"),
        )
        assert response.status_code == 202
        mock_service.chat.assert_called_once_with("T1")

    @pytest.mark.parametrize("status", ["generating", "completed", "error", "received"])
    def test_already_handled_status_is_ignored(self, client, mock_service, status):
        response = client.post(
            "/v1/hooks/firestore",
            json=_document_event("threads/T1/messages/M1", status=status),
        )
        assert response.status_code == 200
        assert response.json()["status"] == "ignored"
        mock_service.chat.assert_not_called()

    def test_background_failure_does_not_reach_the_caller(self, client, mock_service):
        mock_service.chat.side_effect = ModelInvocationFailed("down")
        response = client.post("/v1/hooks/firestore", json=_document_event("threads/T1/messages/M1"))
        assert response.status_code == 202


class TestExtractThreadId:
    def test_full_document_path(self):
        path = "projects/p/databases/(default)/documents/threads/T1/messages/M1"
        assert extract_thread_id(path) == "T1"

    def test_thread_document_itself(self):
        assert extract_thread_id("threads/T1") == "T1"

    def test_trailing_threads_segment(self):
        assert extract_thread_id("documents/threads") == ""

    def test_no_threads_segment(self):
        assert extract_thread_id("projects/p/documents/users/U1") == ""


class TestServiceNotReady:
    def test_returns_503_when_service_not_initialised(self):
        """If the service hasn't been set via lifespan, return 503."""
        # Enter the test client (triggers lifespan), then wipe the service
        # to simulate the state before lifespan completes.
        with TestClient(app) as tc:
            app.state.service = None
            response = tc.post("/v1/agent/chat", json={"threadId": "T1"})
            assert response.status_code == 503
            assert "starting up" in response.json()["detail"].lower()


class TestRootEndpoint:
    def test_root_returns_service_info(self, client):
        response = client.get("/")
        assert response.status_code == 200
        data = response.json()
        assert data["service"] == "YouDoYou Agent"
        assert data["health"] == "/v1/health"
