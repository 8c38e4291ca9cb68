"""Shared test fixtures for the YouDoYou test suite."""

from __future__ import annotations

import os
from datetime import UTC, datetime, timedelta
from unittest.mock import MagicMock

import pytest
from langchain_core.messages import AIMessage

from youdoyou.config import Settings
from youdoyou.models import Message, MessageRole, MessageStatus, Thread
from youdoyou.services.message_store import InMemoryMessageStore
from youdoyou.services.metrics import MetricsClient


def pytest_configure(config):
    """Set test environment variables BEFORE collection starts.

    This runs before any imports, so config.py won't fail on module load.
    """
    os.environ.setdefault("ANTHROPIC_API_KEY", "test-anthropic-key-123")
    os.environ.setdefault("NOTION_TOKEN", "test-notion-token-456")
    os.environ.setdefault("STORE_BACKEND", "memory")
    os.environ.setdefault("METRICS_ENABLED", "false")


T0 = datetime(2025, 12, 20, 5, 0, tzinfo=UTC)


@pytest.fixture
def settings():
    return Settings(anthropic_api_key="test-key", notion_token="test-notion-token")


@pytest.fixture
def metrics():
    """A disabled metrics client, so nothing leaves the process."""
    return MetricsClient(enabled=False)


@pytest.fixture
def store():
    return InMemoryMessageStore()


@pytest.fixture
def make_thread(store):
    """Factory fixture: create a thread with ``(role, content, status)`` messages."""

    def _make(thread_id: str, *messages: tuple[str, str, str | None], **thread_fields):
        store.create_thread(Thread(id=thread_id, created_at=T0, **thread_fields))
        for i, (role, content, status) in enumerate(messages):
            store.save_message(
                thread_id,
                Message(
                    role=MessageRole(role),
                    content=content,
                    status=MessageStatus(status) if status else None,
                    created_at=T0 + timedelta(minutes=i),
                ),
            )
        return thread_id

    return _make


@pytest.fixture
def scripted_llm():
    """Factory fixture: a mock chat model that replays the given replies.

    Every entry is either a string (final answer), a list of
    ``(tool_name, args)`` tuples (tool requests), or an exception to
    raise.  A fresh ``AIMessage`` is built per call because the graph
    mutates the messages it receives.
    """

    def _make(*script):
        replies = iter(script)
        calls = {"n": 0}

        def _invoke(messages):
            calls["n"] += 1
            step = next(replies)
            if isinstance(step, Exception):
                raise step
            if isinstance(step, str):
                return AIMessage(content=step)
            return AIMessage(
                content="",
                tool_calls=[
                    {"name": name, "args": args, "id": f"call_{calls['n']}_{i}"}
                    for i, (name, args) in enumerate(step)
                ],
            )

        llm = MagicMock()
        llm.invoke.side_effect = _invoke
        return llm

    return _make


@pytest.fixture
def mock_http_response():
    """Factory fixture for creating mock httpx responses."""

    def _make(data: dict, status_code: int = 200):
        mock = MagicMock()
        mock.status_code = status_code
        mock.json.return_value = data
        mock.text = str(data)
        return mock

    return _make
