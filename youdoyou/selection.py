"""Pending-message selection.

A run owns exactly one trigger: the most recent ``user`` message still
``unread``.  Which messages reach the model is a separate question: all of
them after the thread's memory watermark, so older unread messages are
still part of the context even though only the newest one is claimed.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import UTC, datetime

from youdoyou.errors import NoPendingMessage
from youdoyou.models import Message, MessageRole, MessageStatus, Thread

logger = logging.getLogger(__name__)


def _as_utc(value: datetime) -> datetime:
    return value.replace(tzinfo=UTC) if value.tzinfo is None else value


class PendingMessageSelector:
    """Status-based selection over a thread's ordered history."""

    def select_trigger(self, thread_id: str, history: Sequence[Message]) -> Message:
        """Return the newest unread user message or raise ``NoPendingMessage``."""
        for message in reversed(history):
            if message.role == MessageRole.USER and message.status == MessageStatus.UNREAD:
                return message
        raise NoPendingMessage(thread_id)

    def context_messages(self, thread: Thread, history: Sequence[Message]) -> list[Message]:
        """Messages not yet folded into the thread summary, oldest first."""
        if thread.memorized_until is None:
            return list(history)
        watermark = _as_utc(thread.memorized_until)
        selected = [m for m in history if _as_utc(m.created_at) > watermark]
        logger.debug(
            "Thread %s: %d of %d messages are after the memory watermark",
            thread.id, len(selected), len(history),
        )
        return selected
