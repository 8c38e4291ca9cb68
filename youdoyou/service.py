"""Agent service: one reply per trigger, with message status tracking.

Flow of :meth:`AgentService.chat`:

  1. Load the thread and its history.  Any store failure here aborts with
     ``HistoryFetchFailed`` before anything is written.
  2. Pick the trigger (newest unread user message) and claim it,
     ``unread -> generating``.  A store error while claiming is logged and
     the run continues; losing the claim to another run raises
     ``MessageAlreadyClaimed``.
  3. Build the turns and run the agent loop.
  4. Model failure: mark the trigger ``error`` and raise.
     Otherwise: save the assistant reply, mark the trigger ``completed``.

Failures while saving the reply or writing the final status propagate to
the caller.
"""

from __future__ import annotations

import logging
import time

from youdoyou.agent import ConversationAgent
from youdoyou.config import Settings
from youdoyou.context import build_turns
from youdoyou.errors import (
    HistoryFetchFailed,
    MessageAlreadyClaimed,
    ModelInvocationFailed,
    StoreError,
)
from youdoyou.models import AgentResult, Message, MessageRole, MessageStatus, Thread
from youdoyou.selection import PendingMessageSelector
from youdoyou.services.calendar_client import CalendarClient
from youdoyou.services.google_auth import load_credentials
from youdoyou.services.message_store import MessageStore, create_message_store
from youdoyou.services.metrics import MetricsClient
from youdoyou.services.metrics import metrics as default_metrics
from youdoyou.services.notion_client import NotionClient
from youdoyou.tools.registry import build_tool_registry

logger = logging.getLogger(__name__)


class AgentService:
    def __init__(
        self,
        store: MessageStore,
        agent: ConversationAgent,
        *,
        selector: PendingMessageSelector | None = None,
        metrics: MetricsClient | None = None,
    ) -> None:
        self._store = store
        self._agent = agent
        self._selector = selector or PendingMessageSelector()
        self._metrics = metrics or default_metrics

    @property
    def store(self) -> MessageStore:
        return self._store

    @property
    def metrics(self) -> MetricsClient:
        return self._metrics

    def chat(self, thread_id: str) -> AgentResult:
        """Answer the pending user message of *thread_id*."""
        logger.info("Agent run started for thread %s", thread_id)
        t0 = time.perf_counter()

        thread, history = self._load(thread_id)
        trigger = self._selector.select_trigger(thread_id, history)
        context_messages = self._selector.context_messages(thread, history)
        logger.info(
            "Thread %s: trigger %s, %d message(s) in context",
            thread_id, trigger.id, len(context_messages),
        )

        self._claim(thread_id, trigger)

        turns = build_turns(thread.session_memory, context_messages)
        try:
            outcome = self._agent.run(turns)
        except ModelInvocationFailed as exc:
            logger.exception("Model invocation failed for thread %s", thread_id)
            self._metrics.record_agent_outcome(
                "error", turns=exc.turn, latency_ms=(time.perf_counter() - t0) * 1000,
            )
            self._store.update_message_status(thread_id, trigger.id, MessageStatus.ERROR)
            raise

        reply = Message(
            thread_id=thread_id,
            role=MessageRole.ASSISTANT,
            content=outcome.text,
            ai_metadata=outcome.metadata,
            status=MessageStatus.COMPLETED,
        )
        try:
            reply_id = self._store.save_message(thread_id, reply)
        except StoreError:
            logger.exception("Failed to save reply for thread %s", thread_id)
            self._mark_error_best_effort(thread_id, trigger.id)
            raise

        self._store.update_message_status(thread_id, trigger.id, MessageStatus.COMPLETED)

        self._metrics.record_agent_outcome(
            "exhausted" if outcome.exhausted else "completed",
            turns=outcome.turns,
            latency_ms=(time.perf_counter() - t0) * 1000,
        )
        for call in outcome.tool_calls:
            logger.info("Thread %s tool call %s -> %.80r", thread_id, call.name, call.result)
        logger.info(
            "Response %s saved for thread %s (%d turn(s)%s)",
            reply_id, thread_id, outcome.turns, ", budget exhausted" if outcome.exhausted else "",
        )
        return AgentResult(
            thread_id=thread_id,
            trigger_message_id=trigger.id,
            reply_message_id=reply_id,
            response=outcome.text,
            tool_calls=outcome.tool_calls,
            turns=outcome.turns,
            exhausted=outcome.exhausted,
        )

    # ── Steps ────────────────────────────────────────────────────────

    def _load(self, thread_id: str) -> tuple[Thread, list[Message]]:
        try:
            thread = self._store.get_thread(thread_id)
            history = self._store.get_messages(thread_id)
        except StoreError as exc:
            raise HistoryFetchFailed(f"Failed to load thread {thread_id}: {exc}") from exc
        logger.debug("Retrieved %d message(s) for thread %s", len(history), thread_id)
        return thread, history

    def _claim(self, thread_id: str, trigger: Message) -> None:
        try:
            claimed = self._store.claim_message(
                thread_id, trigger.id, MessageStatus.UNREAD, MessageStatus.GENERATING,
            )
        except StoreError:
            logger.warning(
                "Could not mark message %s as generating; continuing",
                trigger.id, exc_info=True,
            )
            return
        if not claimed:
            raise MessageAlreadyClaimed(thread_id, trigger.id)

    def _mark_error_best_effort(self, thread_id: str, message_id: str) -> None:
        try:
            self._store.update_message_status(thread_id, message_id, MessageStatus.ERROR)
        except StoreError:
            logger.exception("Failed to mark message %s as error", message_id)


def build_agent_service(
    settings: Settings,
    *,
    store: MessageStore | None = None,
    metrics: MetricsClient | None = None,
) -> AgentService:
    """Wire store, connectors, tools and model from *settings*."""
    metrics = metrics or MetricsClient(enabled=settings.metrics_enabled)
    store = store or create_message_store(settings.store_backend, settings.firestore_project_id)
    notion = NotionClient(settings.notion_token) if settings.notion_token else None
    calendar = None
    if settings.google_calendar_credentials:
        credentials = load_credentials(
            settings.google_calendar_credentials, subject=settings.google_calendar_subject,
        )
        calendar = CalendarClient(credentials)
    registry = build_tool_registry(settings, notion=notion, calendar=calendar, metrics=metrics)
    agent = ConversationAgent(
        registry, settings=settings, max_turns=settings.max_turns, metrics=metrics,
    )
    return AgentService(store, agent, metrics=metrics)
