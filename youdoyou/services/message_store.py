"""Message store backends: threads and their ordered messages.

Layout (both backends)::

    threads/{threadId}                      -> Thread document
    threads/{threadId}/messages/{messageId} -> Message document

Message ids are ULIDs, so ordering by id is chronological.

``claim_message`` is the only compare-and-swap the agent relies on: it
moves a message from one status to another only if the current status is
the expected one, so two invocations racing on the same trigger cannot
both own it.
"""

from __future__ import annotations

import logging
import threading
from datetime import UTC, datetime
from typing import Protocol

from google.api_core import exceptions as google_exceptions
from google.cloud import firestore
from pydantic import ValidationError
from ulid import ULID

from youdoyou.errors import MessageNotFound, StoreError, ThreadNotFound
from youdoyou.models import Message, MessageStatus, Thread, utcnow

logger = logging.getLogger(__name__)

THREADS_COLLECTION = "threads"
MESSAGES_COLLECTION = "messages"
_DOCUMENT_ID = "__name__"


class MessageStore(Protocol):
    """Operations the agent and the CLI need from persistent storage."""

    def get_thread(self, thread_id: str) -> Thread: ...

    def get_messages(self, thread_id: str) -> list[Message]: ...

    def save_message(self, thread_id: str, message: Message) -> str: ...

    def update_message_status(
        self, thread_id: str, message_id: str, status: MessageStatus,
    ) -> None: ...

    def claim_message(
        self,
        thread_id: str,
        message_id: str,
        expected: MessageStatus,
        new: MessageStatus,
    ) -> bool: ...

    def create_thread(self, thread: Thread) -> str: ...

    def delete_thread(self, thread_id: str) -> None: ...

    def update_thread_memory(
        self, thread_id: str, summary: str, memorized_until: datetime,
    ) -> None: ...


# ── Helpers ──────────────────────────────────────────────────────────


class _MessageIdGenerator:
    """ULIDs that never go backwards, even within one millisecond."""

    def __init__(self) -> None:
        self._last: ULID | None = None
        self._lock = threading.Lock()

    def __call__(self) -> str:
        candidate = ULID()
        with self._lock:
            if self._last is not None and int(candidate) <= int(self._last):
                candidate = ULID.from_int(int(self._last) + 1)
            self._last = candidate
        return str(candidate)


new_message_id = _MessageIdGenerator()


def _as_utc(value: datetime) -> datetime:
    return value.replace(tzinfo=UTC) if value.tzinfo is None else value.astimezone(UTC)


def advance_watermark(
    current: datetime | None,
    proposed: datetime,
    now: datetime | None = None,
) -> datetime:
    """Return the watermark to store when moving from *current* to *proposed*.

    A proposed value later than *now* is clamped to *now*; a value earlier
    than *current* is rejected with ``ValueError``.
    """
    now = _as_utc(now or utcnow())
    proposed = min(_as_utc(proposed), now)
    if current is not None and proposed < _as_utc(current):
        raise ValueError(
            f"Watermark cannot move backwards ({proposed.isoformat()} < "
            f"{_as_utc(current).isoformat()})"
        )
    return proposed


def _status_value(status: MessageStatus | str) -> str:
    return status.value if isinstance(status, MessageStatus) else status


# ── In-memory backend ────────────────────────────────────────────────


class InMemoryMessageStore:
    """Process-local store used by tests and the ``memory`` backend.

    Models are copied on the way in and out so callers never share state
    with the store.
    """

    def __init__(self) -> None:
        self._threads: dict[str, Thread] = {}
        self._messages: dict[str, dict[str, Message]] = {}
        self._lock = threading.Lock()

    def get_thread(self, thread_id: str) -> Thread:
        with self._lock:
            thread = self._threads.get(thread_id)
            if thread is None:
                raise ThreadNotFound(thread_id)
            return thread.model_copy(deep=True)

    def get_messages(self, thread_id: str) -> list[Message]:
        with self._lock:
            if thread_id not in self._threads:
                raise ThreadNotFound(thread_id)
            messages = self._messages.get(thread_id, {})
            return [messages[key].model_copy(deep=True) for key in sorted(messages)]

    def save_message(self, thread_id: str, message: Message) -> str:
        message_id = message.id or new_message_id()
        stored = message.model_copy(update={"id": message_id, "thread_id": thread_id}, deep=True)
        with self._lock:
            if thread_id not in self._threads:
                raise ThreadNotFound(thread_id)
            self._messages.setdefault(thread_id, {})[message_id] = stored
        return message_id

    def update_message_status(
        self, thread_id: str, message_id: str, status: MessageStatus,
    ) -> None:
        with self._lock:
            message = self._get_message_locked(thread_id, message_id)
            message.status = _status_value(status)

    def claim_message(
        self,
        thread_id: str,
        message_id: str,
        expected: MessageStatus,
        new: MessageStatus,
    ) -> bool:
        with self._lock:
            message = self._get_message_locked(thread_id, message_id)
            if message.status != _status_value(expected):
                return False
            message.status = _status_value(new)
            return True

    def create_thread(self, thread: Thread) -> str:
        thread_id = thread.id or str(ULID())
        with self._lock:
            self._threads[thread_id] = thread.model_copy(update={"id": thread_id}, deep=True)
            self._messages.setdefault(thread_id, {})
        return thread_id

    def delete_thread(self, thread_id: str) -> None:
        with self._lock:
            self._threads.pop(thread_id, None)
            self._messages.pop(thread_id, None)

    def update_thread_memory(
        self, thread_id: str, summary: str, memorized_until: datetime,
    ) -> None:
        with self._lock:
            thread = self._threads.get(thread_id)
            if thread is None:
                raise ThreadNotFound(thread_id)
            thread.memorized_until = advance_watermark(thread.memorized_until, memorized_until)
            thread.session_memory = summary

    def _get_message_locked(self, thread_id: str, message_id: str) -> Message:
        message = self._messages.get(thread_id, {}).get(message_id)
        if message is None:
            raise MessageNotFound(thread_id, message_id)
        return message


# ── Firestore backend ────────────────────────────────────────────────


class FirestoreMessageStore:
    """Store backed by Cloud Firestore.

    The client is created lazily so the module imports without
    credentials; tests inject a mock through ``client=``.
    """

    def __init__(self, project_id: str | None = None, *, client=None) -> None:
        self._project_id = project_id
        self._client = client

    def _get_client(self):
        if self._client is None:
            self._client = firestore.Client(project=self._project_id)
        return self._client

    def _thread_ref(self, thread_id: str):
        return self._get_client().collection(THREADS_COLLECTION).document(thread_id)

    def _messages_ref(self, thread_id: str):
        return self._thread_ref(thread_id).collection(MESSAGES_COLLECTION)

    # ── Reads ────────────────────────────────────────────────────────

    def get_thread(self, thread_id: str) -> Thread:
        try:
            snapshot = self._thread_ref(thread_id).get()
        except google_exceptions.GoogleAPIError as exc:
            raise StoreError(f"Failed to get thread {thread_id}: {exc}") from exc
        if not snapshot.exists:
            raise ThreadNotFound(thread_id)
        try:
            return Thread.model_validate({**(snapshot.to_dict() or {}), "id": snapshot.id})
        except ValidationError as exc:
            raise StoreError(f"Malformed thread document {thread_id}: {exc}") from exc

    def get_messages(self, thread_id: str) -> list[Message]:
        try:
            docs = self._messages_ref(thread_id).order_by(_DOCUMENT_ID).stream()
            messages = [
                Message.model_validate(
                    {**(doc.to_dict() or {}), "id": doc.id, "threadId": thread_id},
                )
                for doc in docs
            ]
        except google_exceptions.GoogleAPIError as exc:
            raise StoreError(f"Failed to get messages for thread {thread_id}: {exc}") from exc
        except ValidationError as exc:
            raise StoreError(f"Malformed message document in thread {thread_id}: {exc}") from exc
        return messages

    # ── Writes ───────────────────────────────────────────────────────

    def save_message(self, thread_id: str, message: Message) -> str:
        message_id = message.id or new_message_id()
        document = message.model_copy(update={"thread_id": thread_id}).to_document()
        try:
            self._messages_ref(thread_id).document(message_id).set(document)
        except google_exceptions.GoogleAPIError as exc:
            raise StoreError(f"Failed to save message in thread {thread_id}: {exc}") from exc
        return message_id

    def update_message_status(
        self, thread_id: str, message_id: str, status: MessageStatus,
    ) -> None:
        try:
            self._messages_ref(thread_id).document(message_id).update(
                {"status": _status_value(status)},
            )
        except google_exceptions.NotFound as exc:
            raise MessageNotFound(thread_id, message_id) from exc
        except google_exceptions.GoogleAPIError as exc:
            raise StoreError(
                f"Failed to update status of message {message_id}: {exc}",
            ) from exc

    def claim_message(
        self,
        thread_id: str,
        message_id: str,
        expected: MessageStatus,
        new: MessageStatus,
    ) -> bool:
        ref = self._messages_ref(thread_id).document(message_id)

        @firestore.transactional
        def _claim(transaction) -> bool:
            snapshot = ref.get(transaction=transaction)
            if not snapshot.exists:
                raise MessageNotFound(thread_id, message_id)
            if (snapshot.to_dict() or {}).get("status") != _status_value(expected):
                return False
            transaction.update(ref, {"status": _status_value(new)})
            return True

        try:
            return _claim(self._get_client().transaction())
        except google_exceptions.GoogleAPIError as exc:
            raise StoreError(f"Failed to claim message {message_id}: {exc}") from exc

    def create_thread(self, thread: Thread) -> str:
        thread_id = thread.id or str(ULID())
        try:
            self._thread_ref(thread_id).set(thread.to_document())
        except google_exceptions.GoogleAPIError as exc:
            raise StoreError(f"Failed to create thread {thread_id}: {exc}") from exc
        return thread_id

    def delete_thread(self, thread_id: str) -> None:
        try:
            for doc_ref in self._messages_ref(thread_id).list_documents():
                doc_ref.delete()
            self._thread_ref(thread_id).delete()
        except google_exceptions.GoogleAPIError as exc:
            raise StoreError(f"Failed to delete thread {thread_id}: {exc}") from exc

    def update_thread_memory(
        self, thread_id: str, summary: str, memorized_until: datetime,
    ) -> None:
        current = self.get_thread(thread_id).memorized_until
        watermark = advance_watermark(current, memorized_until)
        try:
            self._thread_ref(thread_id).update(
                {"sessionMemory": summary, "memorizedUntil": watermark},
            )
        except google_exceptions.GoogleAPIError as exc:
            raise StoreError(f"Failed to update memory of thread {thread_id}: {exc}") from exc


def create_message_store(backend: str, project_id: str | None = None) -> MessageStore:
    """Build the store named by ``STORE_BACKEND``."""
    if backend == "memory":
        logger.warning("Using the in-memory message store; data is lost on restart")
        return InMemoryMessageStore()
    return FirestoreMessageStore(project_id)
