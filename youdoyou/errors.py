"""Exception hierarchy for agent runs and the message store."""

from __future__ import annotations


class AgentError(Exception):
    """Base class for every failure an agent run can report."""


class NoPendingMessage(AgentError):
    """The thread has no unread user message to answer."""

    def __init__(self, thread_id: str):
        self.thread_id = thread_id
        super().__init__(f"No pending message found in thread {thread_id}")


class MessageAlreadyClaimed(AgentError):
    """Another invocation moved the trigger out of ``unread`` first."""

    def __init__(self, thread_id: str, message_id: str):
        self.thread_id = thread_id
        self.message_id = message_id
        super().__init__(
            f"Message {message_id} in thread {thread_id} is already being processed"
        )


class HistoryFetchFailed(AgentError):
    """Reading the thread or its messages failed. Safe to retry."""


class ModelInvocationFailed(AgentError):
    """The chat model call itself failed (transport or provider error).

    ``turn`` is the 1-based model call that failed.
    """

    def __init__(self, message: str, turn: int = 0):
        self.turn = turn
        super().__init__(message)


class ToolExecutionFailed(AgentError):
    """A tool could not complete. Always reported back to the model."""


class StoreError(Exception):
    """Raised when the message store cannot complete an operation."""


class ThreadNotFound(StoreError):
    def __init__(self, thread_id: str):
        self.thread_id = thread_id
        super().__init__(f"Thread {thread_id} not found")


class MessageNotFound(StoreError):
    def __init__(self, thread_id: str, message_id: str):
        self.thread_id = thread_id
        self.message_id = message_id
        super().__init__(f"Message {message_id} not found in thread {thread_id}")
