"""Domain models for threads, messages and ephemeral tool-call records.

Field names follow the document layout in the message store (camelCase,
e.g. ``sessionMemory``), while Python code uses snake_case attributes.
Both spellings are accepted when constructing a model.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class MessageStatus(str, Enum):
    """Lifecycle of a message.

    A triggering user message moves ``unread -> generating`` when an agent
    run claims it, then to ``completed`` or ``error``.
    """

    UNREAD = "unread"
    RECEIVED = "received"
    GENERATING = "generating"
    COMPLETED = "completed"
    ERROR = "error"


def utcnow() -> datetime:
    return datetime.now(UTC)


class _Document(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        use_enum_values=True,
    )


class Attachment(_Document):
    type: str = Field(..., description="image, text, document, audio or video")
    url: str
    mime_type: str = ""
    name: str = ""
    size: int = 0


class AIUsage(_Document):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class AIMetadata(_Document):
    model: str = ""
    usage: AIUsage = Field(default_factory=AIUsage)
    finish_reason: str = ""
    response_id: str = ""


class Message(_Document):
    id: str = ""
    thread_id: str = ""
    # Roles and statuses written by other clients are kept as plain strings.
    role: MessageRole | str
    content: str = ""
    attachments: list[Attachment] = Field(default_factory=list)
    ai_metadata: AIMetadata | None = None
    status: MessageStatus | str | None = None
    created_at: datetime = Field(default_factory=utcnow)

    @property
    def is_user(self) -> bool:
        return self.role == MessageRole.USER

    def to_document(self) -> dict[str, Any]:
        """Serialise for storage; the id lives in the document key."""
        return self.model_dump(by_alias=True, exclude={"id"}, exclude_none=True)


class Thread(_Document):
    id: str = ""
    user_id: str = ""
    first_message: str = ""
    unread_count: int = 0
    last_read_at: datetime | None = None
    reply_count: int = 0
    is_private: bool = False
    is_archived: bool = False
    session_memory: str = ""
    memorized_until: datetime | None = None
    created_at: datetime = Field(default_factory=utcnow)

    def to_document(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude={"id"})


class ToolCall(BaseModel):
    """One tool invocation made during an agent run. Never persisted."""

    name: str
    parameters: dict[str, Any] = Field(default_factory=dict)
    result: str = ""


class AgentResult(BaseModel):
    """Outcome of one ``AgentService.chat`` invocation."""

    thread_id: str
    trigger_message_id: str
    reply_message_id: str
    response: str
    tool_calls: list[ToolCall] = Field(default_factory=list)
    turns: int = 0
    exhausted: bool = False
