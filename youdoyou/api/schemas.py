"""Pydantic schemas for the FastAPI endpoints."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class AgentChatRequest(_CamelModel):
    """Direct trigger (manual call or scheduler).  The body may be empty."""

    thread_id: str = Field("", max_length=200, description="Thread to answer")


class ToolCallSummary(_CamelModel):
    name: str
    parameters: dict[str, Any] = Field(default_factory=dict)


class AgentChatResponse(_CamelModel):
    status: str = Field(..., description="ok, ignored, accepted")
    thread_id: str | None = None
    message_id: str | None = Field(None, description="ID of the saved assistant reply")
    reply: str | None = None
    turns: int | None = None
    exhausted: bool | None = None
    tool_calls: list[ToolCallSummary] | None = None


class FirestoreDocument(BaseModel):
    """The ``value`` part of a Firestore document event (JSON encoding)."""

    name: str = ""
    fields: dict[str, dict[str, Any]] = Field(default_factory=dict)

    def string_field(self, key: str) -> str | None:
        value = self.fields.get(key)
        if not value:
            return None
        return value.get("stringValue")


class DocumentEventData(BaseModel):
    value: FirestoreDocument | None = None


class HealthResponse(BaseModel):
    status: str = "ok"
    service: str = "youdoyou-agent"
