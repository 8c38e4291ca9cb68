"""FastAPI route definitions for the agent triggers."""

from __future__ import annotations

import asyncio
import json
import logging

from fastapi import APIRouter, BackgroundTasks, Body, HTTPException, Request, Response
from fastapi.responses import PlainTextResponse
from google.events.cloud import firestore as firestore_events
from google.protobuf import json_format
from google.protobuf.message import DecodeError
from pydantic import ValidationError

from youdoyou.api.schemas import (
    AgentChatRequest,
    AgentChatResponse,
    DocumentEventData,
    HealthResponse,
    ToolCallSummary,
)
from youdoyou.errors import (
    AgentError,
    HistoryFetchFailed,
    MessageAlreadyClaimed,
    ModelInvocationFailed,
    NoPendingMessage,
)
from youdoyou.service import AgentService

logger = logging.getLogger(__name__)

router = APIRouter()

THREADS_SEGMENT = "threads"
PROTOBUF_CONTENT_TYPES = ("application/protobuf", "application/x-protobuf")
TRIGGER_STATUS = "unread"


def _get_service(request: Request) -> AgentService:
    """Retrieve the AgentService built during the FastAPI lifespan."""
    service = getattr(request.app.state, "service", None)
    if service is None:
        raise HTTPException(
            status_code=503,
            detail="The agent is still starting up. Please try again in a moment.",
        )
    return service


def extract_thread_id(path: str) -> str:
    """Return the path segment after ``threads``, or ``""``.

    ``projects/p/databases/(default)/documents/threads/T1/messages/M1`` -> ``T1``
    """
    parts = path.split("/")
    for i, part in enumerate(parts):
        if part == THREADS_SEGMENT and i + 1 < len(parts):
            return parts[i + 1]
    return ""


def decode_document_event(body: bytes, content_type: str) -> DocumentEventData:
    """Parse a document event delivered as protobuf or as JSON.

    Protobuf bodies are converted to the JSON mapping (``stringValue`` and
    friends) so both encodings share one schema.  Raises ``DecodeError``,
    ``ValueError`` or ``ValidationError`` on unreadable input.
    """
    media_type = content_type.split(";", 1)[0].strip().lower()
    if media_type in PROTOBUF_CONTENT_TYPES:
        event = firestore_events.DocumentEventData.deserialize(body)
        payload = json_format.MessageToDict(firestore_events.DocumentEventData.pb(event))
    else:
        payload = json.loads(body or b"{}")
        if isinstance(payload, dict) and isinstance(payload.get("data"), dict):
            payload = payload["data"]
    return DocumentEventData.model_validate(payload)


def _ignored(reason: str, request_id: str) -> AgentChatResponse:
    logger.info("[%s] Trigger ignored: %s", request_id, reason)
    return AgentChatResponse(status="ignored")


def _run_in_background(service: AgentService, thread_id: str, request_id: str) -> None:
    """Background runner for the store hook; failures only reach the logs."""
    logger.info("[%s] Starting background run for thread %s", request_id, thread_id)
    try:
        result = service.chat(thread_id)
    except NoPendingMessage:
        logger.info("[%s] Nothing to answer in thread %s", request_id, thread_id)
    except AgentError:
        logger.exception("[%s] Background run failed for thread %s", request_id, thread_id)
    except Exception:
        logger.exception("[%s] Unexpected error in background run for %s", request_id, thread_id)
    else:
        logger.info(
            "[%s] Background run for thread %s saved reply %s",
            request_id, thread_id, result.reply_message_id,
        )


# ── Endpoints ────────────────────────────────────────────────────────


@router.get("/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint."""
    return HealthResponse()


@router.get("/ping", response_class=PlainTextResponse)
async def ping():
    return "pong"


@router.post("/agent/chat", response_model=AgentChatResponse, response_model_exclude_none=True)
async def agent_chat(
    http_request: Request,
    request: AgentChatRequest | None = Body(default=None),
):
    """Answer the pending message of a thread and wait for the result.

    The agent run blocks on network calls, so it is moved to a worker
    thread with ``asyncio.to_thread`` to keep the event loop free.
    """
    request_id = getattr(http_request.state, "request_id", "?")
    thread_id = request.thread_id if request else ""
    if not thread_id:
        return _ignored("no threadId in body", request_id)

    service = _get_service(http_request)
    try:
        result = await asyncio.to_thread(service.chat, thread_id)
    except (NoPendingMessage, MessageAlreadyClaimed) as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except HistoryFetchFailed as exc:
        logger.exception("[%s] History fetch failed for thread %s", request_id, thread_id)
        raise HTTPException(
            status_code=503,
            detail="Could not load the thread. Please retry later.",
        ) from exc
    except ModelInvocationFailed as exc:
        logger.exception("[%s] Model invocation failed for thread %s", request_id, thread_id)
        raise HTTPException(
            status_code=502,
            detail="The language model is unavailable. Please retry later.",
        ) from exc
    except Exception as exc:
        logger.exception("[%s] Error processing thread %s", request_id, thread_id)
        raise HTTPException(
            status_code=500,
            detail="An internal error occurred. Please try again.",
        ) from exc

    return AgentChatResponse(
        status="ok",
        thread_id=thread_id,
        message_id=result.reply_message_id,
        reply=result.response,
        turns=result.turns,
        exhausted=result.exhausted,
        tool_calls=[
            ToolCallSummary(name=call.name, parameters=call.parameters)
            for call in result.tool_calls
        ],
    )


@router.post("/hooks/firestore", response_model=AgentChatResponse, response_model_exclude_none=True)
async def firestore_hook(
    http_request: Request,
    response: Response,
    background_tasks: BackgroundTasks,
):
    """Document-written trigger from the message store.

    Accepts the document event as protobuf (``application/protobuf``, as
    Eventarc delivers it) or as JSON, either bare (``{"value": ...}``) or
    wrapped in a structured CloudEvent (``{"data": {"value": ...}}``).
    Only user messages that are still ``unread`` (or carry no status) start
    a run, which happens after the response is sent.
    """
    request_id = getattr(http_request.state, "request_id", "?")
    try:
        event = decode_document_event(
            await http_request.body(), http_request.headers.get("content-type", ""),
        )
    except (DecodeError, ValueError, ValidationError) as exc:
        logger.warning("[%s] Unreadable document event: %s", request_id, exc)
        raise HTTPException(status_code=400, detail="Invalid document event.") from exc

    document = event.value
    if document is None:
        return _ignored("event has no document value", request_id)

    logger.info("[%s] Document written: %s", request_id, document.name)
    thread_id = extract_thread_id(document.name)
    if not thread_id:
        return _ignored(f"path {document.name!r} is not under {THREADS_SEGMENT}/", request_id)

    role = document.string_field("role")
    if role is not None and role != "user":
        return _ignored(f"role={role}", request_id)

    status = document.string_field("status")
    if status is not None and status != TRIGGER_STATUS:
        return _ignored(f"status={status}", request_id)

    service = _get_service(http_request)
    background_tasks.add_task(_run_in_background, service, thread_id, request_id)
    response.status_code = 202
    return AgentChatResponse(status="accepted", thread_id=thread_id)
