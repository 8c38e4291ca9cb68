"""LangGraph agent loop for one reply.

Architecture:
  A two-node StateGraph drives a bounded tool-calling conversation.

    1. **model** — invokes the chat model (with tool bindings) on the
                   accumulated turns and appends its reply.
    2. **tools** — dispatches every tool request of that reply through the
                   ToolRegistry and appends one result per request.

  Routing:
    model → (tool calls and turns left?) → tools → model (loop)
          → (final answer or budget spent) → END

  The model is called at most ``max_turns`` times per run.  When the
  budget is spent without a final answer the run still succeeds, with
  ``FALLBACK_REPLY`` as its text and ``exhausted`` set.

  No checkpointer is used: the conversation lives in the message store and
  is rebuilt for every run.
"""

from __future__ import annotations

import logging
import operator
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Annotated, Any

from langchain_anthropic import ChatAnthropic
from langchain_core.messages import AIMessage, AnyMessage
from langgraph.graph import END, StateGraph
from langgraph.graph.message import add_messages
from typing_extensions import TypedDict

from youdoyou.errors import ModelInvocationFailed
from youdoyou.models import AIMetadata, AIUsage, ToolCall
from youdoyou.prompts import FALLBACK_REPLY
from youdoyou.services.metrics import MetricsClient
from youdoyou.services.metrics import metrics as default_metrics
from youdoyou.tools.registry import ToolRegistry

if TYPE_CHECKING:
    from langchain_core.language_models import LanguageModelInput
    from langchain_core.runnables import Runnable

    from youdoyou.config import Settings

logger = logging.getLogger(__name__)

DEFAULT_MAX_TURNS = 5


# ── State schema ─────────────────────────────────────────────────────


class AgentState(TypedDict):
    """The state that flows through the graph.

    ``messages`` uses the ``add_messages`` reducer so each node appends to
    the transcript; ``tool_calls`` accumulates the records of every
    dispatched request.  ``turns`` counts model invocations so far.
    """

    messages: Annotated[list[AnyMessage], add_messages]
    tool_calls: Annotated[list[ToolCall], operator.add]
    turns: int


@dataclass
class AgentOutcome:
    text: str
    turns: int
    exhausted: bool = False
    tool_calls: list[ToolCall] = field(default_factory=list)
    metadata: AIMetadata | None = None


# ── Helpers ──────────────────────────────────────────────────────────


def _build_llm(settings: Settings, registry: ToolRegistry) -> Runnable[LanguageModelInput, Any]:
    """Build the Anthropic chat model bound to the registry's tools."""
    llm = ChatAnthropic(
        model=settings.model_name,
        api_key=settings.anthropic_api_key,
        temperature=settings.model_temperature,
        max_tokens=settings.model_max_tokens,
    )
    if not len(registry):
        return llm
    return llm.bind_tools(registry.tools)


def message_text(message: AIMessage) -> str:
    """Plain text of a model reply; content blocks other than text are dropped."""
    content = message.content
    if isinstance(content, str):
        return content
    parts = []
    for block in content:
        if isinstance(block, str):
            parts.append(block)
        elif isinstance(block, dict) and block.get("type") == "text":
            parts.append(block.get("text", ""))
    return "".join(parts)


def extract_metadata(message: AIMessage) -> AIMetadata:
    """Copy model name, token usage and finish reason off a reply."""
    meta = message.response_metadata or {}
    usage = message.usage_metadata or {}
    return AIMetadata(
        model=meta.get("model") or meta.get("model_name") or "",
        usage=AIUsage(
            prompt_tokens=usage.get("input_tokens", 0),
            completion_tokens=usage.get("output_tokens", 0),
            total_tokens=usage.get("total_tokens", 0),
        ),
        finish_reason=meta.get("stop_reason") or meta.get("finish_reason") or "",
        response_id=meta.get("id") or message.id or "",
    )


# ── Agent ────────────────────────────────────────────────────────────


class ConversationAgent:
    """Compiled graph plus the collaborators its nodes close over."""

    def __init__(
        self,
        registry: ToolRegistry,
        llm: Runnable[LanguageModelInput, Any] | None = None,
        *,
        settings: Settings | None = None,
        max_turns: int = DEFAULT_MAX_TURNS,
        metrics: MetricsClient | None = None,
    ) -> None:
        if llm is None:
            if settings is None:
                raise ValueError("Either an llm or settings to build one are required")
            llm = _build_llm(settings, registry)
        if max_turns < 1:
            raise ValueError("max_turns must be at least 1")
        self._llm = llm
        self._registry = registry
        self._max_turns = max_turns
        self._metrics = metrics or default_metrics
        self._graph = self._compile()

    @property
    def max_turns(self) -> int:
        return self._max_turns

    # ── Nodes ────────────────────────────────────────────────────────

    def _model_node(self, state: AgentState) -> dict:
        turn = state["turns"] + 1
        logger.debug("Turn %d/%d: generating…", turn, self._max_turns)
        t0 = time.perf_counter()
        try:
            response = self._llm.invoke(state["messages"])
        except Exception as exc:
            elapsed = (time.perf_counter() - t0) * 1000
            self._metrics.record_failure(
                "anthropic", "llm_invoke",
                error_type=type(exc).__name__, latency_ms=elapsed,
            )
            raise ModelInvocationFailed(
                f"Model call failed on turn {turn}: {exc}", turn=turn,
            ) from exc

        elapsed = (time.perf_counter() - t0) * 1000
        self._metrics.record_success("anthropic", "llm_invoke", latency_ms=elapsed)
        if response.tool_calls:
            logger.info(
                "Turn %d: model requested %d tool(s) (%.0fms)",
                turn, len(response.tool_calls), elapsed,
            )
        return {"messages": [response], "turns": turn}

    def _tools_node(self, state: AgentState) -> dict:
        last_message = state["messages"][-1]
        results, records = self._registry.dispatch(last_message.tool_calls)
        return {"messages": results, "tool_calls": records}

    def _should_use_tools(self, state: AgentState) -> str:
        last_message = state["messages"][-1]
        if not getattr(last_message, "tool_calls", None):
            return END
        if state["turns"] >= self._max_turns:
            logger.warning("Turn budget of %d exhausted with tool calls pending", self._max_turns)
            return END
        return "tools"

    def _compile(self):
        graph = StateGraph(AgentState)
        graph.add_node("model", self._model_node)
        graph.add_node("tools", self._tools_node)
        graph.set_entry_point("model")
        graph.add_conditional_edges(
            "model", self._should_use_tools, {"tools": "tools", END: END},
        )
        graph.add_edge("tools", "model")
        return graph.compile()

    # ── Entry point ──────────────────────────────────────────────────

    def run(self, turns: list[AnyMessage]) -> AgentOutcome:
        """Drive the loop from the prepared turns to a reply.

        Raises ``ModelInvocationFailed`` if any model call fails; tool
        failures never abort the run.
        """
        result = self._graph.invoke(
            {"messages": turns, "tool_calls": [], "turns": 0},
            config={"recursion_limit": 2 * self._max_turns + 2},
        )
        last_message = result["messages"][-1]
        used = result["turns"]
        records = result["tool_calls"]

        if isinstance(last_message, AIMessage) and not last_message.tool_calls:
            text = message_text(last_message)
            if not text:
                logger.warning("Model returned an empty final answer; using fallback reply")
                text = FALLBACK_REPLY
            return AgentOutcome(
                text=text,
                turns=used,
                tool_calls=records,
                metadata=extract_metadata(last_message),
            )

        return AgentOutcome(
            text=FALLBACK_REPLY,
            turns=used,
            exhausted=True,
            tool_calls=records,
        )
