"""Tool registry: the fixed, ordered set of tools the model may call.

Dispatch never raises.  Every tool request produces exactly one
``ToolMessage`` so the model always sees an answer for each call id:

* unknown tool   -> ``Error: Tool <name> not found``
* tool raised    -> ``Error: <reason>``
* success        -> the tool's text output
"""

from __future__ import annotations

import logging
import time
from collections.abc import Iterable, Sequence
from typing import TYPE_CHECKING, Any

from langchain_core.messages import ToolCall as ToolRequest
from langchain_core.messages import ToolMessage
from langchain_core.tools import BaseTool

from youdoyou.models import ToolCall
from youdoyou.services.metrics import MetricsClient
from youdoyou.services.metrics import metrics as default_metrics
from youdoyou.tools.calendar import create_calendar_tool
from youdoyou.tools.notion import create_notion_tools

if TYPE_CHECKING:
    from youdoyou.config import Settings
    from youdoyou.services.calendar_client import CalendarClient
    from youdoyou.services.notion_client import NotionClient

logger = logging.getLogger(__name__)


class ToolRegistry:
    def __init__(
        self,
        tools: Iterable[BaseTool] = (),
        *,
        metrics: MetricsClient | None = None,
    ) -> None:
        self._tools: dict[str, BaseTool] = {}
        for t in tools:
            if t.name in self._tools:
                raise ValueError(f"Duplicate tool name: {t.name}")
            self._tools[t.name] = t
        self._metrics = metrics or default_metrics

    @property
    def tools(self) -> list[BaseTool]:
        """Registered tools in registration order."""
        return list(self._tools.values())

    @property
    def names(self) -> list[str]:
        return list(self._tools)

    def get(self, name: str) -> BaseTool | None:
        return self._tools.get(name)

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def invoke(self, name: str, arguments: dict[str, Any]) -> str:
        """Run one tool by name.  Raises ``KeyError`` for unknown names."""
        return _as_text(self._tools[name].invoke(arguments))

    def dispatch(
        self, requests: Sequence[ToolRequest],
    ) -> tuple[list[ToolMessage], list[ToolCall]]:
        """Execute every request of one model turn, in order."""
        messages: list[ToolMessage] = []
        records: list[ToolCall] = []
        for request in requests:
            name = request["name"]
            arguments = request.get("args") or {}
            call_id = request.get("id") or ""

            if name not in self._tools:
                logger.warning("Tool not found: %s", name)
                output = f"Error: Tool {name} not found"
            else:
                logger.info("Running tool: %s", name)
                t0 = time.perf_counter()
                try:
                    output = self.invoke(name, arguments)
                    elapsed = (time.perf_counter() - t0) * 1000
                    self._metrics.record_success("tool", name, latency_ms=elapsed)
                except Exception as exc:
                    elapsed = (time.perf_counter() - t0) * 1000
                    self._metrics.record_failure(
                        "tool", name, error_type=type(exc).__name__, latency_ms=elapsed,
                    )
                    logger.warning("Tool %s failed: %s", name, exc)
                    output = f"Error: {exc}"

            messages.append(ToolMessage(content=output, tool_call_id=call_id, name=name))
            records.append(ToolCall(name=name, parameters=dict(arguments), result=output))
        return messages, records


def _as_text(output: Any) -> str:
    return output if isinstance(output, str) else str(output)


# ── Factory ──────────────────────────────────────────────────────────


def create_tools_by_dependencies(
    dependencies: Iterable[str],
    settings: Settings,
    *,
    notion: NotionClient | None = None,
    calendar: CalendarClient | None = None,
) -> list[BaseTool]:
    """Return the tools contributed by each named dependency."""
    tools: list[BaseTool] = []
    for dependency in dependencies:
        if dependency == "notion":
            if notion is None:
                raise ValueError("The notion tools need a NotionClient")
            tools.extend(create_notion_tools(notion, settings.notion_database_id))
        elif dependency == "calendar":
            if calendar is None:
                raise ValueError("The calendar tool needs a CalendarClient")
            tools.append(create_calendar_tool(calendar, settings.calendar_timezone))
        else:
            raise ValueError(f"Unknown tool dependency: {dependency}")
    return tools


def build_tool_registry(
    settings: Settings,
    *,
    notion: NotionClient | None = None,
    calendar: CalendarClient | None = None,
    metrics: MetricsClient | None = None,
) -> ToolRegistry:
    """Assemble the registry for ``settings.enabled_tools``."""
    tools = create_tools_by_dependencies(
        settings.enabled_tools, settings, notion=notion, calendar=calendar,
    )
    registry = ToolRegistry(tools, metrics=metrics)
    logger.info("Tool registry ready: %s", ", ".join(registry.names) or "(no tools)")
    return registry
