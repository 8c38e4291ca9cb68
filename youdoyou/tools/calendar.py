"""LangChain tool for reading the user's Google Calendar."""

from __future__ import annotations

import logging

from langchain_core.tools import BaseTool, tool
from pydantic import BaseModel, Field

from youdoyou.errors import ToolExecutionFailed
from youdoyou.services.calendar_client import (
    TIME_RANGES,
    CalendarAPIError,
    CalendarClient,
    CalendarEvent,
)

logger = logging.getLogger(__name__)

CALENDAR_TOOL_NAME = "getCalendar"


def format_events(events: list[CalendarEvent]) -> str:
    """One line per event: ``summary (YYYY-MM-DD HH:MM)``."""
    if not events:
        return "No events in that time range."
    lines = []
    for event in events:
        when = (
            event.start_time.strftime("%Y-%m-%d") + " all day"
            if event.all_day
            else event.start_time.strftime("%Y-%m-%d %H:%M")
        )
        line = f"{event.summary} ({when})"
        if event.location:
            line += f" @ {event.location}"
        lines.append(line)
    return "\n".join(lines)


def create_calendar_tool(client: CalendarClient, default_timezone: str) -> BaseTool:
    class CalendarToolInput(BaseModel):
        time_range: str = Field(
            default="next 7 days",
            description=f"Time range, one of: {', '.join(TIME_RANGES)}.",
        )
        timezone: str = Field(
            default=default_timezone,
            description="IANA timezone like 'Asia/Tokyo'.",
        )

    @tool(CALENDAR_TOOL_NAME, args_schema=CalendarToolInput)
    def get_calendar(time_range: str = "next 7 days", timezone: str = default_timezone) -> str:
        """Retrieve calendar events for the specified time range."""
        try:
            events = client.get_events(time_range, timezone)
        except CalendarAPIError as exc:
            logger.error("Calendar lookup failed: %s", exc)
            raise ToolExecutionFailed(f"Calendar lookup failed: {exc}") from exc
        return format_events(events)

    return get_calendar
