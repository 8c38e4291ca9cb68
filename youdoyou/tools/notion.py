"""LangChain tools for the Notion task database.

Each tool wraps a NotionClient call and returns plain text the model can
read.  Failures are raised as ``ToolExecutionFailed``; the tool registry
turns them into an error result for the model.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from langchain_core.tools import BaseTool, tool
from pydantic import BaseModel, Field

from youdoyou.errors import ToolExecutionFailed
from youdoyou.services.notion_client import NotionAPIError, NotionClient, NotionPage

logger = logging.getLogger(__name__)

QUERY_TOOL_NAME = "getNotion"
CREATE_TOOL_NAME = "createNotionPage"


class NotionQueryInput(BaseModel):
    database_id: str | None = Field(
        default=None,
        description="Notion database ID. Omit to use the default task database.",
    )
    filters: dict[str, Any] | None = Field(
        default=None,
        description=(
            "Notion API filter object, e.g. "
            '{"property": "Status", "status": {"equals": "In progress"}}. '
            "Omit to list recent pages."
        ),
    )


class NotionCreateInput(BaseModel):
    database_id: str | None = Field(
        default=None,
        description="Notion database ID. Omit to use the default task database.",
    )
    properties: dict[str, Any] = Field(
        ...,
        description=(
            "Page properties as plain values keyed by property name, e.g. "
            '{"Name": "Write report", "Status": "Not started", "Due": "2026-01-31"}.'
        ),
    )


def format_pages(pages: list[NotionPage]) -> str:
    """Render query results as one line per page."""
    if not pages:
        return "No pages matched the query."
    lines = [f"Found {len(pages)} page(s):"]
    for page in pages:
        extras = {
            name: value
            for name, value in page.properties.items()
            if value not in (None, "", []) and value != page.title
        }
        line = f"- {page.title or '(untitled)'} (ID: {page.id})"
        if extras:
            line += " " + json.dumps(extras, ensure_ascii=False, default=str)
        lines.append(line)
    return "\n".join(lines)


def create_notion_tools(
    client: NotionClient,
    default_database_id: str | None = None,
) -> list[BaseTool]:
    """Build the query and create tools bound to *client*."""

    def _resolve(database_id: str | None) -> str:
        resolved = database_id or default_database_id
        if not resolved:
            raise ToolExecutionFailed(
                "No database_id given and no default Notion database is configured."
            )
        return resolved

    @tool(QUERY_TOOL_NAME, args_schema=NotionQueryInput)
    def get_notion(database_id: str | None = None, filters: dict[str, Any] | None = None) -> str:
        """Query the Notion task database and return the pages matching the filter."""
        target = _resolve(database_id)
        try:
            pages = client.query_database(target, filters)
        except NotionAPIError as exc:
            logger.error("Notion query on %s failed: %s", target, exc)
            raise ToolExecutionFailed(f"Notion query failed: {exc}") from exc
        return format_pages(pages)

    @tool(CREATE_TOOL_NAME, args_schema=NotionCreateInput)
    def create_notion_page(properties: dict[str, Any], database_id: str | None = None) -> str:
        """Create a new page (task) in the Notion task database."""
        target = _resolve(database_id)
        try:
            page_id = client.create_page(target, properties)
        except NotionAPIError as exc:
            logger.error("Notion page creation in %s failed: %s", target, exc)
            raise ToolExecutionFailed(f"Notion page creation failed: {exc}") from exc
        return f"Page created with ID: {page_id}"

    return [get_notion, create_notion_page]
