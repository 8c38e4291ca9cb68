"""HTTP client for the Notion API with retry logic and timeout handling.

Notion API docs: https://developers.notion.com/reference
Requests authenticate with an integration token passed as a Bearer token;
the target databases must be shared with that integration.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any

import httpx

logger = logging.getLogger(__name__)

NOTION_BASE_URL = "https://api.notion.com/v1"
NOTION_VERSION = "2022-06-28"

# ── Retry configuration ─────────────────────────────────────────────
MAX_RETRIES = 3
INITIAL_BACKOFF_SECONDS = 1.0
REQUEST_TIMEOUT_SECONDS = 15.0

RICH_TEXT_CHAR_LIMIT = 2000


class NotionAPIError(Exception):
    """Raised when a Notion API call fails after all retries."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


@dataclass
class NotionPage:
    id: str
    title: str
    properties: dict[str, Any] = field(default_factory=dict)
    url: str = ""


# ── Property helpers ────────────────────────────────────────────────


def _rich_text_to_plain(rich_text: list[dict[str, Any]]) -> str:
    return "".join(item.get("plain_text", "") for item in rich_text)


def _plain_to_rich_text(text: str) -> list[dict[str, Any]]:
    """Wrap a string as Notion rich text, split at the per-element limit."""
    if not text:
        return []
    return [
        {"type": "text", "text": {"content": text[i : i + RICH_TEXT_CHAR_LIMIT]}}
        for i in range(0, len(text), RICH_TEXT_CHAR_LIMIT)
    ]


def extract_title(page: dict[str, Any]) -> str:
    """Return the plain text of the page's ``title`` property."""
    for prop in page.get("properties", {}).values():
        if prop.get("type") == "title":
            return _rich_text_to_plain(prop.get("title", []))
    return ""


def simplify_property(prop: dict[str, Any]) -> Any:
    """Flatten a Notion property value into a plain Python value."""
    kind = prop.get("type")
    value = prop.get(kind) if kind else None
    if kind in ("title", "rich_text"):
        return _rich_text_to_plain(value or [])
    if kind in ("select", "status"):
        return value.get("name") if value else None
    if kind == "multi_select":
        return [option.get("name") for option in value or []]
    if kind == "date":
        return value.get("start") if value else None
    if kind == "people":
        return [person.get("name") or person.get("id") for person in value or []]
    return value


def build_property_value(kind: str, value: Any) -> dict[str, Any]:
    """Convert a plain value into the Notion payload for a property of *kind*."""
    if kind == "title":
        return {"title": _plain_to_rich_text(str(value))}
    if kind == "rich_text":
        return {"rich_text": _plain_to_rich_text(str(value))}
    if kind == "number":
        return {"number": float(value) if value is not None else None}
    if kind == "checkbox":
        return {"checkbox": bool(value)}
    if kind in ("select", "status"):
        return {kind: {"name": str(value)}}
    if kind == "multi_select":
        names = value if isinstance(value, list) else str(value).split(",")
        return {"multi_select": [{"name": str(name).strip()} for name in names if str(name).strip()]}
    if kind == "date":
        if isinstance(value, dict):
            return {"date": value}
        return {"date": {"start": str(value)}}
    if kind in ("url", "email", "phone_number"):
        return {kind: str(value)}
    raise NotionAPIError(f"Unsupported property type for writing: {kind}")


class NotionClient:
    """Thin wrapper around the Notion REST API with automatic retries.

    Database schemas are fetched once per database and kept for the
    lifetime of the client; they are needed to turn plain values into
    typed property payloads.
    """

    def __init__(self, token: str, base_url: str = NOTION_BASE_URL):
        self._client = httpx.Client(
            base_url=base_url,
            headers={
                "Authorization": f"Bearer {token}",
                "Content-Type": "application/json",
                "Notion-Version": NOTION_VERSION,
            },
            timeout=REQUEST_TIMEOUT_SECONDS,
        )
        self._schemas: dict[str, dict[str, str]] = {}
        self._schemas_lock = threading.Lock()

    # ── Internal helpers ─────────────────────────────────────────────

    def _request(
        self,
        method: str,
        path: str,
        *,
        json_body: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Execute an HTTP request with exponential-backoff retries."""
        last_error: Exception | None = None
        for attempt in range(1, MAX_RETRIES + 1):
            try:
                response = self._client.request(method, path, json=json_body)
                if response.status_code == 429 or response.status_code >= 500:
                    raise NotionAPIError(
                        f"Server error {response.status_code}: {response.text}",
                        status_code=response.status_code,
                    )
                if response.status_code >= 400:
                    raise NotionAPIError(
                        f"Client error {response.status_code}: {response.text}",
                        status_code=response.status_code,
                    )
                return response.json()

            except (httpx.TimeoutException, httpx.ConnectError) as exc:
                last_error = exc
                logger.warning(
                    "Notion API attempt %d/%d failed (%s). Retrying…",
                    attempt, MAX_RETRIES, type(exc).__name__,
                )
            except NotionAPIError as exc:
                if exc.status_code and (exc.status_code == 429 or exc.status_code >= 500):
                    last_error = exc
                    logger.warning(
                        "Notion API error %d on attempt %d/%d. Retrying…",
                        exc.status_code, attempt, MAX_RETRIES,
                    )
                else:
                    raise

            if attempt < MAX_RETRIES:
                time.sleep(INITIAL_BACKOFF_SECONDS * (2 ** (attempt - 1)))

        raise NotionAPIError(
            f"Notion API request failed after {MAX_RETRIES} retries: {last_error}"
        )

    # ── Public API methods ───────────────────────────────────────────

    def get_database_schema(self, database_id: str) -> dict[str, str]:
        """Return ``{property name: property type}`` for a database (cached)."""
        with self._schemas_lock:
            cached = self._schemas.get(database_id)
        if cached is not None:
            return cached

        data = self._request("GET", f"/databases/{database_id}")
        schema = {
            name: prop.get("type", "")
            for name, prop in data.get("properties", {}).items()
        }
        with self._schemas_lock:
            self._schemas[database_id] = schema
        return schema

    def query_database(
        self,
        database_id: str,
        filters: dict[str, Any] | None = None,
        *,
        page_size: int = 25,
    ) -> list[NotionPage]:
        """Query a database.  *filters* is a Notion filter object, passed through."""
        body: dict[str, Any] = {"page_size": page_size}
        if filters:
            body["filter"] = filters
        data = self._request("POST", f"/databases/{database_id}/query", json_body=body)
        return [
            NotionPage(
                id=page.get("id", ""),
                title=extract_title(page),
                properties={
                    name: simplify_property(prop)
                    for name, prop in page.get("properties", {}).items()
                },
                url=page.get("url", ""),
            )
            for page in data.get("results", [])
        ]

    def create_page(self, database_id: str, properties: dict[str, Any]) -> str:
        """Create a page in *database_id* from plain ``{name: value}`` pairs.

        Values are typed using the database schema.  Unknown property names
        are rejected so the caller learns which names are valid.

        Returns:
            The id of the new page.
        """
        schema = self.get_database_schema(database_id)
        unknown = sorted(name for name in properties if name not in schema)
        if unknown:
            raise NotionAPIError(
                f"Unknown properties {', '.join(unknown)}. "
                f"Available: {', '.join(sorted(schema))}"
            )
        payload = {
            "parent": {"database_id": database_id},
            "properties": {
                name: build_property_value(schema[name], value)
                for name, value in properties.items()
            },
        }
        data = self._request("POST", "/pages", json_body=payload)
        page_id = data.get("id", "")
        logger.info("Created Notion page %s in database %s", page_id, database_id)
        return page_id
