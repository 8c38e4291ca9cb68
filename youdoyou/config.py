"""Configuration for the YouDoYou agent backend.

Secret resolution order (per variable):
  1. Environment variable / ``.env`` file  (local dev)
  2. AWS SSM Parameter Store SecureString  (when ``AWS_EXECUTION_ENV`` is set)

The SSM paths follow the convention ``/youdoyou/<VARIABLE_NAME>``.

Values are collected once into an immutable :class:`Settings` by
:func:`load_settings` and handed to the components that need them.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

SSM_PREFIX = "/youdoyou"

STORE_BACKENDS = ("firestore", "memory")
KNOWN_TOOLS = ("notion", "calendar")


def _on_aws() -> bool:
    return bool(os.getenv("AWS_EXECUTION_ENV"))


# ── Secret resolution ────────────────────────────────────────────────

def _get_ssm_parameter(name: str) -> str | None:
    """Fetch a SecureString from SSM Parameter Store.

    Returns ``None`` if the parameter does not exist or boto3 is
    unavailable.  Errors are logged but never raised so that local-dev
    fallback still works.
    """
    try:
        import boto3  # noqa: PLC0415 — only needed on AWS

        ssm = boto3.client("ssm")
        resp = ssm.get_parameter(Name=f"{SSM_PREFIX}/{name}", WithDecryption=True)
        return resp["Parameter"]["Value"]
    except Exception:
        logger.debug("SSM lookup for %s failed (expected locally)", name)
        return None


def _get_secret(name: str) -> str | None:
    value = os.getenv(name)
    if value and not value.startswith("your_"):
        return value
    if _on_aws():
        return _get_ssm_parameter(name)
    return None


def _require_env(name: str) -> str:
    """Return a config value from env-var or SSM, or raise a clear error."""
    value = _get_secret(name)
    if value:
        return value
    raise OSError(
        f"Missing required configuration: {name}. "
        f"Set it in .env (local) or SSM Parameter Store {SSM_PREFIX}/{name} (AWS)."
    )


def _parse_list(raw: str) -> tuple[str, ...]:
    return tuple(item.strip().lower() for item in raw.split(",") if item.strip())


# ── Settings ─────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Settings:
    anthropic_api_key: str
    model_name: str = "claude-sonnet-4-5"
    model_temperature: float = 0.2
    model_max_tokens: int = 2048
    max_turns: int = 5

    store_backend: str = "firestore"
    firestore_project_id: str = "youdoyou-intelligence"

    notion_token: str | None = None
    notion_database_id: str | None = None
    google_calendar_credentials: str | None = None
    google_calendar_subject: str | None = None
    calendar_timezone: str = "Asia/Tokyo"
    enabled_tools: tuple[str, ...] = ("notion",)

    server_host: str = "0.0.0.0"
    server_port: int = 8081
    metrics_enabled: bool = False


def load_settings() -> Settings:
    """Read the environment (and ``.env``) into a :class:`Settings`.

    Raises ``OSError`` for missing required values and ``ValueError`` for
    values that are present but unusable.
    """
    load_dotenv()

    enabled_tools = _parse_list(os.getenv("ENABLED_TOOLS", "notion"))
    unknown = [name for name in enabled_tools if name not in KNOWN_TOOLS]
    if unknown:
        raise ValueError(f"Unknown tools in ENABLED_TOOLS: {', '.join(unknown)}")

    store_backend = os.getenv("STORE_BACKEND", "firestore").lower()
    if store_backend not in STORE_BACKENDS:
        raise ValueError(
            f"STORE_BACKEND must be one of {', '.join(STORE_BACKENDS)}, got {store_backend!r}"
        )

    max_turns = int(os.getenv("AGENT_MAX_TURNS", "5"))
    if max_turns < 1:
        raise ValueError("AGENT_MAX_TURNS must be at least 1")

    notion_token = (
        _require_env("NOTION_TOKEN") if "notion" in enabled_tools else _get_secret("NOTION_TOKEN")
    )
    # Path to a service-account key or an authorized-user token file.
    calendar_credentials = (
        _require_env("GOOGLE_CALENDAR_CREDENTIALS")
        if "calendar" in enabled_tools
        else _get_secret("GOOGLE_CALENDAR_CREDENTIALS")
    )

    settings = Settings(
        anthropic_api_key=_require_env("ANTHROPIC_API_KEY"),
        model_name=os.getenv("MODEL_NAME", Settings.model_name),
        model_temperature=float(os.getenv("MODEL_TEMPERATURE", str(Settings.model_temperature))),
        model_max_tokens=int(os.getenv("MODEL_MAX_TOKENS", str(Settings.model_max_tokens))),
        max_turns=max_turns,
        store_backend=store_backend,
        firestore_project_id=os.getenv("FIRESTORE_PROJECT_ID", Settings.firestore_project_id),
        notion_token=notion_token,
        notion_database_id=os.getenv("NOTION_DATABASE_ID") or None,
        google_calendar_credentials=calendar_credentials,
        google_calendar_subject=os.getenv("GOOGLE_CALENDAR_SUBJECT") or None,
        calendar_timezone=os.getenv("CALENDAR_TIMEZONE", Settings.calendar_timezone),
        enabled_tools=enabled_tools,
        server_host=os.getenv("SERVER_HOST", Settings.server_host),
        server_port=int(os.getenv("SERVER_PORT", str(Settings.server_port))),
        metrics_enabled=os.getenv("METRICS_ENABLED", "false").lower() == "true",
    )
    logger.debug(
        "Settings loaded — model: %s, store: %s, tools: %s, max_turns: %d",
        settings.model_name, settings.store_backend,
        ",".join(settings.enabled_tools) or "none", settings.max_turns,
    )
    return settings
