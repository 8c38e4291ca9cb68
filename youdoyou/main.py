"""Developer CLI for the YouDoYou agent.

Works against the configured message store (Firestore by default), so
threads written here are picked up by the deployed trigger as well.

Usage:
    python -m youdoyou.main seed [basic|private|codeblock|all]
    python -m youdoyou.main create-message --message "今日の予定は？" [--thread-id T] [--user-id U]
    python -m youdoyou.main history <thread-id>
    python -m youdoyou.main run <thread-id>            # answer locally, no trigger
    python -m youdoyou.main --debug run <thread-id>    # debug mode (shows API calls)
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
import time

from dotenv import load_dotenv

from youdoyou.config import Settings, load_settings
from youdoyou.errors import AgentError, StoreError
from youdoyou.models import Message, MessageRole, MessageStatus, Thread
from youdoyou.seeds import JST, SEEDS, apply_seed, seed_names
from youdoyou.service import build_agent_service
from youdoyou.services.message_store import MessageStore, create_message_store

logger = logging.getLogger(__name__)


def _configure_logging(debug: bool = False) -> None:
    """Set up logging: WARNING by default, DEBUG when --debug is passed."""
    root_level = logging.DEBUG if debug else logging.WARNING
    logging.basicConfig(
        level=root_level,
        format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
    )

    if not debug:
        # Silence chatty HTTP loggers even if root is WARNING
        logging.getLogger("httpx").setLevel(logging.WARNING)
        logging.getLogger("httpcore").setLevel(logging.WARNING)

    logging.getLogger("youdoyou").setLevel(logging.DEBUG if debug else logging.INFO)


def _open_store() -> MessageStore:
    """Store for the commands that never call the model (no API key needed)."""
    return create_message_store(
        os.getenv("STORE_BACKEND", Settings.store_backend).lower(),
        os.getenv("FIRESTORE_PROJECT_ID", Settings.firestore_project_id),
    )


# ── Commands ─────────────────────────────────────────────────────────


def cmd_seed(args: argparse.Namespace) -> int:
    try:
        names = seed_names(args.name)
    except KeyError as exc:
        print(f"Error: {exc.args[0]}", file=sys.stderr)
        return 2

    store = _open_store()
    for name in names:
        thread_id = SEEDS[name].thread.id
        for message_id in apply_seed(store, name):
            print(f"[{thread_id}] Saved message: {message_id}")
        print(f"Successfully seeded data for thread: {thread_id}")
    return 0


def cmd_create_message(args: argparse.Namespace) -> int:
    store = _open_store()
    thread_id = args.thread_id
    if not thread_id:
        thread_id = store.create_thread(
            Thread(
                id=f"thread-{int(time.time())}",
                user_id=args.user_id,
                first_message=args.message,
            )
        )
        print(f"Thread created: {thread_id}")
    else:
        print(f"Using existing thread: {thread_id}")

    message_id = store.save_message(
        thread_id,
        Message(role=MessageRole.USER, content=args.message, status=MessageStatus.UNREAD),
    )
    print("Message created successfully!")
    print(f"   Thread ID: {thread_id}")
    print(f"   Message ID: {message_id}")
    print(f"   Content: {args.message}")
    return 0


def cmd_history(args: argparse.Namespace) -> int:
    messages = _open_store().get_messages(args.thread_id)
    print(f"--- Conversation History for {args.thread_id} ---")
    for msg in messages:
        stamp = msg.created_at.astimezone(JST).strftime("%H:%M:%S")
        print(f"[{stamp}] {msg.role} ({msg.status or '-'}) ID:{msg.id} : {msg.content}")
    print("-" * 39)
    return 0


def cmd_run(args: argparse.Namespace) -> int:
    service = build_agent_service(load_settings())
    try:
        result = service.chat(args.thread_id)
    finally:
        service.metrics.flush()
    for call in result.tool_calls:
        print(f"  [tool] {call.name} {call.parameters}")
    print(f"\nAgent ({result.turns} turn(s)): {result.response}\n")
    print(f"Reply saved as {result.reply_message_id}")
    return 0


# ── Entry point ──────────────────────────────────────────────────────


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="YouDoYou agent CLI")
    parser.add_argument(
        "--debug", action="store_true",
        help="Show all log messages including HTTP requests",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    seed = sub.add_parser("seed", help="Write demo threads (idempotent)")
    seed.add_argument("name", nargs="?", default="all", help="Seed name or 'all'")
    seed.set_defaults(func=cmd_seed)

    create = sub.add_parser("create-message", help="Add an unread user message")
    create.add_argument("--message", required=True, help="Message content")
    create.add_argument(
        "--thread-id", default="",
        help="Existing thread (a new thread is created if omitted)",
    )
    create.add_argument("--user-id", default="default-user", help="User ID for new threads")
    create.set_defaults(func=cmd_create_message)

    history = sub.add_parser("history", help="Print a thread's messages")
    history.add_argument("thread_id")
    history.set_defaults(func=cmd_history)

    run = sub.add_parser("run", help="Answer a thread's pending message locally")
    run.add_argument("thread_id")
    run.set_defaults(func=cmd_run)
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    load_dotenv()
    _configure_logging(debug=args.debug)

    try:
        return args.func(args)
    except (AgentError, StoreError) as e:
        logger.debug("Command %s failed", args.command, exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
