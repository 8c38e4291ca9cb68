"""FastAPI server for the YouDoYou agent.

Run with:
    uvicorn youdoyou.server:app --host 0.0.0.0 --port 8081
"""

from __future__ import annotations

import logging
import uuid
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request, Response

from youdoyou.api.routes import router
from youdoyou.config import load_settings
from youdoyou.service import build_agent_service

# ── Logging ──────────────────────────────────────────────────────────
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
)
logger = logging.getLogger(__name__)


# ── Lifespan: initialise / tear-down shared resources ────────────────
@asynccontextmanager
async def lifespan(application: FastAPI):
    """Start-up: load settings, wire the store, tools and agent once.

    The service lives on ``app.state`` so every request shares the same
    compiled graph and HTTP clients.
    """
    settings = load_settings()
    logger.info(
        "Building agent (model=%s, store=%s, tools=%s, max_turns=%d)…",
        settings.model_name, settings.store_backend,
        ",".join(settings.enabled_tools) or "-", settings.max_turns,
    )
    service = build_agent_service(settings)
    application.state.service = service
    logger.info("Agent ready.")
    yield
    service.metrics.flush()
    application.state.service = None


# ── FastAPI application ──────────────────────────────────────────────
app = FastAPI(
    title="YouDoYou Agent",
    description=(
        "Answers the pending user message of a conversation thread, "
        "triggered by message-store writes or direct calls."
    ),
    version="1.0.0",
    lifespan=lifespan,
)


# ── Request-ID middleware ────────────────────────────────────────────
@app.middleware("http")
async def add_request_id(request: Request, call_next) -> Response:
    """Attach a unique request ID to every request for log correlation.

    The ID is echoed in the ``X-Request-ID`` response header and prefixed
    to every log line the routes write for this request.
    """
    request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
    request.state.request_id = request_id
    logger.info(
        "[%s] %s %s", request_id, request.method, request.url.path,
    )
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


# ── Register routes ──────────────────────────────────────────────────
app.include_router(router, prefix="/v1")


@app.get("/")
async def root():
    """Root endpoint with API info."""
    return {
        "service": "YouDoYou Agent",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/v1/health",
    }


# ── CLI entry point ──────────────────────────────────────────────────

if __name__ == "__main__":
    settings = load_settings()
    logger.info("Starting YouDoYou agent server on %s:%d", settings.server_host, settings.server_port)
    uvicorn.run(
        "youdoyou.server:app",
        host=settings.server_host,
        port=settings.server_port,
    )
