"""YouDoYou agent — answers the pending message of a conversation thread.

Architecture Overview
=====================

A write to ``threads/{id}/messages/{id}`` in the message store (or a direct
HTTP call) triggers one agent run.  The run is driven by
:class:`youdoyou.service.AgentService`:

1. **select** — load the thread, pick the newest ``unread`` user message as
   the trigger and claim it (``unread -> generating``).
2. **build** — turn the thread summary and the messages after the memory
   watermark into ``[system, human/ai ...]`` turns.
3. **loop** — a LangGraph StateGraph alternates between the Claude model
   and the tool registry, bounded by a turn budget (5 by default).
4. **persist** — save the assistant reply and mark the trigger
   ``completed``, or mark it ``error`` when the model call fails.

Key Design Decisions
--------------------
- **LLM**: Claude via ``langchain-anthropic`` with native tool calling.
- **Tools**: Notion (query / create page) and Google Calendar (events),
  wrapped by a registry that turns every failure into an error result the
  model can read, instead of aborting the run.
- **Resilience**: the Notion and Calendar clients retry timeouts, 429 and
  5xx with exponential backoff.
- **Memory**: no in-process conversation state; the message store is the
  single source of truth and the turns are rebuilt for every run.

Package Structure
-----------------
- ``youdoyou/agent.py`` — LangGraph loop
- ``youdoyou/service.py`` — one run: selection, status transitions, persistence
- ``youdoyou/selection.py`` — trigger and context selection
- ``youdoyou/context.py`` — history to model turns
- ``youdoyou/config.py`` — settings from environment variables / SSM
- ``youdoyou/server.py`` — FastAPI application
- ``youdoyou/main.py`` — developer CLI
- ``youdoyou/services/`` — message store, Notion, Calendar, metrics
- ``youdoyou/tools/`` — LangChain tools and the registry
- ``youdoyou/api/`` — FastAPI routes and Pydantic schemas
"""
