"""CloudWatch custom metrics emitter with background batching.

Publishes per-call metrics (count, latency, errors) for every external
dependency an agent run touches (Anthropic, Notion, Google Calendar, the
message store) plus one outcome datapoint per agent run.

Design
------
* Metrics are collected in a thread-safe in-memory buffer.
* When enabled, a daemon thread flushes the buffer to CloudWatch every
  ``FLUSH_INTERVAL_SECONDS``.
* When disabled, datapoints are logged at DEBUG level and dropped on flush.
* Each ``put_metric_data`` call sends at most ``MAX_BATCH_SIZE`` points.

Usage
-----
>>> from youdoyou.services.metrics import metrics
>>> metrics.record_success("notion", "POST /databases/query", latency_ms=123.4)
>>> metrics.record_agent_outcome("completed", turns=2, latency_ms=2100.0)
"""

from __future__ import annotations

import atexit
import logging
import os
import threading
import time
from datetime import UTC, datetime
from typing import Any

logger = logging.getLogger(__name__)

NAMESPACE = "YouDoYou"
FLUSH_INTERVAL_SECONDS = 60
MAX_BATCH_SIZE = 1_000  # CloudWatch API limit per PutMetricData call


def _dimensions(**pairs: str) -> list[dict[str, str]]:
    return [{"Name": name, "Value": value} for name, value in pairs.items()]


class MetricsClient:
    """Batched CloudWatch metrics publisher."""

    def __init__(self, enabled: bool | None = None, namespace: str = NAMESPACE) -> None:
        if enabled is None:
            enabled = os.getenv("METRICS_ENABLED", "false").lower() == "true"
        self._enabled = enabled
        self._namespace = namespace
        self._buffer: list[dict[str, Any]] = []
        self._lock = threading.Lock()
        self._cw_client = None  # lazy-init

        if self._enabled:
            self._start_flush_thread()

    @property
    def enabled(self) -> bool:
        return self._enabled

    def _get_cw_client(self):
        if self._cw_client is None:
            import boto3

            self._cw_client = boto3.client("cloudwatch")
        return self._cw_client

    # ── Public API ────────────────────────────────────────────────────

    def record_success(self, service: str, operation: str, latency_ms: float) -> None:
        """Record a successful call to an external dependency."""
        now = datetime.now(UTC)
        self._append(
            "Dependency/RequestCount", 1, "Count", now,
            _dimensions(Service=service, Status="success"),
        )
        self._append(
            "Dependency/Latency", latency_ms, "Milliseconds", now,
            _dimensions(Service=service, Operation=operation),
        )
        logger.debug("Metric: %s %s success latency=%.1fms", service, operation, latency_ms)

    def record_failure(
        self,
        service: str,
        operation: str,
        error_type: str,
        latency_ms: float = 0,
    ) -> None:
        """Record a failed call to an external dependency."""
        now = datetime.now(UTC)
        self._append(
            "Dependency/RequestCount", 1, "Count", now,
            _dimensions(Service=service, Status="failure"),
        )
        self._append(
            "Dependency/ErrorCount", 1, "Count", now,
            _dimensions(Service=service, ErrorType=error_type),
        )
        if latency_ms > 0:
            self._append(
                "Dependency/Latency", latency_ms, "Milliseconds", now,
                _dimensions(Service=service, Operation=operation),
            )
        logger.debug(
            "Metric: %s %s failure error=%s latency=%.1fms",
            service, operation, error_type, latency_ms,
        )

    def record_agent_outcome(self, outcome: str, turns: int, latency_ms: float) -> None:
        """Record how an agent run ended (``completed``, ``exhausted``, ``error``...)."""
        now = datetime.now(UTC)
        dims = _dimensions(Outcome=outcome)
        self._append("Agent/RunCount", 1, "Count", now, dims)
        self._append("Agent/Turns", turns, "Count", now, dims)
        self._append("Agent/Duration", latency_ms, "Milliseconds", now, dims)
        logger.debug(
            "Metric: agent run outcome=%s turns=%d duration=%.1fms",
            outcome, turns, latency_ms,
        )

    def flush(self) -> int:
        """Send buffered metrics to CloudWatch.  Returns count sent."""
        with self._lock:
            if not self._buffer:
                return 0
            batch = self._buffer[:]
            self._buffer.clear()

        if not self._enabled:
            logger.debug("Metrics flush skipped (not enabled): %d items", len(batch))
            return 0

        sent = 0
        try:
            cw = self._get_cw_client()
            for i in range(0, len(batch), MAX_BATCH_SIZE):
                chunk = batch[i : i + MAX_BATCH_SIZE]
                cw.put_metric_data(Namespace=self._namespace, MetricData=chunk)
                sent += len(chunk)
            logger.info("Flushed %d metrics to CloudWatch", sent)
        except Exception:
            logger.exception("Failed to flush metrics to CloudWatch")
        return sent

    # ── Internal ──────────────────────────────────────────────────────

    def _append(
        self,
        name: str,
        value: float,
        unit: str,
        timestamp: datetime,
        dimensions: list[dict[str, str]],
    ) -> None:
        datum = {
            "MetricName": name,
            "Dimensions": dimensions,
            "Timestamp": timestamp,
            "Value": value,
            "Unit": unit,
        }
        with self._lock:
            self._buffer.append(datum)

    def _start_flush_thread(self) -> None:
        def _loop():
            while True:
                time.sleep(FLUSH_INTERVAL_SECONDS)
                try:
                    self.flush()
                except Exception:
                    logger.exception("Metrics flush thread error")

        t = threading.Thread(target=_loop, daemon=True, name="metrics-flush")
        t.start()
        atexit.register(self.flush)
        logger.info("Metrics flush thread started (interval=%ds)", FLUSH_INTERVAL_SECONDS)


# ── Module-level default (disabled unless METRICS_ENABLED=true) ─────
metrics = MetricsClient()
