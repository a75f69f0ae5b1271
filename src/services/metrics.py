"""CloudWatch custom metrics for upstream calls and session turns.

Every external dependency reports through here under a short service name:
``anthropic`` for the model, ``linear`` for the GraphQL API and
``nominatim`` / ``open-meteo`` / ``timeapi`` for the tool APIs.  Each
finished turn of the agent loop also reports its status and iteration count.

Data points are buffered in memory and pushed in batches by a daemon thread
(and once more at interpreter exit).  With ``METRICS_ENABLED`` unset or not
``"true"`` the buffer is still filled and drained, but nothing leaves the
process and boto3 is never imported.

>>> from src.services.metrics import metrics
>>> metrics.record_success("open-meteo", "GET /v1/forecast", latency_ms=84.2)
>>> metrics.record_turn("completed", iterations=3)
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

NAMESPACE = "LinearWeatherAgent"
FLUSH_INTERVAL_SECONDS = 60
MAX_BATCH_SIZE = 1_000  # PutMetricData limit

Dimensions = dict[str, str]


def _datum(
    name: str, dimensions: Dimensions, value: float, unit: str, timestamp: datetime,
) -> dict[str, Any]:
    return {
        "MetricName": name,
        "Dimensions": [{"Name": key, "Value": val} for key, val in dimensions.items()],
        "Timestamp": timestamp,
        "Value": value,
        "Unit": unit,
    }


def _metrics_enabled() -> bool:
    return os.getenv("METRICS_ENABLED", "false").lower() == "true"


class MetricsClient:
    """Buffers metric data points and ships them to CloudWatch in batches."""

    def __init__(self, enabled: bool | None = None) -> None:
        self._enabled = _metrics_enabled() if enabled is None else enabled
        self._buffer: list[dict[str, Any]] = []
        self._lock = threading.Lock()
        self._cw_client = None

        if self._enabled:
            self._start_flush_thread()

    # ── Recording ─────────────────────────────────────────────────────

    def record_success(self, service: str, operation: str, latency_ms: float) -> None:
        """One upstream call that returned a usable answer."""
        now = datetime.now(UTC)
        self._extend(
            _datum("ExternalAPI/RequestCount", {"Service": service, "Status": "success"}, 1, "Count", now),
            _datum("ExternalAPI/Latency", {"Service": service, "Operation": operation}, latency_ms, "Milliseconds", now),
        )
        logger.debug("Metric: %s %s ok in %.1fms", service, operation, latency_ms)

    def record_failure(
        self,
        service: str,
        operation: str,
        error_type: str,
        latency_ms: float = 0,
    ) -> None:
        """One upstream call that failed.  Latency is only kept when measured."""
        now = datetime.now(UTC)
        points = [
            _datum("ExternalAPI/RequestCount", {"Service": service, "Status": "failure"}, 1, "Count", now),
            _datum("ExternalAPI/ErrorCount", {"Service": service, "ErrorType": error_type}, 1, "Count", now),
        ]
        if latency_ms > 0:
            points.append(
                _datum("ExternalAPI/Latency", {"Service": service, "Operation": operation}, latency_ms, "Milliseconds", now),
            )
        self._extend(*points)
        logger.debug(
            "Metric: %s %s failed (%s) after %.1fms", service, operation, error_type, latency_ms,
        )

    def record_turn(self, status: str, iterations: int) -> None:
        """One finished session turn, keyed by its final status."""
        now = datetime.now(UTC)
        dimensions = {"Status": status}
        self._extend(
            _datum("Session/TurnCount", dimensions, 1, "Count", now),
            _datum("Session/Iterations", dimensions, iterations, "Count", now),
        )
        logger.debug("Metric: turn %s after %d iterations", status, iterations)

    # ── Shipping ──────────────────────────────────────────────────────

    def flush(self) -> int:
        """Drain the buffer; returns how many data points reached CloudWatch."""
        with self._lock:
            batch, self._buffer = self._buffer, []

        if not batch:
            return 0
        if not self._enabled:
            logger.debug("Metrics disabled, dropping %d data points", len(batch))
            return 0

        sent = 0
        try:
            client = self._cloudwatch()
            for start in range(0, len(batch), MAX_BATCH_SIZE):
                chunk = batch[start : start + MAX_BATCH_SIZE]
                client.put_metric_data(Namespace=NAMESPACE, MetricData=chunk)
                sent += len(chunk)
        except Exception:
            logger.exception("Failed to push metrics to CloudWatch (%d of %d sent)", sent, len(batch))
        else:
            logger.info("Pushed %d metrics to CloudWatch", sent)
        return sent

    # ── Internal ──────────────────────────────────────────────────────

    def _cloudwatch(self):
        if self._cw_client is None:
            import boto3

            self._cw_client = boto3.client("cloudwatch")
        return self._cw_client

    def _extend(self, *points: dict[str, Any]) -> None:
        with self._lock:
            self._buffer.extend(points)

    def _start_flush_thread(self) -> None:
        def _run() -> None:
            while True:
                time.sleep(FLUSH_INTERVAL_SECONDS)
                try:
                    self.flush()
                except Exception:
                    logger.exception("Metrics flush thread error")

        threading.Thread(target=_run, daemon=True, name="metrics-flush").start()
        atexit.register(self.flush)
        logger.info("Metrics flushing every %ds to namespace %s", FLUSH_INTERVAL_SECONDS, NAMESPACE)


# ── Module-level singleton ──────────────────────────────────────────
metrics = MetricsClient()
