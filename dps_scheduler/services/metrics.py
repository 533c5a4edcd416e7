"""CloudWatch custom metrics for remote calls and booking outcomes.

Design
------
* Data points are collected in a thread-safe in-memory buffer.
* A daemon thread flushes the buffer to CloudWatch every
  ``FLUSH_INTERVAL_SECONDS``.
* Unless ``METRICS_ENABLED=true``, data points are logged at DEBUG level
  and dropped on flush.
* Each ``put_metric_data`` call sends up to 1 000 data points.

Usage
-----
>>> from dps_scheduler.services.metrics import metrics
>>> metrics.record_call("/api/HoldSlot", status_code=200, latency_ms=231.0)
>>> metrics.record_retry("/api/AvailableLocationDates", reason="rate_limited")
>>> metrics.record_booking_event("hold_acquired")
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

NAMESPACE = "DpsScheduler"
FLUSH_INTERVAL_SECONDS = 60
MAX_BATCH_SIZE = 1_000  # CloudWatch API limit per PutMetricData call


def _status_class(status_code: int | None) -> str:
    if status_code is None:
        return "transport"
    return f"{status_code // 100}xx"


class MetricsClient:
    """Batched CloudWatch metrics publisher."""

    def __init__(self) -> None:
        self._enabled = os.getenv("METRICS_ENABLED", "false").lower() == "true"
        self._buffer: list[dict[str, Any]] = []
        self._lock = threading.Lock()
        self._cw_client = None

        if self._enabled:
            self._start_flush_thread()

    def _get_cw_client(self):
        if self._cw_client is None:
            import boto3

            self._cw_client = boto3.client("cloudwatch")
        return self._cw_client

    # ── Public API ────────────────────────────────────────────────────

    def record_call(
        self,
        endpoint: str,
        status_code: int | None,
        latency_ms: float,
    ) -> None:
        """Record one HTTP attempt against the scheduling API.

        ``status_code`` is ``None`` when the request never got a response.
        """
        now = datetime.now(UTC)
        self._append(
            {
                "MetricName": "RemoteAPI/CallCount",
                "Dimensions": [
                    {"Name": "Endpoint", "Value": endpoint},
                    {"Name": "StatusClass", "Value": _status_class(status_code)},
                ],
                "Timestamp": now,
                "Value": 1,
                "Unit": "Count",
            }
        )
        if latency_ms > 0:
            self._append(
                {
                    "MetricName": "RemoteAPI/Latency",
                    "Dimensions": [{"Name": "Endpoint", "Value": endpoint}],
                    "Timestamp": now,
                    "Value": latency_ms,
                    "Unit": "Milliseconds",
                }
            )
        logger.debug(
            "Metric: %s status=%s latency=%.1fms", endpoint, status_code, latency_ms,
        )

    def record_retry(self, endpoint: str, reason: str) -> None:
        """Record a retry (``rate_limited``, ``auth_expired``, ``server_error``, ``transport``)."""
        self._append(
            {
                "MetricName": "RemoteAPI/RetryCount",
                "Dimensions": [
                    {"Name": "Endpoint", "Value": endpoint},
                    {"Name": "Reason", "Value": reason},
                ],
                "Timestamp": datetime.now(UTC),
                "Value": 1,
                "Unit": "Count",
            }
        )
        logger.debug("Metric: retry %s reason=%s", endpoint, reason)

    def record_booking_event(self, event: str) -> None:
        """Record a booking-transaction step (``hold_failed``, ``booked`` ...)."""
        self._append(
            {
                "MetricName": "Booking/Events",
                "Dimensions": [{"Name": "Event", "Value": event}],
                "Timestamp": datetime.now(UTC),
                "Value": 1,
                "Unit": "Count",
            }
        )
        logger.debug("Metric: booking event %s", event)

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
                cw.put_metric_data(Namespace=NAMESPACE, MetricData=chunk)
                sent += len(chunk)
            logger.info("Flushed %d metrics to CloudWatch", sent)
        except Exception:
            logger.exception("Failed to flush metrics to CloudWatch")
        return sent

    # ── Internal ──────────────────────────────────────────────────────

    def _append(self, metric_data: dict[str, Any]) -> None:
        with self._lock:
            self._buffer.append(metric_data)

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
        logger.info(
            "Metrics flush thread started (interval=%ds)", FLUSH_INTERVAL_SECONDS,
        )


# ── Module-level singleton ──────────────────────────────────────────
metrics = MetricsClient()
