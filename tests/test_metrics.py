"""Tests for the CloudWatch metrics client."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

from dps_scheduler.services.metrics import MAX_BATCH_SIZE, NAMESPACE, MetricsClient


def _make_client(*, enabled: bool = False) -> MetricsClient:
    with patch.dict("os.environ", {"METRICS_ENABLED": str(enabled).lower()}):
        with patch.object(MetricsClient, "_start_flush_thread"):
            return MetricsClient()


def _dims(metric: dict) -> dict[str, str]:
    return {d["Name"]: d["Value"] for d in metric["Dimensions"]}


class TestRecording:
    def test_record_call_buffers_count_and_latency(self):
        client = _make_client()
        client.record_call("/api/HoldSlot", status_code=200, latency_ms=120.0)
        names = {m["MetricName"] for m in client._buffer}
        assert names == {"RemoteAPI/CallCount", "RemoteAPI/Latency"}

    def test_status_class_dimension(self):
        client = _make_client()
        client.record_call("/api/Booking", status_code=403, latency_ms=0)
        assert len(client._buffer) == 1
        assert _dims(client._buffer[0]) == {"Endpoint": "/api/Booking", "StatusClass": "4xx"}

    def test_transport_failure_has_no_status(self):
        client = _make_client()
        client.record_call("/api/Booking", status_code=None, latency_ms=0)
        assert _dims(client._buffer[0])["StatusClass"] == "transport"

    def test_record_retry_reason(self):
        client = _make_client()
        client.record_retry("/api/Booking", reason="rate_limited")
        metric = client._buffer[0]
        assert metric["MetricName"] == "RemoteAPI/RetryCount"
        assert _dims(metric)["Reason"] == "rate_limited"

    def test_record_booking_event(self):
        client = _make_client()
        client.record_booking_event("booked")
        assert _dims(client._buffer[0]) == {"Event": "booked"}


class TestFlush:
    def test_disabled_flush_drops_buffer(self):
        client = _make_client(enabled=False)
        client.record_booking_event("hold_failed")
        assert client.flush() == 0
        assert client._buffer == []

    def test_enabled_flush_batches_to_cloudwatch(self):
        client = _make_client(enabled=True)
        cw = MagicMock()
        client._cw_client = cw
        for _ in range(MAX_BATCH_SIZE + 5):
            client.record_booking_event("hold_failed")

        assert client.flush() == MAX_BATCH_SIZE + 5
        assert cw.put_metric_data.call_count == 2
        assert cw.put_metric_data.call_args[1]["Namespace"] == NAMESPACE

    def test_flush_errors_are_logged_not_raised(self):
        client = _make_client(enabled=True)
        cw = MagicMock()
        cw.put_metric_data.side_effect = RuntimeError("throttled")
        client._cw_client = cw
        client.record_booking_event("booked")
        assert client.flush() == 0
