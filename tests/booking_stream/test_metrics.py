"""Tests for booking stream Prometheus metrics."""

from unittest.mock import patch

from booking_stream.metrics import (
    REGISTRY,
    record_delivered,
    record_delivery_error,
    record_enqueued,
    record_pulled,
    start_metrics_server,
)


def _sample(name, labels=None):
    return REGISTRY.get_sample_value(name, labels or {}) or 0.0


class TestCounters:

    def test_pulled_and_enqueued(self):
        pulled, enqueued = _sample("booking_records_pulled_total"), _sample("booking_messages_enqueued_total")

        record_pulled()
        record_enqueued()

        assert _sample("booking_records_pulled_total") == pulled + 1
        assert _sample("booking_messages_enqueued_total") == enqueued + 1

    def test_delivered_counts_bytes(self):
        before = _sample("booking_message_bytes_total")
        record_delivered(128)
        assert _sample("booking_message_bytes_total") == before + 128

    def test_errors_labelled_by_type(self):
        labels = {"error_type": "KafkaTimeoutError"}
        before = _sample("booking_delivery_errors_total", labels)
        record_delivery_error("KafkaTimeoutError")
        assert _sample("booking_delivery_errors_total", labels) == before + 1


class TestStartMetricsServer:

    def test_disabled_when_port_zero(self):
        with patch("booking_stream.metrics.start_http_server") as mock_server:
            assert start_metrics_server(0) == 0
        mock_server.assert_not_called()

    def test_serves_private_registry(self):
        with patch("booking_stream.metrics.start_http_server") as mock_server:
            assert start_metrics_server(9100) == 9100
        mock_server.assert_called_once_with(9100, registry=REGISTRY)
