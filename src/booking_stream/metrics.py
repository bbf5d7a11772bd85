"""
Prometheus metrics for the booking stream.

Focused on delivery accounting:
- Records pulled from the store
- Messages accepted by the producer intake
- Delivered messages and payload bytes
- Delivery errors by exception type

All collectors live on a private registry so tests and embedding
applications never collide with the process-wide default registry.
"""

import logging

from prometheus_client import CollectorRegistry, Counter, start_http_server

logger = logging.getLogger(__name__)

REGISTRY = CollectorRegistry(auto_describe=True)


def _create_counter(name: str, description: str, labelnames=None) -> Counter:
    return Counter(name, description, labelnames=labelnames or (), registry=REGISTRY)


# =============================================================================
# Metric Definitions
# =============================================================================

records_pulled_counter = _create_counter(
    "booking_records_pulled_total",
    "Booking rows read from the store and enriched",
)

messages_enqueued_counter = _create_counter(
    "booking_messages_enqueued_total",
    "Encoded messages accepted by the producer intake",
)

delivery_errors_counter = _create_counter(
    "booking_delivery_errors_total",
    "Messages the broker failed to accept after retries",
    labelnames=["error_type"],
)

messages_delivered_counter = _create_counter(
    "booking_messages_delivered_total",
    "Messages acknowledged by the broker",
)

message_bytes_counter = _create_counter(
    "booking_message_bytes_total",
    "Key plus value bytes of acknowledged messages",
)


# =============================================================================
# Helpers
# =============================================================================


def record_pulled() -> None:
    records_pulled_counter.inc()


def record_enqueued() -> None:
    messages_enqueued_counter.inc()


def record_delivered(message_bytes: int) -> None:
    """Record one acknowledged message."""
    messages_delivered_counter.inc()
    message_bytes_counter.inc(message_bytes)


def record_delivery_error(error_type: str) -> None:
    """Record a message that exhausted its retries."""
    delivery_errors_counter.labels(error_type=error_type).inc()


def start_metrics_server(port: int) -> int:
    """Expose the booking registry over HTTP.

    Returns the port the server listens on, or 0 when disabled.
    """
    if port <= 0:
        logger.debug("Metrics server disabled")
        return 0

    start_http_server(port, registry=REGISTRY)
    logger.info("Metrics server started", extra={"port": port})
    return port


__all__ = [
    "REGISTRY",
    "record_delivered",
    "record_delivery_error",
    "record_enqueued",
    "record_pulled",
    "start_metrics_server",
]
