"""
Booking stream: PostgreSQL rental bookings published to Kafka as Avro.

Modules:
- models: key, payload, encoded message and tally types
- encoder: fixed-schema Avro codecs
- source: server-side cursor over rental_bookings
- producer: aiokafka wrapper with intake and error queues
- pipeline: single-worker delivery loop
- shutdown: signal handling
- app / __main__: wiring and process entry point
"""

from booking_stream.models import BookingKey, BookingPayload, EncodedMessage, PipelineTally

__all__ = [
    "BookingKey",
    "BookingPayload",
    "EncodedMessage",
    "PipelineTally",
]
