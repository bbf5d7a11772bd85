"""
Record types flowing through the booking stream.

BookingKey and BookingPayload are Pydantic models built once per store row.
EncodedMessage and PipelineTally are plain dataclasses owned by the
delivery pipeline.
"""

from dataclasses import dataclass
from typing import Optional

from pydantic import BaseModel, ConfigDict


class BookingKey(BaseModel):
    """Identifies one booking occurrence of a rental property.

    Assembled from the booking row (date) and the rental property row
    (provider, provider_uid). Uniqueness is not enforced.

    Attributes:
        provider: Listing provider of the rental property
        provider_uid: Property identifier at that provider
        date: Booking date in ISO format (YYYY-MM-DD)
    """

    model_config = ConfigDict(frozen=True)

    provider: str
    provider_uid: str
    date: str


class BookingPayload(BaseModel):
    """Booking state and prices for one key.

    Every field is optional: None means the store returned NULL, which is
    different from a present zero value (False, 0.0 or "").

    Attributes:
        is_booked: Whether the date is booked
        price: Actual price
        booked_price: Asking price
        price_source: Origin of the price data
    """

    model_config = ConfigDict(frozen=True)

    is_booked: Optional[bool] = None
    price: Optional[float] = None
    booked_price: Optional[float] = None
    price_source: Optional[str] = None


@dataclass(frozen=True)
class EncodedMessage:
    """Avro-encoded key/value pair ready to hand to the producer.

    Attributes:
        key: Avro binary of a BookingKey
        value: Avro binary of a BookingPayload
    """

    key: bytes
    value: bytes


@dataclass
class PipelineTally:
    """Counts of delivery attempts, written only by the delivery worker.

    Attributes:
        enqueued: Messages accepted by the producer intake
        errors: Delivery errors drained from the producer error outlet
    """

    enqueued: int = 0
    errors: int = 0

    @property
    def total(self) -> int:
        return self.enqueued + self.errors


__all__ = [
    "BookingKey",
    "BookingPayload",
    "EncodedMessage",
    "PipelineTally",
]
