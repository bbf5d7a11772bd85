"""
Booking rows from PostgreSQL.

Reads rental_bookings through a server-side cursor and enriches each row
with a point lookup into rental_properties. The per-row lookup is an N+1
access pattern and usually bounds throughput; it is kept as a separate
step rather than folded into a join so that every booking still requires
a matching property.
"""

import logging
from contextlib import asynccontextmanager
from datetime import date, datetime
from decimal import Decimal
from typing import Any, AsyncIterator, Optional, Sequence, Tuple

import psycopg

from config.config import StoreConfig
from core.errors import PropertyLookupError, StoreConnectionError, StoreQueryError
from core.logging import get_logger, log_exception, log_with_context
from booking_stream.models import BookingKey, BookingPayload

logger = get_logger(__name__)

BOOKINGS_QUERY = (
    "SELECT rental_property_id, is_booked, booking_date, asking_price, actual_price, price_source "
    "FROM rental_bookings"
)

PROPERTY_QUERY = "SELECT provider, provider_uid FROM rental_properties WHERE id = %s"

CURSOR_NAME = "rental_bookings_stream"


def _as_date_string(value: Any) -> str:
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return str(value)


def _as_float(value: Any) -> Optional[float]:
    if value is None:
        return None
    if isinstance(value, Decimal):
        return float(value)
    return value


def build_payload(row: Sequence[Any]) -> BookingPayload:
    """
    Map a rental_bookings row onto a payload.

    Column order follows BOOKINGS_QUERY; asking_price feeds booked_price
    and actual_price feeds price.
    """
    _, is_booked, _, asking_price, actual_price, price_source = row
    return BookingPayload(
        is_booked=is_booked,
        price=_as_float(actual_price),
        booked_price=_as_float(asking_price),
        price_source=price_source,
    )


class BookingRowSource:
    """
    Lazy, single-pass sequence of (BookingKey, BookingPayload) pairs.

    Driver errors and unusable rows (missing property, NULL key column)
    end the iteration with a fatal StoreQueryError.

    Usage:
        >>> async with connect_store(config.store) as conn:
        ...     source = BookingRowSource(conn, fetch_size=2000)
        ...     async for key, payload in source.records():
        ...         ...
    """

    def __init__(self, connection: psycopg.AsyncConnection, fetch_size: int = 2000):
        self._connection = connection
        self.fetch_size = fetch_size
        self.rows_read = 0
        self._consumed = False

    async def lookup_property(self, property_id: Any) -> Tuple[str, str]:
        """Fetch (provider, provider_uid) for one rental property."""
        try:
            cursor = await self._connection.execute(PROPERTY_QUERY, (property_id,))
            row = await cursor.fetchone()
        except psycopg.Error as e:
            raise StoreQueryError(
                "Rental property lookup failed",
                cause=e,
                context={"property_id": property_id},
            ) from e

        if row is None:
            raise PropertyLookupError(property_id)
        provider, provider_uid = row
        if provider is None or provider_uid is None:
            raise StoreQueryError(
                "Rental property has NULL provider columns",
                context={"property_id": property_id},
            )
        return str(provider), str(provider_uid)

    async def enrich(self, row: Sequence[Any]) -> Tuple[BookingKey, BookingPayload]:
        """Build the key (with its property lookup) and payload for one booking row."""
        property_id, booking_date = row[0], row[2]
        if booking_date is None:
            raise StoreQueryError(
                "Booking row has NULL date",
                context={"property_id": property_id},
            )
        provider, provider_uid = await self.lookup_property(property_id)
        key = BookingKey(
            provider=provider,
            provider_uid=provider_uid,
            date=_as_date_string(booking_date),
        )
        return key, build_payload(row)

    async def records(self) -> AsyncIterator[Tuple[BookingKey, BookingPayload]]:
        """
        Stream bookings in cursor order.

        Raises:
            RuntimeError: If called a second time
            StoreQueryError: On any query failure (fatal)
        """
        if self._consumed:
            raise RuntimeError("BookingRowSource can only be iterated once")
        self._consumed = True

        log_with_context(
            logger,
            logging.INFO,
            "Opening booking cursor",
            fetch_size=self.fetch_size,
        )

        cursor = self._connection.cursor(name=CURSOR_NAME)
        cursor.itersize = self.fetch_size
        try:
            await cursor.execute(BOOKINGS_QUERY)
            async for row in cursor:
                self.rows_read += 1
                yield await self.enrich(row)
        except psycopg.Error as e:
            raise StoreQueryError("Booking query failed", cause=e) from e
        finally:
            await cursor.close()

        log_with_context(
            logger,
            logging.INFO,
            "Booking cursor exhausted",
            rows_read=self.rows_read,
        )


@asynccontextmanager
async def connect_store(config: StoreConfig) -> AsyncIterator[psycopg.AsyncConnection]:
    """
    Open the booking store connection, closing it on every exit path.

    Raises:
        StoreConnectionError: If the connection cannot be established
    """
    try:
        connection = await psycopg.AsyncConnection.connect(
            config.dsn,
            connect_timeout=config.connect_timeout_seconds,
        )
    except psycopg.Error as e:
        log_exception(logger, e, "Failed to connect to booking store", include_traceback=False)
        raise StoreConnectionError("Failed to connect to booking store", cause=e) from e

    logger.info("Connected to booking store")
    try:
        yield connection
    finally:
        await connection.close()
        logger.info("Booking store connection closed")


__all__ = [
    "BOOKINGS_QUERY",
    "PROPERTY_QUERY",
    "BookingRowSource",
    "build_payload",
    "connect_store",
]
