"""Wiring of store, producer and delivery pipeline for one run.

Provides a single entry coroutine with consistent:
- Resource acquisition and guaranteed release
- Logging context
- Final delivery summary
"""

import asyncio
import logging
from typing import Optional

from config.config import AppConfig
from core.logging import format_tally, get_logger, log_with_context, set_log_context
from booking_stream.models import PipelineTally
from booking_stream.pipeline import DeliveryPipeline
from booking_stream.producer import BookingProducer
from booking_stream.source import BookingRowSource, connect_store

logger = get_logger(__name__)

STAGE_NAME = "booking_stream"


async def run_pipeline(
    config: AppConfig,
    shutdown_event: Optional[asyncio.Event] = None,
) -> PipelineTally:
    """Stream every booking to Kafka until the store is exhausted or shutdown is requested.

    The store connection and the producer are released on every exit
    path; the producer drains and flushes before the connection closes.

    Args:
        config: Loaded application configuration
        shutdown_event: Event that stops the run when set (created if omitted)

    Returns:
        Final tally of enqueued messages and delivery errors

    Raises:
        FatalError: Store, producer start or encoding failures
    """
    if shutdown_event is None:
        shutdown_event = asyncio.Event()

    set_log_context(stage=STAGE_NAME)
    logger.info("Starting booking stream...")

    async with connect_store(config.store) as connection:
        source = BookingRowSource(connection, fetch_size=config.store.fetch_size)

        async with BookingProducer(config.broker) as producer:
            pipeline = DeliveryPipeline(
                source,
                producer,
                shutdown_event,
                progress_interval=config.pipeline.progress_interval,
            )
            task = asyncio.create_task(pipeline.run(), name="booking-delivery")
            try:
                tally = await task
            except asyncio.CancelledError:
                logger.info("Delivery interrupted")
                logger.info(format_tally(pipeline.tally.enqueued, pipeline.tally.errors))
                raise

        late_errors = producer.errors.qsize()
        if late_errors:
            log_with_context(
                logger,
                logging.WARNING,
                "Delivery errors reported while the producer was closing",
                pending_errors=late_errors,
            )

    logger.info(format_tally(tally.enqueued, tally.errors))
    return tally


__all__ = ["STAGE_NAME", "run_pipeline"]
