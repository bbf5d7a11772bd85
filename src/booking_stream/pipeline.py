"""
Delivery pipeline: store rows in, Avro messages out.

One worker pulls (key, payload) pairs from the row source, encodes them
and hands each message to the producer. For every record it waits on
three arms at once:

- the producer intake accepts the message    -> enqueued += 1
- a DeliveryError arrives on the error outlet -> errors += 1, record dropped
- the shutdown event is set                   -> stop pulling

Exactly one arm is acted on per record. Shutdown always wins, so no
record is pulled after it is requested. When both the intake and the
error outlet are ready the winner is picked uniformly at random, so
neither a full intake nor a busy error outlet can starve the other.
"""

import asyncio
import logging
import random
from contextlib import aclosing
from typing import Optional

from core.logging import get_logger, log_exception, log_with_context
from booking_stream.encoder import encode
from booking_stream.metrics import record_enqueued, record_pulled
from booking_stream.models import EncodedMessage, PipelineTally

logger = get_logger(__name__)

ARM_ENQUEUED = "enqueued"
ARM_ERROR = "error"
ARM_SHUTDOWN = "shutdown"

DEFAULT_PROGRESS_INTERVAL = 100000


class DeliveryPipeline:
    """
    Single-worker delivery loop over a row source and a producer.

    The producer only needs two queues: ``input`` (bounded intake of
    EncodedMessage) and ``errors`` (DeliveryError outlet). Encoding
    failures propagate and end the run.

    After a completed run ``tally.total`` equals ``records_pulled``; after
    a shutdown it is one less, the record in flight when shutdown won.
    """

    def __init__(
        self,
        source,
        producer,
        shutdown_event: asyncio.Event,
        progress_interval: int = DEFAULT_PROGRESS_INTERVAL,
    ):
        self.source = source
        self.producer = producer
        self.shutdown_event = shutdown_event
        self.progress_interval = progress_interval
        self.tally = PipelineTally()
        self.records_pulled = 0
        self.cancelled = False
        self._error_task: Optional[asyncio.Task] = None
        self._shutdown_task: Optional[asyncio.Task] = None

    async def run(self) -> PipelineTally:
        """Deliver every record until the source is exhausted or shutdown is requested."""
        self._error_task = self._watch_errors()
        self._shutdown_task = asyncio.create_task(
            self.shutdown_event.wait(), name="booking-pipeline-shutdown"
        )

        logger.info("Delivery pipeline started")
        try:
            async with aclosing(self.source.records()) as records:
                async for key, payload in records:
                    self.records_pulled += 1
                    record_pulled()

                    message = encode(key, payload)
                    if await self._deliver(message) == ARM_SHUTDOWN:
                        self.cancelled = True
                        logger.info("Shutdown requested, stopping delivery")
                        break
        finally:
            self._finish()

        log_with_context(
            logger,
            logging.INFO,
            "Delivery pipeline finished",
            records_pulled=self.records_pulled,
            records_enqueued=self.tally.enqueued,
            records_failed=self.tally.errors,
        )
        return self.tally

    def _watch_errors(self) -> asyncio.Task:
        return asyncio.create_task(self.producer.errors.get(), name="booking-pipeline-errors")

    def _ready_arms(self) -> list:
        ready = []
        if not self.producer.input.full():
            ready.append(ARM_ENQUEUED)
        if self._error_task.done() or not self.producer.errors.empty():
            ready.append(ARM_ERROR)
        return ready

    async def _wait_for_arm(self, message: EncodedMessage) -> list:
        put_task = asyncio.create_task(self.producer.input.put(message))
        done, _ = await asyncio.wait(
            {put_task, self._error_task, self._shutdown_task},
            return_when=asyncio.FIRST_COMPLETED,
        )
        if put_task in done:
            return [ARM_ENQUEUED]

        # Queue.put is cancellation safe; the message was not added
        put_task.cancel()
        if self._shutdown_task in done:
            return [ARM_SHUTDOWN]
        return [ARM_ERROR]

    async def _deliver(self, message: EncodedMessage) -> str:
        if self.shutdown_event.is_set():
            return ARM_SHUTDOWN

        ready = self._ready_arms()
        if ready:
            arm = random.choice(ready)
            if arm == ARM_ENQUEUED:
                self.producer.input.put_nowait(message)
        else:
            arm = random.choice(await self._wait_for_arm(message))

        if arm == ARM_ENQUEUED:
            self.tally.enqueued += 1
            record_enqueued()
        elif arm == ARM_ERROR:
            self._take_error()
        else:
            return arm

        if self.tally.total % self.progress_interval == 0:
            log_with_context(
                logger,
                logging.INFO,
                f"Progress: {self.tally.total} records",
                records_total=self.tally.total,
                records_enqueued=self.tally.enqueued,
                records_failed=self.tally.errors,
            )
        return arm

    def _take_error(self) -> None:
        if self._error_task.done():
            error = self._error_task.result()
            self._error_task = self._watch_errors()
        else:
            error = self.producer.errors.get_nowait()
        self.tally.errors += 1
        log_exception(
            logger,
            error,
            "Message delivery failed",
            level=logging.WARNING,
            include_traceback=False,
            message_topic=error.topic,
            attempt=error.attempts,
        )

    def _finish(self) -> None:
        for task in (self._error_task, self._shutdown_task):
            if task is not None and not task.done():
                task.cancel()

        pending = self.producer.errors.qsize()
        if self._error_task is not None and self._error_task.done() and not self._error_task.cancelled():
            error = self._error_task.result()
            pending += 1
            log_exception(
                logger,
                error,
                "Delivery error left unaccounted at shutdown",
                level=logging.WARNING,
                include_traceback=False,
                message_topic=error.topic,
            )
        if pending:
            log_with_context(
                logger,
                logging.WARNING,
                "Delivery errors pending when the pipeline stopped",
                pending_errors=pending,
            )


__all__ = ["DeliveryPipeline"]
