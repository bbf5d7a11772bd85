"""
Asynchronous Kafka producer for encoded booking messages.

Wraps aiokafka with the three interaction points the delivery pipeline
multiplexes over:
- input: bounded intake queue of EncodedMessage
- errors: outlet of DeliveryError for messages that exhausted their retries
- close(): drain, flush and stop

A dispatcher task drains the intake into AIOKafkaProducer.send(), whose
accumulator applies its own buffer backpressure. Delivery results are
observed through done-callbacks on the returned futures.
"""

import asyncio
import functools
import logging
from typing import Optional, Set

from aiokafka import AIOKafkaProducer

from config.config import BrokerConfig
from core.errors import DeliveryError, ProducerStartError
from core.logging import get_logger, log_exception, log_with_context
from booking_stream.metrics import record_delivered, record_delivery_error
from booking_stream.models import EncodedMessage
from booking_stream.partitioner import RoundRobinPartitioner

logger = get_logger(__name__)


class BookingProducer:
    """
    Fire-and-forget Kafka producer with a bounded intake and an error outlet.

    A failed message is re-sent up to config.max_retries times before a
    DeliveryError carrying the message is put on the errors queue.

    These re-sends sit on top of aiokafka's own sender, which already
    retries retriable broker errors (leader changes, request timeouts)
    until the batch expires after request_timeout_ms. One logical attempt
    can therefore mean several broker requests, and max_retries bounds
    only the attempts made here.

    Usage:
        >>> async with BookingProducer(config.broker) as producer:
        ...     await producer.input.put(message)
        ...     error = await producer.errors.get()
    """

    def __init__(self, config: BrokerConfig):
        self.config = config
        self.topic = config.topic
        self.input: asyncio.Queue = asyncio.Queue(maxsize=config.input_queue_size)
        self.errors: asyncio.Queue = asyncio.Queue()
        self._producer: Optional[AIOKafkaProducer] = None
        self._dispatcher: Optional[asyncio.Task] = None
        # Delivery futures and retry tasks not yet resolved
        self._in_flight: Set[asyncio.Future] = set()
        self._started = False

        log_with_context(
            logger,
            logging.INFO,
            "Initialized Kafka producer",
            message_topic=self.topic,
            bootstrap_servers=config.bootstrap_servers,
            input_queue_size=config.input_queue_size,
        )

    def _client_config(self) -> dict:
        # aiokafka requires int for 0/1, or "all"
        acks = self.config.acks
        if isinstance(acks, str) and acks.isdigit():
            acks = int(acks)

        compression = self.config.compression_type
        return {
            "bootstrap_servers": self.config.bootstrap_servers,
            "client_id": self.config.client_id,
            "acks": acks,
            "compression_type": None if compression == "none" else compression,
            "partitioner": RoundRobinPartitioner(),
            "retry_backoff_ms": self.config.retry_backoff_ms,
            "request_timeout_ms": self.config.request_timeout_ms,
            "linger_ms": self.config.linger_ms,
            "max_batch_size": self.config.max_batch_size,
        }

    async def start(self) -> None:
        """
        Connect to the cluster and start the dispatcher.

        Raises:
            ProducerStartError: If the client cannot start
        """
        if self._started:
            logger.warning("Producer already started, ignoring duplicate start call")
            return

        logger.info("Starting Kafka producer")
        self._producer = AIOKafkaProducer(**self._client_config())
        try:
            await self._producer.start()
        except Exception as e:
            log_exception(
                logger,
                e,
                "Failed to start Kafka producer",
                include_traceback=False,
                bootstrap_servers=self.config.bootstrap_servers,
            )
            self._producer = None
            raise ProducerStartError("Failed to start Kafka producer", cause=e) from e

        self._started = True
        self._dispatcher = asyncio.create_task(
            self._dispatch(), name="booking-producer-dispatch"
        )

        log_with_context(
            logger,
            logging.INFO,
            "Kafka producer started successfully",
            bootstrap_servers=self.config.bootstrap_servers,
            acks=str(self.config.acks),
            compression_type=self.config.compression_type,
        )

    async def _dispatch(self) -> None:
        while True:
            message = await self.input.get()
            try:
                await self._submit(message, attempt=1)
            finally:
                self.input.task_done()

    async def _submit(self, message: EncodedMessage, attempt: int) -> None:
        try:
            future = await self._producer.send(self.topic, value=message.value, key=message.key)
        except Exception as e:
            await self._handle_failure(message, e, attempt)
            return

        self._in_flight.add(future)
        future.add_done_callback(functools.partial(self._on_delivery, message, attempt))

    def _on_delivery(self, message: EncodedMessage, attempt: int, future: asyncio.Future) -> None:
        try:
            if future.cancelled():
                cause: Optional[BaseException] = asyncio.CancelledError()
            else:
                cause = future.exception()

            if cause is None:
                record_delivered(len(message.key) + len(message.value))
                return

            retry = asyncio.create_task(self._handle_failure(message, cause, attempt))
            self._in_flight.add(retry)
            retry.add_done_callback(self._in_flight.discard)
        finally:
            self._in_flight.discard(future)

    async def _handle_failure(
        self, message: EncodedMessage, cause: BaseException, attempt: int
    ) -> None:
        if attempt <= self.config.max_retries:
            log_with_context(
                logger,
                logging.DEBUG,
                "Retrying failed message",
                message_topic=self.topic,
                attempt=attempt,
                max_retries=self.config.max_retries,
                error_type=type(cause).__name__,
            )
            await asyncio.sleep(self.config.retry_backoff_ms / 1000)
            await self._submit(message, attempt + 1)
            return

        record_delivery_error(type(cause).__name__)
        self.errors.put_nowait(
            DeliveryError(self.topic, cause=cause, message_obj=message, attempts=attempt)
        )

    async def _wait_in_flight(self) -> None:
        while self._in_flight:
            await asyncio.wait(set(self._in_flight))

    async def close(self) -> None:
        """
        Drain the intake, flush buffered messages and stop the client.

        Safe to call multiple times. Errors while stopping are logged
        but not re-raised so they never mask an earlier failure.
        """
        if not self._started or self._producer is None:
            logger.debug("Producer not started or already stopped")
            return

        logger.info("Stopping Kafka producer")
        try:
            await self.input.join()
            await self._producer.flush()
            await self._wait_in_flight()
            await self._producer.stop()
            logger.info("Kafka producer stopped successfully")
        except Exception as e:
            log_exception(logger, e, "Error stopping Kafka producer")
        finally:
            if self._dispatcher is not None:
                self._dispatcher.cancel()
                try:
                    await self._dispatcher
                except asyncio.CancelledError:
                    pass
                self._dispatcher = None
            self._producer = None
            self._started = False

    async def __aenter__(self) -> "BookingProducer":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    @property
    def is_started(self) -> bool:
        """Check if producer is started and ready to accept messages."""
        return self._started and self._producer is not None


__all__ = ["BookingProducer"]
