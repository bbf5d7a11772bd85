"""
Tests for the delivery pipeline multiplexer.

A queue-only producer double stands in for Kafka; the row source is an
in-memory list of booking pairs.
"""

import asyncio
import logging
from unittest.mock import patch

import pytest

from core.errors import DeliveryError, EncodingError
from booking_stream.encoder import decode_key, decode_payload
from booking_stream.models import BookingKey, BookingPayload, EncodedMessage, PipelineTally
from booking_stream.pipeline import ARM_ENQUEUED, ARM_ERROR, DeliveryPipeline


class FakeProducer:
    """Exposes only the intake and error queues the pipeline multiplexes over."""

    def __init__(self, input_size=16):
        self.input = asyncio.Queue(maxsize=input_size)
        self.errors = asyncio.Queue()


class FakeSource:
    """Single-pass list of booking pairs that records whether it was closed."""

    def __init__(self, count):
        self.items = [
            (
                BookingKey(provider="airbnb", provider_uid=f"A{i}", date="2020-01-01"),
                BookingPayload(is_booked=bool(i % 2), price=float(i)),
            )
            for i in range(count)
        ]
        self.closed = False

    async def records(self):
        try:
            for item in self.items:
                yield item
        finally:
            self.closed = True


def _delivery_error(n=0):
    return DeliveryError(
        "bookings.test",
        cause=RuntimeError(f"broker rejected {n}"),
        message_obj=EncodedMessage(key=b"k", value=b"v"),
        attempts=2,
    )


def _fill(queue):
    while not queue.full():
        queue.put_nowait(EncodedMessage(key=b"filler", value=b"filler"))


async def _settle(condition=lambda: False, rounds=50):
    for _ in range(rounds):
        if condition():
            return
        await asyncio.sleep(0)


def _prefer(arm):
    return lambda arms: arm if arm in arms else arms[0]


class TestDeliveryPipelineScenarios:

    @pytest.mark.asyncio
    async def test_empty_source(self):
        source = FakeSource(0)
        pipeline = DeliveryPipeline(source, FakeProducer(), asyncio.Event())

        tally = await pipeline.run()

        assert tally == PipelineTally(enqueued=0, errors=0)
        assert pipeline.records_pulled == 0
        assert source.closed

    @pytest.mark.asyncio
    async def test_single_row_enqueued(self):
        producer = FakeProducer()
        pipeline = DeliveryPipeline(FakeSource(1), producer, asyncio.Event())

        tally = await pipeline.run()

        assert tally == PipelineTally(enqueued=1, errors=0)
        message = producer.input.get_nowait()
        assert decode_key(message.key)["provider_uid"] == "A0"
        assert decode_payload(message.value)["is_booked"] is False

    @pytest.mark.asyncio
    async def test_delivery_error_consumes_record_slot(self):
        producer = FakeProducer(input_size=1)
        _fill(producer.input)
        producer.errors.put_nowait(_delivery_error())
        pipeline = DeliveryPipeline(FakeSource(1), producer, asyncio.Event())

        tally = await pipeline.run()

        assert tally == PipelineTally(enqueued=0, errors=1)
        assert tally.total == pipeline.records_pulled
        assert producer.input.qsize() == 1

    @pytest.mark.asyncio
    async def test_error_arm_when_both_ready(self):
        producer = FakeProducer()
        producer.errors.put_nowait(_delivery_error())
        pipeline = DeliveryPipeline(FakeSource(3), producer, asyncio.Event())

        with patch("booking_stream.pipeline.random.choice", side_effect=_prefer(ARM_ERROR)):
            tally = await pipeline.run()

        assert tally == PipelineTally(enqueued=2, errors=1)
        assert producer.input.qsize() == 2

    @pytest.mark.asyncio
    async def test_shutdown_before_first_record(self):
        producer = FakeProducer(input_size=1)
        _fill(producer.input)
        shutdown = asyncio.Event()
        shutdown.set()
        source = FakeSource(5)
        pipeline = DeliveryPipeline(source, producer, shutdown)

        tally = await pipeline.run()

        assert tally == PipelineTally()
        assert pipeline.cancelled
        assert pipeline.records_pulled == 1
        assert source.closed

    @pytest.mark.asyncio
    async def test_preset_shutdown_wins_over_free_intake(self):
        shutdown = asyncio.Event()
        shutdown.set()

        for _ in range(200):
            producer = FakeProducer()
            source = FakeSource(50)
            pipeline = DeliveryPipeline(source, producer, shutdown)

            tally = await pipeline.run()

            assert tally == PipelineTally()
            assert pipeline.cancelled
            assert pipeline.records_pulled == 1
            assert producer.input.empty()
            assert source.closed

    @pytest.mark.asyncio
    async def test_preset_shutdown_wins_over_pending_error(self):
        producer = FakeProducer()
        producer.errors.put_nowait(_delivery_error())
        shutdown = asyncio.Event()
        shutdown.set()
        pipeline = DeliveryPipeline(FakeSource(5), producer, shutdown)

        with patch("booking_stream.pipeline.random.choice", side_effect=_prefer(ARM_ERROR)):
            tally = await pipeline.run()

        assert tally == PipelineTally()
        assert pipeline.records_pulled == 1
        assert producer.input.empty()

    @pytest.mark.asyncio
    async def test_shutdown_while_blocked_on_full_intake(self):
        producer = FakeProducer(input_size=1)
        shutdown = asyncio.Event()
        pipeline = DeliveryPipeline(FakeSource(10), producer, shutdown)

        task = asyncio.create_task(pipeline.run())
        await _settle(lambda: pipeline.records_pulled == 2)
        await _settle()
        shutdown.set()
        tally = await asyncio.wait_for(task, timeout=1)

        assert pipeline.cancelled
        assert tally.enqueued == 1
        assert tally.total == pipeline.records_pulled - 1

    @pytest.mark.asyncio
    async def test_error_drained_while_intake_is_full(self):
        producer = FakeProducer(input_size=1)
        _fill(producer.input)
        pipeline = DeliveryPipeline(FakeSource(2), producer, asyncio.Event())

        task = asyncio.create_task(pipeline.run())
        await _settle(lambda: pipeline.records_pulled == 1)
        producer.errors.put_nowait(_delivery_error())
        await _settle(lambda: pipeline.tally.errors == 1)
        producer.input.get_nowait()
        tally = await asyncio.wait_for(task, timeout=1)

        assert tally == PipelineTally(enqueued=1, errors=1)

    @pytest.mark.asyncio
    async def test_encoding_error_is_fatal(self):
        source = FakeSource(3)
        pipeline = DeliveryPipeline(source, FakeProducer(), asyncio.Event())

        with patch("booking_stream.pipeline.encode", side_effect=EncodingError("bad value")):
            with pytest.raises(EncodingError):
                await pipeline.run()

        assert pipeline.records_pulled == 1
        assert pipeline.tally.total == 0
        assert source.closed


class TestDeliveryPipelineAccounting:

    @pytest.mark.asyncio
    async def test_every_pulled_record_is_counted_once(self):
        producer = FakeProducer(input_size=4)

        async def broker():
            seen = 0
            while True:
                await producer.input.get()
                seen += 1
                if seen % 5 == 0:
                    producer.errors.put_nowait(_delivery_error(seen))
                await asyncio.sleep(0)

        consumer = asyncio.create_task(broker())
        pipeline = DeliveryPipeline(FakeSource(200), producer, asyncio.Event())
        try:
            tally = await asyncio.wait_for(pipeline.run(), timeout=5)
        finally:
            consumer.cancel()

        assert pipeline.records_pulled == 200
        assert tally.total == 200
        assert tally.errors > 0

    @pytest.mark.asyncio
    async def test_progress_logged_every_interval(self, caplog):
        caplog.set_level(logging.INFO, logger="booking_stream.pipeline")
        pipeline = DeliveryPipeline(FakeSource(5), FakeProducer(), asyncio.Event(), progress_interval=2)

        await pipeline.run()

        progress = [r for r in caplog.records if r.getMessage().startswith("Progress:")]
        assert [r.records_total for r in progress] == [2, 4]

    @pytest.mark.asyncio
    async def test_pending_errors_logged_not_counted(self, caplog):
        caplog.set_level(logging.WARNING, logger="booking_stream.pipeline")
        producer = FakeProducer()
        producer.errors.put_nowait(_delivery_error(1))
        producer.errors.put_nowait(_delivery_error(2))
        pipeline = DeliveryPipeline(FakeSource(1), producer, asyncio.Event())

        with patch("booking_stream.pipeline.random.choice", side_effect=_prefer(ARM_ENQUEUED)):
            tally = await pipeline.run()

        assert tally == PipelineTally(enqueued=1, errors=0)
        pending = [r for r in caplog.records if getattr(r, "pending_errors", None)]
        assert pending and pending[-1].pending_errors == 2
