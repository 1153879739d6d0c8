"""
Tests for handler registration and the consumer loop.
"""

import asyncio

import pytest

from core.errors import ConsistencyFault, NotFoundError, PreconditionFailedError, StaleEntityError
from core.messaging import InMemoryEventBus
from core.orchestration import ConsumerRunner, EventConsumer, HandlerRegistry
from shared.events import APPOINTMENT_BOOKED, AppointmentBookedEvent, DeadLetter, dead_letter_topic

from conftest import booked_event, drain

GROUP = "test-group"


class Recorder:
    """Handler that fails a fixed number of times before succeeding."""

    def __init__(self, failures: int = 0):
        self.failures = failures
        self.calls = []

    async def __call__(self, event):
        self.calls.append(event)
        if len(self.calls) <= self.failures:
            raise RuntimeError("downstream unavailable")


class Raiser:
    """Handler that always raises the given error."""

    def __init__(self, error: Exception):
        self.error = error
        self.calls = 0

    async def __call__(self, event):
        self.calls += 1
        raise self.error


def make_registry(handler) -> HandlerRegistry:
    registry = HandlerRegistry()
    registry.register(APPOINTMENT_BOOKED, GROUP, AppointmentBookedEvent, handler, name="recorder")
    return registry


async def publish(bus, event):
    await bus.publish(event.topic, event.key(), event.to_payload())


class TestHandlerRegistry:
    def test_duplicate_registration_is_rejected(self) -> None:
        registry = make_registry(Recorder())

        with pytest.raises(ValueError):
            registry.register(APPOINTMENT_BOOKED, GROUP, AppointmentBookedEvent, Recorder())

    def test_same_topic_in_two_groups(self) -> None:
        registry = make_registry(Recorder())
        registry.register(APPOINTMENT_BOOKED, "other-group", AppointmentBookedEvent, Recorder())

        assert registry.get_topics() == [APPOINTMENT_BOOKED]
        assert registry.get_groups() == [GROUP, "other-group"]
        assert len(registry.get_handlers(["other-group"])) == 1
        assert len(registry.get_handlers()) == 2


class TestEventConsumer:
    """Acknowledgement, redelivery and dead-lettering."""

    @pytest.mark.asyncio
    async def test_successful_handler_acks(self) -> None:
        bus = InMemoryEventBus()
        handler = Recorder()
        consumer = EventConsumer(bus, make_registry(handler).get_handlers()[0])
        await publish(bus, booked_event("42"))

        delivery = await bus.subscribe(APPOINTMENT_BOOKED, GROUP).__anext__()
        outcome = await consumer.process(delivery)

        assert outcome == "acked"
        assert handler.calls[0].appointment_id == "42"
        assert bus.pending_count(APPOINTMENT_BOOKED, GROUP) == 0

    @pytest.mark.asyncio
    async def test_failed_handler_is_redelivered(self) -> None:
        bus = InMemoryEventBus()
        handler = Recorder(failures=1)
        consumer = EventConsumer(bus, make_registry(handler).get_handlers()[0])
        await publish(bus, booked_event("42"))
        stream = bus.subscribe(APPOINTMENT_BOOKED, GROUP)

        assert await consumer.process(await stream.__anext__()) == "nacked"
        retry = await stream.__anext__()
        assert retry.attempt == 2
        assert await consumer.process(retry) == "acked"
        assert len(handler.calls) == 2

    @pytest.mark.asyncio
    async def test_undecodable_payload_is_dead_lettered(self, clock) -> None:
        bus = InMemoryEventBus()
        handler = Recorder()
        consumer = EventConsumer(bus, make_registry(handler).get_handlers()[0], clock=clock)
        await bus.publish(APPOINTMENT_BOOKED, "42", {"appointment_id": "42"})

        delivery = await bus.subscribe(APPOINTMENT_BOOKED, GROUP).__anext__()
        outcome = await consumer.process(delivery)

        assert outcome == "dead_lettered"
        assert handler.calls == []
        assert bus.pending_count(APPOINTMENT_BOOKED, GROUP) == 0
        letters = [DeadLetter.model_validate(p) for p in bus.published(dead_letter_topic(APPOINTMENT_BOOKED))]
        assert len(letters) == 1
        assert letters[0].key == "42"
        assert letters[0].group == GROUP
        assert letters[0].payload == {"appointment_id": "42"}
        assert letters[0].dead_lettered_at == clock.now()

    @pytest.mark.asyncio
    async def test_dead_letter_after_max_attempts(self) -> None:
        bus = InMemoryEventBus()
        handler = Recorder(failures=100)
        registry = make_registry(handler)
        runner = ConsumerRunner(bus, registry, max_attempts=3)
        await publish(bus, booked_event("42"))

        runner.start()
        try:
            await drain(bus, APPOINTMENT_BOOKED, GROUP)
        finally:
            await runner.stop()

        assert len(handler.calls) == 3
        letters = bus.published(dead_letter_topic(APPOINTMENT_BOOKED))
        assert len(letters) == 1
        assert letters[0]["attempts"] == 4

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error",
        [
            NotFoundError("AppointmentMapping", "42"),
            PreconditionFailedError("Mapping is not CONFIRMED"),
            ConsistencyFault("Mapping vanished after a duplicate insert"),
        ],
    )
    async def test_terminal_error_is_dead_lettered_without_retry(self, error) -> None:
        bus = InMemoryEventBus()
        handler = Raiser(error)
        consumer = EventConsumer(bus, make_registry(handler).get_handlers()[0])
        await publish(bus, booked_event("42"))

        delivery = await bus.subscribe(APPOINTMENT_BOOKED, GROUP).__anext__()
        outcome = await consumer.process(delivery)

        assert outcome == "dead_lettered"
        assert handler.calls == 1
        assert bus.pending_count(APPOINTMENT_BOOKED, GROUP) == 0
        letters = [DeadLetter.model_validate(p) for p in bus.published(dead_letter_topic(APPOINTMENT_BOOKED))]
        assert len(letters) == 1
        assert letters[0].attempts == 1
        assert letters[0].error.startswith(error.kind.value)

    @pytest.mark.asyncio
    async def test_transient_error_is_redelivered(self) -> None:
        bus = InMemoryEventBus()
        handler = Raiser(StaleEntityError("AppointmentMapping", "42", 1, 2))
        consumer = EventConsumer(bus, make_registry(handler).get_handlers()[0])
        await publish(bus, booked_event("42"))
        stream = bus.subscribe(APPOINTMENT_BOOKED, GROUP)

        assert await consumer.process(await stream.__anext__()) == "nacked"
        assert (await stream.__anext__()).attempt == 2
        assert bus.published(dead_letter_topic(APPOINTMENT_BOOKED)) == []

    @pytest.mark.asyncio
    async def test_dead_letter_failure_keeps_message_pending(self) -> None:
        bus = InMemoryEventBus()
        consumer = EventConsumer(bus, make_registry(Recorder()).get_handlers()[0])
        await bus.publish(APPOINTMENT_BOOKED, "42", {"garbage": True})
        delivery = await bus.subscribe(APPOINTMENT_BOOKED, GROUP).__anext__()
        bus.set_available(False)

        assert await consumer.process(delivery) == "nacked"
        assert bus.pending_count(APPOINTMENT_BOOKED, GROUP) == 1


class TestConsumerRunner:
    @pytest.mark.asyncio
    async def test_start_and_stop(self) -> None:
        bus = InMemoryEventBus()
        handler = Recorder()
        runner = ConsumerRunner(bus, make_registry(handler))

        runner.start()
        assert runner.running is True
        await publish(bus, booked_event("1"))
        await publish(bus, booked_event("2"))
        await drain(bus, APPOINTMENT_BOOKED, GROUP)
        await runner.stop()

        assert runner.running is False
        assert [event.appointment_id for event in handler.calls] == ["1", "2"]

    @pytest.mark.asyncio
    async def test_group_filter(self) -> None:
        bus = InMemoryEventBus()
        runner = ConsumerRunner(bus, make_registry(Recorder()), groups=["nobody"])

        runner.start()
        await asyncio.sleep(0)

        assert runner.running is False
        await runner.stop()
