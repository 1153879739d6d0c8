"""
Orchestration Layer.

The orchestration layer wires event handlers to the event bus:
- HandlerRegistry records which handler consumes which topic, for which group
- EventConsumer is the explicit subscribe loop (decode, handle, acknowledge)
- ConsumerRunner runs one asyncio task per registered consumer

Handlers are idempotent service operations. A delivery is acknowledged
only after its handler returns; a failed handler leaves the message to
be redelivered unless the failure is terminal (not found, precondition,
consistency), and a message that can never succeed is moved to the
topic's dead-letter topic.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, Type

from pydantic import BaseModel, ValidationError

from shared.events import DeadLetter, dead_letter_topic

from .clock import Clock, SystemClock
from .errors import CoordinationError, ErrorKind, EventPublishError
from .messaging import Delivery, EventBus

logger = logging.getLogger(__name__)


@dataclass
class HandlerDefinition:
    """
    Definition of one event consumer.

    Wraps a handler with the topic it listens on, the consumer group it
    belongs to and the model its payload is decoded with.
    """
    topic: str
    group: str
    model: Type[BaseModel]
    handler: Callable[[Any], Awaitable[Any]]
    name: str


class HandlerRegistry:
    """
    Registry for event handlers.

    Provides a way to organize handlers by consumer group, so each
    service registers its own listeners and a deployment can choose
    which groups to run.
    """

    def __init__(self):
        self._handlers: Dict[Tuple[str, str], HandlerDefinition] = {}
        self._groups: Dict[str, List[Tuple[str, str]]] = {}

    def register(
        self,
        topic: str,
        group: str,
        model: Type[BaseModel],
        handler: Callable[[Any], Awaitable[Any]],
        name: Optional[str] = None,
    ):
        """
        Register a handler.

        Args:
            topic: Topic to consume
            group: Consumer group; each group receives every message once
            model: Pydantic model the payload is decoded into
            handler: Coroutine function called with the decoded event
            name: Name used in logs, defaults to the handler's name
        """
        if (topic, group) in self._handlers:
            raise ValueError(f"Handler already registered for {topic} in group {group}")

        self._handlers[(topic, group)] = HandlerDefinition(
            topic=topic,
            group=group,
            model=model,
            handler=handler,
            name=name or getattr(handler, "__name__", repr(handler)),
        )
        self._groups.setdefault(group, []).append((topic, group))

    def get_handlers(self, groups: Optional[List[str]] = None) -> List[HandlerDefinition]:
        """Get handler definitions, optionally filtered by consumer group."""
        if groups is None:
            return list(self._handlers.values())
        return [
            self._handlers[entry]
            for group in groups
            for entry in self._groups.get(group, [])
        ]

    def get_topics(self) -> List[str]:
        return sorted({topic for topic, _ in self._handlers})

    def get_groups(self) -> List[str]:
        return list(self._groups.keys())


class EventConsumer:
    """
    Subscribe loop for one handler.

    Per delivery:
    1. Dead-letter it if it has been delivered more than `max_attempts` times
    2. Decode the payload with the handler's model (dead-letter if invalid)
    3. Run the handler
    4. Ack on success; nack on a failure that may pass on retry so the bus
       redelivers it; dead-letter at once on a non-transient CoordinationError
    """

    def __init__(
        self,
        bus: EventBus,
        definition: HandlerDefinition,
        max_attempts: int = 5,
        clock: Optional[Clock] = None,
        consumer_name: str = "consumer-1",
        restart_delay: float = 1.0,
    ):
        self.bus = bus
        self.definition = definition
        self.max_attempts = max_attempts
        self.clock = clock or SystemClock()
        self.consumer_name = consumer_name
        self.restart_delay = restart_delay

    async def run(self):
        """Consume until cancelled, resubscribing if the subscription breaks."""
        definition = self.definition
        logger.info(f"Consumer {definition.name} listening on {definition.topic} (group {definition.group})")
        while True:
            try:
                async for delivery in self.bus.subscribe(definition.topic, definition.group, self.consumer_name):
                    await self.process(delivery)
            except asyncio.CancelledError:
                logger.info(f"Consumer {definition.name} stopped")
                raise
            except Exception as e:
                logger.error(f"Subscription to {definition.topic} failed: {e}", exc_info=True)
                await asyncio.sleep(self.restart_delay)

    async def process(self, delivery: Delivery) -> str:
        """
        Handle one delivery.

        Returns:
            "acked", "nacked" or "dead_lettered"
        """
        definition = self.definition

        if delivery.attempt > self.max_attempts:
            return await self._dead_letter(
                delivery, f"Gave up after {delivery.attempt - 1} failed attempts"
            )

        try:
            event = definition.model.model_validate(delivery.payload)
        except ValidationError as e:
            return await self._dead_letter(delivery, f"Undecodable payload: {e}")

        if delivery.attempt > 1:
            logger.warning(
                f"Redelivery of {delivery.message_id} on {delivery.topic} "
                f"(key {delivery.key}, attempt {delivery.attempt})"
            )
        logger.info(f"Consuming {delivery.topic} event for key {delivery.key} with {definition.name}")

        try:
            await definition.handler(event)
        except asyncio.CancelledError:
            await delivery.nack()
            raise
        except Exception as e:
            if isinstance(e, CoordinationError) and e.kind != ErrorKind.TRANSIENT:
                return await self._reject(delivery, e)
            logger.error(
                f"Handler {definition.name} failed for {delivery.message_id} "
                f"(key {delivery.key}, attempt {delivery.attempt}): {e}",
                exc_info=True,
            )
            await delivery.nack()
            return "nacked"

        await delivery.ack()
        return "acked"

    async def _reject(self, delivery: Delivery, error: CoordinationError) -> str:
        """Dead-letter a delivery whose handler raised a non-transient error."""
        if error.kind == ErrorKind.INTERNAL_CONSISTENCY:
            logger.error(
                f"Consistency fault in {self.definition.name} for {delivery.message_id} "
                f"(key {delivery.key}): {error}",
                exc_info=error,
            )
        return await self._dead_letter(delivery, f"{error.kind.value}: {error}")

    async def _dead_letter(self, delivery: Delivery, error: str) -> str:
        letter = DeadLetter(
            topic=delivery.topic,
            group=self.definition.group,
            key=delivery.key,
            message_id=delivery.message_id,
            attempts=delivery.attempt,
            error=error,
            payload=delivery.payload,
            dead_lettered_at=self.clock.now(),
        )
        try:
            await self.bus.publish(dead_letter_topic(delivery.topic), delivery.key, letter.model_dump(mode="json"))
        except EventPublishError as e:
            # Keep the message pending rather than lose it
            logger.error(f"Could not dead-letter {delivery.message_id}: {e}")
            await delivery.nack()
            return "nacked"

        logger.warning(f"Dead-lettered {delivery.message_id} from {delivery.topic} (key {delivery.key}): {error}")
        await delivery.ack()
        return "dead_lettered"


class ConsumerRunner:
    """
    Runs every registered consumer as an asyncio task.

    Usage:
        runner = ConsumerRunner(bus, registry, max_attempts=5)
        runner.start()
        ...
        await runner.stop()
    """

    def __init__(
        self,
        bus: EventBus,
        registry: HandlerRegistry,
        max_attempts: int = 5,
        clock: Optional[Clock] = None,
        consumer_name: str = "consumer-1",
        groups: Optional[List[str]] = None,
    ):
        self.bus = bus
        self.registry = registry
        self.max_attempts = max_attempts
        self.clock = clock
        self.consumer_name = consumer_name
        self.groups = groups
        self._tasks: List[asyncio.Task] = []

    @property
    def running(self) -> bool:
        return any(not task.done() for task in self._tasks)

    def start(self):
        if self._tasks:
            return
        for definition in self.registry.get_handlers(self.groups):
            consumer = EventConsumer(
                self.bus,
                definition,
                max_attempts=self.max_attempts,
                clock=self.clock,
                consumer_name=self.consumer_name,
            )
            self._tasks.append(
                asyncio.create_task(consumer.run(), name=f"consumer:{definition.group}:{definition.topic}")
            )
        logger.info(f"Started {len(self._tasks)} event consumer(s)")

    async def stop(self):
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        logger.info("Event consumers stopped")
