"""
Event Bus Contract.

An ordered, at-least-once publish/subscribe channel keyed by entity id:

- All events sharing a key reach a consumer group in publish order.
- A message stays pending for its group until a consumer acknowledges it.
  A message that is not acknowledged (handler failed, consumer crashed)
  is delivered again, and nothing behind it with the same key is
  delivered first.
- There is no ordering across different keys.

Consumers must therefore be idempotent.

The in-memory implementation lives here; RedisStreamEventBus
(core/redis_bus.py) is the networked one.
"""

import asyncio
import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional, Set

from .errors import EventPublishError

logger = logging.getLogger(__name__)


@dataclass
class Delivery:
    """
    One delivery of a message to a consumer.

    The consumer must call ack() after its handler has completed, or
    nack() to hand the message back for redelivery.
    """
    topic: str
    key: str
    payload: Dict[str, Any]
    message_id: str
    attempt: int
    _on_ack: Callable[[], Awaitable[None]] = field(repr=False)
    _on_nack: Callable[[], Awaitable[None]] = field(repr=False)
    settled: bool = False

    async def ack(self):
        if not self.settled:
            self.settled = True
            await self._on_ack()

    async def nack(self):
        if not self.settled:
            self.settled = True
            await self._on_nack()


class EventBus(ABC):
    """Abstract publish/subscribe channel."""

    @abstractmethod
    async def publish(self, topic: str, key: str, payload: Dict[str, Any]) -> str:
        """
        Publish a JSON-serializable payload.

        Returns:
            The message id assigned by the bus

        Raises:
            EventPublishError: the bus did not accept the message
        """
        pass

    @abstractmethod
    def subscribe(self, topic: str, group: str, consumer: str = "consumer-1") -> AsyncIterator[Delivery]:
        """Ordered stream of deliveries for a consumer group."""
        pass

    async def close(self):
        pass


# =============================================================================
# IN-MEMORY IMPLEMENTATION
# =============================================================================

@dataclass
class _Record:
    message_id: str
    key: str
    payload: Dict[str, Any]


class _GroupQueue:
    """Unacknowledged records of one consumer group, in publish order."""

    def __init__(self, records: List[_Record]):
        self.pending: List[_Record] = list(records)
        self.in_flight: Set[str] = set()
        self.attempts: Dict[str, int] = {}
        self.changed = asyncio.Condition()

    def next_deliverable(self) -> Optional[_Record]:
        # A key with a record in flight is blocked until that record settles
        blocked: Set[str] = set()
        for record in self.pending:
            if record.key in blocked:
                continue
            if record.message_id in self.in_flight:
                blocked.add(record.key)
                continue
            return record
        return None


class InMemoryEventBus(EventBus):
    """
    Single-process event bus.

    Every topic keeps its full log; a consumer group created after
    messages were published starts from the beginning of the log.
    """

    def __init__(self):
        self._logs: Dict[str, List[_Record]] = {}
        self._groups: Dict[tuple, _GroupQueue] = {}
        self._available = True

    def set_available(self, available: bool):
        """Simulate a transport outage (publish raises EventPublishError)."""
        self._available = available

    def _group(self, topic: str, group: str) -> _GroupQueue:
        queue = self._groups.get((topic, group))
        if queue is None:
            queue = _GroupQueue(self._logs.get(topic, []))
            self._groups[(topic, group)] = queue
        return queue

    async def publish(self, topic: str, key: str, payload: Dict[str, Any]) -> str:
        if not self._available:
            raise EventPublishError(topic, key, "transport unavailable")

        record = _Record(message_id=str(uuid.uuid4()), key=str(key), payload=payload)
        self._logs.setdefault(topic, []).append(record)
        for (queue_topic, _), queue in self._groups.items():
            if queue_topic != topic:
                continue
            async with queue.changed:
                queue.pending.append(record)
                queue.changed.notify_all()
        logger.debug(f"Published {record.message_id} to {topic} (key {key})")
        return record.message_id

    async def subscribe(self, topic: str, group: str, consumer: str = "consumer-1") -> AsyncIterator[Delivery]:
        queue = self._group(topic, group)
        while True:
            async with queue.changed:
                await queue.changed.wait_for(lambda: queue.next_deliverable() is not None)
                record = queue.next_deliverable()
                queue.in_flight.add(record.message_id)
                attempt = queue.attempts.get(record.message_id, 0) + 1
                queue.attempts[record.message_id] = attempt

            yield Delivery(
                topic=topic,
                key=record.key,
                payload=record.payload,
                message_id=record.message_id,
                attempt=attempt,
                _on_ack=lambda q=queue, r=record: self._ack(q, r),
                _on_nack=lambda q=queue, r=record: self._nack(q, r),
            )

    async def _ack(self, queue: _GroupQueue, record: _Record):
        async with queue.changed:
            queue.in_flight.discard(record.message_id)
            if record in queue.pending:
                queue.pending.remove(record)
            queue.changed.notify_all()

    async def _nack(self, queue: _GroupQueue, record: _Record):
        async with queue.changed:
            queue.in_flight.discard(record.message_id)
            queue.changed.notify_all()

    # ----- Inspection helpers -----

    def published(self, topic: str) -> List[Dict[str, Any]]:
        """Payloads published to a topic, oldest first."""
        return [record.payload for record in self._logs.get(topic, [])]

    def pending_count(self, topic: str, group: str) -> int:
        return len(self._group(topic, group).pending)

    async def join(self, topic: str, group: str):
        """Wait until the group has acknowledged everything published so far."""
        queue = self._group(topic, group)
        async with queue.changed:
            await queue.changed.wait_for(lambda: not queue.pending)
