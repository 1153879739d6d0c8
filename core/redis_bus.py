"""
Redis Streams Event Bus

One stream per topic, one Redis consumer group per logical consumer group.
Uses redis.asyncio for non-blocking calls.

Ordering: when a subscription starts it adopts every entry the group
still has pending under other consumer names, then always re-reads its
own pending (unacknowledged) entries before asking for new ones. A
message whose handler failed, or that a crashed process never
acknowledged, is therefore retried before anything published after it.
Entries left pending by a consumer that dies while another one is
running are taken over with XAUTOCLAIM once idle for `claim_idle_ms`.
Per-key publish order holds as long as each group runs a single active
consumer per topic, which is how the services deploy their listeners.
"""

import asyncio
import json
import logging
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple

import redis.asyncio as aioredis
from redis.exceptions import RedisError, ResponseError

from .errors import EventPublishError
from .messaging import Delivery, EventBus

logger = logging.getLogger(__name__)


class RedisStreamEventBus(EventBus):
    """
    Event bus backed by Redis Streams.

    Usage:
        bus = RedisStreamEventBus("redis://localhost:6379/0")
        await bus.publish("appointment.booked", "APPT-1", {...})

        async for delivery in bus.subscribe("appointment.booked", "session-service-group"):
            ...
            await delivery.ack()
    """

    def __init__(
        self,
        url: str,
        block_ms: int = 5000,
        claim_idle_ms: int = 30000,
        retry_delay: float = 1.0,
        stream_prefix: str = "events:",
        client: Optional[aioredis.Redis] = None,
    ):
        # An injected client must be created with decode_responses=True
        self._redis = client if client is not None else aioredis.from_url(
            url,
            decode_responses=True,
            socket_connect_timeout=5.0,
        )
        self._block_ms = block_ms
        self._claim_idle_ms = claim_idle_ms
        self._retry_delay = retry_delay
        self._prefix = stream_prefix
        self._local_attempts: Dict[str, int] = {}

    def _stream(self, topic: str) -> str:
        return f"{self._prefix}{topic}"

    async def publish(self, topic: str, key: str, payload: Dict[str, Any]) -> str:
        try:
            message_id = await self._redis.xadd(
                self._stream(topic),
                {"key": str(key), "payload": json.dumps(payload)},
            )
        except RedisError as e:
            raise EventPublishError(topic, str(key), str(e)) from e
        logger.debug(f"Published {message_id} to {topic} (key {key})")
        return message_id

    async def _ensure_group(self, stream: str, group: str):
        try:
            await self._redis.xgroup_create(stream, group, id="0", mkstream=True)
            logger.info(f"Created consumer group {group} on {stream}")
        except ResponseError as e:
            if "BUSYGROUP" not in str(e):
                raise

    async def _read(self, stream: str, group: str, consumer: str, start: str, block=None) -> List[Tuple[str, dict]]:
        # One entry at a time: nothing behind an unsettled entry may be handed out
        response = await self._redis.xreadgroup(group, consumer, {stream: start}, count=1, block=block)
        entries = []
        for _, messages in response or []:
            entries.extend(messages)
        return entries

    async def _claim(self, stream: str, group: str, consumer: str) -> List[Tuple[str, dict]]:
        result = await self._redis.xautoclaim(
            stream, group, consumer,
            min_idle_time=self._claim_idle_ms,
            start_id="0-0",
            count=1,
        )
        claimed = result[1] if result else []
        if claimed:
            logger.warning(f"Claimed {len(claimed)} idle message(s) on {stream} for {consumer}")
        return claimed

    async def _adopt_pending(self, stream: str, group: str, consumer: str, page_size: int = 100) -> int:
        """
        Move every entry the group has pending under another consumer name
        into this consumer's pending list, whatever its idle time.

        A restarted process may come back under a different name; without
        this its earlier unacknowledged entries would only return after
        `claim_idle_ms`, behind newer entries for the same key.
        """
        adopted = 0
        start = "-"
        while True:
            pending = await self._redis.xpending_range(stream, group, min=start, max="+", count=page_size)
            orphaned = [entry["message_id"] for entry in pending if entry["consumer"] != consumer]
            if orphaned:
                await self._redis.xclaim(
                    stream, group, consumer,
                    min_idle_time=0,
                    message_ids=orphaned,
                    justid=True,
                )
                adopted += len(orphaned)
            if len(pending) < page_size:
                break
            start = _next_id(pending[-1]["message_id"])

        if adopted:
            logger.warning(f"Adopted {adopted} pending message(s) on {stream} for {consumer}")
        return adopted

    async def _attempt(self, stream: str, group: str, message_id: str) -> int:
        self._local_attempts[message_id] = self._local_attempts.get(message_id, 0) + 1
        pending = await self._redis.xpending_range(stream, group, min=message_id, max=message_id, count=1)
        times_delivered = pending[0]["times_delivered"] if pending else 1
        return max(times_delivered, self._local_attempts[message_id])

    async def subscribe(self, topic: str, group: str, consumer: str = "consumer-1") -> AsyncIterator[Delivery]:
        stream = self._stream(topic)
        await self._ensure_group(stream, group)
        await self._adopt_pending(stream, group, consumer)

        while True:
            # Own pending entries first, then idle ones from dead consumers, then new ones
            entries = await self._read(stream, group, consumer, "0")
            if not entries:
                entries = await self._claim(stream, group, consumer)
            if not entries:
                entries = await self._read(stream, group, consumer, ">", block=self._block_ms)

            for message_id, fields in entries:
                if not fields:
                    # Entry was trimmed from the stream while pending
                    await self._redis.xack(stream, group, message_id)
                    continue

                yield Delivery(
                    topic=topic,
                    key=fields.get("key", ""),
                    payload=json.loads(fields.get("payload", "{}")),
                    message_id=message_id,
                    attempt=await self._attempt(stream, group, message_id),
                    _on_ack=lambda mid=message_id: self._ack(stream, group, mid),
                    _on_nack=self._nack,
                )

    async def _ack(self, stream: str, group: str, message_id: str):
        await self._redis.xack(stream, group, message_id)
        self._local_attempts.pop(message_id, None)

    async def _nack(self):
        # Entry stays in this consumer's pending list and is read again next loop
        await asyncio.sleep(self._retry_delay)

    async def close(self):
        await self._redis.aclose()


def _next_id(message_id: str) -> str:
    """Smallest stream ID greater than `message_id`."""
    millis, sequence = message_id.split("-")
    return f"{millis}-{int(sequence) + 1}"
