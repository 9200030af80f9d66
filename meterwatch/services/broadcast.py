"""
Real-time broadcast of normalized readings.

Two sinks implement the BroadcastSink interface:

- BroadcastHub: in-process publish/subscribe. Each subscriber owns a
  bounded queue; when it is full the oldest record is dropped, so a slow
  subscriber never blocks the publisher.
- RedisBroadcastSink: caches the latest reading per device and publishes it
  on a Redis channel. The network round trip runs as a background task.

CHANGELOG:
- 2026-10-18: Initial creation

TODO:
- None
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from meterwatch.cache.redis_client import cache_latest_reading, publish_reading

logger = logging.getLogger(__name__)


class Subscription:
    """A subscriber's view of the hub.

    Args:
        hub: The hub this subscription belongs to.
        device_id: Only records of this device are delivered; None for all.
        maxsize: Queue bound before drop-oldest kicks in.
    """

    def __init__(self, hub: BroadcastHub, device_id: str | None, maxsize: int) -> None:
        self._hub = hub
        self.device_id = device_id
        self.queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue(maxsize=maxsize)
        self.dropped = 0

    def wants(self, device_id: str) -> bool:
        return self.device_id is None or self.device_id == device_id

    def offer(self, record: dict[str, Any]) -> None:
        """Enqueue without blocking, evicting the oldest record when full."""
        if self.queue.full():
            try:
                self.queue.get_nowait()
            except asyncio.QueueEmpty:
                pass
            else:
                self.dropped += 1
        self.queue.put_nowait(record)

    async def get(self) -> dict[str, Any]:
        return await self.queue.get()

    def close(self) -> None:
        self._hub.unsubscribe(self)

    def __enter__(self) -> Subscription:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


class BroadcastHub:
    """In-process fan-out of readings to zero or more subscribers."""

    def __init__(self, queue_size: int = 100) -> None:
        self.queue_size = queue_size
        self._subscribers: set[Subscription] = set()

    def subscribe(self, device_id: str | None = None) -> Subscription:
        subscription = Subscription(self, device_id, self.queue_size)
        self._subscribers.add(subscription)
        logger.info("Live subscriber added (device=%s, total=%d)", device_id, len(self._subscribers))
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        self._subscribers.discard(subscription)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def publish(self, device_id: str, record: dict[str, Any]) -> None:
        """Deliver *record* to every interested subscriber. Never blocks."""
        for subscription in list(self._subscribers):
            if subscription.wants(device_id):
                subscription.offer(record)


class RedisBroadcastSink:
    """Latest-reading cache and pub/sub channel on Redis.

    Args:
        url: Redis URL.
        cache_ttl_s: TTL of the ``realtime:{device_id}`` key.
    """

    def __init__(self, url: str | None = None, cache_ttl_s: int = 5) -> None:
        self.url = url
        self.cache_ttl_s = cache_ttl_s
        self._tasks: set[asyncio.Task[None]] = set()

    def publish(self, device_id: str, record: dict[str, Any]) -> None:
        """Schedule the Redis writes and return immediately."""
        task = asyncio.get_running_loop().create_task(self._send(device_id, record))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _send(self, device_id: str, record: dict[str, Any]) -> None:
        await cache_latest_reading(device_id, record, self.cache_ttl_s, url=self.url)
        await publish_reading(device_id, record, url=self.url)

    async def drain(self) -> None:
        """Wait for in-flight Redis writes to finish."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
