"""
Best-effort fan-out of monitor events to subscribers.

Each subscriber owns a bounded queue. Publishing never blocks: when a
subscriber's queue is full the message is dropped for that subscriber only.
There is no replay for late subscribers.
"""
from __future__ import annotations

import asyncio
from typing import Any, Optional

from ...shared import get_logger
from .events import MonitorEvent

logger = get_logger(__name__)

_CLOSED = object()


class Subscription:
    """
    A subscriber's view of the hub.

    Usage:
        sub = hub.subscribe()
        async for event in sub:
            ...
        sub.close()
    """

    def __init__(self, hub: "BroadcastHub", maxsize: int, include_internal: bool = False):
        self._hub = hub
        self._queue: asyncio.Queue[Any] = asyncio.Queue(maxsize=max(1, int(maxsize)))
        self.include_internal = include_internal
        self.dropped = 0
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def qsize(self) -> int:
        return self._queue.qsize()

    def offer(self, event: MonitorEvent) -> bool:
        if self._closed:
            return False
        try:
            self._queue.put_nowait(event)
            return True
        except asyncio.QueueFull:
            self.dropped += 1
            return False

    async def get(self) -> MonitorEvent:
        """Next event; raises StopAsyncIteration once the subscription is closed."""
        if self._closed and self._queue.empty():
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        return item

    def __aiter__(self) -> "Subscription":
        return self

    async def __anext__(self) -> MonitorEvent:
        return await self.get()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._hub._detach(self)
        # Pending messages are discarded; the sentinel wakes a blocked reader.
        while not self._queue.empty():
            self._queue.get_nowait()
        self._queue.put_nowait(_CLOSED)


class BroadcastHub:
    def __init__(self, queue_max: int = 256):
        self._queue_max = max(1, int(queue_max))
        self._subscribers: list[Subscription] = []
        self._published = 0
        self._dropped = 0

    def subscribe(self, include_internal: bool = False) -> Subscription:
        sub = Subscription(self, self._queue_max, include_internal=include_internal)
        self._subscribers.append(sub)
        logger.debug("Subscriber attached (internal=%s, total=%d)", include_internal, len(self._subscribers))
        return sub

    def _detach(self, sub: Subscription) -> None:
        try:
            self._subscribers.remove(sub)
        except ValueError:
            return
        logger.debug("Subscriber detached (total=%d)", len(self._subscribers))

    def publish(self, event_type: str, data: Any, timestamp: Optional[int] = None) -> MonitorEvent:
        """Deliver to every open subscriber. Never blocks, never raises for a slow subscriber."""
        event = MonitorEvent(event_type, data) if timestamp is None else MonitorEvent(event_type, data, timestamp)
        self._published += 1
        for sub in list(self._subscribers):
            if event.internal and not sub.include_internal:
                continue
            if not sub.offer(event):
                self._dropped += 1
                logger.warning("Subscriber queue full, dropped %s event", event_type)
        return event

    @property
    def client_count(self) -> int:
        """Open subscriptions that receive external events only (i.e. real clients)."""
        return sum(1 for sub in self._subscribers if not sub.include_internal)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def stats(self) -> dict[str, int]:
        return {
            "clients": self.client_count,
            "subscribers": self.subscriber_count,
            "published": self._published,
            "dropped": self._dropped,
        }

    def close_all(self) -> None:
        for sub in list(self._subscribers):
            sub.close()
