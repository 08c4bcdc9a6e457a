"""Event Bus - broadcast of lounge events to every subscriber.

Each subscriber owns a bounded queue. Publishing never waits: when a
subscriber's queue is full the new event is dropped for that subscriber only
and counted in ``Subscription.dropped``. Delivery is at-most-once.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from typing import Any

from .protocol.events import LoungeEvent

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 1000

_CLOSED = object()


class Subscription:
    """A subscriber's view of the bus.

    Usage:
        async with bus.subscribe() as events:
            async for event in events:
                ...
    """

    def __init__(self, bus: EventBus, capacity: int):
        self._bus = bus
        self._queue: asyncio.Queue[Any] = asyncio.Queue(maxsize=capacity)
        self._closed = False
        self.dropped = 0

    @property
    def closed(self) -> bool:
        return self._closed

    def _offer(self, event: LoungeEvent) -> bool:
        if self._closed:
            return False
        try:
            self._queue.put_nowait(event)
            return True
        except asyncio.QueueFull:
            self.dropped += 1
            if self.dropped == 1 or self.dropped % 100 == 0:
                logger.warning(
                    f"Subscriber queue full, dropped {self.dropped} event(s) so far"
                )
            return False

    def _terminate(self) -> None:
        if self._closed:
            return
        self._closed = True
        # Make room for the sentinel so a blocked reader always wakes up
        if self._queue.full():
            self._queue.get_nowait()
            self.dropped += 1
        self._queue.put_nowait(_CLOSED)

    async def get(self) -> LoungeEvent | None:
        """Next event, or None once the subscription is closed and drained."""
        if self._closed and self._queue.empty():
            return None
        item = await self._queue.get()
        if item is _CLOSED:
            return None
        return item

    def get_nowait(self) -> LoungeEvent | None:
        """Next buffered event without waiting, or None."""
        try:
            item = self._queue.get_nowait()
        except asyncio.QueueEmpty:
            return None
        return None if item is _CLOSED else item

    def close(self) -> None:
        """Stop receiving events."""
        self._bus._unsubscribe(self)
        self._terminate()

    def __aiter__(self) -> AsyncIterator[LoungeEvent]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[LoungeEvent]:
        while True:
            event = await self.get()
            if event is None:
                return
            yield event

    async def __aenter__(self) -> Subscription:
        return self

    async def __aexit__(self, *args: Any) -> None:
        self.close()


class EventBus:
    """Multi-subscriber fan-out for lounge events.

    ``publish`` is synchronous, so the poll loop never suspends while
    delivering.
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY):
        if capacity < 1:
            raise ValueError(f"Bus capacity must be positive, got {capacity}")
        self.capacity = capacity
        self._subscriptions: list[Subscription] = []
        self._closed = False

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    def subscribe(self, capacity: int | None = None) -> Subscription:
        """Register a new subscriber. It receives events published from now on."""
        subscription = Subscription(self, capacity or self.capacity)
        if self._closed:
            subscription._terminate()
        else:
            self._subscriptions.append(subscription)
        return subscription

    def publish(self, event: LoungeEvent) -> int:
        """Offer an event to every subscriber.

        Returns:
            Number of subscribers that accepted the event
        """
        if self._closed:
            logger.debug(f"Bus closed, discarding {event.kind}")
            return 0
        # Copy so subscribers may unsubscribe during delivery
        return sum(1 for sub in list(self._subscriptions) if sub._offer(event))

    def close(self) -> None:
        """End every subscription. Buffered events can still be read."""
        self._closed = True
        subscriptions, self._subscriptions = self._subscriptions, []
        for subscription in subscriptions:
            subscription._terminate()

    def _unsubscribe(self, subscription: Subscription) -> None:
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)
