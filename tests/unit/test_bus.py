"""Unit tests for the event bus."""

import asyncio

import pytest

from lounge_remote.bus import EventBus
from lounge_remote.protocol.events import SessionEstablishedEvent, VolumeChangedEvent


def volume(level: int) -> VolumeChangedEvent:
    return VolumeChangedEvent(volume=level)


class TestBroadcast:
    """Every subscriber sees every event."""

    @pytest.mark.asyncio
    async def test_fan_out(self):
        bus = EventBus()
        first, second = bus.subscribe(), bus.subscribe()

        assert bus.publish(volume(1)) == 2

        assert (await first.get()).volume == 1
        assert (await second.get()).volume == 1

    @pytest.mark.asyncio
    async def test_late_subscriber_misses_earlier_events(self):
        bus = EventBus()
        bus.publish(volume(1))
        late = bus.subscribe()
        bus.publish(volume(2))
        assert (await late.get()).volume == 2

    def test_publish_without_subscribers(self):
        assert EventBus().publish(volume(1)) == 0

    def test_invalid_capacity(self):
        with pytest.raises(ValueError):
            EventBus(capacity=0)


class TestOverflow:
    """A full subscriber drops the newest event, others are unaffected."""

    @pytest.mark.asyncio
    async def test_drop_newest_for_slow_subscriber(self):
        bus = EventBus(capacity=2)
        slow = bus.subscribe()
        fast = bus.subscribe(capacity=10)

        for level in range(4):
            bus.publish(volume(level))

        assert slow.dropped == 2
        assert fast.dropped == 0
        assert [(await slow.get()).volume for _ in range(2)] == [0, 1]
        assert slow.get_nowait() is None
        assert [(await fast.get()).volume for _ in range(4)] == [0, 1, 2, 3]


class TestLifecycle:
    """Closing subscriptions and the bus."""

    @pytest.mark.asyncio
    async def test_async_iteration_ends_on_close(self):
        bus = EventBus()
        received = []

        async def consume():
            async with bus.subscribe() as events:
                async for event in events:
                    received.append(event)

        task = asyncio.create_task(consume())
        await asyncio.sleep(0)
        bus.publish(volume(5))
        bus.publish(SessionEstablishedEvent(session_id="s"))
        bus.close()
        await asyncio.wait_for(task, timeout=1)

        assert [e.kind for e in received] == ["onVolumeChanged", "sessionEstablished"]

    @pytest.mark.asyncio
    async def test_close_wakes_full_subscriber(self):
        bus = EventBus(capacity=1)
        sub = bus.subscribe()
        bus.publish(volume(1))
        bus.close()

        assert await sub.get() is None
        assert sub.dropped == 1

    @pytest.mark.asyncio
    async def test_unsubscribe(self):
        bus = EventBus()
        sub = bus.subscribe()
        assert bus.subscriber_count == 1

        sub.close()
        assert bus.subscriber_count == 0
        assert bus.publish(volume(1)) == 0
        assert await sub.get() is None

    @pytest.mark.asyncio
    async def test_subscribe_after_close(self):
        bus = EventBus()
        bus.close()
        sub = bus.subscribe()
        assert sub.closed
        assert await sub.get() is None
        assert bus.publish(volume(1)) == 0
