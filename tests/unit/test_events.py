"""
Tests for the event bus.
"""

import asyncio

from core.events import EventBus, MessageReceived, MessageSent


class TestEventBus:
    def test_delivers_by_event_type(self):
        bus = EventBus()
        received, sent = [], []
        bus.subscribe(MessageReceived, received.append)
        bus.subscribe(MessageSent, sent.append)

        bus.publish(MessageReceived(message_index=3))

        assert received == [MessageReceived(message_index=3)]
        assert sent == []

    def test_failing_handler_isolated(self):
        """A raising handler does not stop later handlers or the publisher."""
        bus = EventBus()
        seen = []

        def broken(event):
            raise RuntimeError("handler bug")

        bus.subscribe(MessageSent, broken)
        bus.subscribe(MessageSent, seen.append)

        bus.publish(MessageSent(message_index=1))

        assert len(seen) == 1

    def test_unsubscribe(self):
        bus = EventBus()
        seen = []
        subscription = bus.subscribe(MessageSent, seen.append)

        subscription.unsubscribe()
        subscription.unsubscribe()
        bus.publish(MessageSent(message_index=1))

        assert seen == []
        assert not subscription.active
        assert bus.handler_count(MessageSent) == 0

    def test_async_handler_without_loop_skipped(self):
        bus = EventBus()
        seen = []

        async def handler(event):
            seen.append(event)

        bus.subscribe(MessageSent, handler)
        bus.publish(MessageSent(message_index=1))

        assert seen == []

    async def test_async_handler_scheduled(self):
        bus = EventBus()
        seen = []

        async def handler(event):
            seen.append(event.message_index)

        bus.subscribe(MessageSent, handler)
        bus.publish(MessageSent(message_index=7))
        await asyncio.sleep(0)

        assert seen == [7]

    async def test_async_handler_task_held_until_done(self):
        """Scheduled handler tasks are referenced by the bus until they finish."""
        bus = EventBus()
        gate = asyncio.Event()
        seen = []

        async def handler(event):
            await gate.wait()
            seen.append(event.message_index)

        bus.subscribe(MessageSent, handler)
        bus.publish(MessageSent(message_index=3))
        await asyncio.sleep(0)

        assert bus.pending_count() == 1
        gate.set()
        for _ in range(3):
            await asyncio.sleep(0)

        assert seen == [3]
        assert bus.pending_count() == 0

    async def test_async_handler_failure_isolated(self):
        bus = EventBus()
        seen = []

        async def broken(event):
            raise RuntimeError("async bug")

        bus.subscribe(MessageSent, broken)
        bus.subscribe(MessageSent, seen.append)
        bus.publish(MessageSent(message_index=1))
        await asyncio.sleep(0)

        assert len(seen) == 1
