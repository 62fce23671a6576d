"""Tests for the change transport and the coalescing feed listener."""

import asyncio

import pytest

from blogdesk.errors import StoreError, SubscriptionError
from blogdesk.infrastructure.change_transport import CollectionChanged, InMemoryChangeTransport
from blogdesk.services.change_listener import ChangeFeedListener

TOPIC = "test:posts"


class GatedReader:
    """A re-read that blocks until released, so bursts can pile up behind it."""

    def __init__(self):
        self.calls = 0
        self.gate = asyncio.Event()
        self.gate.set()

    async def __call__(self):
        self.calls += 1
        await self.gate.wait()


async def _settle():
    for _ in range(5):
        await asyncio.sleep(0)


class TestInMemoryTransport:
    async def test_delivers_after_publish_returns(self):
        transport = InMemoryChangeTransport()
        seen = []
        await transport.subscribe(TOPIC, seen.append)

        await transport.publish(TOPIC)
        assert seen == []

        await _settle()
        assert seen == [CollectionChanged()]

    async def test_other_topics_are_ignored(self):
        transport = InMemoryChangeTransport()
        seen = []
        await transport.subscribe(TOPIC, seen.append)
        await transport.publish("other")
        await _settle()
        assert seen == []

    async def test_unsubscribe_drops_queued_delivery(self):
        transport = InMemoryChangeTransport()
        seen = []
        sub = await transport.subscribe(TOPIC, seen.append)
        await transport.publish(TOPIC)
        await transport.unsubscribe(sub)
        await _settle()
        assert seen == []
        assert transport.subscriber_count(TOPIC) == 0


class TestListener:
    async def test_event_triggers_one_reread(self):
        transport = InMemoryChangeTransport()
        reader = GatedReader()
        listener = ChangeFeedListener(transport, reader, TOPIC)
        await listener.activate()

        await transport.publish(TOPIC)
        await listener.wait_idle()

        assert reader.calls == 1
        await listener.deactivate()

    async def test_burst_coalesces_into_one_follow_up(self):
        transport = InMemoryChangeTransport()
        reader = GatedReader()
        listener = ChangeFeedListener(transport, reader, TOPIC)
        await listener.activate()

        reader.gate.clear()
        await transport.publish(TOPIC)
        await _settle()
        assert reader.calls == 1

        for _ in range(10):
            await transport.publish(TOPIC)
        await _settle()
        reader.gate.set()
        await listener.wait_idle()

        assert reader.calls == 2
        await listener.deactivate()

    async def test_single_subscription_while_active(self):
        transport = InMemoryChangeTransport()
        listener = ChangeFeedListener(transport, GatedReader(), TOPIC)
        await listener.activate()
        await listener.activate()
        assert transport.subscriber_count(TOPIC) == 1
        await listener.deactivate()
        assert transport.subscriber_count(TOPIC) == 0

    async def test_no_reread_after_deactivate(self):
        transport = InMemoryChangeTransport()
        reader = GatedReader()
        async with ChangeFeedListener(transport, reader, TOPIC):
            pass
        await transport.publish(TOPIC)
        await _settle()
        assert reader.calls == 0

    async def test_deactivate_cancels_inflight_reread(self):
        transport = InMemoryChangeTransport()
        reader = GatedReader()
        listener = ChangeFeedListener(transport, reader, TOPIC)
        await listener.activate()
        reader.gate.clear()
        await transport.publish(TOPIC)
        await _settle()

        await listener.deactivate()

        assert listener._task is None
        assert not listener.active

    async def test_subscribe_failure_is_not_fatal(self):
        class Unreachable(InMemoryChangeTransport):
            async def subscribe(self, topic, on_event):
                raise SubscriptionError("redis down")

        listener = ChangeFeedListener(Unreachable(), GatedReader(), TOPIC)
        await listener.activate()

        assert listener.active
        assert not listener.subscribed
        await listener.deactivate()

    async def test_retries_subscription_on_next_activation(self):
        class Flaky(InMemoryChangeTransport):
            attempts = 0

            async def subscribe(self, topic, on_event):
                self.attempts += 1
                if self.attempts == 1:
                    raise SubscriptionError("not yet")
                return await super().subscribe(topic, on_event)

        listener = ChangeFeedListener(Flaky(), GatedReader(), TOPIC)
        await listener.activate()
        await listener.deactivate()
        await listener.activate()
        assert listener.subscribed
        await listener.deactivate()

    async def test_failed_reread_keeps_listening(self):
        transport = InMemoryChangeTransport()
        calls = []

        async def flaky_read():
            calls.append(1)
            if len(calls) == 1:
                raise StoreError("timeout")

        listener = ChangeFeedListener(transport, flaky_read, TOPIC)
        await listener.activate()
        await transport.publish(TOPIC)
        await listener.wait_idle()
        await transport.publish(TOPIC)
        await listener.wait_idle()

        assert len(calls) == 2
        await listener.deactivate()

    async def test_unexpected_error_keeps_listening(self):
        transport = InMemoryChangeTransport()
        calls = []

        async def broken_consumer():
            calls.append(1)
            if len(calls) == 1:
                raise KeyError("socket state")

        listener = ChangeFeedListener(transport, broken_consumer, TOPIC)
        await listener.activate()
        await transport.publish(TOPIC)
        await listener.wait_idle()
        await transport.publish(TOPIC)
        await listener.wait_idle()

        assert len(calls) == 2
        assert listener.active
        await listener.deactivate()


@pytest.mark.parametrize("bursts", [1, 3])
async def test_every_burst_after_idle_is_seen(bursts):
    transport = InMemoryChangeTransport()
    reader = GatedReader()
    listener = ChangeFeedListener(transport, reader, TOPIC)
    await listener.activate()
    for _ in range(bursts):
        await transport.publish(TOPIC)
        await listener.wait_idle()
    assert reader.calls == bursts
    await listener.deactivate()
