# blogdesk/infrastructure/change_transport.py
import asyncio
import os
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional, Protocol

import redis.asyncio as aioredis
from redis.exceptions import RedisError
import structlog

from blogdesk.errors import SubscriptionError
from blogdesk.infrastructure.redis_client import redis_client

logger = structlog.get_logger(__name__)

CHANGE_TRANSPORT = os.getenv("CHANGE_TRANSPORT", "redis").lower()
POSTS_TOPIC = os.getenv("POSTS_TOPIC", "blogdesk:posts")


@dataclass(frozen=True)
class CollectionChanged:
    """Something in the topic changed. Carries nothing else."""


EventHandler = Callable[[CollectionChanged], None]


@dataclass(eq=False)
class Subscription:
    topic: str
    handler: EventHandler
    # transport specific state (pubsub + reader task for redis)
    pubsub: Optional[object] = None
    task: Optional[asyncio.Task] = None
    closed: bool = field(default=False)


class ChangeTransport(Protocol):
    async def subscribe(self, topic: str, on_event: EventHandler) -> Subscription: ...

    async def unsubscribe(self, subscription: Subscription) -> None: ...

    async def publish(self, topic: str) -> None: ...


class InMemoryChangeTransport:
    """
    Process-local transport. Handlers are invoked from the event loop,
    never inline with publish(), so publishers cannot observe reentrancy.
    """

    def __init__(self):
        self._subscriptions: Dict[str, Dict[int, Subscription]] = {}
        self.published = 0

    async def subscribe(self, topic: str, on_event: EventHandler) -> Subscription:
        sub = Subscription(topic=topic, handler=on_event)
        self._subscriptions.setdefault(topic, {})[id(sub)] = sub
        logger.debug("change_subscribed", topic=topic, transport="memory")
        return sub

    async def unsubscribe(self, subscription: Subscription) -> None:
        subscription.closed = True
        self._subscriptions.get(subscription.topic, {}).pop(id(subscription), None)
        logger.debug("change_unsubscribed", topic=subscription.topic, transport="memory")

    async def publish(self, topic: str) -> None:
        self.published += 1
        loop = asyncio.get_running_loop()
        for sub in list(self._subscriptions.get(topic, {}).values()):
            loop.call_soon(self._deliver, sub)

    @staticmethod
    def _deliver(sub: Subscription) -> None:
        if not sub.closed:
            sub.handler(CollectionChanged())

    def subscriber_count(self, topic: str) -> int:
        return len(self._subscriptions.get(topic, {}))


class RedisChangeTransport:
    """Redis pub/sub; one reader task per subscription."""

    def __init__(self, client: Optional[aioredis.Redis] = None):
        self.client = client or redis_client

    async def subscribe(self, topic: str, on_event: EventHandler) -> Subscription:
        pubsub = self.client.pubsub(ignore_subscribe_messages=True)
        try:
            await pubsub.subscribe(topic)
        except (RedisError, OSError) as exc:
            await pubsub.aclose()
            raise SubscriptionError(f"could not subscribe to {topic}: {exc}") from exc
        sub = Subscription(topic=topic, handler=on_event, pubsub=pubsub)
        sub.task = asyncio.create_task(self._pump(sub))
        logger.info("change_subscribed", topic=topic, transport="redis")
        return sub

    async def _pump(self, sub: Subscription) -> None:
        try:
            async for message in sub.pubsub.listen():
                if message.get("type") == "message" and not sub.closed:
                    sub.handler(CollectionChanged())
        except (RedisError, OSError) as exc:
            # the view keeps last-known data until it re-activates
            logger.warning("change_stream_lost", topic=sub.topic, error=str(exc))

    async def unsubscribe(self, subscription: Subscription) -> None:
        subscription.closed = True
        if subscription.task is not None:
            subscription.task.cancel()
            try:
                await subscription.task
            except asyncio.CancelledError:
                pass
        try:
            await subscription.pubsub.unsubscribe(subscription.topic)
        except (RedisError, OSError) as exc:
            raise SubscriptionError(f"could not unsubscribe from {subscription.topic}: {exc}") from exc
        finally:
            await subscription.pubsub.aclose()
        logger.info("change_unsubscribed", topic=subscription.topic, transport="redis")

    async def publish(self, topic: str) -> None:
        await self.client.publish(topic, "changed")


def build_change_transport() -> ChangeTransport:
    if CHANGE_TRANSPORT == "memory":
        return InMemoryChangeTransport()
    return RedisChangeTransport()
