# blogdesk/services/change_listener.py
import asyncio
from typing import Awaitable, Callable, Optional

import structlog

from blogdesk.errors import StoreError, SubscriptionError
from blogdesk.infrastructure.change_transport import (
    ChangeTransport,
    CollectionChanged,
    POSTS_TOPIC,
    Subscription,
)

logger = structlog.get_logger(__name__)


class ChangeFeedListener:
    """
    Keeps one subscription to a change topic while its owning view is active
    and turns every signal into a re-read through `reread`.

    Signals that arrive while a re-read is running collapse into a single
    follow-up re-read. The listener holds no data of its own.
    """

    def __init__(
        self,
        transport: ChangeTransport,
        reread: Callable[[], Awaitable[None]],
        topic: str = POSTS_TOPIC,
    ):
        self.transport = transport
        self.reread = reread
        self.topic = topic
        self._subscription: Optional[Subscription] = None
        self._task: Optional[asyncio.Task] = None
        self._pending = False
        self._active = False

    @property
    def active(self) -> bool:
        return self._active

    @property
    def subscribed(self) -> bool:
        return self._subscription is not None

    async def activate(self) -> None:
        if self._active:
            return
        self._active = True
        try:
            self._subscription = await self.transport.subscribe(self.topic, self._on_event)
        except SubscriptionError as exc:
            # stale until the next activation manages to subscribe
            logger.warning("change_feed_subscribe_failed", topic=self.topic, error=str(exc))
            self._subscription = None

    async def deactivate(self) -> None:
        self._active = False
        self._pending = False
        subscription, self._subscription = self._subscription, None
        if subscription is not None:
            try:
                await self.transport.unsubscribe(subscription)
            except SubscriptionError as exc:
                logger.warning("change_feed_unsubscribe_failed", topic=self.topic, error=str(exc))
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    async def __aenter__(self) -> "ChangeFeedListener":
        await self.activate()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.deactivate()

    def _on_event(self, event: CollectionChanged) -> None:
        if not self._active:
            return
        if self._task is not None and not self._task.done():
            self._pending = True
            return
        self._task = asyncio.create_task(self._drain())

    async def _drain(self) -> None:
        while True:
            self._pending = False
            try:
                await self.reread()
            except StoreError as exc:
                logger.warning("change_feed_reread_failed", topic=self.topic, error=str(exc))
            except Exception:
                # a failing consumer must not end the feed for later signals
                logger.exception("change_feed_reread_crashed", topic=self.topic)
            if not (self._pending and self._active):
                return

    async def wait_idle(self) -> None:
        """Wait for the current re-read (and any follow-up it owes) to finish."""
        # let signals already queued on the loop reach _on_event first
        await asyncio.sleep(0)
        while self._task is not None and not self._task.done():
            await asyncio.shield(self._task)
