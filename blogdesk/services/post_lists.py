# blogdesk/services/post_lists.py
import math
import os
import uuid
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional, Sequence, Tuple

import structlog

from blogdesk.errors import ValidationError
from blogdesk.infrastructure.change_transport import ChangeTransport, POSTS_TOPIC
from blogdesk.infrastructure.post_repository import PostRepository
from blogdesk.models.post import Post
from blogdesk.services.change_listener import ChangeFeedListener

logger = structlog.get_logger(__name__)

FEED_PAGE_SIZE = int(os.getenv("FEED_PAGE_SIZE", "6"))

RefreshCallback = Callable[["PostListView"], Awaitable[None]]


class PostListView:
    """
    An explicitly owned, versioned snapshot of posts.

    Every consumer builds its own instance; nothing here is shared between
    views. `refresh()` swaps the whole snapshot. A refresh that completes after
    `deactivate()`, or after a later refresh was already applied, is dropped
    instead of applied.
    """

    def __init__(
        self,
        repository: PostRepository,
        transport: Optional[ChangeTransport] = None,
        topic: str = POSTS_TOPIC,
    ):
        self.repository = repository
        self._posts: Tuple[Post, ...] = ()
        self.version = 0
        self._generation = 0
        # refresh tickets: last handed out, last applied
        self._requested = 0
        self._applied = 0
        self._callbacks: List[RefreshCallback] = []
        self.listener = ChangeFeedListener(transport, self.refresh, topic) if transport is not None else None

    @property
    def posts(self) -> Tuple[Post, ...]:
        return self._posts

    @property
    def total(self) -> int:
        return len(self._posts)

    def on_refresh(self, callback: RefreshCallback) -> None:
        self._callbacks.append(callback)

    async def _load(self) -> Sequence[Post]:
        raise NotImplementedError

    async def refresh(self) -> None:
        generation = self._generation
        self._requested += 1
        ticket = self._requested
        posts = tuple(await self._load())
        if generation != self._generation:
            logger.debug("post_list_refresh_dropped", view=type(self).__name__, reason="deactivated")
            return
        if ticket < self._applied:
            logger.debug("post_list_refresh_dropped", view=type(self).__name__, reason="superseded")
            return
        self._applied = ticket
        self._posts = posts
        self.version += 1
        logger.debug("post_list_refreshed", view=type(self).__name__, total=len(posts), version=self.version)
        for callback in list(self._callbacks):
            await callback(self)

    async def activate(self) -> None:
        """Load the first snapshot, then follow the change feed."""
        if self.listener is not None:
            await self.listener.activate()
        await self.refresh()

    async def deactivate(self) -> None:
        self._generation += 1
        if self.listener is not None:
            await self.listener.deactivate()

    async def __aenter__(self):
        await self.activate()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.deactivate()


class PublicationListCache(PostListView):
    """Published posts, newest first, as shown to readers."""

    def __init__(self, repository: PostRepository, transport: Optional[ChangeTransport] = None,
                 topic: str = POSTS_TOPIC, page_size: int = FEED_PAGE_SIZE):
        super().__init__(repository, transport, topic)
        self.page_size = page_size
        # raw page the reader is on; a shrinking list is not corrected for
        self.current_page = 1

    async def _load(self) -> Sequence[Post]:
        posts = await self.repository.list_published()
        return [p for p in posts if p.published]

    def page_count(self, page_size: Optional[int] = None) -> int:
        size = self._page_size(page_size)
        return math.ceil(self.total / size)

    def page(self, page_number: int, page_size: Optional[int] = None) -> List[Post]:
        size = self._page_size(page_size)
        if page_number < 1:
            raise ValidationError("page numbers start at 1")
        start = (page_number - 1) * size
        return list(self._posts[start:start + size])

    def current(self, page_size: Optional[int] = None) -> List[Post]:
        return self.page(self.current_page, page_size)

    def _page_size(self, page_size: Optional[int]) -> int:
        size = self.page_size if page_size is None else page_size
        if size < 1:
            raise ValidationError("page size must be at least 1")
        return size


@dataclass(frozen=True)
class PostStats:
    total: int
    published: int
    drafts: int


class OperatorPostList(PostListView):
    """Every post in the collection for the admin view, newest first."""

    async def _load(self) -> Sequence[Post]:
        posts = await self.repository.list_all()
        return sorted(posts, key=lambda p: p.created_at, reverse=True)

    def get(self, post_id: uuid.UUID) -> Optional[Post]:
        for post in self._posts:
            if post.id == post_id:
                return post
        return None

    def stats(self) -> PostStats:
        published = sum(1 for p in self._posts if p.published)
        return PostStats(total=self.total, published=published, drafts=self.total - published)
