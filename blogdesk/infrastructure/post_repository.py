# blogdesk/infrastructure/post_repository.py
import uuid
from datetime import timedelta
from typing import Any, List, Mapping, Optional

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import select

from blogdesk.errors import NotFoundError, StoreError, ValidationError
from blogdesk.infrastructure.change_transport import ChangeTransport, POSTS_TOPIC
from blogdesk.infrastructure.database import SessionFactory, get_session
from blogdesk.models.post import Post, EDITABLE_FIELDS, REQUIRED_TEXT_FIELDS, utcnow

logger = structlog.get_logger(__name__)

_STORE_FAILURES = (SQLAlchemyError, OSError)


def _check_required(fields: Mapping[str, Any], names) -> None:
    for name in names:
        value = fields.get(name)
        if not isinstance(value, str) or not value.strip():
            raise ValidationError(f"{name} must not be empty")


class PostRepository:
    """
    Repository for the Post collection, the single source of truth.
    Each call runs in its own session taken from `sessions`.

    After every committed mutation a change signal is published on `topic`,
    standing in for the notification the durable store emits. Readers must
    not assume it arrives before the call returns.
    """

    def __init__(
        self,
        sessions: SessionFactory = get_session,
        events: Optional[ChangeTransport] = None,
        topic: str = POSTS_TOPIC,
    ):
        self.sessions = sessions
        self.events = events
        self.topic = topic

    async def create(self, fields: Mapping[str, Any]) -> Post:
        _check_required(fields, REQUIRED_TEXT_FIELDS)
        unknown = set(fields) - EDITABLE_FIELDS - {"author_id"}
        if unknown:
            raise ValidationError(f"unknown fields: {', '.join(sorted(unknown))}")
        author_id = fields.get("author_id")
        if not isinstance(author_id, uuid.UUID):
            raise ValidationError("author_id must identify the creating operator")

        now = utcnow()
        post = Post(
            title=fields["title"],
            description=fields["description"],
            content=fields["content"],
            author=fields["author"],
            author_id=author_id,
            image_ref=fields.get("image_ref"),
            published=bool(fields.get("published", False)),
            created_at=now,
            updated_at=now,
        )
        try:
            async with self.sessions() as session:
                session.add(post)
                await session.commit()
                await session.refresh(post)
        except _STORE_FAILURES as exc:
            logger.exception("post_create_failed", error=str(exc))
            raise StoreError("could not create post") from exc

        logger.info("post_created", post_id=str(post.id), author_id=str(post.author_id), published=post.published)
        await self._emit_change()
        return post

    async def update(self, post_id: uuid.UUID, fields: Mapping[str, Any]) -> Post:
        """
        Apply a partial update. Only editable fields are accepted; `updated_at`
        always moves forward, even if the clock does not.
        """
        unknown = set(fields) - EDITABLE_FIELDS
        if unknown:
            raise ValidationError(f"fields cannot be updated: {', '.join(sorted(unknown))}")
        _check_required(fields, [name for name in REQUIRED_TEXT_FIELDS if name in fields])

        try:
            async with self.sessions() as session:
                post = await self._get(session, post_id)
                if post is None:
                    raise NotFoundError(f"post {post_id} not found")
                for name, value in fields.items():
                    setattr(post, name, value)
                post.updated_at = self._next_updated_at(post.updated_at)
                session.add(post)
                await session.commit()
                await session.refresh(post)
        except _STORE_FAILURES as exc:
            logger.exception("post_update_failed", post_id=str(post_id), error=str(exc))
            raise StoreError(f"could not update post {post_id}") from exc

        logger.info("post_updated", post_id=str(post_id), fields=sorted(fields))
        await self._emit_change()
        return post

    async def delete(self, post_id: uuid.UUID) -> None:
        # attached assets are left in the object store
        try:
            async with self.sessions() as session:
                post = await self._get(session, post_id)
                if post is None:
                    raise NotFoundError(f"post {post_id} not found")
                await session.delete(post)
                await session.commit()
        except _STORE_FAILURES as exc:
            logger.exception("post_delete_failed", post_id=str(post_id), error=str(exc))
            raise StoreError(f"could not delete post {post_id}") from exc

        logger.info("post_deleted", post_id=str(post_id))
        await self._emit_change()

    async def get(self, post_id: uuid.UUID) -> Optional[Post]:
        try:
            async with self.sessions() as session:
                return await self._get(session, post_id)
        except _STORE_FAILURES as exc:
            raise StoreError(f"could not read post {post_id}") from exc

    async def list_all(self) -> List[Post]:
        """Every post, in no guaranteed order."""
        return await self._list(select(Post))

    async def list_published(self) -> List[Post]:
        q = (
            select(Post)
            .where(Post.published == True)  # noqa: E712
            .order_by(Post.created_at.desc(), Post.id.asc())
        )
        return await self._list(q)

    async def _list(self, q) -> List[Post]:
        try:
            async with self.sessions() as session:
                res = await session.exec(q)
                return list(res.all())
        except _STORE_FAILURES as exc:
            logger.exception("post_list_failed", error=str(exc))
            raise StoreError("could not read posts") from exc

    @staticmethod
    async def _get(session, post_id: uuid.UUID) -> Optional[Post]:
        res = await session.exec(select(Post).where(Post.id == post_id))
        return res.first()

    @staticmethod
    def _next_updated_at(previous):
        now = utcnow()
        if previous is not None and now <= previous:
            return previous + timedelta(microseconds=1)
        return now

    async def _emit_change(self) -> None:
        if self.events is None:
            return
        try:
            await self.events.publish(self.topic)
        except Exception as exc:
            # the write is already committed; readers catch up on the next signal
            logger.exception("change_publish_failed", topic=self.topic, error=str(exc))
