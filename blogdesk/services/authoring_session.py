# blogdesk/services/authoring_session.py
import uuid
from dataclasses import dataclass, field, fields as dc_fields, replace
from typing import Callable, Dict, Any, List, Optional, Union

import structlog

from blogdesk.errors import (
    AssetUploadError,
    ConfirmationRequired,
    NotAuthenticatedError,
    NotFoundError,
    SaveError,
    StoreError,
    UploadError,
    ValidationError,
)
from blogdesk.infrastructure.asset_store import AssetStoreClient, PendingImage
from blogdesk.infrastructure.post_repository import PostRepository
from blogdesk.models.post import Post, REQUIRED_TEXT_FIELDS
from blogdesk.services.post_lists import OperatorPostList
from blogdesk.UAA.schemas import CurrentOperator

logger = structlog.get_logger(__name__)


@dataclass
class DraftFields:
    title: str = ""
    description: str = ""
    content: str = ""
    author: str = ""
    published: bool = True
    pending_image: Optional[PendingImage] = None

    def validate(self) -> None:
        for name in REQUIRED_TEXT_FIELDS:
            if not getattr(self, name).strip():
                raise ValidationError(f"{name} must not be empty")

    def post_fields(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "description": self.description,
            "content": self.content,
            "author": self.author,
            "published": self.published,
        }


@dataclass
class NewPostDraft:
    fields: DraftFields = field(default_factory=DraftFields)


@dataclass
class EditPostDraft:
    post_id: uuid.UUID
    baseline: Post
    fields: DraftFields = field(default_factory=DraftFields)


Draft = Union[NewPostDraft, EditPostDraft]

_DRAFT_FIELD_NAMES = frozenset(f.name for f in dc_fields(DraftFields))


@dataclass(frozen=True)
class Notification:
    level: str  # "success" or "error"
    message: str


NotificationSink = Callable[[Notification], None]
ConfirmGate = Callable[[Post], bool]


class AuthoringSession:
    """
    Operator-side workflow for writing posts: one draft at a time plus the
    list-level publish toggle and delete.

    Failures are reported as an error notification and re-raised as typed
    errors; the draft survives a failed submit so it can be retried as is.
    No locks are taken: concurrent edits of the same post are last write wins.
    """

    def __init__(
        self,
        operator: Optional[CurrentOperator],
        repository: PostRepository,
        assets: AssetStoreClient,
        posts: Optional[OperatorPostList] = None,
        notify: Optional[NotificationSink] = None,
    ):
        if operator is None:
            raise NotAuthenticatedError("sign in to manage posts")
        self.operator = operator
        self.repository = repository
        self.assets = assets
        self.posts = posts if posts is not None else OperatorPostList(repository)
        self.draft: Optional[Draft] = None
        self.notifications: List[Notification] = []
        self._sink = notify

    # -- draft lifecycle -------------------------------------------------

    def start_new(self) -> NewPostDraft:
        self.draft = NewPostDraft(DraftFields(author=self.operator.display_name))
        return self.draft

    def start_edit(self, post_id: uuid.UUID) -> EditPostDraft:
        post = self.posts.get(post_id)
        if post is None:
            raise NotFoundError(f"post {post_id} not found")
        seeded = DraftFields(
            title=post.title,
            description=post.description,
            content=post.content,
            author=post.author,
            published=post.published,
        )
        self.draft = EditPostDraft(post_id=post.id, baseline=post, fields=seeded)
        return self.draft

    def change(self, **changes) -> Draft:
        if self.draft is None:
            raise ValidationError("no draft is open")
        unknown = set(changes) - _DRAFT_FIELD_NAMES
        if unknown:
            raise ValidationError(f"unknown draft fields: {', '.join(sorted(unknown))}")
        self.draft.fields = replace(self.draft.fields, **changes)
        return self.draft

    def discard(self) -> None:
        self.draft = None

    # -- actions ---------------------------------------------------------

    async def submit(self) -> Post:
        draft = self.draft
        if draft is None:
            raise ValidationError("no draft is open")
        try:
            draft.fields.validate()
        except ValidationError as exc:
            self._error(f"Cannot save post: {exc}")
            raise

        # the upload must finish before anything is written
        new_ref = None
        if draft.fields.pending_image is not None:
            try:
                new_ref = await self.assets.upload_image(self.operator.id, draft.fields.pending_image)
            except (UploadError, ValidationError) as exc:
                self._error("Failed to upload image")
                raise AssetUploadError(str(exc)) from exc

        values = draft.fields.post_fields()
        try:
            if isinstance(draft, EditPostDraft):
                values["image_ref"] = new_ref or draft.baseline.image_ref
                post = await self.repository.update(draft.post_id, values)
                message = "Post updated!"
            else:
                values["image_ref"] = new_ref
                values["author_id"] = self.operator.id
                post = await self.repository.create(values)
                message = "Post created!"
        except (StoreError, NotFoundError, ValidationError) as exc:
            self._error("Failed to save post")
            raise SaveError(str(exc)) from exc

        self.draft = None
        self._success(message)
        await self._reload()
        return post

    async def toggle_publish(self, post_id: uuid.UUID) -> Post:
        current = self.posts.get(post_id)
        if current is None:
            self._error("Failed to update post status")
            raise NotFoundError(f"post {post_id} not found")
        target = not current.published
        try:
            post = await self.repository.update(post_id, {"published": target})
        except (StoreError, NotFoundError):
            self._error("Failed to update post status")
            raise
        self._success(f"Post {'published' if target else 'unpublished'} successfully!")
        await self._reload()
        return post

    async def delete_post(self, post_id: uuid.UUID, confirm: ConfirmGate) -> None:
        post = self.posts.get(post_id)
        if post is None:
            self._error("Failed to delete post")
            raise NotFoundError(f"post {post_id} not found")
        if not confirm(post):
            logger.info("post_delete_cancelled", post_id=str(post_id), operator_id=str(self.operator.id))
            raise ConfirmationRequired("delete was not confirmed")
        try:
            await self.repository.delete(post_id)
        except (StoreError, NotFoundError):
            self._error("Failed to delete post")
            raise
        self._success("Post deleted successfully!")
        await self._reload()

    # -- helpers ---------------------------------------------------------

    async def _reload(self) -> None:
        try:
            await self.posts.refresh()
        except StoreError as exc:
            logger.warning("operator_list_reload_failed", error=str(exc))

    def _success(self, message: str) -> None:
        self._notify(Notification("success", message))

    def _error(self, message: str) -> None:
        self._notify(Notification("error", message))

    def _notify(self, notification: Notification) -> None:
        self.notifications.append(notification)
        logger.info("operator_notified", operator_id=str(self.operator.id),
                    level=notification.level, message=notification.message)
        if self._sink is not None:
            self._sink(notification)

    @property
    def last_notification(self) -> Optional[Notification]:
        return self.notifications[-1] if self.notifications else None
