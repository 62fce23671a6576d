# blogdesk/routers/post_router.py
import uuid
from dataclasses import asdict
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status
import structlog

from blogdesk.dependencies.services import get_authoring_session
from blogdesk.errors import (
    AssetUploadError,
    BlogDeskError,
    ConfirmationRequired,
    NotFoundError,
    SaveError,
    ValidationError,
)
from blogdesk.infrastructure.asset_store import PendingImage
from blogdesk.schemas.post_schema import MutationResult, PostRead, PostStatsRead
from blogdesk.services.authoring_session import AuthoringSession
from blogdesk.services.search import SearchFilterView

logger = structlog.get_logger(__name__)
router = APIRouter(prefix="/posts", tags=["posts"])


def _http_error(exc: BlogDeskError) -> HTTPException:
    if isinstance(exc, ValidationError):
        return HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc))
    if isinstance(exc, NotFoundError) or isinstance(exc.__cause__, NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, ConfirmationRequired):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    if isinstance(exc, AssetUploadError):
        return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=f"image upload failed: {exc}")
    if isinstance(exc, SaveError):
        return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=f"save failed: {exc}")
    return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc))


async def _pending_image(image: Optional[UploadFile]) -> Optional[PendingImage]:
    # browsers send an empty part when no file was picked
    if image is None or not image.filename:
        return None
    data = await image.read()
    return PendingImage(filename=image.filename, data=data, content_type=image.content_type)


def _result(session: AuthoringSession, post=None) -> MutationResult:
    note = session.last_notification
    return MutationResult(
        message=note.message if note else "",
        post=PostRead.model_validate(post) if post is not None else None,
    )


@router.get("/", response_model=List[PostRead])
async def list_posts(q: str = "", session: AuthoringSession = Depends(get_authoring_session)):
    return SearchFilterView(session.posts, q).results()


@router.get("/stats", response_model=PostStatsRead)
async def post_stats(session: AuthoringSession = Depends(get_authoring_session)):
    return asdict(session.posts.stats())


@router.post("/", response_model=MutationResult, status_code=status.HTTP_201_CREATED)
async def create_post(
    title: str = Form(...),
    description: str = Form(...),
    content: str = Form(...),
    author: Optional[str] = Form(None),
    published: bool = Form(True),
    image: Optional[UploadFile] = File(None),
    session: AuthoringSession = Depends(get_authoring_session),
):
    session.start_new()
    changes = {"title": title, "description": description, "content": content, "published": published}
    if author is not None:
        changes["author"] = author
    changes["pending_image"] = await _pending_image(image)
    session.change(**changes)
    try:
        post = await session.submit()
    except BlogDeskError as exc:
        raise _http_error(exc)
    return _result(session, post)


@router.put("/{post_id}", response_model=MutationResult)
async def update_post(
    post_id: uuid.UUID,
    title: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    content: Optional[str] = Form(None),
    author: Optional[str] = Form(None),
    published: Optional[bool] = Form(None),
    image: Optional[UploadFile] = File(None),
    session: AuthoringSession = Depends(get_authoring_session),
):
    provided = {"title": title, "description": description, "content": content,
                "author": author, "published": published}
    changes = {k: v for k, v in provided.items() if v is not None}
    try:
        session.start_edit(post_id)
        changes["pending_image"] = await _pending_image(image)
        session.change(**changes)
        post = await session.submit()
    except BlogDeskError as exc:
        raise _http_error(exc)
    return _result(session, post)


@router.post("/{post_id}/toggle-publish", response_model=MutationResult)
async def toggle_publish(post_id: uuid.UUID, session: AuthoringSession = Depends(get_authoring_session)):
    try:
        post = await session.toggle_publish(post_id)
    except BlogDeskError as exc:
        raise _http_error(exc)
    return _result(session, post)


@router.delete("/{post_id}", response_model=MutationResult)
async def delete_post(post_id: uuid.UUID, confirm: bool = False,
                      session: AuthoringSession = Depends(get_authoring_session)):
    try:
        await session.delete_post(post_id, lambda post: confirm)
    except BlogDeskError as exc:
        raise _http_error(exc)
    return _result(session)
