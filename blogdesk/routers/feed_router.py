# blogdesk/routers/feed_router.py
import json
import uuid

from fastapi import APIRouter, Depends, HTTPException, Query, WebSocket, WebSocketDisconnect
import structlog

from blogdesk.dependencies.services import get_change_transport, get_post_repository
from blogdesk.errors import StoreError
from blogdesk.infrastructure.change_transport import ChangeTransport
from blogdesk.infrastructure.post_repository import PostRepository
from blogdesk.schemas.post_schema import FeedPage, PostRead, PostSummary
from blogdesk.services.post_lists import FEED_PAGE_SIZE, PublicationListCache

logger = structlog.get_logger(__name__)
router = APIRouter(prefix="/feed", tags=["feed"])

MAX_PAGE_SIZE = 50


def feed_page(cache: PublicationListCache, page: int) -> FeedPage:
    return FeedPage(
        items=[PostSummary.model_validate(p) for p in cache.page(page)],
        page=page,
        page_size=cache.page_size,
        page_count=cache.page_count(),
        total=cache.total,
    )


@router.get("/", response_model=FeedPage)
async def read_feed(
    page: int = Query(1, ge=1),
    page_size: int = Query(FEED_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    repository: PostRepository = Depends(get_post_repository),
):
    cache = PublicationListCache(repository, page_size=page_size)
    try:
        await cache.refresh()
    except StoreError as exc:
        raise HTTPException(status_code=502, detail=str(exc))
    return feed_page(cache, page)


@router.get("/{post_id}", response_model=PostRead)
async def read_post(post_id: uuid.UUID, repository: PostRepository = Depends(get_post_repository)):
    try:
        post = await repository.get(post_id)
    except StoreError as exc:
        raise HTTPException(status_code=502, detail=str(exc))
    if post is None or not post.published:
        raise HTTPException(status_code=404, detail="post not found")
    return post


@router.websocket("/ws")
async def feed_updates(
    websocket: WebSocket,
    page: int = Query(1, ge=1),
    page_size: int = Query(FEED_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    repository: PostRepository = Depends(get_post_repository),
    transport: ChangeTransport = Depends(get_change_transport),
):
    """
    Live reader feed. The socket owns its cache: it subscribes on connect,
    pushes the current page after every refresh and unsubscribes on close.
    Send {"page": n} to move between pages.
    """
    await websocket.accept()
    cache = PublicationListCache(repository, transport, page_size=page_size)
    cache.current_page = page

    async def push(_view) -> None:
        try:
            await websocket.send_json(feed_page(cache, cache.current_page).model_dump(mode="json"))
        except (WebSocketDisconnect, RuntimeError) as exc:
            logger.info("feed_push_skipped", error=str(exc))

    cache.on_refresh(push)
    try:
        await cache.activate()
        while True:
            raw = await websocket.receive_text()
            try:
                requested = json.loads(raw).get("page")
            except (ValueError, AttributeError):
                logger.info("feed_socket_bad_message", message=raw[:200])
                continue
            if isinstance(requested, int) and requested >= 1:
                cache.current_page = requested
                await push(cache)
    except WebSocketDisconnect:
        logger.info("feed_socket_closed", version=cache.version)
    except StoreError as exc:
        logger.warning("feed_socket_load_failed", error=str(exc))
        await websocket.close(code=1011)
    finally:
        await cache.deactivate()
