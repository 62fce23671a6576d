# blogdesk/main.py
import logging
import os
import uvicorn
from fastapi import FastAPI
from fastapi.staticfiles import StaticFiles
import structlog

from blogdesk.routers.auth_router import router as auth_router
from blogdesk.routers.user_router import router as user_router
from blogdesk.routers.post_router import router as post_router
from blogdesk.routers.feed_router import router as feed_router
from blogdesk.infrastructure.asset_store import ASSET_STORE, MEDIA_ROOT, MEDIA_URL
from blogdesk.infrastructure.change_transport import CHANGE_TRANSPORT, build_change_transport
from blogdesk.infrastructure.database import init_db
from blogdesk.infrastructure.redis_client import redis_available
from blogdesk.middleware.logging import RequestIdMiddleware


LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()


def configure_structlog():
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(logging.getLevelName(LOG_LEVEL)),
        context_class=dict,
    )


configure_structlog()
logger = structlog.get_logger()

app = FastAPI(title="Blogdesk")

app.add_middleware(RequestIdMiddleware)

app.include_router(auth_router)
app.include_router(user_router)
app.include_router(post_router)
app.include_router(feed_router)

# one transport per process; every view subscribes through it
app.state.change_transport = build_change_transport()

if ASSET_STORE == "local":
    os.makedirs(MEDIA_ROOT, exist_ok=True)
    app.mount(MEDIA_URL, StaticFiles(directory=MEDIA_ROOT), name="media")


@app.on_event("startup")
async def on_startup():
    await init_db()
    if CHANGE_TRANSPORT == "redis" and not await redis_available():
        logger.warning("change_feed_degraded", reason="redis unreachable, readers will not see live updates")
    logger.info("app_startup", change_transport=CHANGE_TRANSPORT, asset_store=ASSET_STORE)


if __name__ == "__main__":
    uvicorn.run("blogdesk.main:app", host="0.0.0.0", port=int(os.getenv("PORT", 8000)), reload=True)
