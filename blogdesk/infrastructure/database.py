# blogdesk/infrastructure/database.py
import os
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable, AsyncContextManager

import structlog
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession
from sqlalchemy.ext.asyncio import create_async_engine, AsyncEngine

# both tables must be registered on the metadata before create_all
from blogdesk.models.post import Post  # noqa: F401
from blogdesk.UAA.models import Operator  # noqa: F401

logger = structlog.get_logger(__name__)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./blogdesk.db")

engine: AsyncEngine = create_async_engine(DATABASE_URL, echo=False)

SessionFactory = Callable[[], AsyncContextManager[AsyncSession]]


async def init_db(bind: AsyncEngine = engine) -> None:
    async with bind.begin() as connection:
        await connection.run_sync(SQLModel.metadata.create_all)
    logger.info("db_tables_ready", url=str(bind.url))


def session_factory(bind: AsyncEngine = engine) -> SessionFactory:
    """
    Build a factory of short-lived sessions bound to `bind`.
    Objects stay readable after commit so repositories can hand them out.
    """

    @asynccontextmanager
    async def _session() -> AsyncIterator[AsyncSession]:
        async with AsyncSession(bind, expire_on_commit=False) as session:
            yield session

    return _session


get_session = session_factory()
