# blogdesk/dependencies/db.py
from typing import AsyncGenerator

from fastapi import Depends
from sqlmodel.ext.asyncio.session import AsyncSession

from blogdesk.infrastructure.database import SessionFactory, get_session


def get_session_factory() -> SessionFactory:
    return get_session


async def get_session_dep(sessions: SessionFactory = Depends(get_session_factory)) -> AsyncGenerator[AsyncSession, None]:
    async with sessions() as session:
        yield session
