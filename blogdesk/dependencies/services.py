# blogdesk/dependencies/services.py
from functools import lru_cache

from fastapi import Depends, HTTPException
from starlette.requests import HTTPConnection

from blogdesk.dependencies.auth import get_current_operator
from blogdesk.errors import StoreError
from blogdesk.infrastructure.asset_store import AssetStore, AssetStoreClient, build_asset_store
from blogdesk.infrastructure.change_transport import ChangeTransport
from blogdesk.infrastructure.database import SessionFactory
from blogdesk.dependencies.db import get_session_factory
from blogdesk.infrastructure.post_repository import PostRepository
from blogdesk.services.authoring_session import AuthoringSession
from blogdesk.UAA.schemas import CurrentOperator


def get_change_transport(conn: HTTPConnection) -> ChangeTransport:
    return conn.app.state.change_transport


def get_post_repository(
    sessions: SessionFactory = Depends(get_session_factory),
    transport: ChangeTransport = Depends(get_change_transport),
) -> PostRepository:
    return PostRepository(sessions, events=transport)


@lru_cache(maxsize=1)
def _asset_store() -> AssetStore:
    return build_asset_store()


def get_asset_client() -> AssetStoreClient:
    return AssetStoreClient(_asset_store())


async def get_authoring_session(
    operator: CurrentOperator = Depends(get_current_operator),
    repository: PostRepository = Depends(get_post_repository),
    assets: AssetStoreClient = Depends(get_asset_client),
) -> AuthoringSession:
    session = AuthoringSession(operator, repository, assets)
    try:
        await session.posts.refresh()
    except StoreError as exc:
        raise HTTPException(status_code=502, detail=str(exc))
    return session
