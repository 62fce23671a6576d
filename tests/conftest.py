import os
import tempfile

# configure before any blogdesk module reads its environment
os.environ.setdefault("CHANGE_TRANSPORT", "memory")
os.environ.setdefault("ASSET_STORE", "local")
os.environ.setdefault("MEDIA_ROOT", tempfile.mkdtemp(prefix="blogdesk-media-"))

import uuid
from typing import Dict, Optional

import pytest
from sqlalchemy.ext.asyncio import create_async_engine

from blogdesk.errors import UploadError
from blogdesk.infrastructure.asset_store import AssetStoreClient
from blogdesk.infrastructure.change_transport import InMemoryChangeTransport
from blogdesk.infrastructure.database import init_db, session_factory
from blogdesk.infrastructure.post_repository import PostRepository
from blogdesk.UAA.schemas import CurrentOperator


class FakeAssetStore:
    """Records uploads in memory; flip `fail` to simulate an outage."""

    def __init__(self):
        self.objects: Dict[str, bytes] = {}
        self.fail = False

    async def upload(self, key: str, data: bytes, content_type: Optional[str] = None) -> None:
        if self.fail:
            raise UploadError("bucket unavailable")
        self.objects[key] = data

    def public_url(self, key: str) -> str:
        return f"https://cdn.test/{key}"


@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'blogdesk.db'}")
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def sessions(engine):
    return session_factory(engine)


@pytest.fixture
def transport():
    return InMemoryChangeTransport()


@pytest.fixture
def repository(sessions, transport):
    return PostRepository(sessions, events=transport)


@pytest.fixture
def operator():
    return CurrentOperator(id=uuid.uuid4(), display_name="Alice")


@pytest.fixture
def asset_store():
    return FakeAssetStore()


@pytest.fixture
def assets(asset_store):
    return AssetStoreClient(asset_store)


@pytest.fixture
def make_fields(operator):
    def _make(**overrides):
        fields = {
            "title": "A",
            "description": "d",
            "content": "c",
            "author": "Alice",
            "published": False,
            "author_id": operator.id,
        }
        fields.update(overrides)
        return fields

    return _make
