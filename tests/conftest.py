"""
Pytest Configuration and Fixtures

In-memory Mongo (mongomock-motor), a fake upload provider and an ASGI client
with the store and resolver dependencies overridden.
"""
import asyncio
import os
from datetime import datetime, timedelta

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from mongomock_motor import AsyncMongoMockClient

from main import app
from src.api.routes_videos import get_asset_resolver, get_video_store
from src.core.config import settings
from src.database import video_store as video_store_module
from src.database.video_store import VideoStore
from src.utils.asset_resolver import AssetResolver
from src.utils.upload_gateway import ProviderError, UploadResult

OWNER_ID = "usr_owner"
OTHER_OWNER_ID = "usr_other"


class FakeGateway:
    """Stands in for the media provider; records every call."""

    def __init__(self, duration=120.0, fail_on=(), delay=0):
        self.duration = duration
        self.fail_on = set(fail_on)
        self.delay = delay
        self.calls = []
        self.deleted = []
        self.fail_delete = False

    async def upload(self, local_path, options=None):
        resource_type = (options or {}).get("resource_type", "video")
        self.calls.append((local_path, resource_type, os.path.exists(local_path)))
        if self.delay:
            await asyncio.sleep(self.delay)
        if resource_type in self.fail_on:
            raise ProviderError("provider rejected the file")
        name = os.path.basename(local_path)
        return UploadResult(
            url=f"https://cdn.example.com/{resource_type}/{name}",
            key=f"{resource_type}/{name}",
            resource_type=resource_type,
            bytes=os.path.getsize(local_path),
            duration_seconds=self.duration if resource_type == "video" else None,
        )

    async def delete(self, key):
        if self.fail_delete:
            raise ProviderError("delete refused")
        self.deleted.append(key)


@pytest.fixture
def clock(monkeypatch):
    """Makes every store timestamp one second later than the last."""
    state = {"now": datetime(2024, 1, 1, 12, 0, 0)}

    def tick():
        state["now"] += timedelta(seconds=1)
        return state["now"]

    monkeypatch.setattr(video_store_module, "utc_now", tick)
    return state


@pytest_asyncio.fixture
async def mongo_db():
    client = AsyncMongoMockClient()
    db = client["videotube_test"]
    await db["users"].insert_many([
        {"_id": OWNER_ID, "email": "owner@example.com"},
        {"_id": OTHER_OWNER_ID, "email": "other@example.com"},
    ])
    yield db


@pytest_asyncio.fixture
async def store(mongo_db):
    video_store = VideoStore(mongo_db["videos"], mongo_db["users"])
    await video_store.ensure_indexes()
    return video_store


@pytest.fixture
def video_fields():
    return {
        "video_file_ref": "https://cdn/x.mp4",
        "thumbnail_ref": "https://cdn/x.jpg",
        "title": "T",
        "description": "D",
        "duration_seconds": 120,
        "owner": OWNER_ID,
    }


@pytest.fixture
def temp_dir(tmp_path, monkeypatch):
    directory = tmp_path / "temp"
    directory.mkdir()
    monkeypatch.setattr(settings, "TEMP_UPLOAD_DIR", str(directory))
    return directory


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest_asyncio.fixture
async def client(store, gateway, temp_dir):
    app.dependency_overrides[get_video_store] = lambda: store
    app.dependency_overrides[get_asset_resolver] = lambda: AssetResolver(gateway, timeout=5)

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as test_client:
        yield test_client

    app.dependency_overrides.clear()
