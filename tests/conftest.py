# tests/conftest.py
from __future__ import annotations

import os
import tempfile
from collections.abc import AsyncIterator
from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

# Settings are read at import time; point them at throwaway backends first.
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("BLOB_STORAGE_PATH", tempfile.mkdtemp(prefix="volvox-blobs-"))
os.environ.setdefault("BLOB_PUBLIC_BASE_URL", "http://test/blobs")

from volvox.database import create_tables, get_db
from volvox.main import app as fastapi_app
from volvox.services.blob_store import BlobStore, get_blob_store
from volvox.services.posts.models import ExternalLink, Post
from volvox.services.posts.service import PostService
from volvox.services.record_store import RecordStore

BLOB_BASE_URL = "http://test/blobs"
_EPOCH = datetime(2024, 1, 1, tzinfo=timezone.utc)


def make_post(
    post_id: str,
    order: Optional[int],
    created_offset: int = 0,
    **kwargs,
) -> Post:
    """Build an in-memory post; created_offset is seconds after a fixed epoch."""
    kwargs.setdefault("title", f"Post {post_id}")
    kwargs.setdefault("description", f"About {post_id}")
    kwargs.setdefault("content", ExternalLink(url=f"https://example.com/{post_id}"))
    return Post(
        id=post_id,
        order=order,
        created_at=_EPOCH + timedelta(seconds=created_offset),
        **kwargs,
    )


@pytest.fixture()
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    await create_tables(engine)
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture()
async def db_session(engine) -> AsyncIterator[AsyncSession]:
    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session


@pytest.fixture()
def record_store(db_session: AsyncSession) -> RecordStore:
    return RecordStore(db_session)


@pytest.fixture()
def blob_store(tmp_path) -> BlobStore:
    return BlobStore(str(tmp_path / "blobs"), BLOB_BASE_URL)


@pytest.fixture()
def post_service(record_store: RecordStore, blob_store: BlobStore) -> PostService:
    return PostService(record_store, blob_store, "posts")


@pytest.fixture()
async def client(db_session: AsyncSession, blob_store: BlobStore) -> AsyncIterator[AsyncClient]:
    async def _get_db_override():
        yield db_session

    fastapi_app.dependency_overrides[get_db] = _get_db_override
    fastapi_app.dependency_overrides[get_blob_store] = lambda: blob_store
    try:
        async with AsyncClient(
            transport=ASGITransport(app=fastapi_app), base_url="http://test"
        ) as test_client:
            yield test_client
    finally:
        fastapi_app.dependency_overrides.pop(get_db, None)
        fastapi_app.dependency_overrides.pop(get_blob_store, None)
