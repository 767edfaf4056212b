"""Shared fixtures: in-memory SQLite database, users, and an HTTP client."""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("RUN_MIGRATIONS", "false")

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.config import settings
from app.database import Base, get_db
from app.main import app
from app.models import Folder, User
from app.services.auth import create_access_token
from app.services.folder_paths import compute_expected_paths


@pytest.fixture(autouse=True)
def _storage_dir(tmp_path, monkeypatch):
    monkeypatch.setattr(settings, "storage_dir", str(tmp_path / "storage"))
    return tmp_path / "storage"


@pytest_asyncio.fixture()
async def session_maker():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, expire_on_commit=False)

    await engine.dispose()


@pytest_asyncio.fixture()
async def db(session_maker) -> AsyncSession:
    async with session_maker() as s:
        yield s


async def _make_user(db: AsyncSession, external_id: str) -> int:
    user = User(external_id=external_id, email=f"{external_id}@example.com", name=external_id)
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user.id


@pytest_asyncio.fixture()
async def user_id(db) -> int:
    return await _make_user(db, "alice")


@pytest_asyncio.fixture()
async def other_user_id(db) -> int:
    return await _make_user(db, "bob")


@pytest_asyncio.fixture()
async def client(session_maker):
    async def _get_db():
        async with session_maker() as s:
            yield s

    app.dependency_overrides[get_db] = _get_db
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()


def auth_headers(subject: str = "alice", email: str | None = None) -> dict[str, str]:
    token = create_access_token(subject, email=email or f"{subject}@example.com")
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def alice_headers() -> dict[str, str]:
    return auth_headers("alice")


@pytest.fixture()
def bob_headers() -> dict[str, str]:
    return auth_headers("bob")


async def assert_paths_consistent(db: AsyncSession, user_id: int) -> None:
    """Every stored path must equal the one derived from parent pointers."""
    result = await db.execute(
        select(Folder).where(Folder.user_id == user_id).execution_options(populate_existing=True)
    )
    folders = list(result.scalars().all())
    expected = compute_expected_paths(folders)
    assert len(expected) == len(folders)
    for folder in folders:
        assert folder.path == expected[folder.id], folder


@pytest.fixture()
def check_paths(db):
    async def _check(user_id: int) -> None:
        await assert_paths_consistent(db, user_id)

    return _check
