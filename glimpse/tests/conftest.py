"""Async test fixtures for Glimpse tests using SQLite."""

from __future__ import annotations

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from glimpse.app import create_app
from glimpse.config import GlimpseSettings
from glimpse.models.auth import User
from glimpse.models.base import Base


@pytest.fixture(scope="session")
def anyio_backend():
    return "asyncio"


@pytest.fixture
def test_settings() -> GlimpseSettings:
    return GlimpseSettings(
        _env_file=None,
        database_url="sqlite+aiosqlite:///:memory:",
        auth_secret="test-secret",
        reminders_enabled=False,
    )


@pytest_asyncio.fixture
async def engine():
    eng = create_async_engine("sqlite+aiosqlite:///:memory:", echo=False)
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


async def _make_user(db: AsyncSession, username: str) -> User:
    user = User(username=username, password_hash="pbkdf2_sha256$1$00$00")
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


@pytest_asyncio.fixture
async def user(db: AsyncSession) -> User:
    return await _make_user(db, "alice")


@pytest_asyncio.fixture
async def other_user(db: AsyncSession) -> User:
    return await _make_user(db, "mallory")


@pytest_asyncio.fixture
async def app(test_settings, session_factory):
    return create_app(test_settings, session_factory=session_factory)


@pytest_asyncio.fixture
async def client(app):
    """HTTPX async test client against the Glimpse app."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


@pytest_asyncio.fixture
async def planner(client: AsyncClient) -> dict:
    """Registers a user; `client` carries its session cookie afterwards."""
    resp = await client.post("/api/auth/register", json={"username": "planner", "password": "secret123"})
    assert resp.status_code == 201
    return resp.json()
