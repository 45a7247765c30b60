"""Async database engine and session factory."""

from __future__ import annotations

from fastapi import Request
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from .config import GlimpseSettings


def build_engine(settings_obj: GlimpseSettings) -> AsyncEngine:
    return create_async_engine(settings_obj.database_url, echo=settings_obj.echo_sql)


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def get_db(request: Request):
    """FastAPI dependency that yields an async session from the app's factory."""
    session_factory = request.app.state.session_factory
    async with session_factory() as session:
        yield session
