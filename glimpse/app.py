"""FastAPI application factory for Weekly Glimpse."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .auth import AttemptLimiter
from .config import GlimpseSettings, settings
from .database import build_engine, build_session_factory
from .errors import GlimpseError, glimpse_error_handler
from .models import Base
from .realtime.channel import TaskChannel
from .realtime.manager import ConnectionManager
from .routers import auth, health, realtime, tasks
from .security import SessionMiddleware
from .services.notification import NotificationScheduler, ReminderSender

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings_obj: GlimpseSettings = app.state.settings
    logging.getLogger("glimpse").setLevel(settings_obj.log_level.upper())

    # Auto-create tables for SQLite (local dev)
    if settings_obj.is_sqlite and app.state.engine is not None:
        async with app.state.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    scheduler: NotificationScheduler = app.state.scheduler
    if settings_obj.reminders_enabled:
        scheduled = await scheduler.schedule_upcoming_reminders()
        logger.info("Scheduled %d upcoming reminders", scheduled)
        scheduler.start()
    yield
    await scheduler.stop()
    if app.state.engine is not None:
        await app.state.engine.dispose()


def create_app(
    settings_obj: GlimpseSettings | None = None,
    *,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
    reminder_sender: ReminderSender | None = None,
) -> FastAPI:
    """Build the app and the services it owns.

    When `session_factory` is given the caller owns the engine and no tables
    are created at startup.
    """
    settings_obj = settings_obj or settings
    engine = None
    if session_factory is None:
        engine = build_engine(settings_obj)
        session_factory = build_session_factory(engine)

    app = FastAPI(title=settings_obj.app_title, lifespan=lifespan)
    app.state.settings = settings_obj
    app.state.engine = engine
    app.state.session_factory = session_factory
    app.state.login_limiter = AttemptLimiter()
    app.state.scheduler = NotificationScheduler(
        session_factory,
        reminder_sender,
        check_interval_seconds=settings_obj.reminder_check_interval_seconds,
        lead_minutes=settings_obj.reminder_lead_minutes,
    )
    app.state.task_channel = TaskChannel(
        ConnectionManager(),
        session_factory,
        calendar_room=settings_obj.realtime_calendar_room,
        scheduler=app.state.scheduler,
    )

    app.add_middleware(SessionMiddleware)
    app.add_exception_handler(GlimpseError, glimpse_error_handler)

    app.include_router(health.router)
    app.include_router(auth.router)
    app.include_router(tasks.router)
    app.include_router(realtime.router)
    return app
