"""In-memory task reminder scheduler."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional, Protocol

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..models.auth import User
from ..models.task import Task
from ..schemas.task import as_utc
from . import auth_svc, task_svc

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NotificationJob:
    task_id: str
    user_id: str
    scheduled_for: datetime


class ReminderSender(Protocol):
    async def send_task_reminder(self, user: User, task: Task) -> None: ...


class LoggingReminderSender:
    """Default sender: records the reminder in the log."""

    async def send_task_reminder(self, user: User, task: Task) -> None:
        logger.info("Reminder for %s: task %r is due at %s", user.username, task.title, task.due_date)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class NotificationScheduler:
    """Holds reminders in a queue sorted by fire time and polls it.

    Scheduling the same task twice before the first reminder fires yields two
    reminders; entries are never de-duplicated.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        sender: ReminderSender | None = None,
        *,
        check_interval_seconds: float = 60.0,
        lead_minutes: int = 30,
    ) -> None:
        self._session_factory = session_factory
        self._sender = sender or LoggingReminderSender()
        self._check_interval = check_interval_seconds
        self._lead = timedelta(minutes=lead_minutes)
        self._queue: list[NotificationJob] = []
        self._processing = False
        self._task: Optional[asyncio.Task] = None
        self._stop_event = asyncio.Event()

    @property
    def pending(self) -> list[NotificationJob]:
        return list(self._queue)

    def schedule_task_reminder(
        self,
        task_id: str,
        user_id: str,
        due_date: datetime,
        *,
        now: datetime | None = None,
    ) -> NotificationJob | None:
        """Queue a reminder `lead_minutes` before `due_date`; None if already past."""
        fire_at = as_utc(due_date) - self._lead
        if fire_at <= (now or _utcnow()):
            return None
        job = NotificationJob(task_id=task_id, user_id=user_id, scheduled_for=fire_at)
        self._queue.append(job)
        self._queue.sort(key=lambda j: j.scheduled_for)
        return job

    async def schedule_upcoming_reminders(self, *, now: datetime | None = None) -> int:
        """Schedule reminders for every task due within the next 24 hours."""
        current = now or _utcnow()
        async with self._session_factory() as db:
            upcoming = await task_svc.list_tasks_due_between(db, current, current + timedelta(hours=24))
        scheduled = 0
        for task in upcoming:
            if task.due_date and self.schedule_task_reminder(task.id, task.user_id, task.due_date, now=current):
                scheduled += 1
        return scheduled

    async def process_queue(self, *, now: datetime | None = None) -> int:
        """Fire every reminder that is due. Returns how many were sent."""
        if self._processing or not self._queue:
            return 0
        current = now or _utcnow()
        due = [job for job in self._queue if job.scheduled_for <= current]
        if not due:
            return 0

        self._processing = True
        self._queue = [job for job in self._queue if job.scheduled_for > current]
        sent = 0
        try:
            for job in due:
                try:
                    if await self._send(job):
                        sent += 1
                except Exception:
                    logger.exception("Failed to process reminder for task %s", job.task_id)
        finally:
            self._processing = False
        return sent

    async def _send(self, job: NotificationJob) -> bool:
        async with self._session_factory() as db:
            task = await task_svc.get_task(db, job.task_id, job.user_id)
            if task is None:
                logger.warning("Reminder skipped, task not found: %s", job.task_id)
                return False
            user = await auth_svc.get_user(db, job.user_id)
            if user is None:
                logger.warning("Reminder skipped, user not found: %s", job.user_id)
                return False
        await self._sender.send_task_reminder(user, task)
        return True

    def start(self) -> None:
        if self._task is not None:
            return
        self._stop_event.clear()
        self._task = asyncio.create_task(self._run_loop(), name="task-reminder-scheduler")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._stop_event.set()
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        finally:
            self._task = None

    async def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                await self.process_queue()
            except asyncio.CancelledError:
                raise
            except Exception:  # pragma: no cover
                logger.exception("Reminder scheduler loop failed")
            await asyncio.sleep(self._check_interval)
