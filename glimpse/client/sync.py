"""Migrates guest tasks to the server after sign-in.

A pass reads every local row, fetches the signed-in user's server tasks once
for a wide window around now, then creates or updates one server task per
local row. Rows that reached the server are removed from the local store;
rows that failed stay for the next pass.
"""

from __future__ import annotations

import calendar
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable

from ..errors import GlimpseError, SyncError
from .api import TaskApiClient
from .auth_state import AuthState
from .local_store import LocalTaskStore

logger = logging.getLogger(__name__)

CREATED = "created"
UPDATED = "updated"
FAILED = "failed"

_CREATE_FIELDS = ("title", "description", "dueDate", "priority", "completed", "color")
_OVERLAY_FIELDS = ("title", "description", "priority", "completed")


@dataclass
class SyncJob:
    task: dict[str, Any]
    outcome: str | None = None
    error: str | None = None

    @property
    def synced(self) -> bool:
        return self.outcome in (CREATED, UPDATED)


def _shift_months(value: datetime, months: int) -> datetime:
    """Move `value` by whole calendar months, clamping the day to the month's end."""
    index = value.month - 1 + months
    year = value.year + index // 12
    month = index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def find_potential_duplicate(task: dict[str, Any], server_tasks: list[dict[str, Any]]) -> dict[str, Any] | None:
    """First server task with the same title and due date, compared as-is."""
    for candidate in server_tasks:
        if candidate.get("title") == task.get("title") and candidate.get("dueDate") == task.get("dueDate"):
            return candidate
    return None


class SyncService:
    def __init__(
        self,
        local_store: LocalTaskStore,
        remote: TaskApiClient,
        *,
        window_months: int = 6,
        clock: Callable[[], datetime] | None = None,
    ):
        self.local_store = local_store
        self.remote = remote
        self.window_months = window_months
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def attach(self, auth_state: AuthState) -> None:
        """Run a sync pass every time `auth_state` signs a user in."""

        async def _on_login(user: dict[str, Any]) -> None:
            synced = await self.sync_tasks_on_login()
            logger.info("Synced %d guest tasks for %s", synced, user.get("username") or user.get("id"))

        auth_state.on_login(_on_login)

    async def sync_tasks_on_login(self) -> int:
        jobs = await self.run_sync_pass()
        return sum(1 for job in jobs if job.synced)

    async def run_sync_pass(self) -> list[SyncJob]:
        try:
            local_tasks = await self.local_store.get_tasks()
        except GlimpseError as exc:
            logger.error("Sync aborted, local store unreadable: %s", exc)
            raise SyncError("Failed to synchronize tasks") from exc
        if not local_tasks:
            return []

        now = self._clock()
        try:
            server_tasks = await self.remote.get_week_tasks(
                _shift_months(now, -self.window_months),
                _shift_months(now, self.window_months),
            )
        except GlimpseError as exc:
            logger.error("Sync aborted, server tasks unavailable: %s", exc)
            raise SyncError("Failed to synchronize tasks") from exc

        jobs = [SyncJob(task=task) for task in local_tasks]
        for job in jobs:
            await self._sync_one(job, server_tasks or [])

        synced = [job for job in jobs if job.synced]
        try:
            for job in synced:
                await self.local_store.delete_task(job.task["id"])
        except GlimpseError as exc:
            logger.error("Synced tasks could not be removed from the local store: %s", exc)
            raise SyncError("Failed to synchronize tasks") from exc
        failed = len(jobs) - len(synced)
        if failed:
            logger.warning("%d guest tasks failed to sync and were kept locally", failed)
        return jobs

    async def _sync_one(self, job: SyncJob, server_tasks: list[dict[str, Any]]) -> None:
        task = job.task
        try:
            duplicate = find_potential_duplicate(task, server_tasks)
            if duplicate is not None:
                payload = dict(duplicate)
                payload.update({key: task.get(key) for key in _OVERLAY_FIELDS})
                await self.remote.update_task(payload)
                job.outcome = UPDATED
            else:
                await self.remote.create_task({key: task.get(key) for key in _CREATE_FIELDS})
                job.outcome = CREATED
        except Exception as exc:
            logger.warning("Failed to sync task %s: %s", task.get("id"), exc)
            job.outcome = FAILED
            job.error = str(exc)
