"""Event handling for the collaborative task channel.

Client events: ``join``, ``leave`` and ``task update``. Server events:
``task updated`` and ``error``. A connection's messages are handled one at a
time, in the order received.
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..models.task import Task
from ..schemas.task import TaskCreate, TaskPatch, TaskRead
from ..services import task_svc
from ..services.notification import NotificationScheduler
from .manager import Connection, ConnectionManager

logger = logging.getLogger(__name__)

TASK_UPDATED = "task updated"
ERROR = "error"


class TaskChannel:
    def __init__(
        self,
        manager: ConnectionManager,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        calendar_room: str = "calendar",
        scheduler: NotificationScheduler | None = None,
    ) -> None:
        self.manager = manager
        self._session_factory = session_factory
        self._calendar_room = calendar_room
        self._scheduler = scheduler

    async def handle(self, conn: Connection, message: Any) -> None:
        if not isinstance(message, dict):
            await self._error(conn, "Malformed message")
            return
        event = message.get("event")
        data = message.get("data")
        if event == "join":
            await self.on_join(conn, data)
        elif event == "leave":
            await self.on_leave(conn, data)
        elif event == "task update":
            await self.on_task_update(conn, data)
        else:
            await self._error(conn, f"Unknown event: {event!r}")

    async def on_join(self, conn: Connection, room: Any) -> None:
        if not isinstance(room, str) or not room:
            await self._error(conn, "Room name required")
            return
        self.manager.join(conn, room)
        if room != self._calendar_room:
            return
        try:
            async with self._session_factory() as db:
                tasks = await task_svc.list_all_tasks(db)
        except SQLAlchemyError:
            logger.exception("Error fetching tasks for client %s", conn.id)
            await self._error(conn, "Failed to load tasks")
            return
        logger.info("Sending %d tasks to newly joined client %s", len(tasks), conn.id)
        await self.manager.send(
            conn,
            TASK_UPDATED,
            {"room": room, "tasks": [TaskRead.model_validate(t).to_wire() for t in tasks]},
        )

    async def on_leave(self, conn: Connection, room: Any) -> None:
        if isinstance(room, str) and room:
            self.manager.leave(conn, room)

    async def on_task_update(self, conn: Connection, payload: Any) -> None:
        if not isinstance(payload, dict):
            await self._error(conn, "Failed to update task(s)")
            return
        if not conn.is_authenticated:
            logger.warning("Rejected task update from anonymous client %s", conn.id)
            await self._error(conn, "Unauthorized: No user ID found")
            return

        if isinstance(payload.get("tasks"), list):
            await self._apply_batch(conn, payload["tasks"])
            await self._broadcast(payload)
        elif payload.get("id"):
            if await self._apply_single(conn, payload):
                await self._broadcast(payload)
        else:
            await self._error(conn, "Failed to update task(s)")

    async def _apply_batch(self, conn: Connection, items: list[Any]) -> int:
        """Persist each task the sender owns; returns how many were written."""
        applied = 0
        async with self._session_factory() as db:
            for item in items:
                if not isinstance(item, dict):
                    await self._error(conn, "Failed to update task: Invalid data")
                    continue
                if item.get("userId") != conn.user_id:
                    logger.warning("Unauthorized task update attempt: %s", item.get("id"))
                    continue
                try:
                    values = TaskCreate.model_validate(item).column_values()
                except ValidationError as exc:
                    logger.info("Invalid task in batch from client %s: %s", conn.id, exc.errors())
                    await self._error(conn, "Failed to update task: Invalid data")
                    continue
                try:
                    task = await self._persist(db, conn.user_id, item.get("id"), values)
                except SQLAlchemyError:
                    await db.rollback()
                    logger.exception("Error saving task %s", item.get("id"))
                    await self._error(conn, "Failed to update task")
                    continue
                if task is None:
                    await self._error(conn, "Unauthorized or task not found")
                    continue
                applied += 1
        return applied

    async def _apply_single(self, conn: Connection, payload: dict[str, Any]) -> bool:
        claimed_owner = payload.get("userId")
        if claimed_owner is not None and claimed_owner != conn.user_id:
            logger.warning("Unauthorized task update attempt: %s", payload.get("id"))
            await self._error(conn, "Unauthorized or task not found")
            return False
        fields = {k: v for k, v in payload.items() if k not in {"id", "room"}}
        try:
            changes = TaskPatch.model_validate(fields).changes()
        except ValidationError:
            await self._error(conn, "Failed to update task: Invalid data")
            return False
        try:
            async with self._session_factory() as db:
                task = await task_svc.update_task(db, str(payload["id"]), conn.user_id, **changes)
        except SQLAlchemyError:
            logger.exception("Error saving task %s", payload.get("id"))
            await self._error(conn, "Failed to update task(s)")
            return False
        if task is None:
            await self._error(conn, "Unauthorized or task not found")
            return False
        self._schedule(task)
        return True

    async def _persist(
        self, db: AsyncSession, user_id: str, task_id: Any, values: dict[str, Any]
    ) -> Task | None:
        if task_id:
            task = await task_svc.update_task(db, str(task_id), user_id, **values)
        else:
            task = await task_svc.create_task(db, user_id, **values)
        if task is not None:
            self._schedule(task)
        return task

    def _schedule(self, task: Task) -> None:
        if self._scheduler is not None and task.due_date is not None:
            self._scheduler.schedule_task_reminder(task.id, task.user_id, task.due_date)

    async def _broadcast(self, payload: dict[str, Any]) -> None:
        room = payload.get("room")
        if isinstance(room, str) and room:
            await self.manager.broadcast(room, TASK_UPDATED, payload)

    async def _error(self, conn: Connection, message: str) -> None:
        await self.manager.send(conn, ERROR, {"message": message})

    async def publish(self, payload: dict[str, Any]) -> int:
        """Push a server-side mutation to the calendar room."""
        return await self.manager.broadcast(self._calendar_room, TASK_UPDATED, payload)
