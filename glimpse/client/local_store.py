"""On-device task table used in guest mode.

Rows carry no owner. `completed` is stored as "true"/"false" and `dueDate`
is kept exactly as the caller supplied it.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import DateTime, Integer, String, Text, delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from ..errors import StorageError

logger = logging.getLogger(__name__)


class LocalBase(DeclarativeBase):
    pass


class LocalTask(LocalBase):
    __tablename__ = "local_task"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(100))
    description: Mapped[str | None] = mapped_column(Text, default=None)
    due_date: Mapped[str | None] = mapped_column(String(64), default=None)
    priority: Mapped[str] = mapped_column(String(10), default="medium")
    completed: Mapped[str] = mapped_column(String(5), default="false")
    color: Mapped[str | None] = mapped_column(String(32), default=None)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )


# wire key -> column
_FIELDS = {
    "title": "title",
    "description": "description",
    "dueDate": "due_date",
    "priority": "priority",
    "completed": "completed",
    "color": "color",
}


def _encode_completed(value: Any) -> str:
    if isinstance(value, str):
        return "true" if value.strip().lower() == "true" else "false"
    return "true" if value else "false"


def _to_columns(data: dict[str, Any]) -> dict[str, Any]:
    columns: dict[str, Any] = {}
    for key, column in _FIELDS.items():
        if key not in data:
            continue
        value = data[key]
        if column == "completed":
            value = _encode_completed(value)
        elif column == "due_date" and value is not None and not isinstance(value, str):
            value = value.isoformat()
        columns[column] = value
    return columns


def _to_wire(row: LocalTask) -> dict[str, Any]:
    return {
        "id": row.id,
        "title": row.title,
        "description": row.description,
        "dueDate": row.due_date,
        "priority": row.priority,
        "completed": row.completed == "true",
        "color": row.color,
    }


class LocalTaskStore:
    """Async key-value table of guest tasks keyed by local integer id."""

    def __init__(self, url: str = "sqlite+aiosqlite:///glimpse-local.db", *, engine: AsyncEngine | None = None):
        self._engine = engine or create_async_engine(url)
        self._owns_engine = engine is None
        self._session_factory = async_sessionmaker(self._engine, class_=AsyncSession, expire_on_commit=False)

    async def init(self) -> None:
        async with self._engine.begin() as conn:
            await conn.run_sync(LocalBase.metadata.create_all)

    async def close(self) -> None:
        if self._owns_engine:
            await self._engine.dispose()

    async def __aenter__(self) -> "LocalTaskStore":
        await self.init()
        return self

    async def __aexit__(self, *args) -> None:
        await self.close()

    async def get_tasks(self) -> list[dict[str, Any]]:
        """All rows in insertion order."""
        try:
            async with self._session_factory() as db:
                rows = (await db.execute(select(LocalTask).order_by(LocalTask.id))).scalars().all()
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to read local tasks: {exc}") from exc
        return [_to_wire(row) for row in rows]

    async def add_task(self, data: dict[str, Any]) -> int:
        row = LocalTask(**_to_columns(data))
        try:
            async with self._session_factory() as db:
                db.add(row)
                await db.commit()
                await db.refresh(row)
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to save local task: {exc}") from exc
        return row.id

    async def update_task(self, data: dict[str, Any]) -> int:
        """Apply `data` to the row with ``data["id"]``; returns 1, or 0 if absent."""
        task_id = data.get("id")
        if task_id is None:
            return 0
        try:
            async with self._session_factory() as db:
                row = await db.get(LocalTask, int(task_id))
                if row is None:
                    return 0
                for column, value in _to_columns(data).items():
                    setattr(row, column, value)
                await db.commit()
        except (TypeError, ValueError):
            return 0
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to update local task {task_id}: {exc}") from exc
        return 1

    async def delete_task(self, task_id: int | str) -> None:
        """Delete a row; deleting a missing id is a no-op."""
        try:
            key = int(task_id)
        except (TypeError, ValueError):
            return
        try:
            async with self._session_factory() as db:
                await db.execute(delete(LocalTask).where(LocalTask.id == key))
                await db.commit()
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to delete local task {task_id}: {exc}") from exc
