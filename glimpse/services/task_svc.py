"""Task service.

Every write is scoped by owner (`Task.user_id == user_id`) in the query itself.
Concurrent writers to the same row are not versioned: last write wins.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.task import Task
from ..schemas.task import coerce_datetime

_WRITABLE = {"title", "description", "due_date", "priority", "completed", "color"}


def _clean(values: dict) -> dict:
    data = {k: v for k, v in values.items() if k in _WRITABLE}
    if "due_date" in data:
        data["due_date"] = coerce_datetime(data["due_date"])
    return data


async def list_tasks(
    db: AsyncSession,
    user_id: str,
    *,
    start: datetime | None = None,
    end: datetime | None = None,
) -> list[Task]:
    stmt = select(Task).where(Task.user_id == user_id)
    if start is not None:
        stmt = stmt.where(Task.due_date >= start)
    if end is not None:
        stmt = stmt.where(Task.due_date <= end)
    stmt = stmt.order_by(Task.due_date.asc().nullslast(), Task.created_at.asc())
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def list_all_tasks(db: AsyncSession) -> list[Task]:
    """Every task of every user (real-time catch-up)."""
    stmt = select(Task).order_by(Task.due_date.asc().nullslast(), Task.created_at.asc())
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def list_tasks_due_between(db: AsyncSession, start: datetime, end: datetime) -> list[Task]:
    stmt = select(Task).where(Task.due_date > start, Task.due_date <= end)
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def get_task(db: AsyncSession, task_id: str, user_id: str) -> Task | None:
    stmt = select(Task).where(Task.id == task_id, Task.user_id == user_id)
    return (await db.execute(stmt)).scalar_one_or_none()


async def create_task(db: AsyncSession, user_id: str, /, **kwargs) -> Task:
    task = Task(user_id=user_id, **_clean(kwargs))
    db.add(task)
    await db.commit()
    await db.refresh(task)
    return task


async def update_task(db: AsyncSession, task_id: str, user_id: str, /, **kwargs) -> Task | None:
    """Apply `kwargs` to the caller's task; None when it is missing or foreign."""
    task = await get_task(db, task_id, user_id)
    if not task:
        return None
    for key, value in _clean(kwargs).items():
        setattr(task, key, value)
    await db.commit()
    await db.refresh(task)
    return task


async def delete_task(db: AsyncSession, task_id: str, user_id: str) -> Task | None:
    task = await get_task(db, task_id, user_id)
    if not task:
        return None
    await db.delete(task)
    await db.commit()
    return task
