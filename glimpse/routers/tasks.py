"""Task JSON API, owner scoped."""

from __future__ import annotations

import json
import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from ..auth import SessionClaims
from ..database import get_db
from ..schemas.task import TaskCreate, TaskDelete, TaskRead, TaskUpdate, WeekRange
from ..security import require_session
from ..services import task_svc

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/tasks", tags=["tasks"])


def _parse_week(raw: str | None) -> WeekRange | None:
    if raw is None:
        return None
    try:
        week = WeekRange.model_validate(json.loads(raw))
    except (ValueError, ValidationError):
        raise HTTPException(status_code=400, detail="Invalid week parameter")
    if week.start is None or week.end is None:
        raise HTTPException(status_code=400, detail="Invalid week parameter")
    return week


async def _after_write(request: Request, task: TaskRead, action: str) -> None:
    scheduler = getattr(request.app.state, "scheduler", None)
    if scheduler is not None and task.due_date is not None and action != "deleted":
        scheduler.schedule_task_reminder(task.id, task.user_id, task.due_date)
    channel = getattr(request.app.state, "task_channel", None)
    if channel is not None:
        await channel.publish({
            "room": request.app.state.settings.realtime_calendar_room,
            "action": action,
            "task": task.to_wire(),
        })


@router.get("", response_model=list[TaskRead])
async def list_tasks(
    week: str | None = None,
    session: SessionClaims = Depends(require_session),
    db: AsyncSession = Depends(get_db),
):
    window = _parse_week(week)
    tasks = await task_svc.list_tasks(
        db,
        session.user_id,
        start=window.start if window else None,
        end=window.end if window else None,
    )
    return [TaskRead.model_validate(t) for t in tasks]


@router.post("", response_model=TaskRead, status_code=201)
async def create_task(
    request: Request,
    body: TaskCreate,
    session: SessionClaims = Depends(require_session),
    db: AsyncSession = Depends(get_db),
):
    task = await task_svc.create_task(db, session.user_id, **body.column_values())
    result = TaskRead.model_validate(task)
    await _after_write(request, result, "created")
    return result


@router.put("", response_model=TaskRead)
async def update_task(
    request: Request,
    body: TaskUpdate,
    session: SessionClaims = Depends(require_session),
    db: AsyncSession = Depends(get_db),
):
    task = await task_svc.update_task(db, body.id, session.user_id, **body.changes())
    if task is None:
        raise HTTPException(status_code=404, detail="Task not found")
    result = TaskRead.model_validate(task)
    await _after_write(request, result, "updated")
    return result


@router.delete("", response_model=TaskRead)
async def delete_task(
    request: Request,
    body: TaskDelete,
    session: SessionClaims = Depends(require_session),
    db: AsyncSession = Depends(get_db),
):
    task = await task_svc.delete_task(db, body.id, session.user_id)
    if task is None:
        raise HTTPException(status_code=404, detail="Task not found")
    result = TaskRead.model_validate(task)
    await _after_write(request, result, "deleted")
    return result
