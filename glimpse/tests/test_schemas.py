"""Task wire schema tests."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from glimpse.schemas.task import TaskCreate, TaskPatch, TaskRead, TaskUpdate, coerce_datetime


def test_coerce_datetime_variants():
    assert coerce_datetime("2026-03-04T10:00:00Z") == datetime(2026, 3, 4, 10, tzinfo=timezone.utc)
    assert coerce_datetime("2026-03-04") == datetime(2026, 3, 4, tzinfo=timezone.utc)
    assert coerce_datetime(datetime(2026, 3, 4, 10)) == datetime(2026, 3, 4, 10, tzinfo=timezone.utc)
    assert coerce_datetime("") is None
    with pytest.raises(ValueError):
        coerce_datetime("next tuesday")


def test_task_create_reads_camel_case():
    task = TaskCreate.model_validate({
        "title": "Review",
        "dueDate": "2026-03-04T10:00:00Z",
        "priority": "normal",
        "completed": "false",
        "userId": "someone-else",
        "unknown": 1,
    })
    values = task.column_values()
    assert values["priority"] == "medium"
    assert values["completed"] is False
    assert values["due_date"].tzinfo is not None
    assert "user_id" not in values


def test_task_create_limits():
    with pytest.raises(ValidationError):
        TaskCreate(title="")
    with pytest.raises(ValidationError):
        TaskCreate(title="ok", description="d" * 1001)
    assert TaskCreate(title="t" * 100).title == "t" * 100


def test_patch_only_reports_sent_fields():
    assert TaskPatch.model_validate({"completed": True}).changes() == {"completed": True}
    assert TaskPatch.model_validate({"description": None}).changes() == {"description": None}


def test_patch_rejects_null_required_fields():
    with pytest.raises(ValidationError):
        TaskPatch.model_validate({"title": None})


def test_update_drops_id_from_changes():
    update = TaskUpdate.model_validate({"id": "t1", "title": "New"})
    assert update.id == "t1"
    assert update.changes() == {"title": "New"}


def test_task_read_wire_format():
    read = TaskRead(
        id="t1",
        user_id="u1",
        title="Ship",
        due_date=datetime(2026, 3, 4, 10),
        priority="high",
        completed=False,
    )
    wire = read.to_wire()
    assert wire["userId"] == "u1"
    assert wire["dueDate"] == "2026-03-04T10:00:00Z"
