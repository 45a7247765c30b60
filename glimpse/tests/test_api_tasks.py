"""Test task API routes."""

from __future__ import annotations

import json

import pytest
from httpx import AsyncClient


def _week(start: str, end: str) -> dict:
    return {"week": json.dumps({"start": start, "end": end})}


@pytest.mark.asyncio
async def test_tasks_require_session(client: AsyncClient):
    resp = await client.get("/api/tasks")
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_create_and_list_week(client: AsyncClient, planner: dict):
    resp = await client.post(
        "/api/tasks",
        json={"title": "Standup", "dueDate": "2026-03-03T09:00:00Z", "priority": "high"},
    )
    assert resp.status_code == 201
    body = resp.json()
    assert body["title"] == "Standup"
    assert body["userId"] == planner["id"]
    assert body["priority"] == "high"
    assert body["completed"] is False

    await client.post("/api/tasks", json={"title": "Far away", "dueDate": "2026-09-01T09:00:00Z"})

    resp = await client.get("/api/tasks", params=_week("2026-03-02T00:00:00Z", "2026-03-08T23:59:59Z"))
    assert resp.status_code == 200
    assert [t["title"] for t in resp.json()] == ["Standup"]


@pytest.mark.asyncio
async def test_create_accepts_normal_priority_and_string_completed(client: AsyncClient, planner: dict):
    resp = await client.post("/api/tasks", json={"title": "Legacy", "priority": "normal", "completed": "true"})
    assert resp.status_code == 201
    assert resp.json()["priority"] == "medium"
    assert resp.json()["completed"] is True


@pytest.mark.asyncio
async def test_create_validation(client: AsyncClient, planner: dict):
    assert (await client.post("/api/tasks", json={"title": ""})).status_code == 422
    assert (await client.post("/api/tasks", json={"title": "x" * 101})).status_code == 422
    assert (await client.post("/api/tasks", json={"title": "ok", "priority": "urgent"})).status_code == 422
    assert (await client.post("/api/tasks", json={"title": "ok", "dueDate": "someday"})).status_code == 422


@pytest.mark.asyncio
async def test_invalid_week_parameter(client: AsyncClient, planner: dict):
    resp = await client.get("/api/tasks", params={"week": "not json"})
    assert resp.status_code == 400
    resp = await client.get("/api/tasks", params={"week": json.dumps({"start": "2026-03-02"})})
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_update_task(client: AsyncClient, planner: dict):
    created = (await client.post("/api/tasks", json={"title": "Draft"})).json()
    resp = await client.put("/api/tasks", json={"id": created["id"], "completed": True})
    assert resp.status_code == 200
    body = resp.json()
    assert body["completed"] is True
    assert body["title"] == "Draft"


@pytest.mark.asyncio
async def test_update_missing_task_is_404(client: AsyncClient, planner: dict):
    resp = await client.put("/api/tasks", json={"id": "missing", "title": "X"})
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_delete_task(client: AsyncClient, planner: dict):
    created = (await client.post("/api/tasks", json={"title": "Temp"})).json()
    resp = await client.request("DELETE", "/api/tasks", json={"id": created["id"]})
    assert resp.status_code == 200
    assert (await client.get("/api/tasks")).json() == []
    resp = await client.request("DELETE", "/api/tasks", json={"id": created["id"]})
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_tasks_are_private_to_their_owner(client: AsyncClient, planner: dict):
    created = (await client.post("/api/tasks", json={"title": "Mine"})).json()

    await client.post("/api/auth/logout")
    resp = await client.post("/api/auth/register", json={"username": "intruder", "password": "secret123"})
    assert resp.status_code == 201

    assert (await client.get("/api/tasks")).json() == []
    resp = await client.put("/api/tasks", json={"id": created["id"], "title": "Hacked"})
    assert resp.status_code == 404
    resp = await client.request("DELETE", "/api/tasks", json={"id": created["id"]})
    assert resp.status_code == 404
