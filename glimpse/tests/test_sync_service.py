"""Guest-to-account sync tests."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from unittest.mock import AsyncMock

import httpx

import pytest
import pytest_asyncio

from glimpse.client.api import TaskApiClient
from glimpse.client.auth_state import AuthState
from glimpse.client.local_store import LocalTaskStore
from glimpse.client.sync import CREATED, FAILED, UPDATED, SyncService, _shift_months, find_potential_duplicate
from glimpse.errors import ApiError, NetworkError, SyncError

NOW = datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc)


@pytest_asyncio.fixture
async def store():
    async with LocalTaskStore("sqlite+aiosqlite:///:memory:") as s:
        yield s


@pytest.fixture
def remote():
    api = AsyncMock()
    api.get_week_tasks.return_value = []
    api.create_task.side_effect = lambda data: {**data, "id": "srv-new"}
    api.update_task.side_effect = lambda data: data
    return api


@pytest.fixture
def service(store, remote) -> SyncService:
    return SyncService(store, remote, clock=lambda: NOW)


@pytest.mark.asyncio
async def test_empty_store_makes_no_remote_calls(service: SyncService, remote):
    assert await service.sync_tasks_on_login() == 0
    assert remote.method_calls == []


@pytest.mark.asyncio
async def test_new_task_is_created_without_local_id(service: SyncService, store, remote):
    await store.add_task({"title": "Buy milk", "dueDate": "2026-03-04", "priority": "low", "completed": False})

    assert await service.sync_tasks_on_login() == 1

    remote.create_task.assert_awaited_once_with({
        "title": "Buy milk",
        "description": None,
        "dueDate": "2026-03-04",
        "priority": "low",
        "completed": False,
        "color": None,
    })
    remote.update_task.assert_not_awaited()
    assert await store.get_tasks() == []


@pytest.mark.asyncio
async def test_duplicate_updates_server_task(service: SyncService, store, remote):
    remote.get_week_tasks.return_value = [
        {"id": "srv-1", "title": "Gym", "dueDate": "2026-03-05"},
        {"id": "srv-9", "title": "Buy milk", "dueDate": "2026-03-04", "priority": "medium", "completed": False},
    ]
    await store.add_task({"title": "Buy milk", "dueDate": "2026-03-04", "priority": "high", "completed": True})

    [job] = await service.run_sync_pass()

    assert job.outcome == UPDATED
    remote.create_task.assert_not_awaited()
    sent = remote.update_task.await_args.args[0]
    assert sent["id"] == "srv-9"
    assert sent["priority"] == "high"
    assert sent["completed"] is True
    assert sent["dueDate"] == "2026-03-04"


@pytest.mark.asyncio
async def test_partial_failure_keeps_failed_rows(service: SyncService, store, remote):
    def create(data):
        if data["title"] == "A":
            raise ApiError("boom", status=500)
        return {**data, "id": "srv-b"}

    remote.create_task.side_effect = create
    await store.add_task({"title": "A"})
    await store.add_task({"title": "B"})

    jobs = await service.run_sync_pass()

    assert [(j.task["title"], j.outcome) for j in jobs] == [("A", FAILED), ("B", CREATED)]
    assert jobs[0].error == "boom"
    assert [t["title"] for t in await store.get_tasks()] == ["A"]


@pytest.mark.asyncio
async def test_second_pass_is_a_noop(service: SyncService, store, remote):
    await store.add_task({"title": "Once"})
    assert await service.sync_tasks_on_login() == 1
    assert await service.sync_tasks_on_login() == 0
    assert remote.create_task.await_count == 1
    assert remote.get_week_tasks.await_count == 1


@pytest.mark.asyncio
async def test_server_fetched_once_over_wide_window(service: SyncService, store, remote):
    for title in ("One", "Two", "Three"):
        await store.add_task({"title": title})

    assert await service.sync_tasks_on_login() == 3

    remote.get_week_tasks.assert_awaited_once_with(
        datetime(2025, 9, 15, 12, 0, tzinfo=timezone.utc),
        datetime(2026, 9, 15, 12, 0, tzinfo=timezone.utc),
    )
    assert remote.create_task.await_count == 3
    assert [c.args[0]["title"] for c in remote.create_task.await_args_list] == ["One", "Two", "Three"]


@pytest.mark.asyncio
async def test_failed_server_fetch_aborts_sync(service: SyncService, store, remote):
    remote.get_week_tasks.side_effect = NetworkError("offline")
    await store.add_task({"title": "Stay local"})

    with pytest.raises(SyncError, match="Failed to synchronize tasks"):
        await service.sync_tasks_on_login()

    remote.create_task.assert_not_awaited()
    assert len(await store.get_tasks()) == 1


@pytest.mark.asyncio
async def test_login_triggers_sync(service: SyncService, store, remote):
    auth = AuthState()
    service.attach(auth)
    await store.add_task({"title": "Guest work"})

    await auth.login({"id": "u1", "username": "alice"})

    assert auth.is_authenticated
    remote.create_task.assert_awaited_once()
    assert await store.get_tasks() == []


def test_duplicate_match_is_exact():
    server = [{"id": "s1", "title": "Gym", "dueDate": "2026-03-05T00:00:00+00:00"}]
    assert find_potential_duplicate({"title": "Gym", "dueDate": "2026-03-05"}, server) is None
    assert find_potential_duplicate({"title": "gym", "dueDate": "2026-03-05T00:00:00+00:00"}, server) is None
    assert find_potential_duplicate({"title": "Gym", "dueDate": "2026-03-05T00:00:00+00:00"}, server) is server[0]


def test_shift_months_clamps_day():
    assert _shift_months(datetime(2026, 8, 31), -6) == datetime(2026, 2, 28)
    assert _shift_months(datetime(2026, 11, 30), 3) == datetime(2027, 2, 28)


@pytest.mark.asyncio
async def test_unreadable_response_fails_only_that_task(store):
    created = []

    def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "GET":
            return httpx.Response(200, json=[])
        body = json.loads(request.content)
        if body["title"] == "B":
            return httpx.Response(200, text="<html>maintenance</html>", headers={"content-type": "text/html"})
        created.append(body["title"])
        return httpx.Response(201, json={**body, "id": f"srv-{body['title']}"})

    for title in ("A", "B", "C"):
        await store.add_task({"title": title})

    async with TaskApiClient("http://api", transport=httpx.MockTransport(handler)) as api:
        jobs = await SyncService(store, api, clock=lambda: NOW).run_sync_pass()

    assert [(j.task["title"], j.outcome) for j in jobs] == [("A", CREATED), ("B", FAILED), ("C", CREATED)]
    assert created == ["A", "C"]
    assert [t["title"] for t in await store.get_tasks()] == ["B"]


@pytest.mark.asyncio
async def test_unexpected_error_is_isolated_per_task(service: SyncService, store, remote):
    def create(data):
        if data["title"] == "A":
            raise KeyError("id")
        return {**data, "id": "srv-b"}

    remote.create_task.side_effect = create
    await store.add_task({"title": "A"})
    await store.add_task({"title": "B"})

    assert await service.sync_tasks_on_login() == 1
    assert [t["title"] for t in await store.get_tasks()] == ["A"]
