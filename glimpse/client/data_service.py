"""Task data access that follows the sign-in state.

Signed-in users read and write through the remote API; guests use the local
store. Errors from either backend propagate to the caller unchanged.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Protocol

from .api import TaskApiClient
from .auth_state import AuthState
from .local_store import LocalTaskStore


class TaskBackend(Protocol):
    async def get_week_tasks(self, start: datetime | str, end: datetime | str) -> list[dict[str, Any]]: ...

    async def create_task(self, data: dict[str, Any]) -> dict[str, Any]: ...

    async def update_task(self, data: dict[str, Any]) -> dict[str, Any]: ...

    async def delete_task(self, task_id: Any) -> None: ...


class LocalBackend:
    def __init__(self, store: LocalTaskStore):
        self.store = store

    async def get_week_tasks(self, start, end) -> list[dict[str, Any]]:
        # Guest data is small; the whole table is the week view.
        return await self.store.get_tasks()

    async def create_task(self, data: dict[str, Any]) -> dict[str, Any]:
        local_id = await self.store.add_task(data)
        return {**data, "id": local_id}

    async def update_task(self, data: dict[str, Any]) -> dict[str, Any]:
        await self.store.update_task(data)
        return data

    async def delete_task(self, task_id: Any) -> None:
        await self.store.delete_task(task_id)


class RemoteBackend:
    def __init__(self, api: TaskApiClient):
        self.api = api

    async def get_week_tasks(self, start, end) -> list[dict[str, Any]]:
        return await self.api.get_week_tasks(start, end)

    async def create_task(self, data: dict[str, Any]) -> dict[str, Any]:
        return await self.api.create_task(data)

    async def update_task(self, data: dict[str, Any]) -> dict[str, Any]:
        return await self.api.update_task(data)

    async def delete_task(self, task_id: Any) -> None:
        await self.api.delete_task(str(task_id))


class TaskDataService:
    def __init__(self, local: TaskBackend, remote: TaskBackend, auth: AuthState):
        self.local = local
        self.remote = remote
        self.auth = auth

    @property
    def backend(self) -> TaskBackend:
        return self.remote if self.auth.is_authenticated else self.local

    async def get_week_tasks(self, start: datetime | str, end: datetime | str) -> list[dict[str, Any]]:
        return await self.backend.get_week_tasks(start, end)

    async def create_task(self, data: dict[str, Any]) -> dict[str, Any]:
        return await self.backend.create_task(data)

    async def update_task(self, data: dict[str, Any]) -> dict[str, Any]:
        return await self.backend.update_task(data)

    async def delete_task(self, task_id: Any) -> None:
        await self.backend.delete_task(task_id)
