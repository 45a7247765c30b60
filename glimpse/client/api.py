"""Typed wrapper around the Weekly Glimpse task API.

Auth rides on the session cookie the server sets at login; the underlying
`httpx.AsyncClient` keeps it between calls.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any

import httpx

from ..errors import ApiError, NetworkError

logger = logging.getLogger(__name__)


def _iso(value: datetime | str) -> str:
    return value.isoformat() if isinstance(value, datetime) else value


class TaskApiClient:
    """Remote task store. Use as ``async with TaskApiClient(url) as api``."""

    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        *,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> "TaskApiClient":
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self._timeout,
            transport=self._transport,
            headers={"Accept": "application/json"},
        )
        return self

    async def __aexit__(self, *args):
        if self._client:
            await self._client.aclose()
            self._client = None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise RuntimeError("Client not initialized. Use 'async with' context.")
        return self._client

    async def _request(self, method: str, endpoint: str, **kwargs) -> Any:
        try:
            resp = await self.client.request(method, endpoint, **kwargs)
        except httpx.HTTPError as exc:
            logger.warning("%s %s failed: %s", method, endpoint, exc)
            raise NetworkError(
                "Network error: Unable to connect to the server",
                context={"endpoint": endpoint},
            ) from exc

        if resp.is_error:
            try:
                body = resp.json()
            except ValueError:
                body = {}
            if not isinstance(body, dict):
                body = {}
            message = body.get("message") or body.get("detail") or resp.reason_phrase or "Request failed"
            raise ApiError(
                str(message),
                status=resp.status_code,
                error=str(body.get("error") or "Unknown error"),
            )
        if not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as exc:
            raise ApiError(
                f"Unexpected response from {endpoint}",
                status=resp.status_code,
                error="Invalid JSON",
            ) from exc

    # Tasks
    async def get_week_tasks(self, start: datetime | str, end: datetime | str) -> list[dict[str, Any]]:
        week = json.dumps({"start": _iso(start), "end": _iso(end)})
        return await self._request("GET", "/api/tasks", params={"week": week})

    async def create_task(self, task: dict[str, Any]) -> dict[str, Any]:
        return await self._request("POST", "/api/tasks", json=task)

    async def update_task(self, task: dict[str, Any]) -> dict[str, Any]:
        return await self._request("PUT", "/api/tasks", json=task)

    async def delete_task(self, task_id: str) -> dict[str, Any]:
        return await self._request("DELETE", "/api/tasks", json={"id": task_id})

    # Auth
    async def register(self, username: str, password: str) -> dict[str, Any]:
        return await self._request(
            "POST", "/api/auth/register", json={"username": username, "password": password}
        )

    async def login(self, username: str, password: str) -> dict[str, Any]:
        return await self._request(
            "POST", "/api/auth/login", json={"username": username, "password": password}
        )

    async def logout(self) -> None:
        await self._request("POST", "/api/auth/logout")
        self.client.cookies.clear()

    async def session(self) -> dict[str, Any] | None:
        """The signed-in user, or None when the session is missing or expired."""
        try:
            return await self._request("GET", "/api/auth/session")
        except ApiError as exc:
            if exc.status == 401:
                return None
            raise
