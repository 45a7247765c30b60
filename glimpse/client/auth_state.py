"""Client-side record of who is signed in."""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable

logger = logging.getLogger(__name__)

LoginCallback = Callable[[dict[str, Any]], Awaitable[Any]]


class AuthState:
    """Holds the current user and fans out login notifications.

    Passed explicitly to the services that branch on it.
    """

    def __init__(self, user: dict[str, Any] | None = None):
        self.user = user
        self._on_login: list[LoginCallback] = []

    @property
    def user_id(self) -> str | None:
        return self.user.get("id") if self.user else None

    @property
    def is_authenticated(self) -> bool:
        return self.user_id is not None

    def on_login(self, callback: LoginCallback) -> None:
        self._on_login.append(callback)

    async def login(self, user: dict[str, Any]) -> None:
        """Record `user` and await each login callback in registration order."""
        self.user = user
        logger.info("Signed in as %s", user.get("username") or user.get("id"))
        for callback in self._on_login:
            await callback(user)

    def logout(self) -> None:
        self.user = None
