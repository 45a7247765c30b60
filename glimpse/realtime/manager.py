"""Connection registry and room membership for the real-time channel."""

from __future__ import annotations

import itertools
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Protocol

logger = logging.getLogger(__name__)


class JSONSocket(Protocol):
    async def send_json(self, data: Any) -> None: ...


@dataclass(eq=False)
class Connection:
    """One connected client; `user_id` is None for anonymous sockets."""

    id: int
    socket: JSONSocket
    user_id: str | None = None
    rooms: set[str] = field(default_factory=set)

    @property
    def is_authenticated(self) -> bool:
        return bool(self.user_id)


class ConnectionManager:
    def __init__(self) -> None:
        self._connections: dict[int, Connection] = {}
        self._rooms: dict[str, set[int]] = defaultdict(set)
        self._ids = itertools.count(1)

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    def connect(self, socket: JSONSocket, user_id: str | None = None) -> Connection:
        conn = Connection(id=next(self._ids), socket=socket, user_id=user_id)
        self._connections[conn.id] = conn
        logger.info("Client %s connected (user=%s)", conn.id, user_id or "anonymous")
        return conn

    def disconnect(self, conn: Connection) -> None:
        if self._connections.pop(conn.id, None) is None:
            return
        for room in list(conn.rooms):
            self._discard(room, conn.id)
        conn.rooms.clear()
        logger.info("Client %s disconnected", conn.id)

    def join(self, conn: Connection, room: str) -> None:
        self._rooms[room].add(conn.id)
        conn.rooms.add(room)
        logger.info("Client %s joined room %s", conn.id, room)

    def leave(self, conn: Connection, room: str) -> None:
        self._discard(room, conn.id)
        conn.rooms.discard(room)
        logger.info("Client %s left room %s", conn.id, room)

    def members(self, room: str) -> list[Connection]:
        return [self._connections[cid] for cid in sorted(self._rooms.get(room, ())) if cid in self._connections]

    async def send(self, conn: Connection, event: str, data: Any) -> None:
        await conn.socket.send_json({"event": event, "data": data})

    async def broadcast(self, room: str, event: str, data: Any) -> int:
        """Send to every member of `room`; returns the number of deliveries."""
        delivered = 0
        for conn in self.members(room):
            try:
                await self.send(conn, event, data)
                delivered += 1
            except Exception as exc:
                logger.warning("Dropping client %s after send failure: %s", conn.id, exc)
                self.disconnect(conn)
        return delivered

    def _discard(self, room: str, conn_id: int) -> None:
        members = self._rooms.get(room)
        if not members:
            return
        members.discard(conn_id)
        if not members:
            del self._rooms[room]
