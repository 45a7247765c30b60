"""Connection registry and room broadcast tests."""

from __future__ import annotations

import pytest

from glimpse.realtime.manager import ConnectionManager


class FakeSocket:
    def __init__(self, fail: bool = False):
        self.sent: list[dict] = []
        self.fail = fail

    async def send_json(self, data):
        if self.fail:
            raise RuntimeError("socket closed")
        self.sent.append(data)


def test_join_leave_and_members():
    manager = ConnectionManager()
    a = manager.connect(FakeSocket(), "u1")
    b = manager.connect(FakeSocket())

    manager.join(a, "calendar")
    manager.join(b, "calendar")
    assert manager.members("calendar") == [a, b]
    assert not b.is_authenticated

    manager.leave(b, "calendar")
    assert manager.members("calendar") == [a]
    assert b.rooms == set()


def test_disconnect_removes_memberships():
    manager = ConnectionManager()
    conn = manager.connect(FakeSocket(), "u1")
    manager.join(conn, "calendar")
    manager.join(conn, "team")

    manager.disconnect(conn)
    assert manager.connection_count == 0
    assert manager.members("calendar") == []
    assert manager.members("team") == []
    manager.disconnect(conn)


@pytest.mark.asyncio
async def test_broadcast_reaches_room_only():
    manager = ConnectionManager()
    inside, outside = FakeSocket(), FakeSocket()
    manager.join(manager.connect(inside, "u1"), "calendar")
    manager.connect(outside, "u2")

    delivered = await manager.broadcast("calendar", "task updated", {"x": 1})
    assert delivered == 1
    assert inside.sent == [{"event": "task updated", "data": {"x": 1}}]
    assert outside.sent == []


@pytest.mark.asyncio
async def test_broadcast_drops_failing_socket():
    manager = ConnectionManager()
    good = FakeSocket()
    manager.join(manager.connect(good), "calendar")
    broken = manager.connect(FakeSocket(fail=True))
    manager.join(broken, "calendar")

    assert await manager.broadcast("calendar", "task updated", {}) == 1
    assert manager.connection_count == 1
    assert broken not in manager.members("calendar")
