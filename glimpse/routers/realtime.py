"""WebSocket endpoint for the collaborative task channel."""

from __future__ import annotations

import json
import logging

from fastapi import APIRouter, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import PlainTextResponse

from ..services import auth_svc

logger = logging.getLogger(__name__)

router = APIRouter(tags=["realtime"])


@router.websocket("/ws")
async def task_channel_endpoint(websocket: WebSocket):
    """Clients authenticate with the session cookie or ``?token=``.

    Frames are JSON objects ``{"event": ..., "data": ...}``. Sockets without
    a valid session stay connected but every ``task update`` is refused.
    """
    state = websocket.app.state
    claims = await auth_svc.resolve_connection_user(websocket, state.session_factory, state.settings)
    await websocket.accept()

    manager = state.task_channel.manager
    conn = manager.connect(websocket, claims.user_id if claims else None)
    try:
        while True:
            raw = await websocket.receive_text()
            try:
                message = json.loads(raw)
            except ValueError:
                await manager.send(conn, "error", {"message": "Malformed message"})
                continue
            await state.task_channel.handle(conn, message)
    except WebSocketDisconnect:
        pass
    finally:
        manager.disconnect(conn)


@router.get("/api/collaboration")
async def collaboration_status(request: Request):
    channel = getattr(request.app.state, "task_channel", None)
    if channel is None:
        return PlainTextResponse("WebSocket server not initialized", status_code=500)
    return {"status": "running", "connections": channel.manager.connection_count}
