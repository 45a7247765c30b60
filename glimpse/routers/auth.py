"""Session auth endpoints: register, login, logout, current session."""

from __future__ import annotations

import time

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from ..auth import AttemptLimiter, SessionClaims, clear_session_cookie, issue_session_token, set_session_cookie
from ..database import get_db
from ..models.auth import User
from ..security import optional_session
from ..services import auth_svc

router = APIRouter(prefix="/api/auth", tags=["auth"])


class Credentials(BaseModel):
    username: str = ""
    password: str = ""


def _client_addr(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for", "").split(",", 1)[0].strip()
    if forwarded:
        return forwarded
    return request.client.host if request.client else "unknown"


def _limiter(request: Request) -> AttemptLimiter:
    return request.app.state.login_limiter


async def _start_session(request: Request, db: AsyncSession, user: User, status_code: int) -> JSONResponse:
    settings_obj = request.app.state.settings
    record = await auth_svc.create_session(db, settings_obj, user, request)
    token = issue_session_token(
        settings_obj,
        user_id=user.id,
        username=user.username,
        session_id=record.session_id,
    )
    response = JSONResponse({"id": user.id, "username": user.username}, status_code=status_code)
    set_session_cookie(response, settings_obj, token)
    # The fresh cookie supersedes whatever the middleware resolved.
    request.state.session = None
    return response


@router.post("/register")
async def register(request: Request, body: Credentials, db: AsyncSession = Depends(get_db)):
    try:
        user = await auth_svc.register_user(db, body.username, body.password)
    except auth_svc.RegistrationError as exc:
        return JSONResponse({"message": str(exc), "field": exc.field}, status_code=400)
    return await _start_session(request, db, user, status_code=201)


@router.post("/login")
async def login(request: Request, body: Credentials, db: AsyncSession = Depends(get_db)):
    settings_obj = request.app.state.settings
    limiter = _limiter(request)
    key = f"{_client_addr(request)}|{body.username.strip().lower()}"
    now = time.time()
    if limiter.is_blocked(key, now):
        raise HTTPException(status_code=429, detail="Too many login attempts. Try again later.")

    user = await auth_svc.authenticate_user(db, body.username, body.password)
    if user is None:
        blocked = limiter.add_failure(
            key=key,
            now=now,
            window_seconds=settings_obj.login_rate_limit_window_seconds,
            max_attempts=settings_obj.login_rate_limit_max_attempts,
            block_seconds=settings_obj.login_rate_limit_block_seconds,
        )
        if blocked:
            raise HTTPException(status_code=429, detail="Too many login attempts. Try again later.")
        raise HTTPException(status_code=400, detail="Incorrect username or password")

    limiter.clear(key)
    return await _start_session(request, db, user, status_code=200)


@router.post("/logout")
async def logout(
    request: Request,
    session: SessionClaims | None = Depends(optional_session),
    db: AsyncSession = Depends(get_db),
):
    if session is not None:
        await auth_svc.revoke_session(db, session.session_id)
    request.state.session = None
    response = JSONResponse({"success": True})
    clear_session_cookie(response, request.app.state.settings)
    return response


@router.get("/session")
async def current_session(session: SessionClaims | None = Depends(optional_session)):
    if session is None:
        return JSONResponse(
            {"error": "Unauthorized", "message": "Not authenticated"},
            status_code=401,
        )
    return {"id": session.user_id, "username": session.username}
