"""Persistent user account + session service."""

from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from starlette.requests import HTTPConnection

from ..auth import (
    SessionClaims,
    decode_session_token,
    hash_password_async,
    new_session_id,
    token_from_connection,
    ttl_seconds,
    verify_password_async,
)
from ..config import GlimpseSettings
from ..models.auth import AuthSession, User

USERNAME_RE = re.compile(r"^[A-Za-z0-9_-]{3,31}$")
MIN_PASSWORD_LENGTH = 6


class RegistrationError(ValueError):
    def __init__(self, message: str, field: str):
        super().__init__(message)
        self.field = field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _client_ip(conn: HTTPConnection | None) -> str | None:
    if conn is None:
        return None
    forwarded = conn.headers.get("x-forwarded-for", "").split(",", 1)[0].strip()
    if forwarded:
        return forwarded[:64]
    if conn.client and conn.client.host:
        return str(conn.client.host)[:64]
    return None


def validate_username(username: object) -> bool:
    return isinstance(username, str) and bool(USERNAME_RE.match(username))


def validate_password(password: object) -> bool:
    return isinstance(password, str) and MIN_PASSWORD_LENGTH <= len(password) <= 255


async def get_user(db: AsyncSession, user_id: str) -> User | None:
    return (await db.execute(select(User).where(User.id == user_id))).scalar_one_or_none()


async def register_user(db: AsyncSession, username: str, password: str) -> User:
    if not validate_username(username):
        raise RegistrationError(
            "Username must be 3-31 characters long and contain only letters, "
            "numbers, underscores, or hyphens",
            field="username",
        )
    if not validate_password(password):
        raise RegistrationError("Password must be at least 6 characters long", field="password")

    existing = (
        await db.execute(select(User.id).where(User.username == username).limit(1))
    ).scalar_one_or_none()
    if existing:
        raise RegistrationError("Username already taken", field="username")

    user = User(username=username, password_hash=await hash_password_async(password))
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


async def authenticate_user(db: AsyncSession, username: str, password: str) -> User | None:
    """Validate credentials; returns the user or None."""
    if not username or not password:
        return None
    user = (await db.execute(select(User).where(User.username == username))).scalar_one_or_none()
    if not user:
        return None
    if not await verify_password_async(password, user.password_hash):
        return None
    user.last_login_at = _utcnow()
    await db.commit()
    return user


async def create_session(
    db: AsyncSession,
    settings_obj: GlimpseSettings,
    user: User,
    conn: HTTPConnection | None = None,
) -> AuthSession:
    now = _utcnow()
    user_agent = conn.headers.get("user-agent", "")[:512] if conn is not None else None
    record = AuthSession(
        session_id=new_session_id(),
        user_id=user.id,
        source_ip=_client_ip(conn),
        user_agent=user_agent or None,
        expires_at=now + timedelta(seconds=ttl_seconds(settings_obj)),
        last_seen_at=now,
    )
    db.add(record)
    await db.commit()
    await db.refresh(record)
    return record


async def validate_session(
    db: AsyncSession,
    claims: SessionClaims,
    *,
    touch: bool = True,
) -> AuthSession | None:
    """Return the live session behind `claims`, or None if revoked/expired."""
    record = (
        await db.execute(select(AuthSession).where(AuthSession.session_id == claims.session_id))
    ).scalar_one_or_none()
    if record is None or record.user_id != claims.user_id:
        return None
    if record.revoked_at is not None:
        return None
    now = _utcnow()
    if _as_utc(record.expires_at) <= now:
        return None
    if touch:
        record.last_seen_at = now
        await db.commit()
    return record


async def extend_session(db: AsyncSession, settings_obj: GlimpseSettings, session_id: str) -> None:
    record = (
        await db.execute(select(AuthSession).where(AuthSession.session_id == session_id))
    ).scalar_one_or_none()
    if record is None:
        return
    record.expires_at = _utcnow() + timedelta(seconds=ttl_seconds(settings_obj))
    await db.commit()


async def revoke_session(db: AsyncSession, session_id: str) -> bool:
    record = (
        await db.execute(select(AuthSession).where(AuthSession.session_id == session_id))
    ).scalar_one_or_none()
    if record is None or record.revoked_at is not None:
        return False
    record.revoked_at = _utcnow()
    await db.commit()
    return True


async def resolve_connection_user(
    conn: HTTPConnection,
    session_factory: async_sessionmaker[AsyncSession],
    settings_obj: GlimpseSettings,
) -> SessionClaims | None:
    """Authenticated identity of an HTTP request or WebSocket handshake."""
    claims = decode_session_token(settings_obj, token_from_connection(conn, settings_obj))
    if claims is None:
        return None
    async with session_factory() as db:
        if await validate_session(db, claims) is None:
            return None
    return claims
