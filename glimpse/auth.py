"""Session token, password hashing and login throttling primitives."""

from __future__ import annotations

import asyncio
import base64
import binascii
import hashlib
import hmac
import json
import secrets
import time
from dataclasses import dataclass

from starlette.requests import HTTPConnection

from .config import GlimpseSettings


@dataclass(frozen=True)
class SessionClaims:
    user_id: str
    username: str
    session_id: str
    issued_at: int
    expires_at: int


PASSWORD_SCHEME = "pbkdf2_sha256"
PASSWORD_ITERATIONS = 200_000


class AttemptLimiter:
    """Counts failed logins per key inside a sliding window.

    Reaching `max_attempts` within the window locks the key for
    `block_seconds`; the failure history starts over after the lock.
    """

    def __init__(self):
        self._failures: dict[str, list[float]] = {}
        self._locked_until: dict[str, float] = {}

    def is_blocked(self, key: str, now: float) -> bool:
        until = self._locked_until.get(key)
        if until is None:
            return False
        if until > now:
            return True
        del self._locked_until[key]
        return False

    def add_failure(
        self,
        *,
        key: str,
        now: float,
        window_seconds: int,
        max_attempts: int,
        block_seconds: int,
    ) -> bool:
        """Record a failed login; True when `key` is locked afterwards."""
        if max_attempts <= 0:
            return False
        if self.is_blocked(key, now):
            return True

        horizon = now - max(1, window_seconds)
        recent = [t for t in self._failures.get(key, ()) if t >= horizon]
        recent.append(now)
        if len(recent) < max_attempts:
            self._failures[key] = recent
            return False

        self._failures.pop(key, None)
        self._locked_until[key] = now + max(1, block_seconds)
        return True

    def clear(self, key: str) -> None:
        self._failures.pop(key, None)
        self._locked_until.pop(key, None)


def _pbkdf2(password: str, salt: bytes, iterations: int) -> bytes:
    return hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, iterations)


def hash_password(password: str, iterations: int = PASSWORD_ITERATIONS) -> str:
    """Encode as ``pbkdf2_sha256$<iterations>$<salt hex>$<digest hex>``."""
    if not password:
        raise ValueError("Password is required")
    salt = secrets.token_bytes(16)
    digest = _pbkdf2(password, salt, iterations)
    return "$".join((PASSWORD_SCHEME, str(iterations), salt.hex(), digest.hex()))


def verify_password(password: str, stored_hash: str) -> bool:
    if not password or not stored_hash:
        return False
    parts = stored_hash.split("$")
    if len(parts) != 4 or parts[0] != PASSWORD_SCHEME:
        return False
    try:
        iterations = int(parts[1])
        salt = bytes.fromhex(parts[2])
        expected = bytes.fromhex(parts[3])
    except ValueError:
        return False
    return hmac.compare_digest(_pbkdf2(password, salt, iterations), expected)


async def hash_password_async(password: str) -> str:
    return await asyncio.to_thread(hash_password, password)


async def verify_password_async(password: str, stored_hash: str) -> bool:
    return await asyncio.to_thread(verify_password, password, stored_hash)


def new_session_id() -> str:
    return secrets.token_hex(32)


def _b64url_encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).decode("utf-8").rstrip("=")


def _b64url_decode(data: str) -> bytes:
    padding = "=" * ((4 - (len(data) % 4)) % 4)
    return base64.urlsafe_b64decode((data + padding).encode("utf-8"))


def ttl_seconds(settings_obj: GlimpseSettings) -> int:
    return max(60, int(settings_obj.auth_session_ttl_seconds))


def _secret(settings_obj: GlimpseSettings) -> str:
    secret = (settings_obj.auth_secret or "").strip()
    if not secret:
        raise RuntimeError("auth_secret is required")
    return secret


def _sign(secret: str, body: str) -> str:
    return hmac.new(secret.encode("utf-8"), body.encode("utf-8"), hashlib.sha256).hexdigest()


def issue_session_token(
    settings_obj: GlimpseSettings,
    *,
    user_id: str,
    username: str,
    session_id: str,
    now: int | None = None,
) -> str:
    issued = int(time.time()) if now is None else now
    payload = {
        "sub": user_id,
        "name": username,
        "sid": session_id,
        "iat": issued,
        "exp": issued + ttl_seconds(settings_obj),
    }
    body = _b64url_encode(json.dumps(payload, separators=(",", ":"), sort_keys=True).encode("utf-8"))
    return f"{body}.{_sign(_secret(settings_obj), body)}"


def decode_session_token(settings_obj: GlimpseSettings, token: str) -> SessionClaims | None:
    """Return the claims of a well-signed, unexpired token, else None."""
    if not token:
        return None
    try:
        body, provided_sig = token.split(".", 1)
    except ValueError:
        return None

    if not hmac.compare_digest(provided_sig, _sign(_secret(settings_obj), body)):
        return None

    try:
        payload = json.loads(_b64url_decode(body))
    except (ValueError, binascii.Error):
        return None
    if not isinstance(payload, dict):
        return None

    exp = payload.get("exp")
    iat = payload.get("iat")
    sub = payload.get("sub")
    sid = payload.get("sid")
    if not isinstance(exp, int) or exp <= int(time.time()):
        return None
    if not isinstance(sub, str) or not sub.strip():
        return None
    if not isinstance(sid, str) or not sid:
        return None
    return SessionClaims(
        user_id=sub,
        username=str(payload.get("name") or ""),
        session_id=sid,
        issued_at=iat if isinstance(iat, int) else 0,
        expires_at=exp,
    )


def needs_renewal(settings_obj: GlimpseSettings, claims: SessionClaims, now: int | None = None) -> bool:
    """Sessions past half their lifetime get a fresh cookie."""
    current = int(time.time()) if now is None else now
    return current - claims.issued_at >= ttl_seconds(settings_obj) // 2


def token_from_connection(conn: HTTPConnection, settings_obj: GlimpseSettings) -> str:
    """Session token from the cookie, a bearer header, or a ``token`` query param.

    Works for both HTTP requests and WebSocket handshakes.
    """
    cookie_token = conn.cookies.get(settings_obj.auth_cookie_name, "")
    if cookie_token:
        return cookie_token

    auth = conn.headers.get("authorization", "")
    if auth.lower().startswith("bearer "):
        return auth[7:].strip()
    return conn.query_params.get("token", "")


def set_session_cookie(response, settings_obj: GlimpseSettings, token: str) -> None:
    response.set_cookie(
        key=settings_obj.auth_cookie_name,
        value=token,
        max_age=ttl_seconds(settings_obj),
        httponly=True,
        secure=settings_obj.auth_cookie_secure,
        samesite="lax",
        path="/",
    )


def clear_session_cookie(response, settings_obj: GlimpseSettings) -> None:
    response.delete_cookie(key=settings_obj.auth_cookie_name, path="/")
