"""Session middleware and request-level auth dependencies."""

from __future__ import annotations

import logging

from fastapi import HTTPException, Request
from starlette.middleware.base import BaseHTTPMiddleware

from .auth import SessionClaims, issue_session_token, needs_renewal, set_session_cookie
from .services import auth_svc

logger = logging.getLogger(__name__)


class SessionMiddleware(BaseHTTPMiddleware):
    """Resolves the session user onto ``request.state.session``.

    Sessions past half their lifetime are renewed: the stored expiry moves
    forward and a fresh cookie is set on the response.
    """

    async def dispatch(self, request: Request, call_next):
        state = request.app.state
        claims = await auth_svc.resolve_connection_user(request, state.session_factory, state.settings)
        request.state.session = claims
        response = await call_next(request)

        current = getattr(request.state, "session", None)
        if current is not None and current is claims and needs_renewal(state.settings, claims):
            async with state.session_factory() as db:
                await auth_svc.extend_session(db, state.settings, claims.session_id)
            token = issue_session_token(
                state.settings,
                user_id=claims.user_id,
                username=claims.username,
                session_id=claims.session_id,
            )
            set_session_cookie(response, state.settings, token)
            logger.debug("Renewed session for user %s", claims.user_id)
        return response


def optional_session(request: Request) -> SessionClaims | None:
    return getattr(request.state, "session", None)


def require_session(request: Request) -> SessionClaims:
    """FastAPI dependency: the authenticated session or 401."""
    claims = optional_session(request)
    if claims is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return claims
