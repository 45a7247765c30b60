"""Error taxonomy shared by the server and the client-side services."""

from __future__ import annotations

import enum
import logging
from datetime import datetime, timezone
from typing import Any

from fastapi import Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class ErrorCode(str, enum.Enum):
    UNAUTHORIZED = "unauthorized"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"
    VALIDATION_ERROR = "validation_error"
    DATABASE_ERROR = "database_error"
    NETWORK_ERROR = "network_error"
    UNKNOWN_ERROR = "unknown_error"


class GlimpseError(Exception):
    """Base error carrying a machine-readable code and an HTTP status."""

    code: ErrorCode = ErrorCode.UNKNOWN_ERROR
    status: int = 500

    def __init__(self, message: str, *, context: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": self.code.value,
            "message": self.message,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }


class ValidationFailed(GlimpseError):
    code = ErrorCode.VALIDATION_ERROR
    status = 400


class NotAuthorized(GlimpseError):
    code = ErrorCode.UNAUTHORIZED
    status = 401


class Forbidden(GlimpseError):
    code = ErrorCode.FORBIDDEN
    status = 403


class TaskNotFound(GlimpseError):
    code = ErrorCode.NOT_FOUND
    status = 404


class StorageError(GlimpseError):
    code = ErrorCode.DATABASE_ERROR
    status = 500


class NetworkError(GlimpseError):
    """The remote API could not be reached."""

    code = ErrorCode.NETWORK_ERROR
    status = 0


class ApiError(GlimpseError):
    """The remote API answered with a non-2xx status."""

    def __init__(self, message: str, *, status: int, error: str = "Unknown error"):
        super().__init__(message, context={"error": error})
        self.status = status
        self.error = error
        self.code = {
            400: ErrorCode.VALIDATION_ERROR,
            401: ErrorCode.UNAUTHORIZED,
            403: ErrorCode.FORBIDDEN,
            404: ErrorCode.NOT_FOUND,
        }.get(status, ErrorCode.UNKNOWN_ERROR)


class SyncError(GlimpseError):
    """A sync pass could not start (local read or server fetch failed)."""


async def glimpse_error_handler(request: Request, exc: GlimpseError) -> JSONResponse:
    if exc.status >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(exc.to_dict(), status_code=exc.status or 500)
