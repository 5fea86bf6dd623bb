"""
API error types.

Every error carries an HTTP status, a machine-readable ``code`` and a human
message. The handlers in ``neomed.main`` turn them into the
``{"success": false, "code": ..., "message": ...}`` envelope.
"""

from typing import Any, Dict, Optional
from fastapi import HTTPException, status


class ApiError(HTTPException):
    """Base class for errors returned to API clients."""

    default_status = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_code = "server/internal-error"
    default_message = "Internal server error."

    def __init__(
        self,
        code: Optional[str] = None,
        message: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        self.code = code or self.default_code
        self.message = message or self.default_message
        self.extra = extra or {}
        super().__init__(status_code=self.default_status, detail=self.message, headers=headers)

    def to_body(self) -> Dict[str, Any]:
        body = {"success": False, "code": self.code, "message": self.message}
        body.update(self.extra)
        return body


class BadRequestError(ApiError):
    """Validation failures (missing or malformed fields)."""

    default_status = status.HTTP_400_BAD_REQUEST
    default_code = "request/invalid"
    default_message = "Bad request."


class UnauthorizedError(ApiError):
    """Missing, invalid or expired credentials."""

    default_status = status.HTTP_401_UNAUTHORIZED
    default_code = "auth/unauthorized"
    default_message = "Authentication required."

    def __init__(self, code: Optional[str] = None, message: Optional[str] = None, **kwargs):
        kwargs.setdefault("headers", {"WWW-Authenticate": "Bearer"})
        super().__init__(code, message, **kwargs)


class ForbiddenError(ApiError):
    """Role or ownership mismatch."""

    default_status = status.HTTP_403_FORBIDDEN
    default_code = "auth/forbidden"
    default_message = "Forbidden."


class NotFoundError(ApiError):
    default_status = status.HTTP_404_NOT_FOUND
    default_code = "resource/not-found"
    default_message = "Resource not found."


class ConflictError(ApiError):
    default_status = status.HTTP_409_CONFLICT
    default_code = "resource/conflict"
    default_message = "Resource already exists."


class UpstreamError(ApiError):
    """Third-party provider failures."""

    default_status = status.HTTP_502_BAD_GATEWAY
    default_code = "integration/upstream-error"
    default_message = "Upstream provider failed."
