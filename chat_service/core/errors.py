"""
Error taxonomy surfaced by the request layer.

Every error carries a stable machine-readable ``code`` and the HTTP status it
maps to. Handlers registered in ``chat_service.main`` turn these into the
``{"success": false, "error": {...}}`` envelope.
"""

from typing import Any, Optional

from fastapi import status


class AppError(Exception):
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_code: str = "INTERNAL_ERROR"
    default_message: str = "Internal server error"

    def __init__(self, message: Optional[str] = None, code: Optional[str] = None, details: Any = None):
        self.message = message or self.default_message
        self.code = code or self.default_code
        self.details = details
        super().__init__(self.message)


class AuthRequiredError(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_code = "AUTH_REQUIRED"
    default_message = "User authentication required"


class NotFoundError(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    default_code = "NOT_FOUND"
    default_message = "Resource not found"


class ForbiddenError(AppError):
    status_code = status.HTTP_403_FORBIDDEN
    default_code = "FORBIDDEN"
    default_message = "Operation not permitted"


class ValidationError(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_code = "VALIDATION_ERROR"
    default_message = "Invalid input"


class ConflictError(AppError):
    status_code = status.HTTP_409_CONFLICT
    default_code = "CONFLICT"
    default_message = "Concurrent update conflict, please retry"


class InternalError(AppError):
    pass


def error_body(code: str, message: str, details: Any = None) -> dict:
    error = {"code": code, "message": message}
    if details is not None:
        error["details"] = details
    return {"success": False, "error": error}
