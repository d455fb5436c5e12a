"""Error taxonomy for the messaging core.

Every error carries a stable ``code`` and the HTTP status it maps to, so the
REST and WebSocket entry paths can report failures without exposing storage
details.
"""
from __future__ import annotations

import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger(__name__)


class CourseChatError(Exception):
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    code: str = "error"
    default_message: str = "Unexpected error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> dict[str, str]:
        return {"detail": self.message, "code": self.code}


class NotFoundError(CourseChatError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"
    default_message = "Resource not found"


class InvalidParentError(CourseChatError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "invalid_parent"
    default_message = "Parent message not found in this course"


class InvalidInputError(CourseChatError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "invalid_input"
    default_message = "Invalid input"


class InvalidCursorError(InvalidInputError):
    code = "invalid_cursor"
    default_message = "Cursor does not reference a visible message"


class ForbiddenError(CourseChatError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "forbidden"
    default_message = "Not permitted"


class UnauthenticatedError(CourseChatError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "unauthenticated"
    default_message = "Could not validate credentials"


class ServiceUnavailableError(CourseChatError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    code = "unavailable"
    default_message = "Service temporarily unavailable"


async def _course_chat_error_handler(request: Request, exc: CourseChatError) -> JSONResponse:
    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, UnauthenticatedError) else None
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)


async def _storage_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.error(
        "storage_error",
        exc_info=exc,
        extra={
            "request_id": getattr(request.state, "request_id", None),
            "path": request.url.path,
            "method": request.method,
        },
    )
    return JSONResponse(
        status_code=ServiceUnavailableError.status_code,
        content=ServiceUnavailableError().to_dict(),
    )


def install_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(CourseChatError, _course_chat_error_handler)
    app.add_exception_handler(SQLAlchemyError, _storage_error_handler)
