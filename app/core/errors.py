"""
Custom exception hierarchy for HabitHive.

Rule: every HTTP error has a machine-readable `code` string so clients
can branch on it without parsing English messages.
"""
from __future__ import annotations

import logging
from typing import Any

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette import status

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Exception classes
# ---------------------------------------------------------------------------

class HabitHiveException(Exception):
    """Base class for all application-level errors."""
    http_status: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    code: str = "INTERNAL_ERROR"

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict:
        payload: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class HabitNameEmptyError(HabitHiveException):
    http_status = status.HTTP_422_UNPROCESSABLE_ENTITY
    code = "HABIT_NAME_EMPTY"

    def __init__(self):
        super().__init__(message="Habit name cannot be empty.")


class RecordStoreError(HabitHiveException):
    """The record store rejected or failed a request (network, permission, constraint)."""
    http_status = status.HTTP_503_SERVICE_UNAVAILABLE
    code = "STORE_UNAVAILABLE"

    def __init__(self, message: str, operation: str | None = None, details: dict[str, Any] | None = None):
        merged = dict(details or {})
        if operation:
            merged["operation"] = operation
        self.operation = operation
        super().__init__(message=message, details=merged)


class HabitNotFoundError(RecordStoreError):
    http_status = status.HTTP_404_NOT_FOUND
    code = "HABIT_NOT_FOUND"

    def __init__(self, habit_id: str):
        self.habit_id = habit_id
        super().__init__(
            message=f"Habit {habit_id} does not exist.",
            operation="update",
            details={"habit_id": habit_id},
        )


class SessionRequiredError(HabitHiveException):
    http_status = status.HTTP_401_UNAUTHORIZED
    code = "SESSION_REQUIRED"

    def __init__(self):
        super().__init__(message="A signed-in user is required (X-User-Id header).")


# ---------------------------------------------------------------------------
# FastAPI exception handlers
# ---------------------------------------------------------------------------

async def habithive_exception_handler(request: Request, exc: HabitHiveException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.http_status,
        content=exc.to_dict(),
    )


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Return structured 422 with machine-readable field errors."""
    field_errors = []
    for error in exc.errors():
        field_errors.append({
            "field": ".".join(str(loc) for loc in error["loc"] if loc != "body"),
            "message": error["msg"],
            "type": error["type"],
        })
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "code": "VALIDATION_ERROR",
            "message": "Request validation failed.",
            "details": {"errors": field_errors},
        },
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "code": "INTERNAL_ERROR",
            "message": "An unexpected error occurred.",
        },
    )
