"""
Error envelope shared by every route (see app/core/errors.py).
"""
from typing import Any, Optional
from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """Returned for all 4xx/5xx responses."""
    code: str = Field(description="Machine-readable error code, e.g. HABIT_NAME_EMPTY.")
    message: str
    details: Optional[dict[str, Any]] = None


ERROR_RESPONSES: dict[int | str, dict[str, Any]] = {
    401: {"model": ErrorResponse, "description": "No X-User-Id header (SESSION_REQUIRED)."},
    503: {"model": ErrorResponse, "description": "Record store unavailable (STORE_UNAVAILABLE)."},
}
