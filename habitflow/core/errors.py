"""
HabitFlow error types and the FastAPI handlers that render them.

Every error response uses the same envelope:

    {"code": "HABIT_NOT_FOUND", "message": "...", "details": {...}}

`code` is stable and machine-readable; `message` is for humans and may change.
"""
from __future__ import annotations

import logging
from datetime import date
from typing import Any, Sequence

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette import status

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Exception classes
# ---------------------------------------------------------------------------

class HabitFlowException(Exception):
    """Root of the domain errors; subclasses pick the status and code."""
    http_status: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    code: str = "INTERNAL_ERROR"

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        body: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            body["details"] = self.details
        return body


class ConfigurationError(HabitFlowException):
    """Goal progression parameters that violate the Habit invariants."""
    http_status = status.HTTP_422_UNPROCESSABLE_ENTITY
    code = "CONFIGURATION_ERROR"

    def __init__(self, message: str, habit_id: str | None = None, field: str | None = None):
        details: dict[str, Any] = {}
        if habit_id is not None:
            details["habit_id"] = habit_id
        if field is not None:
            details["field"] = field
        super().__init__(message=message, details=details)


class HabitNotFoundError(HabitFlowException):
    http_status = status.HTTP_404_NOT_FOUND
    code = "HABIT_NOT_FOUND"

    def __init__(self, habit_id: str):
        super().__init__(
            message=f"Habit {habit_id} does not exist.",
            details={"habit_id": habit_id},
        )


class CompletionNotFoundError(HabitFlowException):
    http_status = status.HTTP_404_NOT_FOUND
    code = "COMPLETION_NOT_FOUND"

    def __init__(self, habit_id: str, day: date):
        super().__init__(
            message=f"Habit {habit_id} has no completion on {day}.",
            details={"habit_id": habit_id, "day": str(day)},
        )


# ---------------------------------------------------------------------------
# Handlers (registered in main.py)
# ---------------------------------------------------------------------------

def _field_path(loc: Sequence[Any]) -> str:
    # ("body", "rest_days", 0) -> "rest_days.0"; query params keep their prefix
    parts = list(loc[1:]) if loc and loc[0] == "body" else list(loc)
    return ".".join(str(p) for p in parts)


async def habitflow_exception_handler(request: Request, exc: HabitFlowException) -> JSONResponse:
    if exc.http_status >= 500:
        logger.error("%s on %s: %s", exc.code, request.url.path, exc.message)
    return JSONResponse(status_code=exc.http_status, content=exc.to_dict())


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """422 VALIDATION_ERROR listing each offending field."""
    errors = [
        {"field": _field_path(err["loc"]), "message": err["msg"], "type": err["type"]}
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "code": "VALIDATION_ERROR",
            "message": f"{len(errors)} invalid field(s) in request.",
            "details": {"errors": errors},
        },
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"code": "INTERNAL_ERROR", "message": "Internal server error."},
    )
