"""
Error envelope shared by every HabitFlow endpoint (see core/errors.py).
"""
from typing import Any, Optional

from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    code: str = Field(examples=["HABIT_NOT_FOUND", "CONFIGURATION_ERROR", "VALIDATION_ERROR"])
    message: str
    details: Optional[dict[str, Any]] = Field(
        default=None,
        description=(
            "Context such as habit_id / field. Validation failures carry "
            "`errors`: a list of {field, message, type}."
        ),
    )
