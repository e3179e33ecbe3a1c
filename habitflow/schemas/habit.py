"""
Habit, completion, progress and goal schemas.

POST /habits                        → HabitCreateRequest → HabitResponse
POST /habits/{id}/completions       → CompletionRequest  → CompletionResponse
GET  /habits/{id}/progress          → ProgressResponse
GET  /habits/{id}/goal              → GoalProgressionResponse
POST /habits/{id}/goal/adjust       → GoalAdjustResponse
"""
from __future__ import annotations

from datetime import date, datetime
from typing import Annotated, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from habitflow.services.domain import GoalProgression, HabitKind


# ---------------------------------------------------------------------------
# Habits
# ---------------------------------------------------------------------------

class HabitCreateRequest(BaseModel):
    """A habit to start tracking."""

    name: Annotated[str, Field(
        min_length=1,
        max_length=128,
        description="Display name. Stripped of leading/trailing whitespace.",
        examples=["Drink Water"],
    )]
    icon: str = Field(default="checkmark.circle.fill", max_length=64)
    color: str = Field(default="#34C759", max_length=16)
    kind: HabitKind = Field(
        default=HabitKind.manual,
        description="manual, or the external source that feeds completion values.",
    )
    daily_goal: Optional[float] = Field(
        default=None, gt=0,
        description="Numeric daily target. Omit for a done / not-done habit.",
        examples=[2000],
    )
    unit: Optional[str] = Field(default=None, max_length=32, examples=["ml"])
    goal_progression: GoalProgression = Field(default=GoalProgression.fixed)
    initial_goal: Optional[float] = Field(
        default=None, gt=0,
        description="Ramp-up starting point and adaptive floor. Defaults to daily_goal.",
    )
    goal_increment: Optional[float] = Field(default=None, gt=0)
    goal_increment_interval_days: Optional[int] = Field(default=None, ge=1)
    rest_days: list[int] = Field(
        default_factory=list,
        description="Weekday indices (Monday = 0 … Sunday = 6) that never break a streak.",
        examples=[[5, 6]],
    )
    created_at: Optional[datetime] = Field(
        default=None,
        description="Backfill timestamp for imported habits. Defaults to now.",
    )

    @field_validator("name", mode="before")
    @classmethod
    def strip_and_check_empty(cls, v: str) -> str:
        stripped = v.strip() if isinstance(v, str) else v
        if not stripped:
            raise ValueError("name must not be empty after stripping whitespace")
        return stripped

    @field_validator("rest_days")
    @classmethod
    def check_weekdays(cls, v: list[int]) -> list[int]:
        if any(d < 0 or d > 6 for d in v):
            raise ValueError("rest_days entries must be weekday indices 0-6")
        return sorted(set(v))


class HabitResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    icon: str
    color: str
    kind: str
    daily_goal: Optional[float] = None
    unit: Optional[str] = None
    goal_progression: str
    initial_goal: Optional[float] = None
    goal_increment: Optional[float] = None
    goal_increment_interval_days: Optional[int] = None
    last_goal_adjustment: Optional[str] = None
    rest_days: list[int] = Field(default_factory=list)
    rest_days_label: Optional[str] = Field(default=None, examples=["Sat, Sun"])
    created_at: str


class HabitListResponse(BaseModel):
    total: int
    items: list[HabitResponse]


# ---------------------------------------------------------------------------
# Completions
# ---------------------------------------------------------------------------

class CompletionRequest(BaseModel):
    """Record (or overwrite) the habit's entry for one calendar day."""
    day: Optional[date] = Field(
        default=None,
        description="Calendar day of the completion. Defaults to today.",
        examples=["2026-02-20"],
    )
    value: Optional[float] = Field(
        default=None, ge=0,
        description="Measured amount for goal-based habits.",
        examples=[2500],
    )
    is_auto_synced: bool = Field(
        default=False,
        description="True when the value came from an external data provider.",
    )


class CompletionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    habit_id: str
    day: str
    value: Optional[float] = None
    is_auto_synced: bool


# ---------------------------------------------------------------------------
# Progress + goal
# ---------------------------------------------------------------------------

class ProgressResponse(BaseModel):
    habit_id: str
    as_of: str
    current_streak: int
    longest_streak: int
    completion_rate: float = Field(description="Range: 0.0–1.0.", examples=[0.667])
    today_progress: float = Field(
        description="Fraction of today's goal reached. Not clamped: 1.5 means 150 %.",
    )
    completed_today: bool
    effective_goal: Optional[float] = None
    last_completed_on: Optional[str] = None
    earned_rest_day: bool = Field(
        default=False,
        description="Current streak is long enough to take an optional day off.",
    )


class GoalProgressionResponse(BaseModel):
    habit_id: str
    progression: str
    current_goal: Optional[float] = None
    initial_goal: Optional[float] = None
    next_goal: Optional[float] = None
    days_until_change: Optional[int] = Field(
        default=None, description="Ramp-up only: days until the next increase."
    )
    message: str


class GoalAdjustmentOut(BaseModel):
    direction: str = Field(description='"increase" | "decrease"')
    current_goal: Optional[float] = None
    suggested_goal: float
    effective_on: str
    reason: str


class GoalAdjustResponse(BaseModel):
    applied: bool = Field(description="False when no adjustment was due (idempotent re-run).")
    adjustment: Optional[GoalAdjustmentOut] = None
    habit: HabitResponse
