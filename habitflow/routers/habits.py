"""
Habits router.

POST   /habits                              - create a habit
GET    /habits                              - list habits
GET    /habits/{habit_id}                   - one habit
DELETE /habits/{habit_id}                   - delete a habit and its completions
POST   /habits/{habit_id}/completions       - record / overwrite a day's completion
DELETE /habits/{habit_id}/completions/{day} - remove a day's completion
GET    /habits/{habit_id}/progress          - streaks, completion rate, today's progress
GET    /habits/{habit_id}/goal              - goal progression status
POST   /habits/{habit_id}/goal/adjust       - apply a due goal change (idempotent)
"""
from __future__ import annotations

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.orm import Session

from habitflow.core.config import settings
from habitflow.db.base import get_db
from habitflow.models.habit import Habit, HabitCompletion
from habitflow.schemas.common import ErrorResponse
from habitflow.schemas.habit import (
    CompletionRequest,
    CompletionResponse,
    GoalAdjustmentOut,
    GoalAdjustResponse,
    GoalProgressionResponse,
    HabitCreateRequest,
    HabitListResponse,
    HabitResponse,
    ProgressResponse,
)
from habitflow.services import habit_store
from habitflow.services.goal_progression import (
    format_rest_days,
    get_progression_info,
    has_earned_rest_day,
)
from habitflow.services.progress import get_progress

router = APIRouter(prefix="/habits", tags=["habits"])

_NOT_FOUND = {404: {"model": ErrorResponse, "description": "Unknown habit id."}}
_CONFIG_ERROR = {422: {"model": ErrorResponse, "description": "Invalid goal progression settings."}}

_AS_OF = Query(
    default=None,
    description="Day to evaluate. Defaults to today in the configured time zone.",
    examples=["2026-02-21"],
)


# ---------------------------------------------------------------------------
# Serialization helpers
# ---------------------------------------------------------------------------

def _habit_to_response(row: Habit) -> HabitResponse:
    domain_habit = habit_store.to_domain(row)
    return HabitResponse(
        id=row.id,
        name=row.name,
        icon=row.icon,
        color=row.color,
        kind=row.kind,
        daily_goal=row.daily_goal,
        unit=row.unit,
        goal_progression=row.goal_progression,
        initial_goal=row.initial_goal,
        goal_increment=row.goal_increment,
        goal_increment_interval_days=row.goal_increment_interval_days,
        last_goal_adjustment=str(row.last_goal_adjustment) if row.last_goal_adjustment else None,
        rest_days=habit_store.rest_days_of(row),
        rest_days_label=format_rest_days(domain_habit),
        created_at=row.created_at.isoformat() if row.created_at else "",
    )


def _completion_to_response(c: HabitCompletion) -> CompletionResponse:
    return CompletionResponse(
        habit_id=c.habit_id,
        day=str(c.day),
        value=c.value,
        is_auto_synced=c.is_auto_synced,
    )


# ---------------------------------------------------------------------------
# Habits
# ---------------------------------------------------------------------------

@router.post(
    "",
    response_model=HabitResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a habit",
    responses=_CONFIG_ERROR,
)
def create_habit(payload: HabitCreateRequest, db: Session = Depends(get_db)):
    """
    Create a habit. Ramp-up habits need `goal_increment` and
    `goal_increment_interval_days`; any non-fixed progression needs a
    `daily_goal`. Violations return `CONFIGURATION_ERROR`.
    """
    return _habit_to_response(habit_store.create_habit(db, payload))


@router.get("", response_model=HabitListResponse, summary="List habits")
def list_habits(db: Session = Depends(get_db)):
    rows = habit_store.list_habits(db)
    return HabitListResponse(total=len(rows), items=[_habit_to_response(r) for r in rows])


@router.get("/{habit_id}", response_model=HabitResponse, responses=_NOT_FOUND)
def get_habit(habit_id: str, db: Session = Depends(get_db)):
    return _habit_to_response(habit_store.get_habit(db, habit_id))


@router.delete(
    "/{habit_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    response_class=Response,
    responses=_NOT_FOUND,
)
def delete_habit(habit_id: str, db: Session = Depends(get_db)):
    habit_store.delete_habit(db, habit_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ---------------------------------------------------------------------------
# Completions
# ---------------------------------------------------------------------------

@router.post(
    "/{habit_id}/completions",
    response_model=CompletionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Record a completion (one per day; later writes overwrite)",
    responses=_NOT_FOUND,
)
def record_completion(
    habit_id: str,
    payload: CompletionRequest,
    db: Session = Depends(get_db),
):
    completion = habit_store.record_completion(
        db,
        habit_id=habit_id,
        day=payload.day or settings.today(),
        value=payload.value,
        is_auto_synced=payload.is_auto_synced,
    )
    return _completion_to_response(completion)


@router.delete(
    "/{habit_id}/completions/{day}",
    status_code=status.HTTP_204_NO_CONTENT,
    response_class=Response,
    responses=_NOT_FOUND,
)
def delete_completion(habit_id: str, day: date, db: Session = Depends(get_db)):
    habit_store.delete_completion(db, habit_id, day)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ---------------------------------------------------------------------------
# Progress + goal
# ---------------------------------------------------------------------------

@router.get(
    "/{habit_id}/progress",
    response_model=ProgressResponse,
    summary="Streaks, completion rate and today's progress",
    responses={**_NOT_FOUND, **_CONFIG_ERROR},
)
def habit_progress(
    habit_id: str,
    as_of: Optional[date] = _AS_OF,
    db: Session = Depends(get_db),
):
    """
    Rest days never break a streak. For goal-based habits a day counts
    only when its value reaches the goal in force on that day.
    `today_progress` is not clamped, so overshooting shows as > 1.0.
    """
    habit = habit_store.to_domain(habit_store.get_habit(db, habit_id))
    p = get_progress(habit, as_of or settings.today())
    return ProgressResponse(
        habit_id=p.habit_id,
        as_of=str(p.as_of),
        current_streak=p.current_streak,
        longest_streak=p.longest_streak,
        completion_rate=p.completion_rate,
        today_progress=p.today_progress,
        completed_today=p.completed_today,
        effective_goal=p.effective_goal,
        last_completed_on=str(p.last_completed_on) if p.last_completed_on else None,
        earned_rest_day=has_earned_rest_day(habit, p.as_of),
    )


@router.get(
    "/{habit_id}/goal",
    response_model=GoalProgressionResponse,
    summary="Goal progression status",
    responses={**_NOT_FOUND, **_CONFIG_ERROR},
)
def habit_goal(
    habit_id: str,
    as_of: Optional[date] = _AS_OF,
    db: Session = Depends(get_db),
):
    habit = habit_store.to_domain(habit_store.get_habit(db, habit_id))
    info = get_progression_info(habit, as_of or settings.today(), settings.adaptive_policy())
    return GoalProgressionResponse(
        habit_id=habit.id,
        progression=info.progression.value,
        current_goal=info.current_goal,
        initial_goal=info.initial_goal,
        next_goal=info.next_goal,
        days_until_change=info.days_until_change,
        message=info.message,
    )


@router.post(
    "/{habit_id}/goal/adjust",
    response_model=GoalAdjustResponse,
    summary="Apply a due goal change",
    responses={**_NOT_FOUND, **_CONFIG_ERROR},
)
def adjust_goal(
    habit_id: str,
    as_of: Optional[date] = _AS_OF,
    db: Session = Depends(get_db),
):
    """
    Ramp-up habits move to the scheduled goal; adaptive habits move one
    step up or down based on the trailing window. Calling again for the
    same day returns `applied: false` and changes nothing.
    """
    row, adjustment = habit_store.adjust_goal(
        db, habit_id, as_of or settings.today(), settings.adaptive_policy()
    )
    return GoalAdjustResponse(
        applied=adjustment is not None,
        adjustment=GoalAdjustmentOut(
            direction=adjustment.direction.value,
            current_goal=adjustment.current_goal,
            suggested_goal=adjustment.suggested_goal,
            effective_on=str(adjustment.effective_on),
            reason=adjustment.reason,
        ) if adjustment else None,
        habit=_habit_to_response(row),
    )
