"""
Habit store: the storage adapter between SQLAlchemy rows and the engine.

Responsibilities
----------------
  * encode / decode enum strings and the JSON rest_days / goal_history columns
  * always materialize `completions` as a list on the domain Habit
  * upsert completions so each (habit, day) keeps only the latest write
  * persist the Goal Progression Engine's mutation (daily_goal,
    last_goal_adjustment, goal_history), holding a row lock while it runs

The engine services never import this module.
"""
from __future__ import annotations

import json
import logging
import uuid
from datetime import date, datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from habitflow.core.config import settings
from habitflow.core.errors import CompletionNotFoundError, HabitNotFoundError
from habitflow.models.habit import Habit, HabitCompletion
from habitflow.schemas.habit import HabitCreateRequest
from habitflow.services import domain
from habitflow.services.goal_progression import (
    DEFAULT_POLICY,
    AdaptivePolicy,
    apply_adjustment,
    validate_progression,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Encoding helpers
# ---------------------------------------------------------------------------

def _encode_rest_days(days: list[int] | frozenset[int]) -> Optional[str]:
    return json.dumps(sorted(set(days))) if days else None


def _decode_rest_days(raw: Optional[str]) -> frozenset[int]:
    if not raw:
        return frozenset()
    return frozenset(int(d) for d in json.loads(raw))


def _encode_goal_history(history: list[domain.GoalChange]) -> Optional[str]:
    if not history:
        return None
    return json.dumps([[c.effective_on.isoformat(), c.previous_goal] for c in history])


def _decode_goal_history(raw: Optional[str]) -> list[domain.GoalChange]:
    if not raw:
        return []
    return [
        domain.GoalChange(effective_on=date.fromisoformat(day), previous_goal=float(goal))
        for day, goal in json.loads(raw)
    ]


def _local_day(value: datetime) -> date:
    """Calendar day of a stored timestamp in the configured zone."""
    if value.tzinfo is None:
        # SQLite drops the offset; stored values are UTC
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(ZoneInfo(settings.TIMEZONE)).date()


def to_domain(row: Habit) -> domain.Habit:
    return domain.Habit(
        id=row.id,
        name=row.name,
        icon=row.icon,
        color=row.color,
        created_at=_local_day(row.created_at),
        kind=domain.HabitKind(row.kind),
        daily_goal=row.daily_goal,
        unit=row.unit,
        goal_progression=domain.GoalProgression(row.goal_progression),
        initial_goal=row.initial_goal,
        goal_increment=row.goal_increment,
        goal_increment_interval_days=row.goal_increment_interval_days,
        last_goal_adjustment=row.last_goal_adjustment,
        rest_days=_decode_rest_days(row.rest_days),
        goal_history=_decode_goal_history(row.goal_history),
        completions=[
            domain.Completion(
                habit_id=row.id,
                date=c.day,
                value=c.value,
                is_auto_synced=c.is_auto_synced,
            )
            for c in row.completions
        ],
    )


def rest_days_of(row: Habit) -> list[int]:
    return sorted(_decode_rest_days(row.rest_days))


# ---------------------------------------------------------------------------
# Habits
# ---------------------------------------------------------------------------

def create_habit(db: Session, payload: HabitCreateRequest) -> Habit:
    """
    Persist a new habit. Progression parameters are checked here, at
    creation time, so malformed ramp-up settings never reach the engine.
    """
    initial_goal = payload.initial_goal
    if initial_goal is None and payload.goal_progression is not domain.GoalProgression.fixed:
        initial_goal = payload.daily_goal

    habit_id = str(uuid.uuid4())
    created_at = payload.created_at or datetime.now(tz=timezone.utc)

    validate_progression(domain.Habit(
        id=habit_id,
        name=payload.name,
        created_at=created_at,
        kind=payload.kind,
        daily_goal=payload.daily_goal,
        goal_progression=payload.goal_progression,
        initial_goal=initial_goal,
        goal_increment=payload.goal_increment,
        goal_increment_interval_days=payload.goal_increment_interval_days,
    ))

    row = Habit(
        id=habit_id,
        name=payload.name,
        icon=payload.icon,
        color=payload.color,
        kind=payload.kind.value,
        daily_goal=payload.daily_goal,
        unit=payload.unit,
        goal_progression=payload.goal_progression.value,
        initial_goal=initial_goal,
        goal_increment=payload.goal_increment,
        goal_increment_interval_days=payload.goal_increment_interval_days,
        rest_days=_encode_rest_days(payload.rest_days),
        created_at=created_at,
    )
    db.add(row)
    db.commit()
    db.refresh(row)
    logger.info("created habit %s (%s, %s)", row.id, row.kind, row.goal_progression)
    return row


def list_habits(db: Session) -> list[Habit]:
    return (
        db.query(Habit)
        .options(selectinload(Habit.completions))
        .order_by(Habit.created_at, Habit.id)
        .all()
    )


def get_habit(db: Session, habit_id: str, for_update: bool = False) -> Habit:
    q = db.query(Habit).filter(Habit.id == habit_id)
    if for_update:
        q = q.with_for_update()
    row = q.first()
    if row is None:
        raise HabitNotFoundError(habit_id)
    return row


def delete_habit(db: Session, habit_id: str) -> None:
    """Completions go with the habit (ORM cascade + ON DELETE CASCADE)."""
    db.delete(get_habit(db, habit_id))
    db.commit()


def load_domain_habits(db: Session) -> list[domain.Habit]:
    return [to_domain(row) for row in list_habits(db)]


# ---------------------------------------------------------------------------
# Completions
# ---------------------------------------------------------------------------

def _find_completion(db: Session, habit_id: str, day: date) -> Optional[HabitCompletion]:
    return (
        db.query(HabitCompletion)
        .filter(HabitCompletion.habit_id == habit_id, HabitCompletion.day == day)
        .first()
    )


def record_completion(
    db: Session,
    habit_id: str,
    day: date,
    value: Optional[float] = None,
    is_auto_synced: bool = False,
) -> HabitCompletion:
    """Insert or overwrite the habit's completion for `day` (latest write wins)."""
    get_habit(db, habit_id)

    existing = _find_completion(db, habit_id, day)
    if existing is None:
        existing = HabitCompletion(habit_id=habit_id, day=day)
        db.add(existing)
    existing.value = value
    existing.is_auto_synced = is_auto_synced

    try:
        db.commit()
    except IntegrityError:
        # Concurrent insert for the same day: overwrite the winner's row.
        db.rollback()
        existing = _find_completion(db, habit_id, day)
        existing.value = value
        existing.is_auto_synced = is_auto_synced
        db.commit()

    db.refresh(existing)
    return existing


def delete_completion(db: Session, habit_id: str, day: date) -> None:
    get_habit(db, habit_id)
    existing = _find_completion(db, habit_id, day)
    if existing is None:
        raise CompletionNotFoundError(habit_id, day)
    db.delete(existing)
    db.commit()


# ---------------------------------------------------------------------------
# Goal adjustment
# ---------------------------------------------------------------------------

def adjust_goal(
    db: Session,
    habit_id: str,
    as_of: date,
    policy: AdaptivePolicy = DEFAULT_POLICY,
) -> tuple[Habit, Optional[domain.GoalAdjustment]]:
    """
    Apply any due goal change for as_of and persist it.
    The habit row is locked while the adjustment is computed, so concurrent
    callers for the same habit serialize. Idempotent per as_of.
    """
    row = get_habit(db, habit_id, for_update=True)
    habit = to_domain(row)
    adjustment = apply_adjustment(habit, as_of, policy)
    if adjustment is None:
        db.rollback()
        return row, None

    row.daily_goal = habit.daily_goal
    row.last_goal_adjustment = domain.as_day(habit.last_goal_adjustment)
    row.goal_history = _encode_goal_history(habit.goal_history)
    db.commit()
    db.refresh(row)
    return row, adjustment
