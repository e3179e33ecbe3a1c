"""
Goal Progression Engine: the goal in force on a given day, and when it moves.

Policies
--------
  fixed     goal == daily_goal, forever.

  ramp_up   goal climbs by goal_increment every goal_increment_interval_days.
            Anchor is the creation day with base initial_goal, or the last
            applied adjustment with base daily_goal once one exists:
                goal(day) = base + increment * ((day - anchor).days // interval)
            Adjustments are written on interval boundaries, so both anchors
            yield the same schedule.

  adaptive  goal follows recent performance. Over the trailing window of
            `window_days` evaluable days before as_of (uncompleted rest days
            are skipped), met-goal days >= increase_threshold raise the goal
            by one step, met-goal days <= decrease_threshold lower it by one
            step, never below initial_goal. At most one adjustment per window.
            Days before a change are judged against the goal recorded in
            goal_history, so an increase never rewrites the streak that earned it.

apply_adjustment() is the only mutation the core performs. It writes
daily_goal + last_goal_adjustment on the Habit, appends the outgoing goal
to goal_history and is idempotent for a given as_of. Callers serialize
writes per habit.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Optional

from habitflow.core.config import settings
from habitflow.core.errors import ConfigurationError
from habitflow.services.domain import (
    AdjustmentDirection,
    GoalAdjustment,
    GoalChange,
    GoalProgression,
    GoalProgressionInfo,
    Habit,
    as_day,
)

logger = logging.getLogger(__name__)

_SHORT_WEEKDAYS = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]

# Streak length that earns an optional rest day.
EARNED_REST_DAY_STREAK = 5


@dataclass(frozen=True)
class AdaptivePolicy:
    window_days: int = 7
    increase_threshold: int = 5
    decrease_threshold: int = 2
    step_ratio: float = 0.1    # step when the habit has no goal_increment


DEFAULT_POLICY = AdaptivePolicy()


def _today() -> date:
    return settings.today()


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

def validate_progression(habit: Habit) -> None:
    """Raise ConfigurationError when the progression parameters are unusable."""
    progression = habit.goal_progression
    if habit.daily_goal is None and progression is not GoalProgression.fixed:
        raise ConfigurationError(
            f"{progression.display_name} progression requires a daily goal.",
            habit_id=habit.id,
            field="daily_goal",
        )
    if progression is not GoalProgression.ramp_up:
        return
    if habit.goal_increment is None or habit.goal_increment <= 0:
        raise ConfigurationError(
            "Ramp-up progression requires a positive goal_increment.",
            habit_id=habit.id,
            field="goal_increment",
        )
    if habit.goal_increment_interval_days is None or habit.goal_increment_interval_days <= 0:
        raise ConfigurationError(
            "Ramp-up progression requires a positive goal_increment_interval_days.",
            habit_id=habit.id,
            field="goal_increment_interval_days",
        )
    if habit.initial_goal is None:
        raise ConfigurationError(
            "Ramp-up progression requires an initial_goal.",
            habit_id=habit.id,
            field="initial_goal",
        )


# ---------------------------------------------------------------------------
# Ramp-up schedule
# ---------------------------------------------------------------------------

def _ramp_anchor(habit: Habit, day: date) -> tuple[date, float]:
    adjusted = habit.last_goal_adjustment
    if adjusted is not None and habit.daily_goal is not None and as_day(adjusted) <= day:
        return as_day(adjusted), habit.daily_goal
    return habit.created_on, habit.initial_goal


def _ramp_elapsed(habit: Habit, day: date) -> tuple[date, float, int]:
    anchor, base = _ramp_anchor(habit, day)
    return anchor, base, max(0, (day - anchor).days)


def effective_goal(habit: Habit, day: Optional[date] = None) -> Optional[float]:
    """Goal in force on `day`. None for binary habits."""
    validate_progression(habit)
    day = day or _today()
    if habit.goal_progression is GoalProgression.ramp_up:
        _, base, elapsed = _ramp_elapsed(habit, day)
        return base + habit.goal_increment * (elapsed // habit.goal_increment_interval_days)
    if habit.goal_progression is GoalProgression.adaptive:
        return _recorded_goal(habit, day)
    return habit.daily_goal


def _recorded_goal(habit: Habit, day: date) -> Optional[float]:
    """daily_goal as it stood on `day`, read back through goal_history."""
    for change in sorted(habit.goal_history, key=lambda c: c.effective_on):
        if day < change.effective_on:
            return change.previous_goal
    return habit.daily_goal


def days_until_change(habit: Habit, as_of: Optional[date] = None) -> Optional[int]:
    """Days until the next ramp-up step; None for other policies."""
    validate_progression(habit)
    if habit.goal_progression is not GoalProgression.ramp_up:
        return None
    _, _, elapsed = _ramp_elapsed(habit, as_of or _today())
    interval = habit.goal_increment_interval_days
    return interval - (elapsed % interval)


# ---------------------------------------------------------------------------
# Adaptive evaluation
# ---------------------------------------------------------------------------

def _evaluation_window(habit: Habit, as_of: date, size: int, done: set[date]) -> list[date]:
    """Up to `size` evaluable days before as_of, newest first."""
    window: list[date] = []
    day = as_of - timedelta(days=1)
    while len(window) < size and day >= habit.created_on:
        if day in done or not habit.is_rest_day(day):
            window.append(day)
        day -= timedelta(days=1)
    return window


def _adaptive_step(habit: Habit, policy: AdaptivePolicy) -> float:
    if habit.goal_increment is not None and habit.goal_increment > 0:
        return habit.goal_increment
    base = habit.initial_goal if habit.initial_goal is not None else habit.daily_goal
    return base * policy.step_ratio


def _window_stats(habit: Habit, as_of: date, policy: AdaptivePolicy) -> tuple[int, int]:
    from habitflow.services import progress

    done = progress.completed_days(habit, as_of)
    window = _evaluation_window(habit, as_of, policy.window_days, done)
    return sum(1 for day in window if day in done), len(window)


def _adaptive_suggestion(
    habit: Habit, as_of: date, policy: AdaptivePolicy
) -> Optional[GoalAdjustment]:
    last = habit.last_goal_adjustment
    if last is not None and (as_of - as_day(last)).days < policy.window_days:
        return None

    met, evaluated = _window_stats(habit, as_of, policy)
    if evaluated < policy.window_days:
        return None

    current = habit.daily_goal
    step = _adaptive_step(habit, policy)

    if met >= policy.increase_threshold:
        return GoalAdjustment(
            habit_id=habit.id,
            direction=AdjustmentDirection.increase,
            current_goal=current,
            suggested_goal=current + step,
            effective_on=as_of,
            reason="You've been crushing this goal! Ready to level up?",
        )

    if met <= policy.decrease_threshold:
        floor = habit.initial_goal if habit.initial_goal is not None else 0.0
        target = max(current - step, floor)
        if target >= current:
            return None
        return GoalAdjustment(
            habit_id=habit.id,
            direction=AdjustmentDirection.decrease,
            current_goal=current,
            suggested_goal=target,
            effective_on=as_of,
            reason="Let's make this more achievable. Small wins lead to big changes!",
        )

    return None


# ---------------------------------------------------------------------------
# Public: adjustments
# ---------------------------------------------------------------------------

def suggest_adjustment(
    habit: Habit,
    as_of: Optional[date] = None,
    policy: AdaptivePolicy = DEFAULT_POLICY,
) -> Optional[GoalAdjustment]:
    """What apply_adjustment would write for as_of, without writing it."""
    validate_progression(habit)
    as_of = as_of or _today()

    if habit.goal_progression is GoalProgression.adaptive:
        return _adaptive_suggestion(habit, as_of, policy)

    if habit.goal_progression is not GoalProgression.ramp_up:
        return None

    scheduled = effective_goal(habit, as_of)
    if habit.daily_goal == scheduled:
        return None
    anchor, _, elapsed = _ramp_elapsed(habit, as_of)
    boundary = anchor + timedelta(days=elapsed - elapsed % habit.goal_increment_interval_days)
    direction = (
        AdjustmentDirection.increase
        if habit.daily_goal is None or scheduled > habit.daily_goal
        else AdjustmentDirection.decrease
    )
    return GoalAdjustment(
        habit_id=habit.id,
        direction=direction,
        current_goal=habit.daily_goal,
        suggested_goal=scheduled,
        effective_on=boundary,
        reason=(
            f"Scheduled ramp-up: +{format_goal_value(habit.goal_increment, habit.unit)} "
            f"every {habit.goal_increment_interval_days} days."
        ),
    )


def apply_adjustment(
    habit: Habit,
    as_of: Optional[date] = None,
    policy: AdaptivePolicy = DEFAULT_POLICY,
) -> Optional[GoalAdjustment]:
    """
    Write the pending adjustment (if any) onto the habit.
    Returns the applied adjustment, or None when nothing changed.
    Re-running for the same as_of is a no-op.
    """
    adjustment = suggest_adjustment(habit, as_of, policy)
    if adjustment is None:
        return None
    if adjustment.current_goal is not None:
        habit.goal_history.append(GoalChange(adjustment.effective_on, adjustment.current_goal))
    habit.daily_goal = adjustment.suggested_goal
    habit.last_goal_adjustment = adjustment.effective_on
    logger.info(
        "goal %s for habit %s: %s -> %s (effective %s)",
        adjustment.direction.value,
        habit.id,
        adjustment.current_goal,
        adjustment.suggested_goal,
        adjustment.effective_on,
    )
    return adjustment


# ---------------------------------------------------------------------------
# Public: display info
# ---------------------------------------------------------------------------

def get_progression_info(
    habit: Habit,
    as_of: Optional[date] = None,
    policy: AdaptivePolicy = DEFAULT_POLICY,
) -> GoalProgressionInfo:
    validate_progression(habit)
    as_of = as_of or _today()
    progression = habit.goal_progression

    if progression is GoalProgression.ramp_up:
        current = effective_goal(habit, as_of)
        days = days_until_change(habit, as_of)
        return GoalProgressionInfo(
            progression=progression,
            current_goal=current,
            initial_goal=habit.initial_goal,
            next_goal=current + habit.goal_increment,
            days_until_change=days,
            message=(
                f"Goal increases by {format_goal_value(habit.goal_increment, habit.unit)} "
                f"in {days} day{'' if days == 1 else 's'}"
            ),
        )

    if progression is GoalProgression.adaptive:
        met, evaluated = _window_stats(habit, as_of, policy)
        rate = met / evaluated if evaluated else 0.0
        if rate > 0.8:
            message = "Great progress! Goal may increase soon"
        elif rate < 0.5:
            message = "Taking it easy is okay. Goal may adjust"
        else:
            message = "Goal adapts based on your performance"
        return GoalProgressionInfo(
            progression=progression,
            current_goal=habit.daily_goal,
            initial_goal=habit.initial_goal,
            message=message,
        )

    return GoalProgressionInfo(
        progression=progression,
        current_goal=habit.daily_goal,
        initial_goal=habit.initial_goal,
        message=progression.description,
    )


# ---------------------------------------------------------------------------
# Rest days
# ---------------------------------------------------------------------------

def format_rest_days(habit: Habit) -> Optional[str]:
    """"Sat, Sun" style label, or None when the habit has no rest days."""
    names = [_SHORT_WEEKDAYS[d] for d in sorted(habit.rest_days) if 0 <= d <= 6]
    return ", ".join(names) or None


def has_earned_rest_day(habit: Habit, as_of: Optional[date] = None) -> bool:
    from habitflow.services import progress

    return progress.current_streak(habit, as_of) >= EARNED_REST_DAY_STREAK


def format_goal_value(value: float, unit: Optional[str] = None) -> str:
    text = str(int(value)) if float(value).is_integer() else f"{value:.1f}"
    return f"{text} {unit}" if unit else text
