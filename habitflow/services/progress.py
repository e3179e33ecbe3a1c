"""
Progress Calculator: streak, completion-rate and today's-progress metrics.

A day is "completed" when
  * binary habit (no daily goal): a completion exists for that day;
  * goal-based habit: the day's completion value is >= the goal in force on
    that day (effective_goal for the day, not today's goal, so past streaks
    stay stable when a ramp-up raises the bar). A manual goal-based habit
    ticked without a value also counts.

Rest days never break a streak and never extend one unless completed.
Days before the habit's creation day are never considered.

Public API
----------
is_completed_on(habit, day)          -> bool
completed_days(habit, as_of)         -> set[date]
current_streak(habit, as_of)         -> int
longest_streak(habit, as_of)         -> int
completion_rate(habit, as_of)        -> float in [0, 1]
today_progress(habit, as_of)         -> float >= 0 (not clamped)
get_progress(habit, as_of)           -> HabitProgress

Pure functions: no mutation, no I/O.
"""
from __future__ import annotations

from datetime import date, timedelta
from typing import Optional

from habitflow.core.config import settings
from habitflow.services.domain import Completion, Habit, HabitProgress
from habitflow.services.goal_progression import effective_goal

ONE_DAY = timedelta(days=1)


def _today() -> date:
    return settings.today()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def latest_by_day(habit: Habit) -> dict[date, Completion]:
    """
    One authoritative completion per calendar day.
    Latest write wins: the later timestamp, or the later position in the
    collection when timestamps don't order them.
    """
    index: dict[date, Completion] = {}
    for completion in habit.completions:
        day = completion.day
        previous = index.get(day)
        if previous is not None and _is_older(completion, previous):
            continue
        index[day] = completion
    return index


def _is_older(candidate: Completion, current: Completion) -> bool:
    a, b = candidate.date, current.date
    if type(a) is type(b) and a != b:
        return a < b
    return False


def _qualifies(habit: Habit, completion: Optional[Completion], day: date) -> bool:
    if completion is None or day < habit.created_on:
        return False
    if not habit.is_goal_based:
        return True
    if completion.value is None:
        return not habit.kind.is_external
    return completion.value >= effective_goal(habit, day)


def _only_rest_days_between(habit: Habit, earlier: date, later: date) -> bool:
    gap = (later - earlier).days
    return all(habit.is_rest_day(earlier + timedelta(days=k)) for k in range(1, gap))


# ---------------------------------------------------------------------------
# Public
# ---------------------------------------------------------------------------

def is_completed_on(habit: Habit, day: date) -> bool:
    return _qualifies(habit, latest_by_day(habit).get(day), day)


def completed_days(habit: Habit, as_of: Optional[date] = None) -> set[date]:
    """Qualifying completed days in [created_on, as_of]; unbounded above when as_of is None."""
    return {
        day
        for day, completion in latest_by_day(habit).items()
        if (as_of is None or day <= as_of) and _qualifies(habit, completion, day)
    }


def current_streak(habit: Habit, as_of: Optional[date] = None) -> int:
    """
    Walk backward from as_of (or the day before, when as_of isn't done yet)
    counting completed days. Uncompleted rest days are stepped over; any
    other missed day ends the walk.
    """
    as_of = as_of or _today()
    done = completed_days(habit, as_of)
    if not done:
        return 0

    day = as_of if as_of in done else as_of - ONE_DAY
    streak = 0
    while day >= habit.created_on:
        if day in done:
            streak += 1
        elif not habit.is_rest_day(day):
            break
        day -= ONE_DAY
    return streak


def longest_streak(habit: Habit, as_of: Optional[date] = None) -> int:
    longest = 0
    run = 0
    previous: Optional[date] = None
    for day in sorted(completed_days(habit, as_of)):
        if previous is not None and _only_rest_days_between(habit, previous, day):
            run += 1
        else:
            run = 1
        longest = max(longest, run)
        previous = day
    return longest


def completion_rate(habit: Habit, as_of: Optional[date] = None) -> float:
    as_of = as_of or _today()
    days_since_creation = (as_of - habit.created_on).days
    if days_since_creation <= 0:
        return 1.0 if is_completed_on(habit, as_of) else 0.0
    return len(completed_days(habit, as_of)) / max(1, days_since_creation + 1)


def value_on(habit: Habit, day: date) -> float:
    completion = latest_by_day(habit).get(day)
    if completion is None or completion.value is None:
        return 0.0
    return completion.value


def today_progress(habit: Habit, as_of: Optional[date] = None) -> float:
    """Fraction of the day's goal reached. Overshoot is kept (1.5 means 150 %)."""
    as_of = as_of or _today()
    completion = latest_by_day(habit).get(as_of)
    if not habit.is_goal_based or (completion is not None and completion.value is None):
        return 1.0 if _qualifies(habit, completion, as_of) else 0.0
    if completion is None:
        return 0.0
    return value_on(habit, as_of) / effective_goal(habit, as_of)


def get_progress(habit: Habit, as_of: Optional[date] = None) -> HabitProgress:
    """All metrics for one habit in a single snapshot."""
    as_of = as_of or _today()
    done = completed_days(habit, as_of)
    return HabitProgress(
        habit_id=habit.id,
        as_of=as_of,
        current_streak=current_streak(habit, as_of),
        longest_streak=longest_streak(habit, as_of),
        completion_rate=completion_rate(habit, as_of),
        today_progress=today_progress(habit, as_of),
        completed_today=as_of in done,
        effective_goal=effective_goal(habit, as_of),
        last_completed_on=max(done) if done else None,
    )
