"""
Domain value objects shared by the progress, goal and insight services.

Plain dataclasses: no ORM, no Pydantic. The storage adapter
(habit_store.py) converts to and from these; the engine never sees
database rows or raw enum strings.

Weekday indices follow date.weekday(): Monday = 0 ... Sunday = 6.
"""
from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Optional, Union

DayLike = Union[date, datetime]

WEEKDAY_NAMES = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]


def as_day(value: DayLike) -> date:
    """Reduce a date or datetime to its calendar day."""
    if isinstance(value, datetime):
        return value.date()
    return value


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class HabitKind(str, enum.Enum):
    manual = "manual"
    health_sleep = "health_sleep"
    health_water = "health_water"
    health_calories = "health_calories"

    @property
    def is_external(self) -> bool:
        return self is not HabitKind.manual


class GoalProgression(str, enum.Enum):
    fixed = "fixed"
    ramp_up = "ramp_up"
    adaptive = "adaptive"

    @property
    def display_name(self) -> str:
        return {
            GoalProgression.fixed: "Fixed",
            GoalProgression.ramp_up: "Ramp Up",
            GoalProgression.adaptive: "Adaptive",
        }[self]

    @property
    def description(self) -> str:
        return {
            GoalProgression.fixed: "Goal stays the same",
            GoalProgression.ramp_up: "Goal increases over time",
            GoalProgression.adaptive: "Adjusts based on your performance",
        }[self]


class InsightType(str, enum.Enum):
    streak = "streak"
    pattern = "pattern"
    milestone = "milestone"
    improvement = "improvement"
    correlation = "correlation"
    motivation = "motivation"


class InsightPriority(enum.IntEnum):
    low = 1
    medium = 2
    high = 3
    urgent = 4


class AdjustmentDirection(str, enum.Enum):
    increase = "increase"
    decrease = "decrease"


# ---------------------------------------------------------------------------
# Aggregate
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class GoalChange:
    """A past goal change: `previous_goal` was in force until `effective_on`."""
    effective_on: date
    previous_goal: float


@dataclass
class Completion:
    habit_id: str
    date: DayLike
    value: Optional[float] = None
    is_auto_synced: bool = False

    @property
    def day(self) -> date:
        return as_day(self.date)


@dataclass
class Habit:
    id: str
    name: str
    created_at: DayLike
    icon: str = "checkmark.circle.fill"
    color: str = "#34C759"
    kind: HabitKind = HabitKind.manual
    daily_goal: Optional[float] = None
    unit: Optional[str] = None
    goal_progression: GoalProgression = GoalProgression.fixed
    initial_goal: Optional[float] = None
    goal_increment: Optional[float] = None
    goal_increment_interval_days: Optional[int] = None
    last_goal_adjustment: Optional[DayLike] = None
    rest_days: frozenset[int] = frozenset()
    goal_history: list[GoalChange] = field(default_factory=list)
    completions: list[Completion] = field(default_factory=list)

    @property
    def created_on(self) -> date:
        return as_day(self.created_at)

    @property
    def is_goal_based(self) -> bool:
        return self.daily_goal is not None and self.daily_goal > 0

    def is_rest_day(self, day: date) -> bool:
        return day.weekday() in self.rest_days


# ---------------------------------------------------------------------------
# Engine outputs
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Insight:
    type: InsightType
    title: str
    message: str
    detail: Optional[str] = None
    priority: InsightPriority = InsightPriority.medium
    related_habit_id: Optional[str] = None
    related_habit_name: Optional[str] = None
    value: Optional[float] = None
    is_positive: bool = True
    actionable: bool = False


@dataclass
class GoalProgressionInfo:
    progression: GoalProgression
    current_goal: Optional[float]
    message: str
    initial_goal: Optional[float] = None
    next_goal: Optional[float] = None
    days_until_change: Optional[int] = None   # ramp-up only


@dataclass
class GoalAdjustment:
    habit_id: str
    direction: AdjustmentDirection
    current_goal: Optional[float]
    suggested_goal: float
    effective_on: date
    reason: str


@dataclass
class HabitProgress:
    habit_id: str
    as_of: date
    current_streak: int
    longest_streak: int
    completion_rate: float
    today_progress: float
    completed_today: bool
    effective_goal: Optional[float]
    last_completed_on: Optional[date]
