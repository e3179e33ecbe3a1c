"""
Tests for the Goal Progression Engine.

Covered scenarios:
  A) fixed      - goal never moves
  B) ramp-up    - stepwise schedule, monotonic, idempotent apply
  C) adaptive   - raise / lower by one step, floor at initial goal,
                  at most one change per evaluation window
  D) config     - malformed ramp-up / adaptive settings raise ConfigurationError
  E) display    - progression messages, rest-day labels, goal formatting
"""
from __future__ import annotations

from datetime import date, timedelta

import pytest

from habitflow.core.errors import ConfigurationError
from habitflow.services.domain import (
    AdjustmentDirection,
    Completion,
    GoalChange,
    GoalProgression,
    Habit,
)
from habitflow.services.goal_progression import (
    AdaptivePolicy,
    _evaluation_window,
    apply_adjustment,
    days_until_change,
    effective_goal,
    format_goal_value,
    format_rest_days,
    get_progression_info,
    has_earned_rest_day,
    suggest_adjustment,
    validate_progression,
)
from habitflow.services.progress import current_streak

MON = date(2026, 3, 2)


def _ramp(**overrides) -> Habit:
    fields = dict(
        id="ramp",
        name="Water",
        created_at=MON,
        daily_goal=1000,
        unit="ml",
        goal_progression=GoalProgression.ramp_up,
        initial_goal=1000,
        goal_increment=250,
        goal_increment_interval_days=7,
    )
    fields.update(overrides)
    return Habit(**fields)


def _adaptive(daily_goal: float, completed: list[date], value: float | None = None, **overrides) -> Habit:
    fields = dict(
        id="adapt",
        name="Push-ups",
        created_at=date(2026, 2, 1),
        daily_goal=daily_goal,
        goal_progression=GoalProgression.adaptive,
        initial_goal=10,
    )
    fields.update(overrides)
    habit = Habit(**fields)
    habit.completions = [
        Completion(habit_id=habit.id, date=d, value=daily_goal if value is None else value)
        for d in completed
    ]
    return habit


def _days_before(as_of: date, n: int) -> list[date]:
    return [as_of - timedelta(days=k) for k in range(1, n + 1)]


# ---------------------------------------------------------------------------
# A) Fixed
# ---------------------------------------------------------------------------

class TestFixed:
    def test_goal_is_daily_goal(self):
        habit = Habit(id="f", name="Steps", created_at=MON, daily_goal=8000)
        assert effective_goal(habit, MON) == 8000
        assert effective_goal(habit, MON + timedelta(days=400)) == 8000

    def test_binary_habit_has_no_goal(self):
        habit = Habit(id="b", name="Meditate", created_at=MON)
        assert effective_goal(habit, MON) is None

    def test_never_suggests_adjustment(self):
        habit = Habit(id="f", name="Steps", created_at=MON, daily_goal=8000)
        assert suggest_adjustment(habit, MON + timedelta(days=30)) is None
        assert apply_adjustment(habit, MON + timedelta(days=30)) is None
        assert days_until_change(habit, MON) is None


# ---------------------------------------------------------------------------
# B) Ramp-up
# ---------------------------------------------------------------------------

class TestRampUp:
    @pytest.mark.parametrize("offset,expected", [
        (0, 1000),
        (6, 1000),
        (7, 1250),
        (13, 1250),
        (14, 1500),
        (70, 3500),
    ])
    def test_schedule(self, offset, expected):
        assert effective_goal(_ramp(), MON + timedelta(days=offset)) == expected

    def test_monotonic_non_decreasing(self):
        habit = _ramp()
        goals = [effective_goal(habit, MON + timedelta(days=k)) for k in range(100)]
        assert goals == sorted(goals)

    def test_days_until_change(self):
        habit = _ramp()
        assert days_until_change(habit, MON) == 7
        assert days_until_change(habit, MON + timedelta(days=6)) == 1
        assert days_until_change(habit, MON + timedelta(days=7)) == 7

    def test_no_adjustment_before_first_step(self):
        assert apply_adjustment(_ramp(), MON + timedelta(days=6)) is None

    def test_apply_moves_to_scheduled_goal(self):
        habit = _ramp()
        adj = apply_adjustment(habit, date(2026, 3, 11))
        assert adj is not None
        assert adj.direction is AdjustmentDirection.increase
        assert adj.current_goal == 1000
        assert adj.suggested_goal == 1250
        assert adj.effective_on == date(2026, 3, 9)
        assert habit.daily_goal == 1250
        assert habit.last_goal_adjustment == date(2026, 3, 9)

    def test_apply_is_idempotent(self):
        habit = _ramp()
        apply_adjustment(habit, date(2026, 3, 11))
        assert apply_adjustment(habit, date(2026, 3, 11)) is None
        assert habit.daily_goal == 1250
        assert habit.last_goal_adjustment == date(2026, 3, 9)

    def test_schedule_unchanged_after_apply(self):
        habit = _ramp()
        before = [effective_goal(habit, MON + timedelta(days=k)) for k in range(30)]
        apply_adjustment(habit, date(2026, 3, 11))
        after = [effective_goal(habit, MON + timedelta(days=k)) for k in range(30)]
        assert before == after

    def test_catching_up_several_steps(self):
        habit = _ramp()
        adj = apply_adjustment(habit, MON + timedelta(days=22))
        assert adj.suggested_goal == 1750
        assert adj.effective_on == MON + timedelta(days=21)


# ---------------------------------------------------------------------------
# C) Adaptive
# ---------------------------------------------------------------------------

class TestAdaptive:
    AS_OF = date(2026, 3, 12)

    def test_increase_after_strong_week(self):
        habit = _adaptive(10, _days_before(self.AS_OF, 7))
        adj = suggest_adjustment(habit, self.AS_OF)
        assert adj.direction is AdjustmentDirection.increase
        assert adj.suggested_goal == pytest.approx(11)
        assert adj.effective_on == self.AS_OF

    def test_increase_uses_goal_increment_when_set(self):
        habit = _adaptive(10, _days_before(self.AS_OF, 5), goal_increment=5)
        assert suggest_adjustment(habit, self.AS_OF).suggested_goal == 15

    def test_decrease_after_weak_week(self):
        habit = _adaptive(12, _days_before(self.AS_OF, 2))
        adj = suggest_adjustment(habit, self.AS_OF)
        assert adj.direction is AdjustmentDirection.decrease
        assert adj.suggested_goal == pytest.approx(11)

    def test_decrease_floors_at_initial_goal(self):
        habit = _adaptive(10.5, [])
        assert suggest_adjustment(habit, self.AS_OF).suggested_goal == 10

    def test_no_decrease_below_initial_goal(self):
        habit = _adaptive(10, [])
        assert suggest_adjustment(habit, self.AS_OF) is None

    def test_middle_band_holds(self):
        habit = _adaptive(10, _days_before(self.AS_OF, 3))
        assert suggest_adjustment(habit, self.AS_OF) is None

    def test_values_below_goal_are_misses(self):
        habit = _adaptive(12, _days_before(self.AS_OF, 7), value=9)
        adj = suggest_adjustment(habit, self.AS_OF)
        assert adj.direction is AdjustmentDirection.decrease
        assert adj.suggested_goal == pytest.approx(11)

    def test_needs_a_full_window_of_history(self):
        habit = _adaptive(10, _days_before(self.AS_OF, 3), created_at=self.AS_OF - timedelta(days=3))
        assert suggest_adjustment(habit, self.AS_OF) is None

    def test_once_per_window(self):
        habit = _adaptive(10, _days_before(self.AS_OF + timedelta(days=6), 13))
        assert apply_adjustment(habit, self.AS_OF) is not None
        assert habit.daily_goal == pytest.approx(11)
        assert apply_adjustment(habit, self.AS_OF) is None
        assert apply_adjustment(habit, self.AS_OF + timedelta(days=6)) is None
        assert habit.daily_goal == pytest.approx(11)

    def test_increase_keeps_the_streak_that_earned_it(self):
        habit = _adaptive(10, _days_before(self.AS_OF, 7), goal_increment=5)
        assert current_streak(habit, self.AS_OF) == 7
        assert apply_adjustment(habit, self.AS_OF).suggested_goal == 15
        assert habit.goal_history == [GoalChange(effective_on=self.AS_OF, previous_goal=10)]
        assert effective_goal(habit, self.AS_OF - timedelta(days=1)) == 10
        assert effective_goal(habit, self.AS_OF) == 15
        assert current_streak(habit, self.AS_OF) == 7

    def test_goal_history_spans_several_changes(self):
        history = [GoalChange(date(2026, 3, 1), 10), GoalChange(date(2026, 3, 8), 15)]
        habit = _adaptive(20, [], goal_history=history)
        assert effective_goal(habit, date(2026, 2, 28)) == 10
        assert effective_goal(habit, date(2026, 3, 1)) == 15
        assert effective_goal(habit, date(2026, 3, 7)) == 15
        assert effective_goal(habit, date(2026, 3, 8)) == 20

    def test_custom_policy(self):
        policy = AdaptivePolicy(window_days=3, increase_threshold=3, decrease_threshold=0)
        habit = _adaptive(10, _days_before(self.AS_OF, 3))
        assert suggest_adjustment(habit, self.AS_OF, policy).suggested_goal == pytest.approx(11)

    def test_window_skips_uncompleted_rest_days(self):
        # 2026-03-12 is a Thursday; 03-07 / 03-08 are the weekend
        habit = _adaptive(10, [], rest_days=frozenset({5, 6}))
        window = _evaluation_window(habit, self.AS_OF, 7, set())
        assert date(2026, 3, 7) not in window
        assert date(2026, 3, 8) not in window
        assert window[0] == date(2026, 3, 11)
        assert window[-1] == date(2026, 3, 3)

    def test_window_keeps_completed_rest_days(self):
        habit = _adaptive(10, [], rest_days=frozenset({5, 6}))
        window = _evaluation_window(habit, self.AS_OF, 7, {date(2026, 3, 7)})
        assert date(2026, 3, 7) in window
        assert window[-1] == date(2026, 3, 4)


# ---------------------------------------------------------------------------
# D) Configuration errors
# ---------------------------------------------------------------------------

class TestConfiguration:
    @pytest.mark.parametrize("overrides,field", [
        ({"goal_increment": None}, "goal_increment"),
        ({"goal_increment": 0}, "goal_increment"),
        ({"goal_increment_interval_days": None}, "goal_increment_interval_days"),
        ({"goal_increment_interval_days": 0}, "goal_increment_interval_days"),
        ({"initial_goal": None}, "initial_goal"),
        ({"daily_goal": None}, "daily_goal"),
    ])
    def test_ramp_up_requires_parameters(self, overrides, field):
        with pytest.raises(ConfigurationError) as exc_info:
            validate_progression(_ramp(**overrides))
        assert exc_info.value.details["field"] == field
        assert exc_info.value.details["habit_id"] == "ramp"

    def test_adaptive_requires_daily_goal(self):
        habit = Habit(id="a", name="X", created_at=MON, goal_progression=GoalProgression.adaptive)
        with pytest.raises(ConfigurationError):
            effective_goal(habit, MON)

    def test_error_surfaces_from_every_entry_point(self):
        habit = _ramp(goal_increment=None)
        for call in (effective_goal, days_until_change, suggest_adjustment, get_progression_info):
            with pytest.raises(ConfigurationError):
                call(habit, MON)


# ---------------------------------------------------------------------------
# E) Display helpers
# ---------------------------------------------------------------------------

class TestProgressionInfo:
    def test_ramp_up_message(self):
        info = get_progression_info(_ramp(), MON)
        assert info.current_goal == 1000
        assert info.next_goal == 1250
        assert info.days_until_change == 7
        assert info.message == "Goal increases by 250 ml in 7 days"

    def test_ramp_up_message_singular(self):
        info = get_progression_info(_ramp(), MON + timedelta(days=6))
        assert info.message == "Goal increases by 250 ml in 1 day"

    def test_fixed_message(self):
        habit = Habit(id="f", name="Steps", created_at=MON, daily_goal=8000)
        info = get_progression_info(habit, MON)
        assert info.message == "Goal stays the same"
        assert info.days_until_change is None

    def test_adaptive_messages(self):
        as_of = date(2026, 3, 12)
        strong = _adaptive(10, _days_before(as_of, 7))
        weak = _adaptive(10, [])
        middle = _adaptive(10, _days_before(as_of, 4))
        assert get_progression_info(strong, as_of).message == "Great progress! Goal may increase soon"
        assert get_progression_info(weak, as_of).message == "Taking it easy is okay. Goal may adjust"
        assert get_progression_info(middle, as_of).message == "Goal adapts based on your performance"


class TestHelpers:
    def test_format_rest_days(self):
        habit = Habit(id="r", name="Run", created_at=MON, rest_days=frozenset({6, 5}))
        assert format_rest_days(habit) == "Sat, Sun"
        assert format_rest_days(Habit(id="r", name="Run", created_at=MON)) is None

    def test_format_goal_value(self):
        assert format_goal_value(2000.0) == "2000"
        assert format_goal_value(2.5, "km") == "2.5 km"
        assert format_goal_value(250, "ml") == "250 ml"

    def test_earned_rest_day(self):
        habit = Habit(id="r", name="Run", created_at=MON)
        habit.completions = [Completion(habit_id="r", date=MON + timedelta(days=k)) for k in range(5)]
        assert has_earned_rest_day(habit, MON + timedelta(days=4)) is True
        assert has_earned_rest_day(habit, MON + timedelta(days=3)) is False
