"""
Tests for the storage adapter: row <-> domain conversion, completion upserts
and persisted goal adjustments.
"""
from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

import pytest

from habitflow.core.config import settings
from habitflow.core.errors import CompletionNotFoundError, ConfigurationError, HabitNotFoundError
from habitflow.models.habit import HabitCompletion
from habitflow.schemas.habit import HabitCreateRequest
from habitflow.services import habit_store
from habitflow.services.domain import GoalChange, GoalProgression, HabitKind
from habitflow.services.progress import current_streak


def _create(db, **fields):
    payload = HabitCreateRequest(created_at=datetime(2026, 3, 2, 9, 0), **fields)
    return habit_store.create_habit(db, payload)


class TestCreateHabit:
    def test_defaults(self, db):
        row = _create(db, name="  Meditate  ")
        assert row.name == "Meditate"
        assert row.kind == "manual"
        assert row.goal_progression == "fixed"
        assert row.initial_goal is None
        assert row.rest_days is None

    def test_initial_goal_defaults_to_daily_goal(self, db):
        row = _create(db, name="Push-ups", daily_goal=20, goal_progression=GoalProgression.adaptive)
        assert row.initial_goal == 20

    def test_rest_days_round_trip(self, db):
        row = _create(db, name="Run", rest_days=[6, 5, 5])
        assert habit_store.rest_days_of(row) == [5, 6]
        assert habit_store.to_domain(row).rest_days == frozenset({5, 6})

    def test_ramp_up_without_increment_is_rejected(self, db):
        with pytest.raises(ConfigurationError) as exc_info:
            _create(db, name="Water", daily_goal=1000, goal_progression=GoalProgression.ramp_up,
                    goal_increment_interval_days=7)
        assert exc_info.value.details["field"] == "goal_increment"
        assert habit_store.list_habits(db) == []

    def test_to_domain(self, db):
        row = _create(db, name="Sleep", kind=HabitKind.health_sleep, daily_goal=8, unit="hours")
        habit = habit_store.to_domain(row)
        assert habit.kind is HabitKind.health_sleep
        assert habit.goal_progression is GoalProgression.fixed
        assert habit.created_on == date(2026, 3, 2)
        assert habit.completions == []

    def test_created_on_uses_configured_zone(self, db, monkeypatch):
        monkeypatch.setattr(settings, "TIMEZONE", "America/Los_Angeles")
        row = habit_store.create_habit(db, HabitCreateRequest(
            name="Journal", created_at=datetime(2026, 3, 2, 3, 0, tzinfo=timezone.utc),
        ))
        # 03:00 UTC is still the evening of March 1st in Los Angeles
        assert habit_store.to_domain(row).created_on == date(2026, 3, 1)

    def test_naive_timestamps_are_read_as_utc(self, monkeypatch):
        monkeypatch.setattr(settings, "TIMEZONE", "Asia/Tokyo")
        assert habit_store._local_day(datetime(2026, 3, 2, 20, 0)) == date(2026, 3, 3)


class TestLookup:
    def test_unknown_habit(self, db):
        with pytest.raises(HabitNotFoundError):
            habit_store.get_habit(db, "missing")

    def test_list_in_creation_order(self, db):
        habit_store.create_habit(db, HabitCreateRequest(name="B", created_at=datetime(2026, 3, 3)))
        habit_store.create_habit(db, HabitCreateRequest(name="A", created_at=datetime(2026, 3, 1)))
        assert [r.name for r in habit_store.list_habits(db)] == ["A", "B"]

    def test_delete_cascades_completions(self, db):
        row = _create(db, name="Read")
        habit_store.record_completion(db, row.id, date(2026, 3, 3))
        habit_store.delete_habit(db, row.id)
        assert db.query(HabitCompletion).count() == 0
        with pytest.raises(HabitNotFoundError):
            habit_store.get_habit(db, row.id)


class TestCompletions:
    def test_latest_write_wins(self, db):
        row = _create(db, name="Water", daily_goal=2000)
        habit_store.record_completion(db, row.id, date(2026, 3, 3), value=2500)
        habit_store.record_completion(db, row.id, date(2026, 3, 3), value=500, is_auto_synced=True)
        stored = db.query(HabitCompletion).filter_by(habit_id=row.id).all()
        assert len(stored) == 1
        assert stored[0].value == 500
        assert stored[0].is_auto_synced is True

    def test_completions_reach_the_domain(self, db):
        row = _create(db, name="Read")
        habit_store.record_completion(db, row.id, date(2026, 3, 4))
        habit_store.record_completion(db, row.id, date(2026, 3, 3))
        db.refresh(row)
        habit = habit_store.to_domain(row)
        assert [c.day for c in habit.completions] == [date(2026, 3, 3), date(2026, 3, 4)]

    def test_record_for_unknown_habit(self, db):
        with pytest.raises(HabitNotFoundError):
            habit_store.record_completion(db, "missing", date(2026, 3, 3))

    def test_delete_completion(self, db):
        row = _create(db, name="Read")
        habit_store.record_completion(db, row.id, date(2026, 3, 3))
        habit_store.delete_completion(db, row.id, date(2026, 3, 3))
        with pytest.raises(CompletionNotFoundError):
            habit_store.delete_completion(db, row.id, date(2026, 3, 3))


class TestAdjustGoal:
    def _ramp(self, db):
        return _create(
            db, name="Water", unit="ml", daily_goal=1000,
            goal_progression=GoalProgression.ramp_up,
            goal_increment=250, goal_increment_interval_days=7,
        )

    def test_ramp_up_adjustment_is_persisted(self, db):
        row = self._ramp(db)
        row, adj = habit_store.adjust_goal(db, row.id, date(2026, 3, 11))
        assert adj.suggested_goal == 1250
        assert row.daily_goal == 1250
        assert row.last_goal_adjustment == date(2026, 3, 9)

    def test_second_call_is_a_no_op(self, db):
        row = self._ramp(db)
        habit_store.adjust_goal(db, row.id, date(2026, 3, 11))
        row, adj = habit_store.adjust_goal(db, row.id, date(2026, 3, 11))
        assert adj is None
        assert row.daily_goal == 1250
        assert row.last_goal_adjustment == date(2026, 3, 9)

    def test_nothing_due(self, db):
        row = self._ramp(db)
        row, adj = habit_store.adjust_goal(db, row.id, date(2026, 3, 5))
        assert adj is None
        assert row.daily_goal == 1000
        assert row.last_goal_adjustment is None

    def test_adaptive_history_is_persisted(self, db):
        row = _create(
            db, name="Water", unit="ml", daily_goal=2000, goal_increment=500,
            goal_progression=GoalProgression.adaptive,
        )
        for k in range(7):
            habit_store.record_completion(db, row.id, date(2026, 3, 2) + timedelta(days=k), value=2000)

        as_of = date(2026, 3, 9)
        db.refresh(row)
        streak_before = current_streak(habit_store.to_domain(row), as_of)
        row, adj = habit_store.adjust_goal(db, row.id, as_of)

        assert adj.suggested_goal == 2500
        assert row.daily_goal == 2500
        habit = habit_store.to_domain(row)
        assert habit.goal_history == [GoalChange(effective_on=as_of, previous_goal=2000.0)]
        assert current_streak(habit, as_of) == streak_before == 7
