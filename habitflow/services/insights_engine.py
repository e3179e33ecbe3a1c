"""
Insight Engine: a ranked feed of findings about habit behaviour.

Rule families (each a standalone function over HabitSnapshots)
--------------------------------------------------------------
  streak       active streaks (>= 3 days), "streak at risk", "almost a record"
  milestone    streak hits 7/14/30/... exactly on as_of, total check-in counts
  pattern      best / worst weekday per habit, weekend vs weekday overall
  improvement  trailing week vs the week before, per-habit surges,
               pending adaptive goal changes
  correlation  habit pairs completed together (both / either >= 70 %)
  motivation   comeback after a lapse, anniversaries, a nudge for habits
               nothing else spoke about, perfect day, consistency champion

Ordering
--------
Priority descending, then type precedence
  milestone > streak > correlation > pattern > improvement > motivation,
then generation order (stable sort).

Pure: same habits + same as_of => the same list, in the same order.
All thresholds live in InsightRules.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from itertools import combinations
from typing import Iterable, Optional

from habitflow.core.config import settings
from habitflow.services import goal_progression, progress
from habitflow.services.domain import (
    WEEKDAY_NAMES,
    AdjustmentDirection,
    GoalProgression,
    Habit,
    Insight,
    InsightPriority,
    InsightType,
)
from habitflow.services.goal_progression import AdaptivePolicy

logger = logging.getLogger(__name__)

TYPE_PRECEDENCE = {
    InsightType.milestone: 0,
    InsightType.streak: 1,
    InsightType.correlation: 2,
    InsightType.pattern: 3,
    InsightType.improvement: 4,
    InsightType.motivation: 5,
}

_WEEKEND = {5, 6}


@dataclass(frozen=True)
class InsightRules:
    max_insights: Optional[int] = 15

    # streak
    streak_min: int = 3
    streak_high: int = 7
    streak_urgent: int = 30
    at_risk_min_streak: int = 3        # strictly greater than
    record_gap_max: int = 3
    record_min_streak: int = 5

    # milestone
    milestone_streaks: tuple[int, ...] = (7, 14, 30, 60, 90, 100, 180, 365)
    milestone_urgent_from: int = 30
    checkin_milestones: tuple[int, ...] = (50, 100, 250, 500, 1000, 2500, 5000)
    checkin_milestone_span: int = 50

    # pattern
    pattern_min_history_days: int = 14
    pattern_window_weeks: int = 12
    pattern_margin: float = 0.15
    weekend_window_days: int = 30
    weekend_margin: float = 0.15

    # improvement
    comparison_days: int = 7
    decline_min_percent: float = 20.0
    decline_min_drop: int = 2
    surge_min_percent: float = 50.0
    surge_min_completions: int = 3

    # correlation
    correlation_window_days: int = 30
    correlation_min_ratio: float = 0.7
    correlation_min_days: int = 10
    correlation_min_together: int = 3

    # motivation
    lapse_days: int = 3
    lapse_min_streak: int = 3
    anniversaries: tuple[int, ...] = (30, 90, 180, 365)
    champion_rate: float = 0.8

    adaptive: AdaptivePolicy = field(default_factory=AdaptivePolicy)


DEFAULT_RULES = InsightRules()


@dataclass
class HabitSnapshot:
    """Progress Calculator outputs for one habit, computed once per generation call."""
    habit: Habit
    done: set[date]
    current_streak: int
    longest_streak: int
    completion_rate: float
    completed_today: bool


@dataclass(frozen=True)
class HabitPair:
    first: Habit
    second: Habit
    together: int
    either: int
    opportunity_days: int

    @property
    def ratio(self) -> float:
        return self.together / self.either if self.either else 0.0


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def take_snapshots(habits: Iterable[Habit], as_of: date) -> list[HabitSnapshot]:
    snapshots = []
    for habit in habits:
        done = progress.completed_days(habit, as_of)
        snapshots.append(HabitSnapshot(
            habit=habit,
            done=done,
            current_streak=progress.current_streak(habit, as_of),
            longest_streak=progress.longest_streak(habit, as_of),
            completion_rate=progress.completion_rate(habit, as_of),
            completed_today=as_of in done,
        ))
    return snapshots


def _count_between(done: set[date], start: date, end: date) -> int:
    return sum(1 for day in done if start <= day <= end)


def _days(start: date, end: date) -> Iterable[date]:
    for offset in range((end - start).days + 1):
        yield start + timedelta(days=offset)


def _pct(fraction: float) -> int:
    return int(round(fraction * 100))


def _plural(n: int, word: str = "day") -> str:
    return f"{n} {word}" if n == 1 else f"{n} {word}s"


def _milestone_reached(snap: HabitSnapshot, rules: InsightRules) -> bool:
    return snap.completed_today and snap.current_streak in rules.milestone_streaks


# ---------------------------------------------------------------------------
# Streak
# ---------------------------------------------------------------------------

def streak_insights(
    snapshots: list[HabitSnapshot], as_of: date, rules: InsightRules = DEFAULT_RULES
) -> list[Insight]:
    insights: list[Insight] = []
    yesterday = as_of - timedelta(days=1)

    for snap in snapshots:
        habit, streak = snap.habit, snap.current_streak

        at_risk = (
            streak > rules.at_risk_min_streak
            and not snap.completed_today
            and not habit.is_rest_day(as_of)
            and yesterday in snap.done
        )
        if at_risk:
            insights.append(Insight(
                type=InsightType.streak,
                title="Streak at Risk!",
                message=f"Complete {habit.name} to keep your {streak}-day streak alive!",
                priority=InsightPriority.urgent,
                related_habit_id=habit.id,
                related_habit_name=habit.name,
                value=float(streak),
                is_positive=False,
                actionable=True,
            ))
        elif streak >= rules.streak_min and not _milestone_reached(snap, rules):
            if streak >= rules.streak_urgent:
                title, priority = "Unstoppable!", InsightPriority.urgent
            elif streak >= rules.streak_high:
                title, priority = "On Fire!", InsightPriority.high
            else:
                title, priority = "Building Momentum", InsightPriority.medium
            insights.append(Insight(
                type=InsightType.streak,
                title=title,
                message=f"{habit.name} has a {streak}-day streak!",
                detail="Keep it going! You're building a strong habit.",
                priority=priority,
                related_habit_id=habit.id,
                related_habit_name=habit.name,
                value=float(streak),
            ))

        to_record = snap.longest_streak - streak
        if 0 < to_record <= rules.record_gap_max and streak >= rules.record_min_streak:
            insights.append(Insight(
                type=InsightType.streak,
                title="Almost There!",
                message=f"{_plural(to_record)} more to beat your {habit.name} record!",
                detail=(
                    f"Your current streak: {streak} days. "
                    f"Personal best: {snap.longest_streak} days."
                ),
                priority=InsightPriority.high,
                related_habit_id=habit.id,
                related_habit_name=habit.name,
                value=float(to_record),
                actionable=True,
            ))

    return insights


# ---------------------------------------------------------------------------
# Milestone
# ---------------------------------------------------------------------------

def milestone_insights(
    snapshots: list[HabitSnapshot], as_of: date, rules: InsightRules = DEFAULT_RULES
) -> list[Insight]:
    """
    A streak milestone fires only when as_of itself completes the run,
    so a streak held at 7 the next (uncompleted or rest) day stays silent.
    """
    insights: list[Insight] = []

    for snap in snapshots:
        if not _milestone_reached(snap, rules):
            continue
        habit, streak = snap.habit, snap.current_streak
        urgent = streak >= rules.milestone_urgent_from
        insights.append(Insight(
            type=InsightType.milestone,
            title=f"{streak}-Day Champion!" if urgent else f"{streak}-Day Milestone!",
            message=f"Incredible! {habit.name} streak hit {streak} days!",
            detail=(
                "You've truly mastered this habit!" if streak >= 90
                else "Keep going, you're building something great!"
            ),
            priority=InsightPriority.urgent if urgent else InsightPriority.high,
            related_habit_id=habit.id,
            related_habit_name=habit.name,
            value=float(streak),
        ))

    total = sum(len(snap.done) for snap in snapshots)
    for threshold in rules.checkin_milestones:
        if threshold <= total < threshold + rules.checkin_milestone_span:
            insights.append(Insight(
                type=InsightType.milestone,
                title="Milestone Reached!",
                message=f"You've completed {total} habit check-ins!",
                detail="Every check-in brings you closer to your goals.",
                priority=InsightPriority.high if threshold >= 500 else InsightPriority.medium,
                value=float(total),
            ))
            break

    return insights


# ---------------------------------------------------------------------------
# Pattern
# ---------------------------------------------------------------------------

def weekday_rates(
    habit: Habit, done: set[date], start: date, end: date
) -> tuple[dict[int, float], float]:
    """Per-weekday completion rate over [start, end] plus the overall rate. Rest weekdays excluded."""
    possible = [0] * 7
    completed = [0] * 7
    for day in _days(start, end):
        weekday = day.weekday()
        if weekday in habit.rest_days:
            continue
        possible[weekday] += 1
        if day in done:
            completed[weekday] += 1

    rates = {wd: completed[wd] / possible[wd] for wd in range(7) if possible[wd]}
    overall = sum(completed) / sum(possible) if sum(possible) else 0.0
    return rates, overall


def pattern_insights(
    snapshots: list[HabitSnapshot], as_of: date, rules: InsightRules = DEFAULT_RULES
) -> list[Insight]:
    insights: list[Insight] = []

    for snap in snapshots:
        habit = snap.habit
        if (as_of - habit.created_on).days + 1 < rules.pattern_min_history_days:
            continue
        start = max(habit.created_on, as_of - timedelta(days=rules.pattern_window_weeks * 7 - 1))
        rates, overall = weekday_rates(habit, snap.done, start, as_of)
        if not rates:
            continue

        best = min(rates, key=lambda wd: (-rates[wd], wd))
        worst = min(rates, key=lambda wd: (rates[wd], wd))

        if rates[best] - overall >= rules.pattern_margin:
            insights.append(Insight(
                type=InsightType.pattern,
                title="Your Power Day",
                message=(
                    f"{WEEKDAY_NAMES[best]} is your strongest day for {habit.name} "
                    f"with {_pct(rates[best])}% completion!"
                ),
                detail=f"That's {_pct(rates[best] - overall)} points above your usual {_pct(overall)}%.",
                priority=InsightPriority.medium,
                related_habit_id=habit.id,
                related_habit_name=habit.name,
                value=rates[best],
            ))

        if worst != best and overall - rates[worst] >= rules.pattern_margin:
            insights.append(Insight(
                type=InsightType.pattern,
                title=f"Tough {WEEKDAY_NAMES[worst]}s",
                message=(
                    f"{habit.name} slips on {WEEKDAY_NAMES[worst]}s: "
                    f"{_pct(rates[worst])}% vs {_pct(overall)}% overall."
                ),
                detail=f"Try a reminder or a smaller version of the habit on {WEEKDAY_NAMES[worst]}s.",
                priority=InsightPriority.medium,
                related_habit_id=habit.id,
                related_habit_name=habit.name,
                value=rates[worst],
                is_positive=False,
                actionable=True,
            ))

    weekend = _weekend_insight(snapshots, as_of, rules)
    if weekend is not None:
        insights.append(weekend)
    return insights


def _weekend_insight(
    snapshots: list[HabitSnapshot], as_of: date, rules: InsightRules
) -> Optional[Insight]:
    possible = [0] * 7
    completed = [0] * 7
    window_start = as_of - timedelta(days=rules.weekend_window_days - 1)
    for snap in snapshots:
        for day in _days(max(snap.habit.created_on, window_start), as_of):
            if snap.habit.is_rest_day(day):
                continue
            possible[day.weekday()] += 1
            if day in snap.done:
                completed[day.weekday()] += 1

    def average(weekdays: set[int]) -> float:
        rates = [completed[wd] / possible[wd] for wd in weekdays if possible[wd]]
        return sum(rates) / len(rates) if rates else 0.0

    weekend_avg = average(_WEEKEND)
    weekday_avg = average(set(range(7)) - _WEEKEND)
    if weekend_avg <= 0 or weekday_avg <= 0:
        return None
    diff = abs(weekend_avg - weekday_avg)
    if diff <= rules.weekend_margin:
        return None

    weekends_better = weekend_avg > weekday_avg
    return Insight(
        type=InsightType.pattern,
        title="Weekend Warrior" if weekends_better else "Weekday Workhorse",
        message=f"You complete {_pct(diff)}% more habits on {'weekends' if weekends_better else 'weekdays'}.",
        detail=(
            "Try scheduling important habits for Saturday and Sunday!" if weekends_better
            else "Your routine is stronger during the work week."
        ),
        priority=InsightPriority.medium,
        value=diff,
    )


# ---------------------------------------------------------------------------
# Improvement
# ---------------------------------------------------------------------------

def _week_counts(done: set[date], as_of: date, days: int) -> tuple[int, int]:
    current_start = as_of - timedelta(days=days - 1)
    previous_end = current_start - timedelta(days=1)
    previous_start = previous_end - timedelta(days=days - 1)
    return (
        _count_between(done, current_start, as_of),
        _count_between(done, previous_start, previous_end),
    )


def improvement_insights(
    snapshots: list[HabitSnapshot], as_of: date, rules: InsightRules = DEFAULT_RULES
) -> list[Insight]:
    insights: list[Insight] = []

    current = previous = 0
    for snap in snapshots:
        c, p = _week_counts(snap.done, as_of, rules.comparison_days)
        current += c
        previous += p

    if previous > 0 and current >= previous:
        change = (current - previous) / previous * 100
        if change > 25:
            priority = InsightPriority.high
        elif change > 0:
            priority = InsightPriority.medium
        else:
            priority = InsightPriority.low
        insights.append(Insight(
            type=InsightType.improvement,
            title="You're Improving!" if change > 0 else "Holding Steady",
            message=(
                f"{change:.0f}% more completions than last week!" if change > 0
                else "Same number of completions as last week. Consistency counts!"
            ),
            detail=f"This week: {current} vs Last week: {previous}",
            priority=priority,
            value=change,
        ))
    elif current < previous:
        change = (previous - current) / previous * 100
        if change >= rules.decline_min_percent and previous - current >= rules.decline_min_drop:
            insights.append(Insight(
                type=InsightType.improvement,
                title="Room to Grow",
                message=f"Completions are down {change:.0f}% from last week.",
                detail="It's okay! Every day is a fresh start. You've got this!",
                priority=InsightPriority.medium,
                value=change,
                is_positive=False,
                actionable=True,
            ))

    for snap in snapshots:
        habit = snap.habit
        c, p = _week_counts(snap.done, as_of, rules.comparison_days)
        if p > 0 and c >= rules.surge_min_completions:
            change = (c - p) / p * 100
            if change > rules.surge_min_percent:
                insights.append(Insight(
                    type=InsightType.improvement,
                    title=f"{habit.name} is Soaring!",
                    message="You've really stepped up this habit this week!",
                    detail=f"This week: {c} vs Last week: {p}",
                    priority=InsightPriority.medium,
                    related_habit_id=habit.id,
                    related_habit_name=habit.name,
                    value=change,
                ))

        goal_insight = _goal_insight(habit, as_of, rules)
        if goal_insight is not None:
            insights.append(goal_insight)

    return insights


def _goal_insight(habit: Habit, as_of: date, rules: InsightRules) -> Optional[Insight]:
    if habit.goal_progression is GoalProgression.ramp_up:
        if goal_progression.days_until_change(habit, as_of) != 1:
            return None
        next_goal = goal_progression.effective_goal(habit, as_of) + habit.goal_increment
        return Insight(
            type=InsightType.improvement,
            title="Goal Steps Up Tomorrow",
            message=(
                f"{habit.name} rises to "
                f"{goal_progression.format_goal_value(next_goal, habit.unit)} tomorrow."
            ),
            priority=InsightPriority.low,
            related_habit_id=habit.id,
            related_habit_name=habit.name,
            value=next_goal,
        )

    if habit.goal_progression is not GoalProgression.adaptive:
        return None
    suggestion = goal_progression.suggest_adjustment(habit, as_of, rules.adaptive)
    if suggestion is None:
        return None
    target = goal_progression.format_goal_value(suggestion.suggested_goal, habit.unit)
    if suggestion.direction is AdjustmentDirection.increase:
        return Insight(
            type=InsightType.improvement,
            title="Ready to Level Up",
            message=f"You've outgrown your {habit.name} goal. Next target: {target}.",
            detail=suggestion.reason,
            priority=InsightPriority.medium,
            related_habit_id=habit.id,
            related_habit_name=habit.name,
            value=suggestion.suggested_goal,
            actionable=True,
        )
    return Insight(
        type=InsightType.improvement,
        title="Let's Reset the Bar",
        message=f"{habit.name} has been hard lately. A goal of {target} may fit better.",
        detail=suggestion.reason,
        priority=InsightPriority.low,
        related_habit_id=habit.id,
        related_habit_name=habit.name,
        value=suggestion.suggested_goal,
        is_positive=False,
        actionable=True,
    )


# ---------------------------------------------------------------------------
# Correlation
# ---------------------------------------------------------------------------

def correlated_pairs(
    snapshots: list[HabitSnapshot], as_of: date, rules: InsightRules = DEFAULT_RULES
) -> list[HabitPair]:
    pairs: list[HabitPair] = []
    window_start = as_of - timedelta(days=rules.correlation_window_days - 1)

    for a, b in combinations(snapshots, 2):
        start = max(a.habit.created_on, b.habit.created_on, window_start)
        opportunity = (as_of - start).days + 1
        if opportunity < rules.correlation_min_days:
            continue
        a_days = {d for d in a.done if start <= d <= as_of}
        b_days = {d for d in b.done if start <= d <= as_of}
        pair = HabitPair(
            first=a.habit,
            second=b.habit,
            together=len(a_days & b_days),
            either=len(a_days | b_days),
            opportunity_days=opportunity,
        )
        if pair.together >= rules.correlation_min_together and pair.ratio >= rules.correlation_min_ratio:
            pairs.append(pair)

    return pairs


def _correlation_insight(pair: HabitPair) -> Insight:
    first, second = pair.first.name, pair.second.name
    return Insight(
        type=InsightType.correlation,
        title="Better Together",
        message=f"{first} and {second} are completed together {_pct(pair.ratio)}% of the time.",
        detail=f"Try stacking them: do {second} right after {first}.",
        priority=InsightPriority.medium,
        related_habit_id=pair.first.id,
        related_habit_name=first,
        value=pair.ratio,
    )


# ---------------------------------------------------------------------------
# Motivation
# ---------------------------------------------------------------------------

def _habit_motivation(
    snap: HabitSnapshot, as_of: date, rules: InsightRules, covered: bool
) -> Optional[Insight]:
    habit = snap.habit

    lapse_start = as_of - timedelta(days=rules.lapse_days - 1)
    lapse_window = list(_days(lapse_start, as_of))
    lapsed = (
        not any(day in snap.done for day in lapse_window)
        and not all(habit.is_rest_day(day) for day in lapse_window)
    )
    if lapsed:
        before = progress.current_streak(habit, lapse_start - timedelta(days=1))
        if before >= rules.lapse_min_streak:
            return Insight(
                type=InsightType.motivation,
                title="Get Back on Track",
                message=f"You had a {before}-day streak on {habit.name}. Today is a great day to restart!",
                priority=InsightPriority.medium,
                related_habit_id=habit.id,
                related_habit_name=habit.name,
                value=float(before),
                is_positive=False,
                actionable=True,
            )

    days_old = (as_of - habit.created_on).days
    if days_old in rules.anniversaries:
        return Insight(
            type=InsightType.motivation,
            title=f"{days_old}-Day Anniversary!",
            message=f"You've been tracking {habit.name} for {days_old} days!",
            detail="Consistency is the key to transformation.",
            priority=InsightPriority.medium,
            related_habit_id=habit.id,
            related_habit_name=habit.name,
            value=float(days_old),
        )

    if covered:
        return None
    return Insight(
        type=InsightType.motivation,
        title="Keep Showing Up",
        message=f"Every check-in on {habit.name} counts. Log today's progress to build momentum.",
        priority=InsightPriority.low,
        related_habit_id=habit.id,
        related_habit_name=habit.name,
        actionable=True,
    )


def motivation_insights(
    snapshots: list[HabitSnapshot],
    as_of: date,
    rules: InsightRules = DEFAULT_RULES,
    covered: frozenset[str] = frozenset(),
) -> list[Insight]:
    """
    At most one insight per habit. `covered` holds ids of habits other rule
    families already spoke about; only uncovered habits get the generic nudge.
    """
    insights: list[Insight] = []
    if not snapshots:
        return insights

    if all(snap.completed_today for snap in snapshots):
        insights.append(Insight(
            type=InsightType.motivation,
            title="Perfect Day!",
            message=f"You've completed all {_plural(len(snapshots), 'habit')} today!",
            detail="Amazing work! Take a moment to celebrate your dedication.",
            priority=InsightPriority.high,
        ))

    average_rate = sum(snap.completion_rate for snap in snapshots) / len(snapshots)
    if average_rate > rules.champion_rate:
        insights.append(Insight(
            type=InsightType.motivation,
            title="Consistency Champion",
            message=f"Your average completion rate is {_pct(average_rate)}%!",
            detail="You're in the top tier of habit builders. Keep it up!",
            priority=InsightPriority.medium,
            value=average_rate,
        ))

    for snap in snapshots:
        insight = _habit_motivation(snap, as_of, rules, snap.habit.id in covered)
        if insight is not None:
            insights.append(insight)

    return insights


def _starter_insight() -> Insight:
    return Insight(
        type=InsightType.motivation,
        title="Welcome to HabitFlow!",
        message="Add your first habit to start tracking and receive personalized insights.",
        priority=InsightPriority.high,
    )


# ---------------------------------------------------------------------------
# Public: main entry point
# ---------------------------------------------------------------------------

def sort_insights(insights: list[Insight]) -> list[Insight]:
    return sorted(insights, key=lambda i: (-i.priority, TYPE_PRECEDENCE[i.type]))


def generate_insights(
    habits: list[Habit],
    as_of: Optional[date] = None,
    rules: InsightRules = DEFAULT_RULES,
) -> list[Insight]:
    """
    Run every rule family over the habit set and return the ranked feed.
    Raises ConfigurationError if a habit's goal progression is malformed.
    """
    as_of = as_of or settings.today()
    if not habits:
        return [_starter_insight()]

    snapshots = take_snapshots(habits, as_of)
    pairs = correlated_pairs(snapshots, as_of, rules)

    insights: list[Insight] = []
    insights.extend(streak_insights(snapshots, as_of, rules))
    insights.extend(milestone_insights(snapshots, as_of, rules))
    insights.extend(pattern_insights(snapshots, as_of, rules))
    insights.extend(improvement_insights(snapshots, as_of, rules))
    insights.extend(_correlation_insight(pair) for pair in pairs)

    covered = {i.related_habit_id for i in insights if i.related_habit_id is not None}
    for pair in pairs:
        covered.update((pair.first.id, pair.second.id))
    insights.extend(motivation_insights(snapshots, as_of, rules, frozenset(covered)))

    ranked = sort_insights(insights)
    if rules.max_insights is not None:
        ranked = ranked[: rules.max_insights]
    logger.debug("generated %d insights for %d habits (as of %s)", len(ranked), len(habits), as_of)
    return ranked
