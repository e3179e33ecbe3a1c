"""
Habit + HabitCompletion: the record store behind the engine.

One completion row per (habit_id, day): the unique constraint is where
"latest write wins" is enforced; record_completion upserts into it.

rest_days: JSON-encoded list of weekday indices (Monday = 0) stored as Text.
goal_history: JSON-encoded [effective_on, previous_goal] pairs, oldest first.
Enum columns hold the raw string values; conversion to the domain enums
happens in services/habit_store.py, never in the engine.
"""
from datetime import date, datetime
from sqlalchemy import (
    Boolean, Date, DateTime, Float, ForeignKey, Integer, String, Text, UniqueConstraint, func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from habitflow.db.base import Base


class Habit(Base):
    __tablename__ = "habits"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    icon: Mapped[str] = mapped_column(String(64), nullable=False, default="checkmark.circle.fill")
    color: Mapped[str] = mapped_column(String(16), nullable=False, default="#34C759")
    kind: Mapped[str] = mapped_column(String(32), nullable=False, default="manual")
    daily_goal: Mapped[float | None] = mapped_column(Float, nullable=True)
    unit: Mapped[str | None] = mapped_column(String(32), nullable=True)
    goal_progression: Mapped[str] = mapped_column(String(16), nullable=False, default="fixed")
    initial_goal: Mapped[float | None] = mapped_column(Float, nullable=True)
    goal_increment: Mapped[float | None] = mapped_column(Float, nullable=True)
    goal_increment_interval_days: Mapped[int | None] = mapped_column(Integer, nullable=True)
    last_goal_adjustment: Mapped[date | None] = mapped_column(
        Date, nullable=True,
        comment="Day the last automatic goal change took effect",
    )
    rest_days: Mapped[str | None] = mapped_column(
        Text, nullable=True,
        comment="JSON-encoded list of weekday indices, Monday = 0",
    )
    goal_history: Mapped[str | None] = mapped_column(
        Text, nullable=True,
        comment="JSON-encoded list of [effective_on, previous_goal] pairs",
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    completions: Mapped[list["HabitCompletion"]] = relationship(
        back_populates="habit",
        cascade="all, delete-orphan",
        order_by="HabitCompletion.day",
    )


class HabitCompletion(Base):
    __tablename__ = "habit_completions"
    __table_args__ = (
        UniqueConstraint("habit_id", "day", name="uq_habit_completion_day"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    habit_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("habits.id", ondelete="CASCADE"), nullable=False, index=True
    )
    day: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    value: Mapped[float | None] = mapped_column(Float, nullable=True)
    is_auto_synced: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    habit: Mapped[Habit] = relationship(back_populates="completions")
