from .habit import Habit, HabitCompletion

__all__ = [
    "Habit",
    "HabitCompletion",
]
