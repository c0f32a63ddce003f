"""
Habit configuration and streak computation.
"""

from stakeshame.habits.store import HabitStore
from stakeshame.habits.streaks import StreakCalculator, StreakResult

__all__ = ["HabitStore", "StreakCalculator", "StreakResult"]
