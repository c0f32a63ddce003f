"""
Streak computation.

Continuity is measured over scheduled days only: a Mon/Wed/Fri habit
logged on Mon, Wed and Fri has a streak of 3 even though the calendar
has gaps between those days.
"""

import logging
from dataclasses import dataclass
from datetime import date
from typing import Dict, Iterable, List

from stakeshame.core.models import DailyLog, Habit
from stakeshame.core.utils import previous_scheduled_day

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StreakResult:
    """Current and longest streak derived from log history."""
    current: int
    longest: int


class StreakCalculator:
    """
    Derives streaks from a habit's daily logs.

    Logs on days that are not (or no longer) scheduled are ignored.
    """

    def _runs(self, habit: Habit, logs_desc: Iterable[DailyLog]) -> Dict[date, int]:
        """
        Streak value at each scheduled log date.

        A completed log extends the run only when the previous scheduled
        day has a completed log. A missed day, or no log at all for the
        previous scheduled day, ends the run.
        """
        weekdays = habit.weekdays
        logs = sorted(
            (log for log in logs_desc if log.date.weekday() in weekdays),
            key=lambda log: log.date,
        )

        runs: Dict[date, int] = {}
        for log in logs:
            if not log.completed:
                runs[log.date] = 0
                continue

            prev_day = previous_scheduled_day(log.date, weekdays)
            runs[log.date] = runs.get(prev_day, 0) + 1

        return runs

    def recompute(self, habit: Habit, logs_desc: List[DailyLog]) -> StreakResult:
        """
        Recompute current and longest streak.

        Args:
            habit: Habit whose schedule defines continuity
            logs_desc: Log history, most recent first

        Returns:
            StreakResult. `longest` also honours the habit's stored
            longest_streak, so it never decreases.
        """
        runs = self._runs(habit, logs_desc)
        if not runs:
            return StreakResult(current=0, longest=habit.longest_streak or 0)

        latest = max(runs)
        longest = max(max(runs.values()), habit.longest_streak or 0)

        return StreakResult(current=runs[latest], longest=longest)

    def streak_on(self, habit: Habit, logs_desc: List[DailyLog], day: date) -> int:
        """Streak as of the log on `day` (0 if there is no scheduled log that day)."""
        runs = self._runs(habit, (log for log in logs_desc if log.date <= day))
        return runs.get(day, 0)

