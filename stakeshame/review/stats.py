"""
Habit statistics module.

Completion rates from the daily log, totals from the habit record and
from a replay of the transaction ledger.
"""

import logging
from datetime import timedelta
from typing import Optional

from sqlalchemy import func

from stakeshame.core.clock import Clock, SystemClock
from stakeshame.core.config import Config
from stakeshame.core.db import session_scope
from stakeshame.core.models import DailyLog, Transaction
from stakeshame.habits.store import HabitStore
from stakeshame.ledger.transactions import replay_totals

logger = logging.getLogger(__name__)

RECENT_DAYS = 30


def _rate(completed: int, total: int) -> float:
    return (completed / total * 100) if total > 0 else 0.0


def get_habit_stats(config: Config, habit_id: int, clock: Optional[Clock] = None) -> dict:
    """
    Statistics for one habit.

    Raises:
        NotFoundError: unknown habit
    """
    clock = clock or SystemClock(config.timezone)

    with session_scope(config, read_only=True) as session:
        habit = HabitStore(config).get_habit(session, habit_id)
        today = clock.today(habit.owner.timezone or config.timezone)
        recent_start = today - timedelta(days=RECENT_DAYS)

        logs = session.query(func.count(DailyLog.id)).filter(DailyLog.habit_id == habit_id)
        total_logs = logs.scalar() or 0
        completed_logs = logs.filter(DailyLog.completed.is_(True)).scalar() or 0

        recent = (
            session.query(DailyLog.completed)
            .filter(DailyLog.habit_id == habit_id, DailyLog.date > recent_start)
            .all()
        )
        recent_completed = sum(1 for (completed,) in recent if completed)

        transactions = session.query(Transaction).filter(Transaction.habit_id == habit_id).all()
        replayed = replay_totals(transactions)

        return {
            "habit_id": habit.id,
            "name": habit.name,
            "total_logs": total_logs,
            "completed_logs": completed_logs,
            "failed_logs": total_logs - completed_logs,
            "completion_rate": _rate(completed_logs, total_logs),
            "recent_completion_rate": _rate(recent_completed, len(recent)),
            "current_streak": habit.current_streak,
            "longest_streak": habit.longest_streak,
            "fail_count": habit.fail_count,
            "total_staked": habit.total_staked,
            "total_punished": habit.total_punished,
            "total_rewarded": habit.total_rewarded,
            "ledger_totals": {
                "total_staked": replayed.total_staked,
                "total_punished": replayed.total_punished,
                "total_rewarded": replayed.total_rewarded,
            },
            "currency": habit.currency,
        }
