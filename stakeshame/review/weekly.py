"""
Weekly review module.

Summarizes an owner's week across all active habits.
"""

import logging
from datetime import date, timedelta
from decimal import Decimal
from typing import List, Optional

from stakeshame.core.config import Config
from stakeshame.core.db import session_scope
from stakeshame.core.models import DailyLog, Habit, Owner
from stakeshame.habits.store import HabitStore

logger = logging.getLogger(__name__)


def get_weekly_summary(config: Config, owner_id: int, week_ending: date, days: int = 7) -> dict:
    """
    Calculate an owner's summary for the N days ending on `week_ending`.

    Raises:
        NotFoundError: unknown owner
    """
    start = week_ending - timedelta(days=days - 1)
    store = HabitStore(config)

    with session_scope(config, read_only=True) as session:
        owner = store.get_owner(session, owner_id)
        habits = store.list_habits(session, owner_id)

        summary = {
            "owner_id": owner.id,
            "username": owner.username,
            "start": start,
            "end": week_ending,
            "total_habits": len(habits),
            "completed": 0,
            "failed": 0,
            "total_staked": Decimal("0"),
            "total_punished": Decimal("0"),
            "total_rewarded": Decimal("0"),
            "average_streak": 0,
            "currency": config.currency,
            "habits": [],
        }

        if not habits:
            return summary

        habit_ids = [h.id for h in habits]
        logs = (
            session.query(DailyLog)
            .filter(DailyLog.habit_id.in_(habit_ids), DailyLog.date >= start, DailyLog.date <= week_ending)
            .all()
        )

        for habit in habits:
            habit_logs = [log for log in logs if log.habit_id == habit.id]
            completed = sum(1 for log in habit_logs if log.completed)
            failed = len(habit_logs) - completed

            summary["completed"] += completed
            summary["failed"] += failed
            summary["total_staked"] += habit.total_staked
            summary["total_punished"] += habit.total_punished
            summary["total_rewarded"] += habit.total_rewarded
            summary["habits"].append({
                "id": habit.id,
                "name": habit.name,
                "completed": completed,
                "failed": failed,
                "current_streak": habit.current_streak,
            })

        summary["average_streak"] = round(sum(h.current_streak for h in habits) / len(habits))
        return summary


def format_weekly_summary(summary: dict) -> str:
    """
    Format weekly summary as plain text.
    """
    currency = summary["currency"]
    lines = [
        f"StakeShame - Weekly Summary for {summary['username']}",
        f"{summary['start'].isoformat()} to {summary['end'].isoformat()}",
        "",
    ]

    if summary["total_habits"] == 0:
        lines.append("No active habits.")
        return "\n".join(lines)

    lines.extend([
        f"Habits: {summary['total_habits']}",
        f"Completed: {summary['completed']}",
        f"Failed: {summary['failed']}",
        f"Average streak: {summary['average_streak']} days",
        "",
        f"At stake: {summary['total_staked']} {currency}",
        f"Punished: {summary['total_punished']} {currency}",
        f"Rewarded: {summary['total_rewarded']} {currency}",
        "",
    ])

    for habit in summary["habits"]:
        lines.append(
            f"- {habit['name']}: {habit['completed']} done, {habit['failed']} missed, "
            f"streak {habit['current_streak']}"
        )

    # Suggest ONE change
    if summary["failed"] > summary["completed"]:
        lines.extend(["", "ONE CHANGE NEXT WEEK:", "-> Log before the cutoff, not after"])

    return "\n".join(lines)


def active_owner_ids(config: Config) -> List[int]:
    """Owners with at least one active habit."""
    with session_scope(config, read_only=True) as session:
        rows = (
            session.query(Owner.id)
            .join(Habit, Habit.owner_id == Owner.id)
            .filter(Owner.is_active.is_(True), Habit.is_active.is_(True))
            .distinct()
            .order_by(Owner.id)
            .all()
        )
        return [owner_id for (owner_id,) in rows]


def send_weekly_summaries(config: Config, week_ending: date, notifier: Optional[object] = None) -> List[str]:
    """
    Build every active owner's summary, deliver through `notifier` if given.

    Returns:
        The formatted summaries
    """
    texts = []
    for owner_id in active_owner_ids(config):
        text = format_weekly_summary(get_weekly_summary(config, owner_id, week_ending))
        texts.append(text)

        if notifier is not None and not notifier.send_message(text):
            logger.warning(f"Weekly summary for owner {owner_id} not delivered")

    logger.info(f"Weekly summaries built for {len(texts)} owners")
    return texts
