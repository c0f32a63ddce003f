"""
Transaction review module.

Per-owner aggregates over the transaction ledger: totals by type, status
counts, and daily activity over a recent period.
"""

import logging
from datetime import timedelta
from decimal import Decimal
from typing import Optional

from sqlalchemy import func

from stakeshame.core.clock import Clock, SystemClock, utc_stamp
from stakeshame.core.config import Config
from stakeshame.core.db import session_scope
from stakeshame.core.errors import ValidationError
from stakeshame.core.models import Habit, Transaction
from stakeshame.habits.store import HabitStore

logger = logging.getLogger(__name__)

PERIODS = {"7d": 7, "30d": 30, "90d": 90}
DEFAULT_PERIOD = "30d"

AMOUNT_PLACES = Decimal("0.000000001")


def _average(total: Decimal, count: int) -> Decimal:
    return (total / count).quantize(AMOUNT_PLACES) if count else Decimal("0")


def get_transaction_summary(config: Config, owner_id: int) -> dict:
    """
    Count, total, average and latest transaction per type for an owner.

    Raises:
        NotFoundError: unknown owner
    """
    with session_scope(config, read_only=True) as session:
        HabitStore(config).get_owner(session, owner_id)

        by_type = (
            session.query(
                Transaction.type,
                func.count(Transaction.id),
                func.sum(Transaction.amount),
                func.max(Transaction.created_at),
            )
            .join(Habit, Habit.id == Transaction.habit_id)
            .filter(Habit.owner_id == owner_id)
            .group_by(Transaction.type)
            .all()
        )

        by_status = (
            session.query(Transaction.status, func.count(Transaction.id))
            .join(Habit, Habit.id == Transaction.habit_id)
            .filter(Habit.owner_id == owner_id)
            .group_by(Transaction.status)
            .all()
        )

    types = {}
    for tx_type, count, total, last_at in by_type:
        total = total or Decimal("0")
        types[tx_type.value] = {
            "count": count,
            "total_amount": total,
            "average_amount": _average(total, count),
            "last_transaction": last_at.isoformat() if last_at else None,
        }

    return {
        "owner_id": owner_id,
        "currency": config.currency,
        "total_count": sum(entry["count"] for entry in types.values()),
        "by_type": types,
        "by_status": {status.value: count for status, count in by_status},
    }


def get_transaction_analytics(
    config: Config,
    owner_id: int,
    period: str = DEFAULT_PERIOD,
    clock: Optional[Clock] = None,
) -> dict:
    """
    Daily transaction activity per type over the last 7, 30 or 90 days.

    Raises:
        ValidationError: unknown period
        NotFoundError: unknown owner
    """
    if period not in PERIODS:
        raise ValidationError(f"Unknown period: {period} (expected one of {', '.join(PERIODS)})")

    clock = clock or SystemClock(config.timezone)
    since = utc_stamp(clock) - timedelta(days=PERIODS[period])
    day = func.date(Transaction.created_at)

    with session_scope(config, read_only=True) as session:
        HabitStore(config).get_owner(session, owner_id)

        rows = (
            session.query(
                Transaction.type,
                day,
                func.count(Transaction.id),
                func.sum(Transaction.amount),
            )
            .join(Habit, Habit.id == Transaction.habit_id)
            .filter(Habit.owner_id == owner_id, Transaction.created_at >= since)
            .group_by(Transaction.type, day)
            .order_by(day)
            .all()
        )

    types = {}
    for tx_type, on, count, total in rows:
        entry = types.setdefault(
            tx_type.value,
            {"daily": [], "total_amount": Decimal("0"), "total_count": 0},
        )
        total = total or Decimal("0")
        entry["daily"].append({"date": str(on), "count": count, "total_amount": total})
        entry["total_amount"] += total
        entry["total_count"] += count

    return {
        "owner_id": owner_id,
        "period": period,
        "since": since.isoformat(),
        "currency": config.currency,
        "by_type": types,
    }
