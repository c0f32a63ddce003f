"""
Daily log ledger.

One record per (habit, calendar date). The first recorded outcome wins:
a second write for the same day is a ConflictError, never an overwrite.
"""

import logging
from datetime import date, datetime
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from stakeshame.core.clock import Clock, SystemClock, utc_stamp
from stakeshame.core.config import Config
from stakeshame.core.errors import ConflictError, NotFoundError, ValidationError
from stakeshame.core.models import DailyLog, Habit, SettlementState

logger = logging.getLogger(__name__)


class DailyLogLedger:
    """
    Source of truth for "did the user act today".

    Duplicate detection relies on the (habit_id, date) unique constraint,
    so an interactive log and the reconciliation sweep racing for the same
    day are serialized by the database: one insert wins, the other gets
    ConflictError and must not mutate anything else.
    """

    def __init__(self, config: Config, clock: Optional[Clock] = None):
        self.config = config
        self.clock = clock or SystemClock(config.timezone)

    def owner_today(self, habit: Habit) -> date:
        """Today in the habit owner's timezone."""
        tz = habit.owner.timezone if habit.owner and habit.owner.timezone else self.config.timezone
        return self.clock.today(tz)

    def record(
        self,
        session: Session,
        habit: Habit,
        day: date,
        completed: bool,
        notes: Optional[str] = None,
    ) -> DailyLog:
        """
        Write the outcome for one scheduled day.

        Raises:
            ValidationError: inactive habit, unscheduled weekday, future date,
                date before the habit was created
            ConflictError: a log already exists for (habit, day)
        """
        if not habit.is_active:
            raise ValidationError(f"Habit {habit.id} is inactive")

        if not habit.is_scheduled(day):
            raise ValidationError(
                f"Habit {habit.id} is not scheduled on {day:%A} ({habit.schedule})"
            )

        today = self.owner_today(habit)
        if day > today:
            raise ValidationError(f"Cannot log {day.isoformat()}, today is {today.isoformat()}")

        created_on = habit.created_local(self.config.timezone).date()
        if day < created_on:
            raise ValidationError(
                f"Cannot log {day.isoformat()}, habit {habit.id} was created on {created_on.isoformat()}"
            )

        log = DailyLog(
            habit_id=habit.id,
            date=day,
            completed=bool(completed),
            streak_at_log=0,
            notes=notes or "",
            punishment_triggered=False,
            reward_triggered=False,
            settlement_state=SettlementState.LOGGED,
            logged_at=utc_stamp(self.clock),
        )

        try:
            with session.begin_nested():
                session.add(log)
                session.flush()
        except IntegrityError:
            logger.info(f"Habit {habit.id} already logged for {day.isoformat()}")
            raise ConflictError(f"Habit {habit.id} already logged for {day.isoformat()}")

        logger.info(f"Logged {log}")
        return log

    def get(self, session: Session, log_id: int) -> DailyLog:
        log = session.get(DailyLog, log_id)
        if log is None:
            raise NotFoundError(f"Daily log {log_id} not found")
        return log

    def find(self, session: Session, habit_id: int, day: date) -> Optional[DailyLog]:
        return session.scalars(
            select(DailyLog).where(DailyLog.habit_id == habit_id, DailyLog.date == day)
        ).first()

    def history(self, session: Session, habit_id: int, through: Optional[date] = None) -> List[DailyLog]:
        """Logs for a habit, most recent first."""
        stmt = select(DailyLog).where(DailyLog.habit_id == habit_id)
        if through is not None:
            stmt = stmt.where(DailyLog.date <= through)
        return list(session.scalars(stmt.order_by(DailyLog.date.desc())))

    def mark_settled(
        self,
        session: Session,
        log: DailyLog,
        streak_at_log: int,
        punishment_triggered: bool = False,
        reward_triggered: bool = False,
    ) -> None:
        """Record the settlement outcome. `completed` and `date` are never touched."""
        log.streak_at_log = streak_at_log
        log.punishment_triggered = log.punishment_triggered or punishment_triggered
        log.reward_triggered = log.reward_triggered or reward_triggered
        log.settlement_state = SettlementState.SETTLED
        session.flush()

    def mark_submission_failed(self, session: Session, log: DailyLog) -> None:
        log.settlement_state = SettlementState.SUBMISSION_FAILED
        session.flush()
        logger.warning(f"Settlement pending for {log}: submission failed")

    def unsettled(self, session: Session, logged_before: Optional[datetime] = None) -> List[DailyLog]:
        """
        Logs written but never settled (deferred, or the process died in between).

        `logged_before` leaves out logs whose own settlement may still be running.
        """
        stmt = select(DailyLog).where(DailyLog.settlement_state == SettlementState.LOGGED)
        if logged_before is not None:
            stmt = stmt.where(DailyLog.logged_at < logged_before)
        return list(session.scalars(stmt.order_by(DailyLog.date, DailyLog.id)))
