"""
Reconciliation sweep.

Turns "no log by the cutoff" into an explicit failure. Safe to re-run
and safe to overlap with an interactive log call: whoever writes the
day's log first wins, the other side sees ConflictError and stops.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, time, timedelta
from typing import List, Optional, Tuple

from stakeshame.core.clock import Clock, SystemClock, utc_stamp
from stakeshame.core.config import Config
from stakeshame.core.db import session_scope
from stakeshame.core.errors import ConflictError, PersistenceError, StakeShameError, ValidationError
from stakeshame.core.models import Habit
from stakeshame.core.utils import parse_cutoff
from stakeshame.settlement.engine import SettlementEngine, SettlementOutcome

logger = logging.getLogger(__name__)

AUTO_FAIL_NOTE = "auto-failed: not logged"

# A log younger than this may still be settling in the request that wrote it
RESUME_GRACE = timedelta(minutes=1)


@dataclass
class ReconciliationReport:
    """What one sweep did, by habit id."""
    as_of: date
    processed: List[int] = field(default_factory=list)  # auto-failed now
    already_logged: List[int] = field(default_factory=list)
    not_due: List[int] = field(default_factory=list)  # cutoff not reached yet
    not_started: List[int] = field(default_factory=list)  # created after that day's cutoff
    errors: List[Tuple[int, str]] = field(default_factory=list)
    outcomes: List[SettlementOutcome] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "as_of": self.as_of.isoformat(),
            "processed": self.processed,
            "already_logged": self.already_logged,
            "not_due": self.not_due,
            "not_started": self.not_started,
            "errors": [{"habit_id": habit_id, "error": error} for habit_id, error in self.errors],
        }


class ReconciliationJob:
    """Auto-fails every active habit scheduled on a date that was not logged."""

    def __init__(self, engine: SettlementEngine, clock: Optional[Clock] = None):
        self.engine = engine
        self.config: Config = engine.config
        self.clock = clock or engine.clock or SystemClock(self.config.timezone)

    def _cutoff(self, habit: Habit) -> time:
        return parse_cutoff(habit.cutoff_time) or parse_cutoff(self.config.reconciliation_cutoff)

    def _existed_on(self, habit: Habit, as_of: date) -> bool:
        """True if the habit was created before `as_of`'s cutoff, owner-local."""
        created = habit.created_local(self.config.timezone)
        if created.date() == as_of:
            return created.time() < self._cutoff(habit)
        return created.date() < as_of

    def _is_due(self, habit: Habit, as_of: date) -> bool:
        """True once `as_of` has passed the habit's cutoff in the owner's timezone."""
        tz = habit.owner.timezone or self.config.timezone
        local_now = self.clock.now(tz)

        if local_now.date() > as_of:
            return True
        if local_now.date() < as_of:
            return False

        return local_now.time() >= self._cutoff(habit)

    def run(self, as_of: Optional[date] = None) -> ReconciliationReport:
        """
        Sweep one calendar date.

        Args:
            as_of: Date to reconcile (default: today in the configured timezone)
        """
        as_of = as_of or self.clock.today(self.config.timezone)
        report = ReconciliationReport(as_of=as_of)

        with session_scope(self.config, read_only=True) as session:
            candidates = []
            for habit in self.engine.store.active_scheduled_on(session, as_of):
                if not self._existed_on(habit, as_of):
                    report.not_started.append(habit.id)
                    continue
                candidates.append((habit.id, self._is_due(habit, as_of)))

        for habit_id, due in candidates:
            if not due:
                report.not_due.append(habit_id)
                continue

            try:
                outcome = self.engine.log_event(
                    habit_id, completed=False, day=as_of, notes=AUTO_FAIL_NOTE
                )
            except ConflictError:
                report.already_logged.append(habit_id)
                continue
            except ValidationError as e:
                # Deactivated or rescheduled between listing and logging
                logger.info(f"Reconciliation skipped habit {habit_id}: {e}")
                report.errors.append((habit_id, str(e)))
                continue
            except PersistenceError:
                raise
            except StakeShameError as e:
                logger.error(f"Reconciliation failed for habit {habit_id}: {e}")
                report.errors.append((habit_id, str(e)))
                continue

            report.processed.append(habit_id)
            report.outcomes.append(outcome)
            if outcome.error:
                logger.warning(f"Habit {habit_id} auto-failed, settlement pending: {outcome.error}")

        logger.info(
            f"Reconciliation {as_of.isoformat()}: {len(report.processed)} auto-failed, "
            f"{len(report.already_logged)} already logged, {len(report.not_due)} not due, "
            f"{len(report.not_started)} not started, "
            f"{len(report.errors)} errors"
        )
        return report

    def resume_unsettled(self, grace: timedelta = RESUME_GRACE) -> List[SettlementOutcome]:
        """
        Settle logs left in the `logged` state.

        Covers deferred settlements (e.g. no treasury configured at the
        time) and logs whose settlement never ran. Logs written within
        `grace` are left to the request that wrote them.
        """
        with session_scope(self.config, read_only=True) as session:
            log_ids = [
                log.id
                for log in self.engine.daily_logs.unsettled(session, logged_before=utc_stamp(self.clock) - grace)
            ]

        outcomes = []
        for log_id in log_ids:
            try:
                outcome = self.engine.resume(log_id)
            except ConflictError:
                logger.info(f"Daily log {log_id} settled elsewhere")
                continue
            except PersistenceError:
                raise
            except StakeShameError as e:
                logger.error(f"Resuming daily log {log_id} failed: {e}")
                continue

            outcomes.append(outcome)
            if outcome.error:
                logger.warning(f"Daily log {log_id} still unsettled: {outcome.error}")

        if log_ids:
            settled = sum(1 for outcome in outcomes if not outcome.error)
            logger.info(f"Resumed {settled} of {len(log_ids)} unsettled daily logs")
        return outcomes
