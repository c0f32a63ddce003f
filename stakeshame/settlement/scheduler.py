"""
Scheduler for the periodic jobs.

One tick = reconciliation for today (habits whose cutoff has not passed
are reported not due and picked up on a later tick), settlement of logs
left unsettled, a confirmation sweep, and the weekly summary once on
Sundays.
"""

import logging
import threading
from datetime import date, timedelta
from typing import Callable, Optional

from stakeshame.core.clock import Clock, SystemClock
from stakeshame.core.errors import PersistenceError, StakeShameError
from stakeshame.settlement.reconcile import ReconciliationJob
from stakeshame.settlement.watcher import ConfirmationWatcher

logger = logging.getLogger(__name__)

SUNDAY = 6


class Scheduler:
    """Drives ReconciliationJob, ConfirmationWatcher.sweep and the weekly summary."""

    def __init__(
        self,
        job: ReconciliationJob,
        watcher: Optional[ConfirmationWatcher] = None,
        clock: Optional[Clock] = None,
        weekly: Optional[Callable[[date], None]] = None,
    ):
        self.job = job
        self.config = job.config
        self.watcher = watcher
        self.clock = clock or job.clock or SystemClock(self.config.timezone)
        self.weekly = weekly

        self._last_date: Optional[date] = None
        self._weekly_sent: Optional[date] = None

    def tick(self) -> None:
        today = self.clock.today(self.config.timezone)

        # Date rolled over between ticks: close out the previous day first
        if self._last_date is not None and today > self._last_date:
            day = self._last_date
            while day < today:
                self.job.run(day)
                day += timedelta(days=1)
        self._last_date = today

        self.job.run(today)
        self.job.resume_unsettled()

        if self.watcher is not None:
            self.watcher.sweep()

        if self.weekly is not None and today.weekday() == SUNDAY and self._weekly_sent != today:
            self.weekly(today)
            self._weekly_sent = today

    def run_forever(self, poll_seconds: float = 60.0, stop_event: Optional[threading.Event] = None) -> None:
        """Tick until stopped. Store failures end the loop."""
        stop_event = stop_event or threading.Event()
        logger.info(f"Scheduler started, polling every {poll_seconds}s")

        while not stop_event.is_set():
            try:
                self.tick()
            except PersistenceError:
                logger.error("Database unavailable, stopping scheduler")
                raise
            except StakeShameError as e:
                logger.error(f"Scheduler tick failed: {e}")

            stop_event.wait(poll_seconds)

        logger.info("Scheduler stopped")
