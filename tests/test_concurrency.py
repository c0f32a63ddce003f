"""
Concurrent writers on the same (habit, date).

Threads start together on a barrier; exactly one write wins and every
other caller sees ConflictError, never a database error.
"""

import sys
import threading
from datetime import date, datetime
from decimal import Decimal
from pathlib import Path

# Add parent to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from stakeshame.core.clock import FixedClock
from stakeshame.core.db import session_scope
from stakeshame.core.errors import ConflictError
from stakeshame.core.models import DailyLog, Transaction
from stakeshame.habits.store import HabitStore
from stakeshame.settlement.engine import SettlementEngine
from stakeshame.settlement.reconcile import ReconciliationJob

WEDNESDAY = date(2024, 1, 31)
THREADS = 8


def _run_together(targets):
    """Start every target on a shared barrier, return their results in order."""
    barrier = threading.Barrier(len(targets))
    results = [None] * len(targets)

    def _wrap(index, target):
        barrier.wait()
        try:
            results[index] = target()
        except ConflictError:
            results[index] = "conflict"
        except Exception as e:
            results[index] = f"error: {e!r}"

    threads = [threading.Thread(target=_wrap, args=(i, t)) for i, t in enumerate(targets)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=60)
    return results


def _rows(config, habit_id):
    with session_scope(config) as session:
        habit = HabitStore(config).get_habit(session, habit_id)
        logs = session.query(DailyLog).filter(DailyLog.habit_id == habit_id).count()
        txs = session.query(Transaction).filter(Transaction.habit_id == habit_id).count()
        return logs, txs, habit.fail_count, habit.total_staked


class TestConcurrentLogs:
    """Test racing writers for one day."""

    def test_parallel_logs_one_winner(self, config, network, clock, make_habit):
        engine = SettlementEngine(config, network=network, clock=clock)
        habit_id = make_habit()

        def miss():
            engine.log_event(habit_id, False, day=WEDNESDAY)
            return "ok"

        results = _run_together([miss] * THREADS)

        assert results.count("ok") == 1
        assert results.count("conflict") == THREADS - 1
        assert _rows(config, habit_id) == (1, 1, 1, Decimal("10"))
        assert len(network.submissions) == 1

    def test_log_races_reconciliation(self, config, network, make_habit):
        """User logs while the sweep auto-fails the same day."""
        clock = FixedClock(datetime(2024, 1, 31, 22, 0))
        engine = SettlementEngine(config, network=network, clock=clock)
        job = ReconciliationJob(engine, clock=clock)
        habit_id = make_habit()

        def user():
            engine.log_event(habit_id, True, day=WEDNESDAY)
            return "logged"

        def sweep():
            report = job.run(WEDNESDAY)
            if report.errors:
                return f"error: {report.errors}"
            if report.processed:
                return "auto-failed"
            return "already-logged"

        results = _run_together([user, sweep] * (THREADS // 2))

        assert not [r for r in results if str(r).startswith("error")], results
        winners = results.count("logged") + results.count("auto-failed")
        assert winners == 1
        assert results.count("conflict") + results.count("already-logged") == THREADS - 1

        logs, txs, fail_count, _ = _rows(config, habit_id)
        assert logs == 1
        if "auto-failed" in results:
            assert (txs, fail_count) == (1, 1)
        else:
            assert (txs, fail_count) == (0, 0)


class TestScopes:
    """Test how write and read-only scopes share the database."""

    def test_read_only_scope_inside_write_scope(self, config, make_habit):
        """Custodial key lookups read while a submission holds the write lock."""
        habit_id = make_habit()

        with session_scope(config) as session:
            habit = HabitStore(config).get_habit(session, habit_id)
            habit.name = "Gym (renamed)"
            session.flush()

            with session_scope(config, read_only=True) as inner:
                assert HabitStore(config).get_habit(inner, habit_id).name == "Gym"

        with session_scope(config, read_only=True) as session:
            assert HabitStore(config).get_habit(session, habit_id).name == "Gym (renamed)"
