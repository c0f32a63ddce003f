"""
Unit tests for the daily log ledger.

One log per habit per day; the first recorded outcome wins.
"""

import sys
from datetime import date, datetime, timedelta
from pathlib import Path

import pytest

# Add parent to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from stakeshame.core.clock import FixedClock
from stakeshame.core.db import session_scope
from stakeshame.core.errors import ConflictError, ValidationError
from stakeshame.core.models import DailyLog, SettlementState
from stakeshame.habits.store import HabitStore
from stakeshame.ledger.daily_log import DailyLogLedger

from conftest import OWNER_WALLET

MONDAY = date(2024, 1, 29)
TUESDAY = date(2024, 1, 30)
WEDNESDAY = date(2024, 1, 31)
FRIDAY = date(2024, 2, 2)


@pytest.fixture
def ledger(config, clock):
    return DailyLogLedger(config, clock)


def _record(config, ledger, habit_id, day, completed=True, notes=None):
    with session_scope(config) as session:
        habit = HabitStore(config).get_habit(session, habit_id)
        return ledger.record(session, habit, day, completed, notes)


class TestRecord:
    """Test writing a day's outcome."""

    def test_record_scheduled_day(self, config, ledger, make_habit):
        """A scheduled past day is written in logged state."""
        habit_id = make_habit()
        log = _record(config, ledger, habit_id, MONDAY, notes="leg day")

        assert log.id is not None
        assert log.completed is True
        assert log.notes == "leg day"
        assert log.settlement_state == SettlementState.LOGGED
        assert log.settlement_pending is True

    def test_duplicate_is_conflict(self, config, ledger, make_habit):
        """Second log for the same day is rejected, the first stays."""
        habit_id = make_habit()
        _record(config, ledger, habit_id, MONDAY, completed=True)

        with pytest.raises(ConflictError):
            _record(config, ledger, habit_id, MONDAY, completed=False)

        with session_scope(config) as session:
            logs = session.query(DailyLog).filter(DailyLog.habit_id == habit_id).all()
            assert len(logs) == 1
            assert logs[0].completed is True

    def test_same_day_different_habits(self, config, ledger, make_habit):
        """Uniqueness is per habit."""
        first = make_habit(name="Gym")
        second = make_habit(name="Read")

        _record(config, ledger, first, MONDAY)
        _record(config, ledger, second, MONDAY)

    def test_unscheduled_day_rejected(self, config, ledger, make_habit):
        """Tuesday is not in mon,wed,fri."""
        habit_id = make_habit()

        with pytest.raises(ValidationError):
            _record(config, ledger, habit_id, TUESDAY)

    def test_inactive_habit_rejected(self, config, ledger, make_habit):
        """Deactivated habits accept no logs."""
        habit_id = make_habit()
        with session_scope(config) as session:
            HabitStore(config).deactivate(session, habit_id)

        with pytest.raises(ValidationError):
            _record(config, ledger, habit_id, MONDAY)

    def test_future_day_rejected(self, config, ledger, make_habit):
        """Clock says Wednesday; Friday has not happened yet."""
        habit_id = make_habit()

        with pytest.raises(ValidationError):
            _record(config, ledger, habit_id, FRIDAY)

    def test_today_allowed(self, config, ledger, make_habit):
        """Today in the owner's timezone can be logged."""
        habit_id = make_habit()
        log = _record(config, ledger, habit_id, WEDNESDAY)
        assert log.date == WEDNESDAY


class TestQueries:
    """Test history and lookup."""

    def test_history_most_recent_first(self, config, ledger, make_habit):
        habit_id = make_habit()
        for day in (date(2024, 1, 22), date(2024, 1, 24), MONDAY):
            _record(config, ledger, habit_id, day)

        with session_scope(config) as session:
            history = ledger.history(session, habit_id)
            assert [log.date for log in history] == [MONDAY, date(2024, 1, 24), date(2024, 1, 22)]

            through = ledger.history(session, habit_id, through=date(2024, 1, 24))
            assert len(through) == 2

    def test_find_and_unsettled(self, config, ledger, make_habit):
        habit_id = make_habit()
        _record(config, ledger, habit_id, MONDAY)

        with session_scope(config) as session:
            assert ledger.find(session, habit_id, MONDAY) is not None
            assert ledger.find(session, habit_id, WEDNESDAY) is None
            assert len(ledger.unsettled(session)) == 1

    def test_mark_settled_keeps_outcome(self, config, ledger, make_habit):
        """Settlement flags change, completed and date never do."""
        habit_id = make_habit()
        log = _record(config, ledger, habit_id, MONDAY, completed=False)

        with session_scope(config) as session:
            log = ledger.get(session, log.id)
            ledger.mark_settled(session, log, 0, punishment_triggered=True)

        with session_scope(config) as session:
            log = ledger.get(session, log.id)
            assert log.settlement_state == SettlementState.SETTLED
            assert log.punishment_triggered is True
            assert log.completed is False
            assert log.date == MONDAY


class TestCreationBoundary:
    """Test that a habit has no days before it existed."""

    def _habit_created_at(self, config, instant, timezone=None):
        with session_scope(config) as session:
            store = HabitStore(config, FixedClock(instant))
            owner = store.create_owner(session, "dana", wallet_address=OWNER_WALLET, timezone=timezone)
            return store.create_habit(session, owner.id, "Swim", "mon,wed,fri", "5").id

    def test_day_before_creation_rejected(self, config, ledger):
        habit_id = self._habit_created_at(config, datetime(2024, 1, 30, 8, 0))

        with pytest.raises(ValidationError):
            _record(config, ledger, habit_id, MONDAY)

    def test_creation_day_allowed(self, config, ledger):
        habit_id = self._habit_created_at(config, datetime(2024, 1, 31, 8, 0))
        log = _record(config, ledger, habit_id, WEDNESDAY)
        assert log.date == WEDNESDAY

    def test_creation_day_in_owner_timezone(self, config, ledger):
        """Created Tuesday 20:00 UTC is already Wednesday in Tokyo."""
        habit_id = self._habit_created_at(config, datetime(2024, 1, 30, 20, 0), timezone="Asia/Tokyo")

        with pytest.raises(ValidationError):
            _record(config, ledger, habit_id, MONDAY)
        assert _record(config, ledger, habit_id, WEDNESDAY).date == WEDNESDAY

    def test_timestamps_follow_clock(self, config, ledger, clock):
        habit_id = self._habit_created_at(config, datetime(2024, 1, 29, 7, 30))
        log = _record(config, ledger, habit_id, MONDAY)

        with session_scope(config) as session:
            habit = HabitStore(config).get_habit(session, habit_id)
            assert habit.created_at == datetime(2024, 1, 29, 7, 30)
            assert habit.owner.created_at == datetime(2024, 1, 29, 7, 30)
            assert ledger.get(session, log.id).logged_at == datetime(2024, 1, 31, 12, 0)

    def test_unsettled_skips_recent_logs(self, config, ledger, make_habit):
        habit_id = make_habit()
        _record(config, ledger, habit_id, MONDAY)
        logged_at = datetime(2024, 1, 31, 12, 0)

        with session_scope(config) as session:
            assert ledger.unsettled(session, logged_before=logged_at) == []
            assert len(ledger.unsettled(session, logged_before=logged_at + timedelta(seconds=1))) == 1
