"""
Tests for the per-owner transaction summary and analytics.
"""

import sys
from datetime import date, datetime
from decimal import Decimal
from pathlib import Path

import pytest

# Add parent to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from stakeshame.core.clock import FixedClock
from stakeshame.core.db import session_scope
from stakeshame.core.errors import NotFoundError, ValidationError
from stakeshame.habits.store import HabitStore
from stakeshame.review.transactions import get_transaction_analytics, get_transaction_summary
from stakeshame.settlement.engine import SettlementEngine

from conftest import HABITS_CREATED, OWNER_WALLET


@pytest.fixture
def ledger_history(config, network, owner_id, make_habit):
    """
    Three transactions for alice on three days, one for another owner.

    Jan 26 stake 10, Jan 29 punishment 10 (Gym); Jan 31 stake 4 (Read).
    """
    clock = FixedClock(datetime(2024, 1, 26, 20, 0))
    engine = SettlementEngine(config, network=network, clock=clock)
    gym = make_habit(name="Gym", stake="10")
    read = make_habit(name="Read", stake="4")

    with session_scope(config) as session:
        store = HabitStore(config, FixedClock(HABITS_CREATED))
        other = store.create_owner(session, "frank", wallet_address=OWNER_WALLET)
        other_habit = store.create_habit(session, other.id, "Walk", "mon,wed,fri", "99").id

    engine.log_event(gym, False, day=date(2024, 1, 26))
    engine.log_event(other_habit, False, day=date(2024, 1, 26))
    clock.set(datetime(2024, 1, 29, 20, 0))
    engine.log_event(gym, False, day=date(2024, 1, 29))
    clock.set(datetime(2024, 1, 31, 20, 0))
    engine.log_event(read, False, day=date(2024, 1, 31))
    return owner_id


class TestTransactionSummary:
    """Test totals by type and status."""

    def test_by_type(self, config, ledger_history):
        summary = get_transaction_summary(config, ledger_history)

        assert summary["total_count"] == 3
        stake = summary["by_type"]["stake"]
        assert stake["count"] == 2
        assert stake["total_amount"] == Decimal("14")
        assert stake["average_amount"] == Decimal("7")
        assert stake["last_transaction"] == "2024-01-31T20:00:00"

        punishment = summary["by_type"]["punishment"]
        assert punishment["count"] == 1
        assert punishment["total_amount"] == Decimal("10")
        assert "reward" not in summary["by_type"]

    def test_by_status(self, config, ledger_history):
        summary = get_transaction_summary(config, ledger_history)
        assert summary["by_status"] == {"pending": 3}

    def test_owner_without_transactions(self, config, owner_id):
        summary = get_transaction_summary(config, owner_id)
        assert summary["total_count"] == 0
        assert summary["by_type"] == {}

    def test_unknown_owner(self, config):
        with pytest.raises(NotFoundError):
            get_transaction_summary(config, 999)


class TestTransactionAnalytics:
    """Test daily activity over a period."""

    def test_daily_breakdown(self, config, ledger_history):
        clock = FixedClock(datetime(2024, 1, 31, 21, 0))
        analytics = get_transaction_analytics(config, ledger_history, "7d", clock=clock)

        stake = analytics["by_type"]["stake"]
        assert [day["date"] for day in stake["daily"]] == ["2024-01-26", "2024-01-31"]
        assert stake["total_count"] == 2
        assert stake["total_amount"] == Decimal("14")
        assert analytics["by_type"]["punishment"]["daily"][0]["date"] == "2024-01-29"

    def test_period_window(self, config, ledger_history):
        """Jan 26 falls outside the last 7 days on Feb 3."""
        clock = FixedClock(datetime(2024, 2, 3, 12, 0))
        analytics = get_transaction_analytics(config, ledger_history, "7d", clock=clock)

        assert analytics["by_type"]["stake"]["total_amount"] == Decimal("4")
        assert analytics["by_type"]["punishment"]["total_count"] == 1

    def test_unknown_period(self, config, owner_id):
        with pytest.raises(ValidationError):
            get_transaction_analytics(config, owner_id, "1y")
