"""
Shared fixtures: temporary SQLite database, fixed clock, fake settlement network.
"""

import sys
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import pytest

# Add parent to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from stakeshame.core.clock import FixedClock
from stakeshame.core.config import Config
from stakeshame.core.db import init_db, session_scope
from stakeshame.core.errors import ExternalServiceError
from stakeshame.core.models import TransactionStatus
from stakeshame.habits.store import HabitStore
from stakeshame.network.base import ConfirmationResult
from stakeshame.settlement.engine import SettlementEngine

# Valid base58 public keys
TREASURY = "11111111111111111111111111111111"
OWNER_WALLET = "So11111111111111111111111111111111111111112"

# Habits made by `make_habit` exist well before the days the tests log
HABITS_CREATED = datetime(2023, 12, 1, 9, 0)


class FakeNetwork:
    """In-memory settlement network."""

    def __init__(self):
        self.submissions: List[Tuple[str, str, Decimal]] = []
        self.confirmations: Dict[str, ConfirmationResult] = {}
        self.balances: Dict[str, Decimal] = {}
        self.fail_submit: Optional[str] = None
        self.fail_query: Optional[str] = None

    def submit_transfer(self, from_address: str, to_address: str, amount: Decimal) -> str:
        if self.fail_submit:
            raise ExternalServiceError(self.fail_submit)
        self.submissions.append((from_address, to_address, amount))
        return f"sig{len(self.submissions)}"

    def query_confirmation(self, external_hash: str) -> ConfirmationResult:
        if self.fail_query:
            raise ExternalServiceError(self.fail_query)
        return self.confirmations.get(external_hash, ConfirmationResult(TransactionStatus.PENDING))

    def get_balance(self, address: str) -> Decimal:
        return self.balances.get(address, Decimal("0"))

    def confirm(self, external_hash: str, block_ref: str = "100") -> None:
        self.confirmations[external_hash] = ConfirmationResult(TransactionStatus.CONFIRMED, block_ref=block_ref)

    def reject(self, external_hash: str, error: str = "InstructionError") -> None:
        self.confirmations[external_hash] = ConfirmationResult(TransactionStatus.FAILED, block_ref="101", error=error)


@pytest.fixture
def config(tmp_path):
    cfg = Config(
        database_path=str(tmp_path / "stakeshame.db"),
        timezone="UTC",
        treasury_address=TREASURY,
        reward_streak_days=7,
        reward_bonus_amount=Decimal("0.1"),
        reconciliation_cutoff="21:00",
        confirm_timeout_seconds=600,
        confirm_poll_seconds=0,
    )
    init_db(cfg)
    return cfg


@pytest.fixture
def clock():
    # Wednesday
    return FixedClock(datetime(2024, 1, 31, 12, 0))


@pytest.fixture
def network():
    return FakeNetwork()


@pytest.fixture
def engine(config, network, clock):
    return SettlementEngine(config, network=network, clock=clock)


@pytest.fixture
def owner_id(config):
    with session_scope(config) as session:
        owner = HabitStore(config).create_owner(session, "alice", wallet_address=OWNER_WALLET)
        return owner.id


@pytest.fixture
def make_habit(config, owner_id):
    """Factory: create a habit, return its id."""

    def _make(weekdays="mon,wed,fri", stake="10", cutoff_time=None, name="Gym"):
        with session_scope(config) as session:
            habit = HabitStore(config, FixedClock(HABITS_CREATED)).create_habit(
                session, owner_id, name, weekdays, stake, cutoff_time=cutoff_time
            )
            return habit.id

    return _make


@pytest.fixture
def load_habit(config):
    """Fresh copy of a habit row."""

    def _load(habit_id):
        with session_scope(config) as session:
            return HabitStore(config).get_habit(session, habit_id)

    return _load
