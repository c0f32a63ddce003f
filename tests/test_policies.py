"""
Unit tests for punishment escalation and streak rewards.
"""

import sys
from decimal import Decimal
from pathlib import Path

# Add parent to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from stakeshame.core.config import Config
from stakeshame.core.models import Habit, TransactionType
from stakeshame.policy.punishment import PunishmentAction, PunishmentEscalationPolicy
from stakeshame.policy.reward import RewardPolicy


def _habit(fail_count=0, total_staked="0", stake="10"):
    return Habit(
        id=1,
        name="Gym",
        schedule="mon,wed,fri",
        currency="SOL",
        stake_amount=Decimal(stake),
        fail_count=fail_count,
        total_staked=Decimal(total_staked),
        total_punished=Decimal("0"),
        total_rewarded=Decimal("0"),
    )


class TestPunishmentEscalation:
    """Test the two-strike ladder."""

    def test_first_strike_stakes(self):
        """fail_count 0 -> stake the stake amount."""
        habit = _habit()
        policy = PunishmentEscalationPolicy()

        decision = policy.decide(habit)
        assert decision.action == PunishmentAction.STAKE
        assert decision.amount == Decimal("10")
        assert decision.transaction_type == TransactionType.STAKE

        policy.apply(habit, decision)
        assert habit.fail_count == 1
        assert habit.total_staked == Decimal("10")

    def test_second_strike_forfeits_everything(self):
        """fail_count 1 -> forfeit the whole at-risk balance."""
        habit = _habit(fail_count=1, total_staked="25")
        policy = PunishmentEscalationPolicy()

        decision = policy.decide(habit)
        assert decision.action == PunishmentAction.FORFEIT
        assert decision.amount == Decimal("25")
        assert decision.transaction_type == TransactionType.PUNISHMENT

        policy.apply(habit, decision)
        assert habit.fail_count == 0
        assert habit.total_staked == Decimal("0")
        assert habit.total_punished == Decimal("25")

    def test_decide_is_pure(self):
        habit = _habit()
        PunishmentEscalationPolicy().decide(habit)
        assert habit.fail_count == 0
        assert habit.total_staked == Decimal("0")

    def test_forfeit_with_nothing_staked(self):
        """A forfeit of zero moves no value."""
        habit = _habit(fail_count=1, total_staked="0")
        decision = PunishmentEscalationPolicy().decide(habit)
        assert decision.amount == Decimal("0")
        assert decision.issues_transaction is False

    def test_ladder_cycles(self):
        """stake, forfeit, stake, forfeit..."""
        habit = _habit()
        policy = PunishmentEscalationPolicy()
        actions = []
        for _ in range(4):
            decision = policy.decide(habit)
            actions.append(decision.action)
            policy.apply(habit, decision)

        assert actions == [PunishmentAction.STAKE, PunishmentAction.FORFEIT] * 2
        assert habit.total_punished == Decimal("20")


class TestReward:
    """Test the streak reward threshold."""

    def _policy(self, bonus="0.1"):
        return RewardPolicy(Config(reward_streak_days=7, reward_bonus_amount=Decimal(bonus)))

    def test_no_reward_below_threshold(self):
        assert self._policy().decide(_habit(), 6) is None

    def test_reward_at_threshold(self):
        """Streak 7 returns the stake plus the bonus."""
        habit = _habit(fail_count=1, total_staked="10")
        policy = self._policy()

        decision = policy.decide(habit, 7)
        assert decision is not None
        assert decision.returned_stake == Decimal("10")
        assert decision.amount == Decimal("10.1")

        policy.apply(habit, decision)
        assert habit.total_staked == Decimal("0")
        assert habit.total_rewarded == Decimal("10.1")
        assert habit.fail_count == 0

    def test_no_retrigger_above_threshold(self):
        policy = self._policy()
        assert policy.decide(_habit(), 8) is None
        assert policy.decide(_habit(), 14) is None

    def test_describe_mentions_streak(self):
        habit = _habit()
        decision = self._policy().decide(habit, 7)
        assert "7-day streak" in decision.describe(habit)
