"""
Streak reward.

Reaching exactly the threshold streak returns everything at risk plus a
fixed bonus. Streaks beyond the threshold do not pay again; the streak
has to reset and climb back.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from stakeshame.core.config import Config
from stakeshame.core.models import Habit

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RewardDecision:
    """Payout for a qualifying streak."""
    streak: int
    returned_stake: Decimal
    bonus: Decimal

    @property
    def amount(self) -> Decimal:
        return self.returned_stake + self.bonus

    def describe(self, habit: Habit) -> str:
        return (
            f"{self.streak}-day streak on {habit.name}: "
            f"{self.returned_stake} {habit.currency} returned + {self.bonus} bonus"
        )


class RewardPolicy:
    """Decides and applies streak rewards."""

    def __init__(self, config: Config):
        self.streak_days = config.reward_streak_days
        self.bonus_amount = config.reward_bonus_amount

    def decide(self, habit: Habit, new_streak: int) -> Optional[RewardDecision]:
        """Reward only when this success lands the streak exactly on the threshold."""
        if new_streak != self.streak_days:
            return None

        return RewardDecision(
            streak=new_streak,
            returned_stake=habit.total_staked or Decimal("0"),
            bonus=self.bonus_amount,
        )

    def apply(self, habit: Habit, decision: RewardDecision) -> None:
        """
        Return the stake and count the payout.

        The open strike is cleared too: the stake it put at risk has
        just been returned.
        """
        habit.total_staked = Decimal("0")
        habit.total_rewarded = (habit.total_rewarded or Decimal("0")) + decision.amount
        habit.fail_count = 0

        logger.info(f"Habit {habit.id} rewarded {decision.amount} at streak {decision.streak}")
