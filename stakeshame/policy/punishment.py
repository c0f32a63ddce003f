"""
Two-strike punishment escalation.

First missed day: the habit's stake goes to the treasury and is held at
risk. Second missed day while a strike is open: everything at risk is
forfeited. Keyed on the strike counter, not on how close together the
failures were.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

from stakeshame.core.models import Habit, TransactionType

logger = logging.getLogger(__name__)


class PunishmentAction(str, Enum):
    """Escalation ladder step."""
    STAKE = "stake"
    FORFEIT = "forfeit"


@dataclass(frozen=True)
class PunishmentDecision:
    """What a failure costs."""
    action: PunishmentAction
    amount: Decimal

    @property
    def transaction_type(self) -> TransactionType:
        if self.action == PunishmentAction.STAKE:
            return TransactionType.STAKE
        return TransactionType.PUNISHMENT

    @property
    def issues_transaction(self) -> bool:
        """A forfeit with nothing at risk moves no value."""
        return self.amount > 0

    def describe(self, habit: Habit) -> str:
        if self.action == PunishmentAction.STAKE:
            return f"First strike on {habit.name}: staked {self.amount} {habit.currency}"
        return f"Second strike on {habit.name}: forfeited {self.amount} {habit.currency}"


class PunishmentEscalationPolicy:
    """Decides and applies the cost of a missed day."""

    def decide(self, habit: Habit) -> PunishmentDecision:
        """
        Pure decision, no side effects.

        fail_count == 0 -> stake the habit's stake amount
        fail_count >= 1 -> forfeit the whole at-risk balance
        """
        if (habit.fail_count or 0) == 0:
            return PunishmentDecision(PunishmentAction.STAKE, habit.stake_amount)

        return PunishmentDecision(PunishmentAction.FORFEIT, habit.total_staked or Decimal("0"))

    def apply(self, habit: Habit, decision: PunishmentDecision) -> None:
        """Mutate the habit's strike counter and totals."""
        if decision.action == PunishmentAction.STAKE:
            habit.fail_count = 1
            habit.total_staked = (habit.total_staked or Decimal("0")) + decision.amount
        else:
            habit.fail_count = 0
            habit.total_staked = Decimal("0")
            habit.total_punished = (habit.total_punished or Decimal("0")) + decision.amount

        logger.info(
            f"Habit {habit.id} {decision.action.value} {decision.amount}: "
            f"fail_count={habit.fail_count} staked={habit.total_staked} punished={habit.total_punished}"
        )
