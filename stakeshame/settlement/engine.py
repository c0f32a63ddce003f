"""
Settlement engine.

Per log event: logged -> policy evaluated -> transaction issued | no-op
-> settled. The daily log is committed on its own first; nothing that
happens during settlement can take it back.
"""

import logging
from dataclasses import dataclass
from datetime import date
from typing import Optional

from sqlalchemy.orm import Session

from stakeshame.core.clock import Clock, SystemClock
from stakeshame.core.config import Config
from stakeshame.core.db import session_scope
from stakeshame.core.errors import ConflictError, ExternalServiceError, ValidationError
from stakeshame.core.models import DailyLog, Habit, SettlementState, Transaction, TransactionType
from stakeshame.habits.store import HabitStore
from stakeshame.habits.streaks import StreakCalculator
from stakeshame.ledger.daily_log import DailyLogLedger
from stakeshame.ledger.transactions import TransactionLedger
from stakeshame.network.base import SettlementNetwork
from stakeshame.policy.punishment import PunishmentDecision, PunishmentEscalationPolicy
from stakeshame.policy.reward import RewardDecision, RewardPolicy

logger = logging.getLogger(__name__)


@dataclass
class SettlementOutcome:
    """Result of one log event. `error` is set for non-fatal settlement failures."""
    log: DailyLog
    habit: Habit
    transaction: Optional[Transaction] = None
    punishment: Optional[PunishmentDecision] = None
    reward: Optional[RewardDecision] = None
    error: Optional[str] = None
    message: Optional[str] = None

    @property
    def settlement_pending(self) -> bool:
        return self.log.settlement_pending

    def to_dict(self) -> dict:
        return {
            "log": self.log.to_dict(),
            "habit": self.habit.to_dict(),
            "transaction": self.transaction.to_dict() if self.transaction else None,
            "error": self.error,
            "message": self.message,
        }


class SettlementEngine:
    """
    Orchestrates the ledgers and policies for a single log event.

    Applies exactly one policy per log and issues at most one transaction.
    Without a network the transaction stays pending for a client-side
    submission reported back through the transaction ledger.
    """

    def __init__(
        self,
        config: Config,
        network: Optional[SettlementNetwork] = None,
        clock: Optional[Clock] = None,
        watcher=None,
        coach=None,
    ):
        self.config = config
        self.network = network
        self.clock = clock or SystemClock(config.timezone)
        self.watcher = watcher
        self.coach = coach

        self.store = HabitStore(config, self.clock)
        self.daily_logs = DailyLogLedger(config, self.clock)
        self.transactions = TransactionLedger(config, self.clock)
        self.streaks = StreakCalculator()
        self.punishment_policy = PunishmentEscalationPolicy()
        self.reward_policy = RewardPolicy(config)

    def log_event(
        self,
        habit_id: int,
        completed: bool,
        day: Optional[date] = None,
        notes: Optional[str] = None,
    ) -> SettlementOutcome:
        """
        Record a day's outcome and settle it.

        Raises:
            NotFoundError: unknown habit
            ValidationError: inactive habit, unscheduled or future day
            ConflictError: the day is already logged (no side effects)
        """
        with session_scope(self.config) as session:
            habit = self.store.get_habit(session, habit_id)
            if day is None:
                day = self.daily_logs.owner_today(habit)
            log = self.daily_logs.record(session, habit, day, completed, notes)
            log_id = log.id

        return self._settle(log_id)

    def resume(self, log_id: int) -> SettlementOutcome:
        """Settle a log that was written but never settled."""
        with session_scope(self.config, read_only=True) as session:
            log = self.daily_logs.get(session, log_id)
            if log.settlement_state != SettlementState.LOGGED:
                raise ConflictError(f"Daily log {log_id} already settled")

        return self._settle(log_id)

    # =========================
    # Settlement steps
    # =========================

    def _settle(self, log_id: int) -> SettlementOutcome:
        try:
            with session_scope(self.config) as session:
                outcome = self._apply_policy(session, log_id)
        except ValidationError as e:
            # Log stays committed in `logged` state, resume() can finish it
            logger.warning(f"Settlement deferred for daily log {log_id}: {e}")
            with session_scope(self.config, read_only=True) as session:
                log = self.daily_logs.get(session, log_id)
                habit = self.store.get_habit(session, log.habit_id)
            return SettlementOutcome(log=log, habit=habit, error=str(e))

        if outcome.transaction is not None:
            self._submit(outcome)

        outcome.message = self._encourage(outcome)
        return outcome

    def _apply_policy(self, session: Session, log_id: int) -> SettlementOutcome:
        """Streak update, one policy, at most one transaction. One unit of work."""
        log = self.daily_logs.get(session, log_id)
        habit = self.store.get_habit(session, log.habit_id, for_update=True)

        if log.settlement_state != SettlementState.LOGGED:
            raise ConflictError(f"Daily log {log_id} already settled")

        if log.completed:
            return self._settle_success(session, habit, log)
        return self._settle_failure(session, habit, log)

    def _settle_success(self, session: Session, habit: Habit, log: DailyLog) -> SettlementOutcome:
        history = self.daily_logs.history(session, habit.id)
        streak_at_log = self.streaks.streak_on(habit, history, log.date)
        result = self.streaks.recompute(habit, history)
        habit.current_streak = result.current
        habit.longest_streak = result.longest

        outcome = SettlementOutcome(log=log, habit=habit)
        decision = self.reward_policy.decide(habit, streak_at_log)

        if decision is not None:
            outcome.reward = decision
            if decision.amount > 0:
                outcome.transaction = self.transactions.record(
                    session,
                    habit,
                    TransactionType.REWARD,
                    decision.amount,
                    from_address=self._treasury(),
                    to_address=self._owner_wallet(habit),
                    daily_log=log,
                    description=decision.describe(habit),
                )
            self.reward_policy.apply(habit, decision)

        self.daily_logs.mark_settled(session, log, streak_at_log, reward_triggered=decision is not None)
        logger.info(
            f"Habit {habit.id} completed {log.date}: streak {streak_at_log} "
            f"(current {habit.current_streak}, longest {habit.longest_streak})"
        )
        return outcome

    def _settle_failure(self, session: Session, habit: Habit, log: DailyLog) -> SettlementOutcome:
        habit.current_streak = 0

        decision = self.punishment_policy.decide(habit)
        outcome = SettlementOutcome(log=log, habit=habit, punishment=decision)

        if decision.issues_transaction:
            outcome.transaction = self.transactions.record(
                session,
                habit,
                decision.transaction_type,
                decision.amount,
                from_address=self._owner_wallet(habit),
                to_address=self._treasury(),
                daily_log=log,
                description=decision.describe(habit),
            )
        self.punishment_policy.apply(habit, decision)

        self.daily_logs.mark_settled(session, log, 0, punishment_triggered=True)
        logger.info(f"Habit {habit.id} missed {log.date}: {decision.action.value} {decision.amount}")
        return outcome

    def _submit(self, outcome: SettlementOutcome) -> None:
        """Hand the transaction to the network. Failure is non-fatal."""
        if self.network is None:
            logger.info(f"No settlement network, transaction {outcome.transaction.id} awaits client submission")
            return

        tx_id = outcome.transaction.id
        with session_scope(self.config) as session:
            tx = self.transactions.get(session, tx_id)
            try:
                self.transactions.submit(session, tx, self.network)
            except ExternalServiceError as e:
                log = self.daily_logs.get(session, outcome.log.id)
                self.daily_logs.mark_submission_failed(session, log)
                outcome.log = log
                outcome.error = str(e)
            outcome.transaction = tx

        if outcome.error is None and self.watcher is not None:
            self.watcher.watch(tx_id)

    def _encourage(self, outcome: SettlementOutcome) -> Optional[str]:
        if self.coach is None:
            return None

        context = {
            "habit": outcome.habit.name,
            "completed": outcome.log.completed,
            "streak": outcome.log.streak_at_log,
            "currency": outcome.habit.currency,
            "auto_failed": (outcome.log.notes or "").startswith("auto-failed"),
        }
        if outcome.punishment is not None:
            context["punishment"] = outcome.punishment.action.value
            context["amount"] = str(outcome.punishment.amount)
        if outcome.reward is not None:
            context["reward"] = str(outcome.reward.amount)

        return self.coach.generate(context)

    def _treasury(self) -> str:
        if not self.config.treasury_address:
            raise ValidationError("TREASURY_ADDRESS is not configured")
        return self.config.treasury_address

    def _owner_wallet(self, habit: Habit) -> str:
        if not habit.owner.wallet_address:
            raise ValidationError(f"Owner {habit.owner_id} has no wallet connected")
        return habit.owner.wallet_address
