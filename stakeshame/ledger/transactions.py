"""
Transaction ledger.

Records every value-transfer attempt and drives its confirmation
lifecycle: pending -> confirmed | failed. Terminal statuses are written
exactly once; only an explicit retry moves a failed record back to
pending, under the same id.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Iterable, List, Optional, Tuple

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from stakeshame.core.clock import Clock, SystemClock
from stakeshame.core.config import Config
from stakeshame.core.errors import (
    ExternalServiceError,
    NotFoundError,
    TransactionStateError,
    ValidationError,
)
from stakeshame.core.models import (
    DailyLog,
    Habit,
    SettlementState,
    Transaction,
    TransactionStatus,
    TransactionSubmission,
    TransactionType,
)
from stakeshame.core.utils import short_hash
from stakeshame.network.base import SettlementNetwork, SubmissionPayload

logger = logging.getLogger(__name__)


@dataclass
class LedgerTotals:
    """Habit totals derived from the transaction ledger."""
    total_staked: Decimal = Decimal("0")
    total_punished: Decimal = Decimal("0")
    total_rewarded: Decimal = Decimal("0")


def replay_totals(transactions: Iterable[Transaction]) -> LedgerTotals:
    """
    Rebuild a habit's totals from its non-failed transactions.

    Stakes accumulate, a punishment forfeits everything staked, a reward
    or refund returns it. Ordered by id, i.e. creation order.
    """
    totals = LedgerTotals()

    for tx in sorted(transactions, key=lambda t: t.id):
        if tx.status == TransactionStatus.FAILED:
            continue

        if tx.type == TransactionType.STAKE:
            totals.total_staked += tx.amount
        elif tx.type == TransactionType.PUNISHMENT:
            totals.total_punished += tx.amount
            totals.total_staked = Decimal("0")
        elif tx.type == TransactionType.REWARD:
            totals.total_rewarded += tx.amount
            totals.total_staked = Decimal("0")
        elif tx.type == TransactionType.REFUND:
            totals.total_staked = max(Decimal("0"), totals.total_staked - tx.amount)

    return totals


class TransactionLedger:
    """
    Ledger of value transfers.

    `record` never talks to the network. Submission and confirmation are
    separate steps so the request that created a transaction never waits
    on the chain.
    """

    def __init__(self, config: Config, clock: Optional[Clock] = None):
        self.config = config
        self.clock = clock or SystemClock(config.timezone)

    def _now(self) -> datetime:
        return self.clock.now("UTC").replace(tzinfo=None)

    def record(
        self,
        session: Session,
        habit: Habit,
        tx_type: TransactionType,
        amount: Decimal,
        from_address: str,
        to_address: str,
        daily_log: Optional[DailyLog] = None,
        description: Optional[str] = None,
    ) -> Transaction:
        """
        Create a pending transaction. Returns immediately.

        Raises:
            ValidationError: non-positive amount or missing address
        """
        if amount <= 0:
            raise ValidationError(f"Transaction amount must be positive, got {amount}")
        if not from_address or not to_address:
            raise ValidationError("Transaction needs both a from and a to address")

        tx = Transaction(
            habit_id=habit.id,
            daily_log_id=daily_log.id if daily_log is not None else None,
            type=tx_type,
            amount=amount,
            currency=habit.currency,
            from_address=from_address,
            to_address=to_address,
            description=description,
            status=TransactionStatus.PENDING,
            attempts=0,
            created_at=self._now(),
        )
        session.add(tx)
        session.flush()

        logger.info(f"Recorded {tx} for habit {habit.id}")
        return tx

    def get(self, session: Session, tx_id: int) -> Transaction:
        tx = session.get(Transaction, tx_id)
        if tx is None:
            raise NotFoundError(f"Transaction {tx_id} not found")
        return tx

    def list_for_habit(
        self,
        session: Session,
        habit_id: int,
        status: Optional[TransactionStatus] = None,
        tx_type: Optional[TransactionType] = None,
        limit: Optional[int] = None,
    ) -> List[Transaction]:
        stmt = select(Transaction).where(Transaction.habit_id == habit_id)
        if status is not None:
            stmt = stmt.where(Transaction.status == status)
        if tx_type is not None:
            stmt = stmt.where(Transaction.type == tx_type)
        stmt = stmt.order_by(Transaction.id.desc())
        if limit:
            stmt = stmt.limit(limit)
        return list(session.scalars(stmt))

    def pending(self, session: Session, with_hash_only: bool = True) -> List[Transaction]:
        """Pending transactions, oldest first."""
        stmt = select(Transaction).where(Transaction.status == TransactionStatus.PENDING)
        if with_hash_only:
            stmt = stmt.where(Transaction.external_hash.is_not(None))
        return list(session.scalars(stmt.order_by(Transaction.id)))

    # =========================
    # Lifecycle
    # =========================

    def _compare_and_set(
        self,
        session: Session,
        tx: Transaction,
        expected: TransactionStatus,
        **values,
    ) -> bool:
        """Atomically move tx out of `expected`. False if someone else got there first."""
        result = session.execute(
            update(Transaction)
            .where(Transaction.id == tx.id, Transaction.status == expected)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        session.refresh(tx)
        return result.rowcount == 1

    def submit(self, session: Session, tx: Transaction, network: SettlementNetwork) -> Transaction:
        """
        Submit a pending transaction to the network.

        On failure the transaction is finalized `failed` and the
        ExternalServiceError propagates to the caller.
        """
        if tx.status != TransactionStatus.PENDING:
            raise TransactionStateError(f"Transaction {tx.id} is {tx.status.value}, cannot submit")

        try:
            external_hash = network.submit_transfer(tx.from_address, tx.to_address, tx.amount)
        except ExternalServiceError as e:
            self._record_submission_failure(session, tx, str(e))
            raise

        now = self._now()
        session.add(TransactionSubmission(transaction_id=tx.id, external_hash=external_hash, submitted_at=now))
        tx.external_hash = external_hash
        tx.submitted_at = now
        tx.attempts = (tx.attempts or 0) + 1
        tx.last_error = None
        session.flush()

        logger.info(f"Submitted transaction {tx.id}: {short_hash(external_hash)}")
        return tx

    def _record_submission_failure(self, session: Session, tx: Transaction, error: str) -> None:
        session.add(TransactionSubmission(transaction_id=tx.id, error=error, submitted_at=self._now()))
        self._compare_and_set(
            session,
            tx,
            TransactionStatus.PENDING,
            status=TransactionStatus.FAILED,
            attempts=(tx.attempts or 0) + 1,
            last_error=error,
        )
        logger.error(f"Submission failed for transaction {tx.id}: {error}")

    def report_pending(self, session: Session, tx_id: int, external_hash: Optional[str]) -> Transaction:
        """
        Accept a client-reported submission for a pending transaction.

        Used when the owner's wallet signs and submits on the client side.
        """
        tx = self.get(session, tx_id)
        if tx.status != TransactionStatus.PENDING:
            raise TransactionStateError(
                f"Transaction {tx.id} is {tx.status.value}, cannot move back to pending"
            )

        if external_hash and external_hash != tx.external_hash:
            now = self._now()
            session.add(TransactionSubmission(transaction_id=tx.id, external_hash=external_hash, submitted_at=now))
            tx.external_hash = external_hash
            tx.submitted_at = now
            tx.attempts = (tx.attempts or 0) + 1
            session.flush()
            logger.info(f"Client submitted transaction {tx.id}: {short_hash(external_hash)}")

        return tx

    def finalize(
        self,
        session: Session,
        tx_id: int,
        status: TransactionStatus,
        block_ref: Optional[str] = None,
    ) -> Transaction:
        """
        Terminal write: pending -> confirmed | failed.

        Raises:
            ValidationError: target status is not terminal
            TransactionStateError: transaction already terminal
        """
        try:
            status = TransactionStatus(status)
        except ValueError:
            raise ValidationError(f"Unknown transaction status: {status}")
        if not status.is_terminal:
            raise ValidationError(f"Cannot finalize to {status.value}")

        tx = self.get(session, tx_id)
        if tx.status.is_terminal:
            raise TransactionStateError(f"Transaction {tx.id} already {tx.status.value}")

        values = {"status": status, "block_ref": block_ref}
        if status == TransactionStatus.CONFIRMED:
            values["confirmed_at"] = self._now()

        if not self._compare_and_set(session, tx, TransactionStatus.PENDING, **values):
            raise TransactionStateError(f"Transaction {tx.id} already {tx.status.value}")

        logger.info(f"Finalized transaction {tx.id}: {status.value} block={block_ref}")
        return tx

    def retry(
        self,
        session: Session,
        tx_id: int,
        network: Optional[SettlementNetwork] = None,
    ) -> Tuple[Transaction, SubmissionPayload]:
        """
        Resubmit a failed transaction under the same id.

        Claims the record (failed -> pending) before submitting so two
        concurrent retries cannot both reach the network. Without a
        network the record is reopened and the returned payload is for the
        client to sign and report back.

        Raises:
            TransactionStateError: transaction is not failed
            ExternalServiceError: resubmission failed, record stays failed
        """
        tx = self.get(session, tx_id)
        if tx.status != TransactionStatus.FAILED:
            raise TransactionStateError(
                f"Only failed transactions can be retried, {tx.id} is {tx.status.value}"
            )

        claimed = self._compare_and_set(
            session,
            tx,
            TransactionStatus.FAILED,
            status=TransactionStatus.PENDING,
            external_hash=None,
            block_ref=None,
            confirmed_at=None,
        )
        if not claimed:
            raise TransactionStateError(f"Transaction {tx.id} is already being retried")

        if network is not None:
            self.submit(session, tx, network)

        if tx.daily_log is not None and tx.daily_log.settlement_state == SettlementState.SUBMISSION_FAILED:
            tx.daily_log.settlement_state = SettlementState.SETTLED
            session.flush()

        logger.info(f"Retried transaction {tx.id} (attempt {tx.attempts})")
        return tx, SubmissionPayload.for_transaction(tx)
