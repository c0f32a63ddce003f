"""
Confirmation watcher.

Polls the settlement network for submitted transactions and writes their
terminal status. Runs out-of-band: the request that submitted a
transaction never waits here.
"""

import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from stakeshame.core.clock import Clock, SystemClock
from stakeshame.core.config import Config
from stakeshame.core.db import session_scope
from stakeshame.core.errors import ExternalServiceError, TransactionStateError
from stakeshame.core.models import TransactionStatus
from stakeshame.core.utils import short_hash
from stakeshame.ledger.transactions import TransactionLedger
from stakeshame.network.base import SettlementNetwork

logger = logging.getLogger(__name__)

TIMEOUT_ERROR = "confirmation timeout"


@dataclass
class SweepReport:
    """Transaction ids touched by one sweep."""
    confirmed: List[int] = field(default_factory=list)
    failed: List[int] = field(default_factory=list)
    expired: List[int] = field(default_factory=list)
    still_pending: List[int] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "confirmed": self.confirmed,
            "failed": self.failed,
            "expired": self.expired,
            "still_pending": self.still_pending,
        }


class ConfirmationWatcher:
    """
    Finalizes pending transactions from network confirmation state.

    `watch()` follows one transaction on a worker thread until it is
    terminal or `confirm_timeout_seconds` runs out. `sweep()` is the
    periodic backstop: it re-checks everything pending and fails what has
    been pending past the timeout.
    """

    def __init__(
        self,
        config: Config,
        network: SettlementNetwork,
        clock: Optional[Clock] = None,
        executor: Optional[ThreadPoolExecutor] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.config = config
        self.network = network
        self.clock = clock or SystemClock(config.timezone)
        self.transactions = TransactionLedger(config, self.clock)
        self.executor = executor or ThreadPoolExecutor(max_workers=4, thread_name_prefix="confirm")
        self.sleep = sleep

    def _now(self) -> datetime:
        return self.clock.now("UTC").replace(tzinfo=None)

    def check(self, tx_id: int) -> TransactionStatus:
        """
        Query the network once and finalize if terminal.

        Returns:
            Status of the transaction after the check
        """
        with session_scope(self.config, read_only=True) as session:
            tx = self.transactions.get(session, tx_id)
            if tx.status.is_terminal or not tx.external_hash:
                return tx.status
            external_hash = tx.external_hash

        # No session held open across the network call
        result = self.network.query_confirmation(external_hash)
        if not result.status.is_terminal:
            return TransactionStatus.PENDING

        try:
            with session_scope(self.config) as session:
                tx = self.transactions.finalize(session, tx_id, result.status, result.block_ref)
                if result.error:
                    tx.last_error = result.error
                return tx.status
        except TransactionStateError as e:
            # Finalized by a caller-reported status in the meantime
            logger.info(f"Skipping finalize of transaction {tx_id}: {e}")
            with session_scope(self.config, read_only=True) as session:
                return self.transactions.get(session, tx_id).status

    def _poll(self, tx_id: int) -> TransactionStatus:
        deadline = time.monotonic() + self.config.confirm_timeout_seconds
        status = TransactionStatus.PENDING

        while time.monotonic() < deadline:
            try:
                status = self.check(tx_id)
                if status.is_terminal:
                    return status
            except ExternalServiceError as e:
                logger.error(f"Confirmation error for transaction {tx_id}: {e}")

            self.sleep(self.config.confirm_poll_seconds)

        logger.warning(f"Transaction {tx_id} not confirmed after {self.config.confirm_timeout_seconds}s, left to sweep")
        return status

    def watch(self, tx_id: int) -> Future:
        """Follow a transaction in the background. Failures are logged, callers may drop the future."""
        logger.info(f"Watching transaction {tx_id}")
        future = self.executor.submit(self._poll, tx_id)
        future.add_done_callback(lambda done: self._report_failure(tx_id, done))
        return future

    def _report_failure(self, tx_id: int, future: Future) -> None:
        if future.cancelled():
            return
        error = future.exception()
        if error is not None:
            logger.error(f"Watching transaction {tx_id} failed: {error!r}", exc_info=error)

    def sweep(self) -> SweepReport:
        """Check every submitted pending transaction, expire the stale ones."""
        report = SweepReport()
        timeout = timedelta(seconds=self.config.confirm_timeout_seconds)

        with session_scope(self.config, read_only=True) as session:
            pending = [
                (tx.id, tx.external_hash, tx.submitted_at or tx.created_at)
                for tx in self.transactions.pending(session)
            ]

        for tx_id, external_hash, since in pending:
            try:
                status = self.check(tx_id)
            except ExternalServiceError as e:
                logger.error(f"Sweep could not query {short_hash(external_hash)}: {e}")
                status = TransactionStatus.PENDING

            if status == TransactionStatus.CONFIRMED:
                report.confirmed.append(tx_id)
                continue
            if status == TransactionStatus.FAILED:
                report.failed.append(tx_id)
                continue

            if self._now() - since <= timeout:
                report.still_pending.append(tx_id)
                continue

            try:
                with session_scope(self.config) as session:
                    tx = self.transactions.finalize(session, tx_id, TransactionStatus.FAILED)
                    tx.last_error = TIMEOUT_ERROR
                report.expired.append(tx_id)
                logger.warning(f"Transaction {tx_id} expired after {timeout}, marked failed")
            except TransactionStateError as e:
                logger.info(f"Skipping expiry of transaction {tx_id}: {e}")

        if pending:
            logger.info(
                f"Confirmation sweep: {len(report.confirmed)} confirmed, {len(report.failed)} failed, "
                f"{len(report.expired)} expired, {len(report.still_pending)} pending"
            )
        return report

    def shutdown(self, wait: bool = True) -> None:
        self.executor.shutdown(wait=wait)
