"""
StakeShame service facade.

The operations exposed to collaborators (CLIs, bots, HTTP handlers).
Every call takes plain values and returns plain dicts.
"""

import logging
from datetime import date
from typing import Iterable, List, Optional, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from stakeshame.core.clock import Clock, SystemClock
from stakeshame.core.config import Config
from stakeshame.core.db import init_db, session_scope
from stakeshame.core.errors import ExternalServiceError, ValidationError
from stakeshame.core.models import TransactionStatus, TransactionType
from stakeshame.habits.store import HabitStore
from stakeshame.network.base import SettlementNetwork, SubmissionPayload
from stakeshame.network.solana import SolanaNetwork
from stakeshame.network.wallet import WalletManager, build_signer_lookup, is_valid_address
from stakeshame.notify.coach import EncouragementCoach
from stakeshame.notify.telegram import TelegramNotifier
from stakeshame.review.stats import get_habit_stats
from stakeshame.review.transactions import DEFAULT_PERIOD, get_transaction_analytics, get_transaction_summary
from stakeshame.review.weekly import format_weekly_summary, get_weekly_summary
from stakeshame.settlement.engine import SettlementEngine
from stakeshame.settlement.reconcile import ReconciliationJob
from stakeshame.settlement.watcher import ConfirmationWatcher

logger = logging.getLogger(__name__)


class HabitService:
    """
    Facade over the settlement engine and its ledgers.

    Collaborators are all optional. Without a network, transactions stay
    pending until the client reports a submission through
    `transaction_status`.
    """

    def __init__(
        self,
        config: Config,
        network: Optional[SettlementNetwork] = None,
        clock: Optional[Clock] = None,
        watcher: Optional[ConfirmationWatcher] = None,
        coach: Optional[EncouragementCoach] = None,
        notifier: Optional[TelegramNotifier] = None,
    ):
        self.config = config
        self.clock = clock or SystemClock(config.timezone)
        self.network = network
        self.watcher = watcher
        self.notifier = notifier

        self.engine = SettlementEngine(config, network=network, clock=self.clock, watcher=watcher, coach=coach)
        self.reconciliation = ReconciliationJob(self.engine, clock=self.clock)

        self.store = self.engine.store
        self.daily_logs = self.engine.daily_logs
        self.transactions = self.engine.transactions

        self.wallets = WalletManager(config.wallet_encryption_key) if config.wallet_encryption_key else None

    @classmethod
    def from_config(
        cls,
        config: Config,
        clock: Optional[Clock] = None,
        with_network: bool = True,
        with_watcher: bool = True,
    ) -> "HabitService":
        """
        Wire the Solana adapter, watcher, coach and Telegram from configuration.

        One-shot callers pass `with_watcher=False`: pending transactions are
        then confirmed by the scheduler's sweep instead of a poll thread.
        """
        init_db(config)

        network = None
        watcher = None
        if with_network and config.solana_rpc_url:
            wallets = WalletManager(config.wallet_encryption_key) if config.wallet_encryption_key else None
            signer_lookup = build_signer_lookup(
                config.treasury_private_key, wallets, lambda address: _load_custodial(config, address)
            )
            network = SolanaNetwork(config.solana_rpc_url, signer_lookup)
            if with_watcher:
                watcher = ConfirmationWatcher(config, network, clock=clock)

        coach = EncouragementCoach(config)
        notifier = TelegramNotifier(config)
        return cls(
            config,
            network=network,
            clock=clock,
            watcher=watcher,
            coach=coach if coach.configured else None,
            notifier=notifier if notifier.configured else None,
        )

    # =========================
    # Core operations
    # =========================

    def log(
        self,
        habit_id: int,
        completed: bool,
        day: Optional[date] = None,
        notes: Optional[str] = None,
    ) -> dict:
        """
        Record a day's completion or failure and settle it.

        Raises:
            ValidationError, ConflictError, NotFoundError
        """
        outcome = self.engine.log_event(habit_id, completed, day=day, notes=notes)

        if self.notifier is not None:
            self.notifier.send_outcome(outcome)

        result = outcome.to_dict()
        if outcome.transaction is not None and outcome.transaction.status == TransactionStatus.PENDING:
            result["submission_payload"] = SubmissionPayload.for_transaction(outcome.transaction).to_dict()
        return result

    def stats(self, habit_id: int) -> dict:
        return get_habit_stats(self.config, habit_id, clock=self.clock)

    def transaction_status(
        self,
        tx_id: int,
        status: Union[str, TransactionStatus],
        block_ref: Optional[str] = None,
        external_hash: Optional[str] = None,
    ) -> dict:
        """
        Caller-reported status for a transaction.

        `pending` (with a hash) records a client-side submission. A
        terminal status is written once; terminal records reject any
        further transition.

        Raises:
            ValidationError: unknown status
            TransactionStateError: transaction already terminal
            NotFoundError: unknown transaction
        """
        try:
            status = TransactionStatus(status)
        except ValueError:
            raise ValidationError(f"Unknown transaction status: {status}")

        with session_scope(self.config) as session:
            if status == TransactionStatus.PENDING or external_hash:
                tx = self.transactions.report_pending(session, tx_id, external_hash)
            if status.is_terminal:
                tx = self.transactions.finalize(session, tx_id, status, block_ref)

        if status == TransactionStatus.PENDING and external_hash and self.watcher is not None:
            self.watcher.watch(tx_id)

        return tx.to_dict()

    def transaction_retry(self, tx_id: int) -> dict:
        """
        Resubmit a failed transaction under the same id.

        Raises:
            TransactionStateError: transaction is not failed
            ExternalServiceError: resubmission failed, the transaction is failed again
        """
        error = None
        with session_scope(self.config) as session:
            try:
                tx, payload = self.transactions.retry(session, tx_id, self.network)
            except ExternalServiceError as e:
                # Commit the failed attempt before surfacing it
                error = e
        if error is not None:
            raise error

        if tx.external_hash and self.watcher is not None:
            self.watcher.watch(tx.id)

        return {"transaction": tx.to_dict(), "submission_payload": payload.to_dict()}

    def run_reconciliation(self, as_of: Optional[date] = None) -> dict:
        return self.reconciliation.run(as_of).to_dict()

    def resume_settlement(self, log_id: Optional[int] = None) -> List[dict]:
        """
        Finish settlement of logs left in the `logged` state.

        With `log_id` only that log is settled, otherwise every unsettled
        log older than the resume grace period.

        Raises:
            NotFoundError: unknown log
            ConflictError: the log is already settled
        """
        if log_id is not None:
            outcomes = [self.engine.resume(log_id)]
        else:
            outcomes = self.reconciliation.resume_unsettled()
        return [outcome.to_dict() for outcome in outcomes]

    # =========================
    # Owners and habits
    # =========================

    def create_owner(self, username: str, wallet_address: Optional[str] = None, timezone: Optional[str] = None) -> dict:
        if wallet_address and not is_valid_address(wallet_address):
            raise ValidationError(f"Invalid wallet address: {wallet_address}")
        if timezone:
            _validate_timezone(timezone)

        with session_scope(self.config) as session:
            owner = self.store.create_owner(session, username, wallet_address=wallet_address, timezone=timezone)
            return owner.to_dict()

    def register_wallet(self, owner_id: int, wallet_address: Optional[str] = None, private_key: Optional[str] = None) -> dict:
        """
        Connect an owner's wallet.

        With `private_key` the wallet becomes custodial: the key is stored
        encrypted and the service can sign the owner's stakes.
        """
        encrypted = salt = None
        if private_key:
            if self.wallets is None:
                raise ValidationError("WALLET_ENCRYPTION_KEY is required for custodial wallets")
            valid, pubkey, error = self.wallets.validate_private_key(private_key)
            if not valid:
                raise ValidationError(f"Invalid private key: {error}")
            if wallet_address and wallet_address != pubkey:
                raise ValidationError("Private key does not match the wallet address")
            wallet_address = pubkey
            encrypted, salt = self.wallets.encrypt_wallet(private_key)

        if not wallet_address or not is_valid_address(wallet_address):
            raise ValidationError(f"Invalid wallet address: {wallet_address}")

        with session_scope(self.config) as session:
            owner = self.store.get_owner(session, owner_id)
            owner.wallet_address = wallet_address
            owner.encrypted_wallet = encrypted
            owner.wallet_salt = salt
            session.flush()
            logger.info(f"Owner {owner.id} connected wallet {wallet_address[:8]}... custodial={encrypted is not None}")
            return owner.to_dict()

    def create_habit(
        self,
        owner_id: int,
        name: str,
        weekdays: Union[str, Iterable],
        stake_amount,
        cutoff_time: Optional[str] = None,
    ) -> dict:
        with session_scope(self.config) as session:
            habit = self.store.create_habit(
                session, owner_id, name, weekdays, stake_amount, cutoff_time=cutoff_time
            )
            return habit.to_dict()

    def update_habit(self, habit_id: int, **changes) -> dict:
        with session_scope(self.config) as session:
            return self.store.update_habit(session, habit_id, **changes).to_dict()

    def deactivate_habit(self, habit_id: int) -> dict:
        with session_scope(self.config) as session:
            return self.store.deactivate(session, habit_id).to_dict()

    def list_habits(self, owner_id: int, include_inactive: bool = False) -> List[dict]:
        with session_scope(self.config, read_only=True) as session:
            return [h.to_dict() for h in self.store.list_habits(session, owner_id, include_inactive)]

    def list_transactions(
        self,
        habit_id: int,
        status: Optional[str] = None,
        tx_type: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[dict]:
        try:
            status = TransactionStatus(status) if status else None
            tx_type = TransactionType(tx_type) if tx_type else None
        except ValueError as e:
            raise ValidationError(str(e))

        with session_scope(self.config, read_only=True) as session:
            self.store.get_habit(session, habit_id)
            return [
                tx.to_dict()
                for tx in self.transactions.list_for_habit(session, habit_id, status, tx_type, limit)
            ]

    def weekly_summary(self, owner_id: int, week_ending: Optional[date] = None, send: bool = False) -> dict:
        week_ending = week_ending or self.clock.today(self.config.timezone)
        summary = get_weekly_summary(self.config, owner_id, week_ending)
        text = format_weekly_summary(summary)

        if send and self.notifier is not None:
            self.notifier.send_message(text)

        return {
            **summary,
            "start": summary["start"].isoformat(),
            "end": summary["end"].isoformat(),
            "text": text,
        }

    def transaction_summary(self, owner_id: int) -> dict:
        return get_transaction_summary(self.config, owner_id)

    def transaction_analytics(self, owner_id: int, period: str = DEFAULT_PERIOD) -> dict:
        return get_transaction_analytics(self.config, owner_id, period, clock=self.clock)

    def balance(self, address: str):
        if self.network is None:
            raise ExternalServiceError("No settlement network configured")
        return self.network.get_balance(address)

    def shutdown(self) -> None:
        if self.watcher is not None:
            self.watcher.shutdown()


def _load_custodial(config: Config, address: str):
    """(encrypted_wallet, salt) of a custodial owner wallet, or None."""
    with session_scope(config, read_only=True) as session:
        owner = HabitStore(config).owner_by_wallet(session, address)
        if owner is None or owner.encrypted_wallet is None:
            return None
        return owner.encrypted_wallet, owner.wallet_salt


def _validate_timezone(name: str) -> None:
    try:
        ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        raise ValidationError(f"Unknown timezone: {name}")
