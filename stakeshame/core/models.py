"""
Database models for StakeShame.

Models: Owner, Habit, DailyLog, Transaction, TransactionSubmission.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional, Set

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Integer,
    LargeBinary,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from stakeshame.core.clock import to_local, utcnow
from stakeshame.core.utils import format_weekdays, parse_weekdays

# 9 decimal places = lamport precision
Amount = Numeric(18, 9, asdecimal=True)


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


class Owner(Base):
    """
    A user who pledges stakes.

    Holds the wallet rewards are paid to and stakes are drawn from.
    The private key is only present for custodial wallets and is
    AES-GCM encrypted at rest.
    """

    __tablename__ = "owners"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    username: Mapped[str] = mapped_column(String(100), unique=True, index=True, nullable=False)
    timezone: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    # Wallet
    wallet_address: Mapped[Optional[str]] = mapped_column(String(64), index=True, nullable=True)
    encrypted_wallet: Mapped[Optional[bytes]] = mapped_column(LargeBinary, nullable=True)
    wallet_salt: Mapped[Optional[bytes]] = mapped_column(LargeBinary, nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    habits: Mapped[list["Habit"]] = relationship("Habit", back_populates="owner")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "username": self.username,
            "timezone": self.timezone,
            "wallet_address": self.wallet_address,
            "custodial": self.encrypted_wallet is not None,
            "is_active": self.is_active,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self) -> str:
        return f"<Owner {self.id}: {self.username} wallet={self.wallet_address}>"


class Habit(Base):
    """
    A recurring commitment with a stake attached.

    Running totals are mutated only by the settlement engine and explicit
    edits. Deleting a habit is a soft delete (is_active=False) so its logs
    and transactions stay valid.
    """

    __tablename__ = "habits"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    owner_id: Mapped[int] = mapped_column(Integer, ForeignKey("owners.id"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    schedule: Mapped[str] = mapped_column(String(40), nullable=False)  # "mon,wed,fri"
    stake_amount: Mapped[Decimal] = mapped_column(Amount, nullable=False)
    currency: Mapped[str] = mapped_column(String(10), default="SOL")
    cutoff_time: Mapped[Optional[str]] = mapped_column(String(5), nullable=True)  # "HH:MM"
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)

    # Running state
    current_streak: Mapped[int] = mapped_column(Integer, default=0)
    longest_streak: Mapped[int] = mapped_column(Integer, default=0)
    fail_count: Mapped[int] = mapped_column(Integer, default=0)  # strike counter, 0 or 1
    total_staked: Mapped[Decimal] = mapped_column(Amount, default=Decimal("0"))  # at risk now
    total_punished: Mapped[Decimal] = mapped_column(Amount, default=Decimal("0"))
    total_rewarded: Mapped[Decimal] = mapped_column(Amount, default=Decimal("0"))

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)

    owner: Mapped["Owner"] = relationship("Owner", back_populates="habits")
    logs: Mapped[list["DailyLog"]] = relationship("DailyLog", back_populates="habit")
    transactions: Mapped[list["Transaction"]] = relationship("Transaction", back_populates="habit")

    @property
    def weekdays(self) -> Set[int]:
        """Scheduled weekdays, Monday=0."""
        return parse_weekdays(self.schedule)

    @weekdays.setter
    def weekdays(self, days) -> None:
        self.schedule = format_weekdays(parse_weekdays(days))

    def is_scheduled(self, day: date) -> bool:
        return day.weekday() in self.weekdays

    def created_local(self, default_tz: str) -> datetime:
        """Creation time in the owner's timezone."""
        tz = self.owner.timezone if self.owner and self.owner.timezone else default_tz
        return to_local(self.created_at, tz)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "owner_id": self.owner_id,
            "name": self.name,
            "schedule": self.schedule.split(","),
            "stake_amount": str(self.stake_amount),
            "currency": self.currency,
            "cutoff_time": self.cutoff_time,
            "is_active": self.is_active,
            "current_streak": self.current_streak,
            "longest_streak": self.longest_streak,
            "fail_count": self.fail_count,
            "total_staked": str(self.total_staked),
            "total_punished": str(self.total_punished),
            "total_rewarded": str(self.total_rewarded),
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self) -> str:
        return (
            f"<Habit {self.id}: {self.name} [{self.schedule}] "
            f"stake={self.stake_amount} {self.currency} streak={self.current_streak}>"
        )


class SettlementState(str, Enum):
    """Where a daily log is in settlement."""
    LOGGED = "logged"  # written, policy not yet applied
    SETTLED = "settled"  # policy applied, transaction (if any) submitted
    SUBMISSION_FAILED = "submission_failed"  # policy applied, network submit failed


class DailyLog(Base):
    """
    One outcome per habit per calendar day.

    The (habit_id, date) unique constraint is the serialization point
    between an interactive log call and the reconciliation sweep.
    `completed` and `date` never change after insert.
    """

    __tablename__ = "daily_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    habit_id: Mapped[int] = mapped_column(Integer, ForeignKey("habits.id"), nullable=False)
    date: Mapped[date] = mapped_column(Date, nullable=False)
    completed: Mapped[bool] = mapped_column(Boolean, nullable=False)
    streak_at_log: Mapped[int] = mapped_column(Integer, default=0)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    punishment_triggered: Mapped[bool] = mapped_column(Boolean, default=False)
    reward_triggered: Mapped[bool] = mapped_column(Boolean, default=False)
    settlement_state: Mapped[SettlementState] = mapped_column(
        SQLEnum(SettlementState), default=SettlementState.LOGGED
    )

    logged_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    habit: Mapped["Habit"] = relationship("Habit", back_populates="logs")
    transactions: Mapped[list["Transaction"]] = relationship("Transaction", back_populates="daily_log")

    __table_args__ = (
        UniqueConstraint("habit_id", "date", name="uq_daily_log_habit_date"),
    )

    @property
    def settlement_pending(self) -> bool:
        return self.settlement_state != SettlementState.SETTLED

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "habit_id": self.habit_id,
            "date": self.date.isoformat(),
            "completed": self.completed,
            "streak_at_log": self.streak_at_log,
            "notes": self.notes,
            "punishment_triggered": self.punishment_triggered,
            "reward_triggered": self.reward_triggered,
            "settlement_state": self.settlement_state.value,
            "settlement_pending": self.settlement_pending,
            "logged_at": self.logged_at.isoformat() if self.logged_at else None,
        }

    def __repr__(self) -> str:
        mark = "done" if self.completed else "missed"
        return f"<DailyLog {self.id}: habit={self.habit_id} {self.date} {mark} streak={self.streak_at_log}>"


class TransactionType(str, Enum):
    """Kind of value transfer."""
    STAKE = "stake"
    PUNISHMENT = "punishment"
    REWARD = "reward"
    REFUND = "refund"


class TransactionStatus(str, Enum):
    """Confirmation lifecycle. Confirmed and failed are terminal."""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not TransactionStatus.PENDING


class Transaction(Base):
    """
    A value transfer attempt and its confirmation lifecycle.

    Created pending by the settlement engine, finalized once by the
    confirmation watcher or a caller report. Only `retry` moves a failed
    record back to pending, keeping the same id.
    """

    __tablename__ = "transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    habit_id: Mapped[int] = mapped_column(Integer, ForeignKey("habits.id"), nullable=False, index=True)
    daily_log_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("daily_logs.id"), nullable=True
    )
    type: Mapped[TransactionType] = mapped_column(SQLEnum(TransactionType), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Amount, nullable=False)
    currency: Mapped[str] = mapped_column(String(10), default="SOL")
    from_address: Mapped[str] = mapped_column(String(64), nullable=False)
    to_address: Mapped[str] = mapped_column(String(64), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    # Lifecycle
    external_hash: Mapped[Optional[str]] = mapped_column(String(100), nullable=True, index=True)
    status: Mapped[TransactionStatus] = mapped_column(
        SQLEnum(TransactionStatus), default=TransactionStatus.PENDING, index=True
    )
    block_ref: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    attempts: Mapped[int] = mapped_column(Integer, default=0)
    last_error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    submitted_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    confirmed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    habit: Mapped["Habit"] = relationship("Habit", back_populates="transactions")
    daily_log: Mapped[Optional["DailyLog"]] = relationship("DailyLog", back_populates="transactions")
    submissions: Mapped[list["TransactionSubmission"]] = relationship(
        "TransactionSubmission",
        back_populates="transaction",
        cascade="all, delete-orphan",
        order_by="TransactionSubmission.id",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "habit_id": self.habit_id,
            "daily_log_id": self.daily_log_id,
            "type": self.type.value,
            "amount": str(self.amount),
            "currency": self.currency,
            "from_address": self.from_address,
            "to_address": self.to_address,
            "description": self.description,
            "external_hash": self.external_hash,
            "status": self.status.value,
            "block_ref": self.block_ref,
            "attempts": self.attempts,
            "last_error": self.last_error,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "confirmed_at": self.confirmed_at.isoformat() if self.confirmed_at else None,
        }

    def __repr__(self) -> str:
        return f"<Transaction {self.id}: {self.type.value} {self.amount} {self.currency} {self.status.value}>"


class TransactionSubmission(Base):
    """
    One submission attempt to the settlement network.

    Keeps the hash history of a transaction across retries.
    """

    __tablename__ = "transaction_submissions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    transaction_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("transactions.id"), nullable=False, index=True
    )
    external_hash: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    submitted_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    transaction: Mapped["Transaction"] = relationship("Transaction", back_populates="submissions")

    def __repr__(self) -> str:
        outcome = self.external_hash or f"error={self.error}"
        return f"<TransactionSubmission {self.id}: tx={self.transaction_id} {outcome}>"
