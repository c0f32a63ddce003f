"""
Habit and owner persistence.

Configuration edits and soft deletes. Running totals are left to the
settlement engine.
"""

import logging
from datetime import date
from decimal import Decimal
from typing import Iterable, List, Optional, Union

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from stakeshame.core.clock import Clock, utc_stamp
from stakeshame.core.config import Config
from stakeshame.core.errors import ConflictError, NotFoundError, ValidationError
from stakeshame.core.models import Habit, Owner
from stakeshame.core.utils import format_weekdays, parse_cutoff, parse_weekdays, to_decimal

logger = logging.getLogger(__name__)


class HabitStore:
    """
    Persistent record of habits and their owners.

    All methods take the caller's session, nothing is committed here.
    """

    def __init__(self, config: Config, clock: Optional[Clock] = None):
        self.config = config
        self.clock = clock

    # =========================
    # Owners
    # =========================

    def create_owner(
        self,
        session: Session,
        username: str,
        wallet_address: Optional[str] = None,
        timezone: Optional[str] = None,
    ) -> Owner:
        """Register a new owner. Usernames are unique."""
        username = (username or "").strip()
        if not username:
            raise ValidationError("Username is required")

        owner = Owner(
            username=username,
            wallet_address=wallet_address,
            timezone=timezone,
            created_at=utc_stamp(self.clock),
        )
        try:
            with session.begin_nested():
                session.add(owner)
                session.flush()
        except IntegrityError:
            raise ConflictError(f"Username already taken: {username}")

        logger.info(f"Created owner {owner.id} ({username})")
        return owner

    def get_owner(self, session: Session, owner_id: int) -> Owner:
        owner = session.get(Owner, owner_id)
        if owner is None:
            raise NotFoundError(f"Owner {owner_id} not found")
        return owner

    def owner_by_wallet(self, session: Session, address: str) -> Optional[Owner]:
        return session.scalars(
            select(Owner).where(Owner.wallet_address == address)
        ).first()

    # =========================
    # Habits
    # =========================

    def create_habit(
        self,
        session: Session,
        owner_id: int,
        name: str,
        weekdays: Union[str, Iterable],
        stake_amount: Union[str, int, float, Decimal],
        currency: Optional[str] = None,
        cutoff_time: Optional[str] = None,
    ) -> Habit:
        """
        Create a habit.

        Raises:
            NotFoundError: unknown owner
            ValidationError: empty name/schedule, non-positive stake,
                bad cutoff, or owner without a connected wallet
        """
        owner = self.get_owner(session, owner_id)

        if not owner.wallet_address:
            raise ValidationError("Connect a wallet before creating habits")

        name = (name or "").strip()
        if not name:
            raise ValidationError("Habit name is required")

        stake = self._validate_stake(stake_amount)
        schedule = format_weekdays(parse_weekdays(weekdays))
        parse_cutoff(cutoff_time)

        created_at = utc_stamp(self.clock)
        habit = Habit(
            owner_id=owner.id,
            name=name,
            schedule=schedule,
            stake_amount=stake,
            currency=currency or self.config.currency,
            cutoff_time=cutoff_time,
            is_active=True,
            current_streak=0,
            longest_streak=0,
            fail_count=0,
            total_staked=Decimal("0"),
            total_punished=Decimal("0"),
            total_rewarded=Decimal("0"),
            created_at=created_at,
            updated_at=created_at,
        )
        session.add(habit)
        session.flush()

        logger.info(f"Created habit {habit.id} for owner {owner.id}: {name} [{schedule}] stake={stake}")
        return habit

    def get_habit(self, session: Session, habit_id: int, for_update: bool = False) -> Habit:
        """
        Load a habit.

        `for_update` locks the row on databases that support it.
        """
        stmt = select(Habit).where(Habit.id == habit_id)
        if for_update:
            stmt = stmt.with_for_update()

        habit = session.scalars(stmt).first()
        if habit is None:
            raise NotFoundError(f"Habit {habit_id} not found")
        return habit

    def update_habit(
        self,
        session: Session,
        habit_id: int,
        name: Optional[str] = None,
        weekdays: Optional[Union[str, Iterable]] = None,
        stake_amount: Optional[Union[str, int, float, Decimal]] = None,
        cutoff_time: Optional[str] = None,
    ) -> Habit:
        """Edit a habit's configuration. Totals and streaks are untouched."""
        habit = self.get_habit(session, habit_id)

        if name is not None:
            name = name.strip()
            if not name:
                raise ValidationError("Habit name is required")
            habit.name = name

        if weekdays is not None:
            habit.schedule = format_weekdays(parse_weekdays(weekdays))

        if stake_amount is not None:
            habit.stake_amount = self._validate_stake(stake_amount)

        if cutoff_time is not None:
            parse_cutoff(cutoff_time)
            habit.cutoff_time = cutoff_time or None

        habit.updated_at = utc_stamp(self.clock)
        session.flush()
        logger.info(f"Updated habit {habit.id}: {habit}")
        return habit

    def deactivate(self, session: Session, habit_id: int) -> Habit:
        """Soft delete. Logs and transactions keep pointing at the row."""
        habit = self.get_habit(session, habit_id)
        habit.is_active = False
        habit.updated_at = utc_stamp(self.clock)
        session.flush()

        logger.info(f"Deactivated habit {habit.id} (staked balance {habit.total_staked} left in place)")
        return habit

    def list_habits(self, session: Session, owner_id: int, include_inactive: bool = False) -> List[Habit]:
        stmt = select(Habit).where(Habit.owner_id == owner_id)
        if not include_inactive:
            stmt = stmt.where(Habit.is_active.is_(True))
        return list(session.scalars(stmt.order_by(Habit.created_at.desc(), Habit.id.desc())))

    def active_scheduled_on(self, session: Session, day: date) -> List[Habit]:
        """All active habits scheduled on `day`'s weekday."""
        habits = session.scalars(
            select(Habit).where(Habit.is_active.is_(True)).order_by(Habit.id)
        )
        return [habit for habit in habits if habit.is_scheduled(day)]

    def _validate_stake(self, value) -> Decimal:
        stake = to_decimal(value, "stake amount")
        if stake <= 0:
            raise ValidationError(f"Stake amount must be positive, got {stake}")
        return stake
