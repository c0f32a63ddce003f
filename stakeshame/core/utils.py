"""
Utility functions for StakeShame.
"""

from datetime import date, time, timedelta
from decimal import Decimal, InvalidOperation
from typing import Iterable, Optional, Set, Union

from stakeshame.core.errors import ValidationError

WEEKDAY_NAMES = ("mon", "tue", "wed", "thu", "fri", "sat", "sun")

LAMPORTS_PER_SOL = 1_000_000_000


def parse_weekdays(days: Union[str, Iterable[Union[str, int]]]) -> Set[int]:
    """
    Normalize a weekday set to Python weekday numbers (Monday=0).

    Accepts "mon,wed,fri", ["Monday", "Wednesday"], or [0, 2, 4].

    Raises:
        ValidationError: on an unknown day or an empty set
    """
    if isinstance(days, str):
        days = [d for d in days.split(",") if d.strip()]

    result: Set[int] = set()
    for day in days:
        if isinstance(day, int):
            if not 0 <= day <= 6:
                raise ValidationError(f"Invalid weekday number: {day}")
            result.add(day)
            continue

        key = day.strip().lower()[:3]
        if key not in WEEKDAY_NAMES:
            raise ValidationError(f"Invalid day: {day}")
        result.add(WEEKDAY_NAMES.index(key))

    if not result:
        raise ValidationError("At least one scheduled day is required")

    return result


def format_weekdays(days: Iterable[int]) -> str:
    """Serialize weekday numbers as "mon,wed,fri" in calendar order."""
    return ",".join(WEEKDAY_NAMES[d] for d in sorted(set(days)))


def previous_scheduled_day(day: date, weekdays: Set[int]) -> date:
    """
    Find the closest scheduled day strictly before `day`.

    Examples:
        Wed with {mon, wed, fri} -> Mon
        Mon with {mon, wed, fri} -> previous Fri
    """
    candidate = day - timedelta(days=1)
    for _ in range(7):
        if candidate.weekday() in weekdays:
            return candidate
        candidate -= timedelta(days=1)

    raise ValidationError("Empty weekday schedule")


def parse_cutoff(value: Optional[str]) -> Optional[time]:
    """Parse "HH:MM" into a time, None passes through."""
    if not value:
        return None

    try:
        hours, minutes = value.strip().split(":")
        return time(int(hours), int(minutes))
    except ValueError:
        raise ValidationError(f"Invalid cutoff time: {value} (expected HH:MM)")


def to_decimal(value: Union[str, int, float, Decimal], field: str = "amount") -> Decimal:
    """
    Convert a user-supplied amount to Decimal.

    Floats go through str() so 0.1 stays 0.1.
    """
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"Invalid {field}: {value}")

    if not amount.is_finite():
        raise ValidationError(f"Invalid {field}: {value}")

    return amount


def to_lamports(amount: Decimal) -> int:
    """Convert a SOL amount to integer lamports, truncating dust."""
    return int(amount * LAMPORTS_PER_SOL)


def short_hash(value: Optional[str], size: int = 8) -> str:
    """Shorten a signature or address for log lines."""
    if not value:
        return "?"
    if len(value) <= size * 2:
        return value
    return f"{value[:size]}...{value[-size:]}"
