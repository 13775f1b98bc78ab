"""
Typed durations for key lifetimes.

Administrative inputs arrive as whole days or hours, while expiry arithmetic works
on absolute timestamps. Everything in between is a ``datetime.timedelta`` built
here, so no caller ever multiplies raw millisecond counts.

Example: ``to_duration(30, DurationUnit.DAYS)`` is a 30-day ``timedelta``;
``whole_units(timedelta(hours=25), DurationUnit.DAYS)`` rounds up to 2.
"""
import math
from datetime import timedelta
from enum import Enum


class DurationUnit(str, Enum):
    """Unit an administrative duration is expressed in."""
    DAYS = "days"
    HOURS = "hours"

    @property
    def span(self) -> timedelta:
        """Length of one unit."""
        if self is DurationUnit.DAYS:
            return timedelta(days=1)
        return timedelta(hours=1)


def to_duration(amount: int, unit: DurationUnit = DurationUnit.DAYS) -> timedelta:
    """
    Convert a positive whole number of units into a timedelta.

    Args:
        amount: Number of units, must be >= 1
        unit: Unit the amount is expressed in

    Returns:
        The equivalent timedelta

    Raises:
        ValueError: If amount is not a positive integer
    """
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise ValueError(f"Duration amount must be an integer, got {amount!r}")
    if amount < 1:
        raise ValueError(f"Duration amount must be positive, got {amount}")
    return unit.span * amount


def whole_units(remaining: timedelta, unit: DurationUnit = DurationUnit.DAYS) -> int:
    """
    Round a remaining lifetime up to whole units, never less than one.

    An already-elapsed (negative) lifetime still yields one unit.
    """
    if remaining <= timedelta(0):
        return 1
    return max(1, math.ceil(remaining / unit.span))
