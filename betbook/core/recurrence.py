"""
Next-cycle computation for recurring markets.

Patterns
--------
daily     +1 day
weekdays  +1 day, then forward past Saturday/Sunday
weekly    +7 days
custom    treated as daily until per-market rules exist

The time of day of every boundary is preserved because whole days are added
to the existing timestamps.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Final, Optional

from betbook.core.errors import RecurrenceError

DAILY: Final[str] = "daily"
WEEKDAYS: Final[str] = "weekdays"
WEEKLY: Final[str] = "weekly"
CUSTOM: Final[str] = "custom"
PATTERNS: Final[tuple] = (DAILY, WEEKDAYS, WEEKLY, CUSTOM)

_SATURDAY = 5


@dataclass(frozen=True)
class CycleWindow:
    open_time: datetime
    close_time: datetime
    result_time: Optional[datetime] = None
    match_time: Optional[datetime] = None


def _days_to_advance(anchor: datetime, pattern: str) -> int:
    if pattern == WEEKLY:
        return 7
    if pattern in (DAILY, CUSTOM):
        return 1
    if pattern == WEEKDAYS:
        days = 1
        while (anchor + timedelta(days=days)).weekday() >= _SATURDAY:
            days += 1
        return days
    raise RecurrenceError(f"unknown recurrence pattern {pattern!r}")


def next_cycle(
    open_time: Optional[datetime],
    close_time: Optional[datetime],
    pattern: Optional[str],
    result_time: Optional[datetime] = None,
    match_time: Optional[datetime] = None,
) -> CycleWindow:
    """
    Shift a market's window to its next cycle.

    The weekday skip is decided from ``open_time`` and the same number of
    days is applied to every boundary, match start included, so a window
    that spans midnight keeps its shape.

    Raises:
        RecurrenceError: missing open/close time, close not after open, or
            unknown pattern.
    """
    if open_time is None or close_time is None:
        raise RecurrenceError("recurring event needs both open_time and close_time")
    if close_time <= open_time:
        raise RecurrenceError("close_time must be after open_time")
    if not pattern:
        raise RecurrenceError("recurring event has no recurrence pattern")

    delta = timedelta(days=_days_to_advance(open_time, pattern))
    return CycleWindow(
        open_time=open_time + delta,
        close_time=close_time + delta,
        result_time=result_time + delta if result_time is not None else None,
        match_time=match_time + delta if match_time is not None else None,
    )
