"""DateTime utilities for timestamps and billing-period arithmetic.

Timestamps are offset-naive UTC (compatible with TIMESTAMP WITHOUT TIME ZONE
columns). Billing dates follow a loan's anchor day-of-month, clamped to the
length of each calendar month so loans anchored on the 29th-31st stay stable
across short months.
"""

from calendar import monthrange
from datetime import date, datetime, timezone
from typing import Optional


def utc_now() -> datetime:
    """
    Get current UTC datetime without timezone info (offset-naive).

    Returns:
        Current UTC datetime without timezone info

    Example:
        >>> now = utc_now()
        >>> print(now.tzinfo)
        None
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)


# Lambda version for SQLAlchemy default/onupdate parameters
utc_now_lambda = lambda: datetime.now(timezone.utc).replace(tzinfo=None)


def last_day_of_month(year: int, month: int) -> int:
    """Number of days in the given month (28-31)."""
    return monthrange(year, month)[1]


def billing_date(year: int, month: int, anchor_day: int) -> date:
    """
    Billing date for a month: the anchor day clamped to the month's length.

    Example:
        >>> billing_date(2024, 2, 31)
        datetime.date(2024, 2, 29)
    """
    return date(year, month, min(anchor_day, last_day_of_month(year, month)))


def shift_month(year: int, month: int, months: int) -> tuple[int, int]:
    """Move (year, month) forward by ``months`` (may be negative)."""
    index = year * 12 + (month - 1) + months
    return index // 12, index % 12 + 1


def add_months_clamped(d: date, months: int, anchor_day: Optional[int] = None) -> date:
    """
    Move ``months`` calendar months from ``d`` and land on the anchor day.

    The target month is resolved first (from day 1), then the day is clamped,
    so Jan 31 + 1 month is Feb 28/29 and never overflows into March.

    Args:
        d: Starting date
        months: Number of months to move
        anchor_day: Day-of-month to land on (defaults to ``d.day``)
    """
    if anchor_day is None:
        anchor_day = d.day
    year, month = shift_month(d.year, d.month, months)
    return billing_date(year, month, anchor_day)


def add_one_month_clamped(d: date, anchor_day: Optional[int] = None) -> date:
    """
    Advance to the following month's billing day.

    Goes to the first day of the next month, then sets the day to
    ``min(anchor_day, last day of that month)``. When ``anchor_day`` is
    omitted the day of ``d`` is used, so chained calls never drift back up:
    Jan 31 -> Feb 29 -> Mar 29 (2024).
    """
    return add_months_clamped(d, 1, anchor_day)
