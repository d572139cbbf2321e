"""Billing period arithmetic.

Periods are anchored per account: each reset advances ``period_reset_at``
by whole months from its previous value, so a sweep that runs late does not
shift the account's boundary.
"""

import calendar
from datetime import datetime, timezone

from src.constants import DEFAULT_PERIOD_MONTHS


def utcnow() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_aware(value: datetime) -> datetime:
    """Treat naive datetimes read from the database as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def add_months(value: datetime, months: int) -> datetime:
    """
    Add calendar months, clamping the day to the target month's length.

    Example:
        >>> add_months(datetime(2024, 1, 31), 1)
        datetime.datetime(2024, 2, 29, 0, 0)
    """
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def first_reset_at(now: datetime, period_months: int = DEFAULT_PERIOD_MONTHS) -> datetime:
    """Reset instant for a ledger row opened at ``now``."""
    return add_months(ensure_aware(now), period_months)


def next_reset_at(
    previous: datetime,
    now: datetime,
    period_months: int = DEFAULT_PERIOD_MONTHS,
) -> datetime:
    """
    Advance ``previous`` by whole periods until it lies after ``now``.

    A row that missed several sweeps lands on the same boundary it would
    have reached had every sweep run on time.
    """
    if period_months < 1:
        raise ValueError(f"period_months must be positive, got {period_months}")

    previous = ensure_aware(previous)
    now = ensure_aware(now)

    steps = 1
    candidate = add_months(previous, period_months)
    while candidate <= now:
        # Always step from the original anchor so clamped days do not compound
        steps += 1
        candidate = add_months(previous, period_months * steps)
    return candidate


def is_due(period_reset_at: datetime, now: datetime) -> bool:
    """True when the current period has ended."""
    return ensure_aware(now) >= ensure_aware(period_reset_at)


__all__ = [
    "utcnow",
    "ensure_aware",
    "add_months",
    "first_reset_at",
    "next_reset_at",
    "is_due",
]
