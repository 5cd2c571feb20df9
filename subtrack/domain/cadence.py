"""
Cadence arithmetic for subscription renewals.

All arithmetic is done on UTC calendar fields:
- DAY:   +count days
- WEEK:  +count*7 days
- MONTH: +count calendar months, day clipped to the target month's last day
- YEAR:  +count calendar years, Feb 29 clipped to Feb 28
"""
import calendar
from datetime import datetime, timedelta, timezone
from enum import Enum


class CadenceUnit(str, Enum):
    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"


MAX_ADVANCE_STEPS = 10_000

MONTHLY_DAYS = 365.25 / 12
WEEKS_PER_MONTH = MONTHLY_DAYS / 7

# Cadence-periods per average month for count == 1
_MONTHLY_PER_UNIT = {
    CadenceUnit.DAY: MONTHLY_DAYS,
    CadenceUnit.WEEK: WEEKS_PER_MONTH,
    CadenceUnit.MONTH: 1.0,
    CadenceUnit.YEAR: 12.0,
}


class CadenceOverflowError(RuntimeError):
    """advance_renewal did not get past `now` within MAX_ADVANCE_STEPS."""


def last_day_of_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def _add_months(at: datetime, n: int) -> datetime:
    month = at.month - 1 + n
    year = at.year + month // 12
    month = month % 12 + 1
    day = min(at.day, last_day_of_month(year, month))
    return at.replace(year=year, month=month, day=day)


def _as_utc(at: datetime) -> datetime:
    if at.tzinfo is None:
        return at.replace(tzinfo=timezone.utc)
    return at.astimezone(timezone.utc)


def add_cadence(at: datetime, unit: CadenceUnit | str, count: int) -> datetime:
    """Return `at` moved forward by exactly `count` cadence units (UTC)."""
    if count < 1:
        raise ValueError("cadence count must be >= 1")
    unit = CadenceUnit(unit)
    at = _as_utc(at)

    if unit is CadenceUnit.DAY:
        return at + timedelta(days=count)
    if unit is CadenceUnit.WEEK:
        return at + timedelta(days=count * 7)
    if unit is CadenceUnit.MONTH:
        return _add_months(at, count)
    return _add_months(at, count * 12)


def advance_renewal(
    start: datetime,
    unit: CadenceUnit | str,
    count: int,
    now: datetime,
) -> datetime:
    """
    First occurrence of the cadence, counted from `start`, strictly after `now`.

    Steps forward one period at a time so month-end clipping behaves exactly
    as repeated add_cadence calls. `start` itself is returned when it is
    already after `now`.

    Raises:
        CadenceOverflowError: no qualifying occurrence within MAX_ADVANCE_STEPS
    """
    cursor = _as_utc(start)
    now = _as_utc(now)
    for _ in range(MAX_ADVANCE_STEPS):
        if cursor > now:
            return cursor
        cursor = add_cadence(cursor, unit, count)
    if cursor > now:
        return cursor
    raise CadenceOverflowError(
        f"cadence {count} {CadenceUnit(unit).value} from {start.isoformat()} "
        f"did not pass {now.isoformat()} in {MAX_ADVANCE_STEPS} steps"
    )


def monthly_factor(unit: CadenceUnit | str, count: int) -> float:
    """
    Multiplier turning one period's amount into an average monthly amount.

    >>> monthly_factor("year", 1)
    12.0
    >>> monthly_factor("month", 4)
    0.25
    """
    if count <= 0:
        return 0.0
    return _MONTHLY_PER_UNIT[CadenceUnit(unit)] / count
