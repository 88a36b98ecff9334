"""Start/due date arithmetic for recurring curriculum courses.

All functions are pure. Dates are timezone-aware; month boundaries and the
23:59:59.999 due instant are taken in the zone carried by the anchor date.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from dateutil.relativedelta import relativedelta

# Due date for courses without a due period ("never due").
FAR_FUTURE_DUE_DATE = datetime(9999, 12, 31, 23, 58, 58, 999000, tzinfo=timezone.utc)
QUARTER_ALIGNMENT = "quarter"


@dataclass(frozen=True)
class Occurrence:
    start_date: datetime
    due_date: datetime
    days_left: int
    cycle: int


def month_diff(start: datetime, end: datetime) -> float:
    """Fractional number of calendar months from ``start`` to ``end``.

    Whole months are counted on the calendar; the remainder is the fraction of
    the month that ``end`` falls into, so 2021-01-01 → 2021-01-16 is ~0.48.
    """
    whole = (end.year - start.year) * 12 + (end.month - start.month)
    anchor = start + relativedelta(months=whole)
    if end < anchor:
        neighbour = start + relativedelta(months=whole - 1)
        adjust = (end - anchor) / (anchor - neighbour)
    else:
        neighbour = start + relativedelta(months=whole + 1)
        adjust = (end - anchor) / (neighbour - anchor)
    return whole + adjust


def day_diff(later: datetime, earlier: datetime) -> float:
    """Fractional days between two moments, measured on their local wall clocks."""
    delta = later.replace(tzinfo=None) - earlier.replace(tzinfo=None)
    return delta.total_seconds() / 86400


def days_until(due_date: datetime, today: datetime) -> int:
    return math.ceil(day_diff(due_date, today))


def start_of_offset(anchor: datetime, offset_months: int, alignment: Optional[str] = None) -> datetime:
    """First day of the month ``offset_months`` after the anchor's month, at local midnight."""
    period = (anchor.month - 1) + offset_months
    month = period % 12
    if alignment == QUARTER_ALIGNMENT:
        month = (month // 3) * 3
    year = anchor.year + period // 12
    return datetime(year, month + 1, 1, tzinfo=anchor.tzinfo)


def due_date_for(start_date: datetime, due_period_months: Optional[int]) -> datetime:
    """Last instant of the month ``due_period_months - 1`` months after the start month."""
    if not due_period_months or due_period_months <= 0:
        return FAR_FUTURE_DUE_DATE
    first_of_start = datetime(start_date.year, start_date.month, 1)
    last_day = first_of_start + relativedelta(months=due_period_months) - timedelta(days=1)
    return datetime(
        last_day.year,
        last_day.month,
        last_day.day,
        23,
        59,
        59,
        999000,
        tzinfo=start_date.tzinfo,
    )


def cycle_count(anchor: datetime, today: datetime, repeat_cycle_months: int) -> int:
    """Number of recurrence cycles that have begun between the anchor and today.

    A curriculum that does not repeat, or whose first cycle has not elapsed yet,
    has one cycle. On an exact cycle boundary the new cycle is counted.
    """
    if not repeat_cycle_months or repeat_cycle_months <= 0:
        return 1
    elapsed_months = month_diff(anchor, today)
    if elapsed_months < repeat_cycle_months:
        return 1
    cycles = math.ceil(elapsed_months / repeat_cycle_months)
    if elapsed_months % repeat_cycle_months == 0:
        cycles += 1
    return cycles


def compute_occurrences(
    offset_months: int,
    due_period_months: Optional[int],
    anchor: datetime,
    today: datetime,
    repeat_cycle_months: int = 0,
    alignment: Optional[str] = None,
) -> List[Occurrence]:
    """Every occurrence of one course offset from the first cycle up to the current one.

    Later cycles are shifted from the first start date by whole repeat periods.
    Cycles are numbered from 1 relative to ``anchor``.
    """
    if anchor.tzinfo is None:
        raise ValueError("anchor must be timezone-aware")
    first_start = start_of_offset(anchor, offset_months, alignment)
    occurrences: List[Occurrence] = []
    for index in range(cycle_count(anchor, today, repeat_cycle_months)):
        start_date = first_start + relativedelta(months=index * repeat_cycle_months)
        due_date = due_date_for(start_date, due_period_months)
        occurrences.append(
            Occurrence(
                start_date=start_date,
                due_date=due_date,
                days_left=days_until(due_date, today),
                cycle=index + 1,
            )
        )
    return occurrences


__all__ = [
    "FAR_FUTURE_DUE_DATE",
    "Occurrence",
    "QUARTER_ALIGNMENT",
    "compute_occurrences",
    "cycle_count",
    "day_diff",
    "days_until",
    "due_date_for",
    "month_diff",
    "start_of_offset",
]
