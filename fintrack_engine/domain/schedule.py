"""Due-date calculation for recurring obligations"""

import calendar
from datetime import date, timedelta
from typing import Optional

from fintrack_engine.domain.models import Frequency


def add_months(anchor: date, months: int, anchor_day: Optional[int] = None) -> date:
    """
    Shift a date by whole calendar months, clamping to the end of short months.

    ``anchor_day`` is the preferred day-of-month (defaults to ``anchor.day``), which
    lets a schedule that started on the 31st come back to the 31st after February.
    """
    month_index = anchor.month - 1 + months
    year = anchor.year + month_index // 12
    month = month_index % 12 + 1
    day = anchor_day if anchor_day is not None else anchor.day
    if not 1 <= day <= 31:
        raise ValueError(f"anchor_day out of range: {day}")
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day, last_day))


def next_due_date(current: date, frequency: Frequency | str, anchor_day: Optional[int] = None) -> date:
    """
    Next occurrence of a recurring obligation.

    Requirements:
    - weekly adds 7 days
    - monthly adds one calendar month, keeping the day-of-month when the target month has it
    - yearly adds one calendar year
    - result is always strictly after ``current``

    End-of-month policy: clamp to the last day of the target month.
        2025-01-31 monthly -> 2025-02-28
        2024-01-31 monthly -> 2024-02-29
        2024-02-29 yearly  -> 2025-02-28

    Args:
        current: Date of the cycle being closed
        frequency: Frequency enum or its string value
        anchor_day: Preferred day-of-month for monthly schedules (usually the start date's day)

    Raises:
        ValueError: Unknown frequency
    """
    frequency = Frequency(frequency)

    if frequency is Frequency.WEEKLY:
        return current + timedelta(days=7)

    if frequency is Frequency.MONTHLY:
        return add_months(current, 1, anchor_day)

    # Yearly: same month next year, clamped for Feb 29
    return add_months(current, 12)


def schedule_dates(start: date, count: int, frequency: Frequency | str = Frequency.MONTHLY) -> list[date]:
    """Generate ``count`` consecutive due dates beginning at ``start`` (inclusive)"""
    if count <= 0:
        return []

    dates = [start]
    while len(dates) < count:
        dates.append(next_due_date(dates[-1], frequency, anchor_day=start.day))
    return dates


def is_last_day_of_month(value: date) -> bool:
    return value.day == calendar.monthrange(value.year, value.month)[1]
