"""
Next-occurrence scheduling for recurring transactions.

Shared by the detection orchestrator, which projects the first expected
date of a new pattern, and by the missed-occurrence tracker, which advances
persisted records.
"""

import calendar
import logging
from datetime import date, timedelta
from typing import Optional

from models.recurring_transaction import RecurrenceFrequency

logger = logging.getLogger(__name__)

# Days per cadence step for day-based frequencies
FREQUENCY_DAYS = {
    RecurrenceFrequency.DAILY: 1,
    RecurrenceFrequency.WEEKLY: 7,
    RecurrenceFrequency.BIWEEKLY: 14,
}

# Months per cadence step for calendar-based frequencies
FREQUENCY_MONTHS = {
    RecurrenceFrequency.MONTHLY: 1,
    RecurrenceFrequency.BIMONTHLY: 2,
    RecurrenceFrequency.QUARTERLY: 3,
    RecurrenceFrequency.YEARLY: 12,
}


def add_months(start: date, months: int, day: Optional[int] = None) -> date:
    """
    Move start by a number of calendar months.

    The target day defaults to start's day and is clamped to the last day
    of the resulting month, so Jan 31 + 1 month is Feb 28/29.
    """
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day or start.day, last_day))


def _nearest_anchored_date(target: date, day: int) -> date:
    """The anchor-day date in the previous, same or next month closest to target (earlier on ties)."""
    candidates = [add_months(target, offset, day) for offset in (-1, 0, 1)]
    return min(candidates, key=lambda d: (abs((d - target).days), d))


def _snap_to_weekday(target: date, day_of_week: int) -> date:
    """Shift target to the nearest date falling on day_of_week (within 3 days)."""
    delta = (day_of_week - target.weekday()) % 7
    if delta > 3:
        delta -= 7
    return target + timedelta(days=delta)


def calculate_next_expected_date(
    last_date: date,
    frequency: RecurrenceFrequency,
    interval: int = 1,
    day_of_month: Optional[int] = None,
    day_of_week: Optional[int] = None
) -> date:
    """
    Advance last_date by one cadence step.

    Args:
        last_date: Date of the most recent (or reference) occurrence
        frequency: Cadence of the recurring transaction
        interval: Cadence multiplier; for custom frequencies the step in days
        day_of_month: Anchor day for monthly and longer cadences (clamped to month end)
        day_of_week: Anchor weekday (0=Monday) for weekly and biweekly cadences

    Returns:
        The next expected date

    Raises:
        ValueError: If interval is less than 1
    """
    if interval < 1:
        raise ValueError(f"interval must be at least 1, got {interval}")

    if frequency in FREQUENCY_MONTHS:
        # An early or late occurrence belongs to the anchored date nearest to it
        if day_of_month is not None:
            last_date = _nearest_anchored_date(last_date, day_of_month)
        return add_months(last_date, FREQUENCY_MONTHS[frequency] * interval, day_of_month)

    if frequency == RecurrenceFrequency.CUSTOM:
        return last_date + timedelta(days=interval)

    next_date = last_date + timedelta(days=FREQUENCY_DAYS[frequency] * interval)
    if day_of_week is not None and frequency.is_weekly_anchored:
        next_date = _snap_to_weekday(next_date, day_of_week)
    return next_date
