"""Next-occurrence arithmetic for recurring tasks.

All functions here are pure: given the same recurrence policy and baseline they
return the same result. The baseline of a task is its ``last_completed``
timestamp, or ``created_at`` when it has never been completed.

Custom intervals accept a bare integer (days) or ``"<N> <unit>"`` where unit is
day(s), week(s) or month(s). A malformed interval repeats after one day; an
unknown unit is not a recurrence at all.
"""

import calendar
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional, Protocol

from ..models.task import Recurrence

logger = logging.getLogger(__name__)

DAYS = "days"
WEEKS = "weeks"
MONTHS = "months"

_UNIT_ALIASES = {
    "day": DAYS,
    "days": DAYS,
    "week": WEEKS,
    "weeks": WEEKS,
    "month": MONTHS,
    "months": MONTHS,
}


class RecurringTask(Protocol):
    """Anything carrying the fields the calculator reads."""
    recurrence: str
    recurrence_interval: Optional[str]
    last_completed: Optional[datetime]
    created_at: datetime


@dataclass(frozen=True)
class RecurrenceInterval:
    """A parsed custom interval."""
    amount: int
    unit: str
    fallback: bool = False


_ONE_DAY_FALLBACK = RecurrenceInterval(amount=1, unit=DAYS, fallback=True)


def add_months(value: datetime, months: int) -> datetime:
    """Shift by calendar months, clamping the day to the target month's length.

    2024-01-31 + 1 month is 2024-02-29.
    """
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def parse_recurrence_interval(raw: Optional[str]) -> Optional[RecurrenceInterval]:
    """Parse a custom interval string.

    Returns None when there is no interval or the unit is not supported.
    """
    if raw is None:
        return None

    text = raw.strip()
    try:
        amount = int(text)
    except ValueError:
        pass
    else:
        if amount < 1:
            logger.warning("Non-positive recurrence interval %r, repeating after 1 day", raw)
            return _ONE_DAY_FALLBACK
        return RecurrenceInterval(amount=amount, unit=DAYS)

    parts = text.split()
    if len(parts) < 2:
        logger.warning("Malformed recurrence interval %r, repeating after 1 day", raw)
        return _ONE_DAY_FALLBACK

    try:
        amount = int(parts[0])
    except ValueError:
        logger.warning("Non-numeric recurrence amount in %r, repeating after 1 day", raw)
        return _ONE_DAY_FALLBACK
    if amount < 1:
        logger.warning("Non-positive recurrence interval %r, repeating after 1 day", raw)
        return _ONE_DAY_FALLBACK

    unit = _UNIT_ALIASES.get(parts[1].lower())
    if unit is None:
        logger.info("Unsupported recurrence unit %r in %r", parts[1], raw)
        return None
    return RecurrenceInterval(amount=amount, unit=unit)


def advance(baseline: datetime, interval: RecurrenceInterval) -> datetime:
    if interval.unit == MONTHS:
        return add_months(baseline, interval.amount)
    if interval.unit == WEEKS:
        return baseline + timedelta(weeks=interval.amount)
    return baseline + timedelta(days=interval.amount)


def next_occurrence(
    recurrence: str,
    recurrence_interval: Optional[str],
    baseline: datetime,
) -> Optional[datetime]:
    """Compute the occurrence following ``baseline`` for a recurrence policy."""
    if recurrence == Recurrence.DAILY:
        return baseline + timedelta(days=1)
    if recurrence == Recurrence.WEEKLY:
        return baseline + timedelta(days=7)
    if recurrence == Recurrence.MONTHLY:
        return add_months(baseline, 1)
    if recurrence == Recurrence.CUSTOM:
        interval = parse_recurrence_interval(recurrence_interval)
        if interval is None:
            return None
        return advance(baseline, interval)
    return None


def compute_next_due(task: RecurringTask) -> Optional[datetime]:
    """Compute the next due date of a task from its recurrence policy."""
    baseline = task.last_completed or task.created_at
    return next_occurrence(task.recurrence, task.recurrence_interval, baseline)


def preview_occurrences(task: RecurringTask, count: int = 5) -> List[datetime]:
    """List the next ``count`` occurrences after the task's baseline."""
    occurrences: List[datetime] = []
    baseline = task.last_completed or task.created_at
    for _ in range(max(count, 0)):
        following = next_occurrence(task.recurrence, task.recurrence_interval, baseline)
        if following is None:
            break
        occurrences.append(following)
        baseline = following
    return occurrences


def describe_recurrence(task: RecurringTask) -> Optional[str]:
    """Human readable summary of a task's recurrence policy."""
    if task.recurrence == Recurrence.DAILY:
        return "Repeats daily"
    if task.recurrence == Recurrence.WEEKLY:
        return "Repeats weekly"
    if task.recurrence == Recurrence.MONTHLY:
        return "Repeats monthly"
    if task.recurrence == Recurrence.CUSTOM:
        interval = parse_recurrence_interval(task.recurrence_interval)
        if interval is None:
            return None
        if interval.amount == 1:
            return f"Repeats every {interval.unit[:-1]}"
        return f"Repeats every {interval.amount} {interval.unit}"
    return None
