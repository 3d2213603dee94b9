"""Reporting period ranges for comparative metrics.

``get_period_ranges`` returns the calendar period containing ``now`` and the
immediately preceding period of the same kind. Boundaries are inclusive,
from start-of-day to end-of-day, in ``now``'s timezone (a naive ``now``
yields naive boundaries).

The previous period is derived by stepping back one unit from the current
start and re-deriving the bounds for that anchor, not by shifting both
timestamps, because months differ in length.

Supported periods:
    week     Monday to Sunday
    month    calendar month
    quarter  calendar quarter
    half     Jan 1 - Jun 30 or Jul 1 - Dec 31
    year     calendar year
"""

import calendar
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Literal

from stress_analytics.errors import InvalidDateRangeError, InvalidPeriodError

Period = Literal["week", "month", "quarter", "half", "year"]

PERIODS: tuple[str, ...] = ("week", "month", "quarter", "half", "year")

# Months to step back when deriving the previous period.
_PERIOD_STEP_MONTHS: dict[str, int] = {
    "month": 1,
    "quarter": 3,
    "half": 6,
    "year": 12,
}


@dataclass(frozen=True)
class DateRange:
    """Inclusive datetime range.

    Attributes:
        start: First instant included (normally 00:00:00.000000).
        end: Last instant included (normally 23:59:59.999999).
    """

    start: datetime
    end: datetime

    def contains(self, moment: datetime) -> bool:
        return self.start <= moment <= self.end

    @property
    def calendar_days(self) -> int:
        """Number of calendar days touched by the range, at least 1."""
        return max(1, (self.end.date() - self.start.date()).days + 1)


@dataclass(frozen=True)
class PeriodRanges:
    """Current period and the preceding comparable period."""

    current: DateRange
    previous: DateRange


def start_of_day(moment: datetime) -> datetime:
    return datetime.combine(moment.date(), time.min, tzinfo=moment.tzinfo)


def end_of_day(moment: datetime) -> datetime:
    return datetime.combine(moment.date(), time.max, tzinfo=moment.tzinfo)


def day_range(first: date, last: date, tzinfo=None) -> DateRange:
    """Build an inclusive range covering whole days ``first`` through ``last``."""
    return DateRange(
        start=datetime.combine(first, time.min, tzinfo=tzinfo),
        end=datetime.combine(last, time.max, tzinfo=tzinfo),
    )


def add_months(day: date, months: int) -> date:
    """Shift a date by whole months, clamping the day to the target month's length."""
    month_index = day.year * 12 + (day.month - 1) + months
    year, month = divmod(month_index, 12)
    month += 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day.day, last_day))


def _last_day_of_month(year: int, month: int) -> date:
    return date(year, month, calendar.monthrange(year, month)[1])


def _period_days(period: str, anchor: date) -> tuple[date, date]:
    if period == "week":
        monday = anchor - timedelta(days=anchor.weekday())
        return monday, monday + timedelta(days=6)
    if period == "month":
        return anchor.replace(day=1), _last_day_of_month(anchor.year, anchor.month)
    if period == "quarter":
        first_month = 3 * ((anchor.month - 1) // 3) + 1
        return (
            date(anchor.year, first_month, 1),
            _last_day_of_month(anchor.year, first_month + 2),
        )
    if period == "half":
        if anchor.month <= 6:
            return date(anchor.year, 1, 1), date(anchor.year, 6, 30)
        return date(anchor.year, 7, 1), date(anchor.year, 12, 31)
    if period == "year":
        return date(anchor.year, 1, 1), date(anchor.year, 12, 31)
    raise InvalidPeriodError(
        f"Unsupported period {period!r}; expected one of {', '.join(PERIODS)}"
    )


def get_period_ranges(period: str, now: datetime) -> PeriodRanges:
    """Compute the current period containing ``now`` and the preceding one.

    Args:
        period: One of week, month, quarter, half, year.
        now: Reference instant supplied by the caller; never read from the clock.

    Returns:
        PeriodRanges with inclusive start-of-day/end-of-day bounds.

    Raises:
        InvalidPeriodError: If ``period`` is not supported.
    """
    first, last = _period_days(period, now.date())

    if period == "week":
        previous_anchor = first - timedelta(days=7)
    else:
        previous_anchor = add_months(first, -_PERIOD_STEP_MONTHS[period])
    previous_first, previous_last = _period_days(period, previous_anchor)

    return PeriodRanges(
        current=day_range(first, last, now.tzinfo),
        previous=day_range(previous_first, previous_last, now.tzinfo),
    )


def _coerce_datetime(value: date | datetime | str, field: str) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime.combine(value, time.min)
    try:
        return datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except (AttributeError, ValueError) as exc:
        raise InvalidDateRangeError(f"Invalid {field} date: {value!r}") from exc


def parse_date_range(
    start: date | datetime | str,
    end: date | datetime | str,
) -> DateRange:
    """Build an inclusive whole-day range from two consumer-supplied dates.

    The range is widened to start-of-day and end-of-day; reversed inputs are
    swapped.

    Raises:
        InvalidDateRangeError: If either date cannot be parsed, or one value is
            timezone-aware while the other is naive.
    """
    first = start_of_day(_coerce_datetime(start, "start"))
    last = end_of_day(_coerce_datetime(end, "end"))
    if (first.tzinfo is None) != (last.tzinfo is None):
        raise InvalidDateRangeError("Range bounds must both be naive or both timezone-aware")
    if first > last:
        first, last = start_of_day(last), end_of_day(first)
    return DateRange(start=first, end=last)
