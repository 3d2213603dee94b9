"""Time buckets for trend aggregation.

A range is split into day, ISO-week (Monday start) or calendar-month buckets
depending on its length, so a trend series stays readable: a one-year view
renders twelve monthly points instead of 365 daily ones.

Bucket keys are grouping keys only and are never shown to consumers; display
labels are derived separately by the trend builder.
"""

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from enum import Enum

from stress_analytics.core.periods import DateRange, add_months

DAY_BUCKET_MAX_DAYS: int = 31
WEEK_BUCKET_MAX_DAYS: int = 180


class BucketGranularity(str, Enum):
    DAY = "day"
    WEEK = "week"
    MONTH = "month"


@dataclass(frozen=True)
class BucketAggregate:
    """Running sum and count for one bucket.

    Aggregates are immutable; ``add`` and ``merge`` return new instances.
    """

    sum: float = 0.0
    count: int = 0

    def add(self, value: float) -> "BucketAggregate":
        return BucketAggregate(sum=self.sum + value, count=self.count + 1)

    def merge(self, other: "BucketAggregate") -> "BucketAggregate":
        return BucketAggregate(sum=self.sum + other.sum, count=self.count + other.count)

    @property
    def is_empty(self) -> bool:
        return self.count == 0

    def mean(self) -> float:
        """Return sum / count.

        Raises:
            ZeroDivisionError: If the aggregate is empty; callers check
                ``is_empty`` first.
        """
        return self.sum / self.count


EMPTY_AGGREGATE = BucketAggregate()


def get_range_bucket_granularity(date_range: DateRange) -> BucketGranularity:
    """Pick day buckets up to 31 days, week buckets up to 180 days, else months."""
    days = date_range.calendar_days
    if days <= DAY_BUCKET_MAX_DAYS:
        return BucketGranularity.DAY
    if days <= WEEK_BUCKET_MAX_DAYS:
        return BucketGranularity.WEEK
    return BucketGranularity.MONTH


def bucket_start(moment: date | datetime, granularity: BucketGranularity) -> date:
    """Return the first calendar day of the bucket containing ``moment``."""
    day = moment.date() if isinstance(moment, datetime) else moment
    if granularity is BucketGranularity.MONTH:
        return day.replace(day=1)
    if granularity is BucketGranularity.WEEK:
        return day - timedelta(days=day.weekday())
    return day


def get_bucket_key(moment: date | datetime, granularity: BucketGranularity) -> str:
    """Return the grouping key: 'YYYY-MM' for months, the bucket's first day otherwise."""
    start = bucket_start(moment, granularity)
    if granularity is BucketGranularity.MONTH:
        return start.isoformat()[:7]
    return start.isoformat()


def _next_bucket(start: date, granularity: BucketGranularity) -> date:
    if granularity is BucketGranularity.MONTH:
        return add_months(start, 1)
    if granularity is BucketGranularity.WEEK:
        return start + timedelta(days=7)
    return start + timedelta(days=1)


def build_bucket_starts(date_range: DateRange, granularity: BucketGranularity) -> list[date]:
    """Enumerate every bucket start touching the range, in chronological order."""
    cursor = bucket_start(date_range.start, granularity)
    last = bucket_start(date_range.end, granularity)
    starts: list[date] = []
    while cursor <= last:
        starts.append(cursor)
        cursor = _next_bucket(cursor, granularity)
    return starts
