"""Trend series construction from bucket aggregates.

Series are sparse but chronologically complete: every bucket inside the range
is visited in order, empty buckets emit no point, and non-empty buckets emit
exactly one point. ``ensure_coverage`` then adds synthetic boundary points so
a chart of ``[start, end]`` always has defined endpoints.
"""

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, replace
from datetime import date

from stress_analytics.core.buckets import BucketAggregate, BucketGranularity, get_bucket_key
from stress_analytics.core.drivers import DriverKey, is_known_driver_key
from stress_analytics.core.locales import (
    MONTHS_STANDALONE,
    MONTHS_WITH_DAY,
    Locale,
    normalize_locale,
)
from stress_analytics.core.periods import DateRange
from stress_analytics.core.scoring import round_score


@dataclass(frozen=True)
class TrendPoint:
    """One point of a trend series.

    Attributes:
        label: Localised display label ("Mar 5", "Mar").
        value: Bucket mean rounded to 1 decimal.
        date: Calendar day the point is plotted at.
        synthetic: True for boundary padding points.
    """

    label: str
    value: float
    date: date
    synthetic: bool = False


def format_bucket_label(day: date, granularity: BucketGranularity, locale: Locale) -> str:
    """Render a short display label for a bucket day.

    Month buckets render the month alone; day and week buckets render the
    month with the day number ("Mar 5" in English, "5 мар." in Russian).
    """
    locale = normalize_locale(locale)
    if granularity is BucketGranularity.MONTH:
        return MONTHS_STANDALONE[locale][day.month - 1]
    month = MONTHS_WITH_DAY[locale][day.month - 1]
    if locale == "ru":
        return f"{day.day} {month}"
    return f"{month} {day.day}"


def _point_day(start: date, date_range: DateRange) -> date:
    # Week and month buckets may open before the range does.
    return max(start, date_range.start.date())


def _make_point(
    start: date,
    value: float,
    date_range: DateRange,
    locale: Locale,
    granularity: BucketGranularity,
) -> TrendPoint:
    day = _point_day(start, date_range)
    return TrendPoint(
        label=format_bucket_label(day, granularity, locale),
        value=round_score(value, 1),
        date=day,
    )


def build_trend_series(
    buckets: Mapping[str, BucketAggregate],
    bucket_starts: Sequence[date],
    locale: Locale,
    granularity: BucketGranularity,
    date_range: DateRange,
) -> list[TrendPoint]:
    """Emit one point per non-empty bucket, in bucket order.

    Args:
        buckets: Aggregates keyed by bucket key.
        bucket_starts: Every bucket start inside the range, ascending.
        locale: Label locale.
        granularity: Bucket granularity used to build ``buckets``.
        date_range: Requested range; point dates are clamped into it.

    Returns:
        Sparse, ascending list of TrendPoint.
    """
    points: list[TrendPoint] = []
    for start in bucket_starts:
        aggregate = buckets.get(get_bucket_key(start, granularity))
        if aggregate is None or aggregate.is_empty:
            continue
        points.append(_make_point(start, aggregate.mean(), date_range, locale, granularity))
    return points


def build_driver_trend_series(
    driver_buckets: Mapping[DriverKey, Mapping[str, BucketAggregate]],
    bucket_starts: Sequence[date],
    locale: Locale,
    granularity: BucketGranularity,
    date_range: DateRange,
) -> list[TrendPoint]:
    """Emit the per-bucket mean of canonical driver means.

    Mirrors the blended stress index bucket by bucket: within each bucket
    every canonical driver with data contributes its own mean once, and
    ``unknown`` is ignored.
    """
    points: list[TrendPoint] = []
    for start in bucket_starts:
        key = get_bucket_key(start, granularity)
        driver_means = [
            buckets[key].mean()
            for driver_key, buckets in driver_buckets.items()
            if is_known_driver_key(driver_key)
            and key in buckets
            and not buckets[key].is_empty
        ]
        if not driver_means:
            continue
        value = sum(driver_means) / len(driver_means)
        points.append(_make_point(start, value, date_range, locale, granularity))
    return points


def ensure_coverage(
    points: Sequence[TrendPoint],
    date_range: DateRange,
    locale: Locale,
    granularity: BucketGranularity,
) -> list[TrendPoint]:
    """Pad a series with synthetic points at the range boundaries.

    When the first point does not fall in the bucket containing the range
    start, a point carrying the first value is prepended at the start day;
    likewise for the last point and the end day. A series therefore never
    holds two points for the same bucket. Empty series are returned unchanged.
    """
    if not points:
        return []
    covered = sorted(points, key=lambda point: point.date)
    first_day = date_range.start.date()
    last_day = date_range.end.date()

    if get_bucket_key(covered[0].date, granularity) != get_bucket_key(first_day, granularity):
        covered.insert(
            0,
            replace(
                covered[0],
                label=format_bucket_label(first_day, granularity, locale),
                date=first_day,
                synthetic=True,
            ),
        )
    if get_bucket_key(covered[-1].date, granularity) != get_bucket_key(last_day, granularity):
        covered.append(
            replace(
                covered[-1],
                label=format_bucket_label(last_day, granularity, locale),
                date=last_day,
                synthetic=True,
            ),
        )
    return covered
