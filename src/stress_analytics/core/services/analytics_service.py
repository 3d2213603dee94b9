"""Live analytics queries for dashboards.

``StressAnalyticsService`` loads responses for a scope through repository
interfaces and runs the pure aggregation pipeline on them:

    responses -> compute_stats_for_responses -> build_computed_metrics

When a range has no usable responses but stored run aggregates exist (for
example after raw responses were purged), the stored per-run averages are
aggregated instead.

The reference instant ``now`` is always passed in by the caller.
"""

from dataclasses import dataclass
from datetime import date, datetime
from typing import Literal

from stress_analytics.core.interfaces import IResponseRepository, ISurveyRunRepository
from stress_analytics.core.locales import Locale, normalize_locale
from stress_analytics.core.metrics import ComputedMetrics, build_computed_metrics
from stress_analytics.core.periods import DateRange, get_period_ranges, parse_date_range
from stress_analytics.core.records import AnalyticsScope
from stress_analytics.core.stats import (
    StatsResult,
    build_stats_for_runs,
    compute_stats_for_responses,
    select_trend_source,
)
from stress_analytics.core.trends import TrendPoint
from stress_analytics.observability import get_logger

logger = get_logger(__name__)

StatsSource = Literal["responses", "runs"]


@dataclass(frozen=True)
class PeriodReport:
    """Comparison report for one period.

    Attributes:
        period: Requested period key.
        current_range: Range of the current period.
        previous_range: Range of the preceding comparable period.
        metrics: Top cards and driver cards.
        sample_size: Responses (or, for stored aggregates, completions)
            counted in the current period.
        last_response_at: Latest submission in the current period.
        source: Whether the current period was built from raw responses or
            from stored run aggregates.
    """

    period: str
    current_range: DateRange
    previous_range: DateRange
    metrics: ComputedMetrics
    sample_size: int
    last_response_at: datetime | None
    source: StatsSource


@dataclass(frozen=True)
class TimeseriesResult:
    date_range: DateRange
    points: tuple[TrendPoint, ...]
    sample_size: int


class StressAnalyticsService:
    """Answers period-comparison and timeseries queries.

    Depends on repository instances injected at construction time.
    Contains no framework-specific code.
    """

    def __init__(
        self,
        response_repository: IResponseRepository,
        run_repository: ISurveyRunRepository,
    ) -> None:
        """Initialise the service with repository dependencies.

        Args:
            response_repository: Source of raw survey responses.
            run_repository: Source of stored per-run aggregates.
        """
        self._responses = response_repository
        self._runs = run_repository

    async def _load_stats(
        self,
        scope: AnalyticsScope,
        date_range: DateRange,
        locale: Locale,
    ) -> tuple[StatsResult, StatsSource]:
        responses = await self._responses.list_for_scope(scope, date_range)
        stats = compute_stats_for_responses(responses, locale, date_range)
        if stats.sample_size_total > 0:
            return stats, "responses"

        runs = await self._runs.list_run_metrics(scope, date_range)
        if any((run.completed_count or 0) > 0 for run in runs):
            logger.debug(
                "Using stored run aggregates",
                org_id=scope.org_id,
                team_id=scope.team_id,
                runs=len(runs),
            )
            return build_stats_for_runs(runs, locale, date_range), "runs"
        return stats, "responses"

    async def get_period_report(
        self,
        scope: AnalyticsScope,
        period: str,
        locale: str,
        now: datetime,
    ) -> PeriodReport:
        """Build the comparison report for the period containing ``now``.

        Args:
            scope: Organization/team/member to report on.
            period: One of week, month, quarter, half, year.
            locale: Label locale; unsupported values fall back to English.
            now: Reference instant.

        Returns:
            PeriodReport for the current period compared to the previous one.

        Raises:
            InvalidPeriodError: If ``period`` is not supported.
            StorageUnavailableError: If the store cannot be reached.
        """
        resolved_locale = normalize_locale(locale)
        ranges = get_period_ranges(period, now)

        current, source = await self._load_stats(scope, ranges.current, resolved_locale)
        previous, _ = await self._load_stats(scope, ranges.previous, resolved_locale)
        metrics = build_computed_metrics(current, previous, resolved_locale)

        logger.info(
            "Period report built",
            org_id=scope.org_id,
            team_id=scope.team_id,
            period=period,
            sample_size=current.sample_size_total,
            source=source,
        )
        return PeriodReport(
            period=period,
            current_range=ranges.current,
            previous_range=ranges.previous,
            metrics=metrics,
            sample_size=current.sample_size_total,
            last_response_at=current.last_response_at,
            source=source,
        )

    async def get_timeseries(
        self,
        scope: AnalyticsScope,
        start: date | datetime | str,
        end: date | datetime | str,
        locale: str,
    ) -> TimeseriesResult:
        """Return the headline trend series for an arbitrary date range.

        Raises:
            InvalidDateRangeError: If the dates cannot be parsed.
            StorageUnavailableError: If the store cannot be reached.
        """
        date_range = parse_date_range(start, end)
        resolved_locale = normalize_locale(locale)
        responses = await self._responses.list_for_scope(scope, date_range)
        stats = compute_stats_for_responses(responses, resolved_locale, date_range)

        logger.info(
            "Timeseries built",
            org_id=scope.org_id,
            team_id=scope.team_id,
            granularity=stats.granularity.value,
            sample_size=stats.sample_size_total,
        )
        return TimeseriesResult(
            date_range=date_range,
            points=select_trend_source(stats),
            sample_size=stats.sample_size_total,
        )
