"""Bucket aggregation of survey responses into stress and engagement statistics.

``compute_stats_for_responses`` is the live aggregation entry point. Each
response is first reduced, by a pure function, to a ``ResponseContribution``
(its bucket key plus its scored answers). The contributions are then folded
into one read-only ``StatsAggregate`` from which averages and trend series
are derived. No state is shared between calls and the wall clock is never
read, so identical inputs always produce identical output.

Two overall-looking series are produced on purpose:

* the *overall* series averages each response first ("how did each
  respondent feel"), then averages responses per bucket;
* the *stress* series blends per-driver means per bucket ("how did each
  driver trend"), so drivers with more questions do not dominate.

They can diverge when driver coverage differs between responses; both are
reported.
"""

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import date, datetime, time, timezone
from types import MappingProxyType
from typing import Any

from stress_analytics.core.buckets import (
    EMPTY_AGGREGATE,
    BucketAggregate,
    BucketGranularity,
    build_bucket_starts,
    get_bucket_key,
    get_range_bucket_granularity,
)
from stress_analytics.core.drivers import DriverKey, known_driver_keys
from stress_analytics.core.locales import Locale
from stress_analytics.core.periods import DateRange
from stress_analytics.core.questions import QuestionMeta
from stress_analytics.core.scoring import (
    ScoredAnswer,
    compute_overall_stress_from_drivers,
    is_engagement_dimension,
    score_answer,
)
from stress_analytics.core.trends import (
    TrendPoint,
    build_driver_trend_series,
    build_trend_series,
    ensure_coverage,
)

DAILY_RUN_TYPE: str = "daily"

# Bucket key used when a whole run is aggregated as a single bucket.
_RUN_BUCKET_KEY: str = "run"


# ---------------------------------------------------------------------------
# Input records
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RunContext:
    """Survey run a response belongs to.

    Attributes:
        run_date: Intended date of the run; preferred for bucketing on daily runs.
        run_type: Cadence tag, e.g. 'daily'.
        questions: Template questions used to resolve answer metadata.
    """

    run_date: datetime | date | str | None = None
    run_type: str | None = None
    questions: tuple[QuestionMeta, ...] = ()


@dataclass(frozen=True)
class ResponseRecord:
    """One submitted survey response.

    Attributes:
        submitted_at: Submission timestamp.
        answers: ``question_id -> answer`` mapping, or a list of answer
            records each carrying ``questionId``/``question_id``.
        run: Owning run, when known.
    """

    submitted_at: datetime | None
    answers: Any
    run: RunContext | None = None


@dataclass(frozen=True)
class RunMetric:
    """Stored per-run aggregates, used when raw responses are unavailable."""

    run_date: datetime | date | None
    launched_at: datetime | None
    avg_stress_index: float | None
    avg_engagement_score: float | None
    completed_count: int | None = None


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DriverStats:
    """Full-precision average, answer count and trend for one driver."""

    avg: float = 0.0
    count: int = 0
    trend: tuple[TrendPoint, ...] = ()


@dataclass(frozen=True)
class StatsResult:
    """Aggregated statistics for one date range.

    Averages keep full precision; rounding happens when metrics are composed
    for display. A count of 0 means "insufficient data", not a score of zero.
    """

    sample_size_total: int
    last_response_at: datetime | None
    overall_avg: float
    overall_count: int
    overall_trend: tuple[TrendPoint, ...]
    stress_avg: float
    stress_count: int
    stress_trend: tuple[TrendPoint, ...]
    engagement_avg: float
    engagement_count: int
    engagement_trend: tuple[TrendPoint, ...]
    driver_averages: Mapping[DriverKey, DriverStats]
    granularity: BucketGranularity


@dataclass(frozen=True)
class RunAggregate:
    """Single-run aggregate written back by the recompute job."""

    stress_index: float
    engagement_score: float
    answer_count: int
    response_count: int


# ---------------------------------------------------------------------------
# Reduction
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ResponseContribution:
    """What one response adds to the aggregate."""

    bucket_key: str
    submitted_at: datetime | None
    scored: tuple[ScoredAnswer, ...]


@dataclass(frozen=True)
class StatsAggregate:
    """Read-only totals produced by ``fold_contributions``."""

    response_count: int = 0
    last_response_at: datetime | None = None
    overall: BucketAggregate = EMPTY_AGGREGATE
    flat_stress: BucketAggregate = EMPTY_AGGREGATE
    engagement: BucketAggregate = EMPTY_AGGREGATE
    drivers: Mapping[DriverKey, BucketAggregate] = field(default_factory=dict)
    overall_buckets: Mapping[str, BucketAggregate] = field(default_factory=dict)
    flat_stress_buckets: Mapping[str, BucketAggregate] = field(default_factory=dict)
    engagement_buckets: Mapping[str, BucketAggregate] = field(default_factory=dict)
    driver_buckets: Mapping[DriverKey, Mapping[str, BucketAggregate]] = field(
        default_factory=dict
    )


def normalize_answers(raw: Any) -> dict[str, Any]:
    """Return answers as a ``question_id -> answer`` dict.

    Lists of answer records are keyed by their ``questionId``/``question_id``;
    anything that is neither a list nor a mapping yields an empty dict.
    """
    if isinstance(raw, Mapping):
        return dict(raw)
    if isinstance(raw, (list, tuple)):
        answers: dict[str, Any] = {}
        for item in raw:
            if not isinstance(item, Mapping):
                continue
            question_id = item.get("questionId") or item.get("question_id")
            if question_id:
                answers[str(question_id)] = item
        return answers
    return {}


def _coerce_moment(value: Any) -> datetime | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime.combine(value, time.min)
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            return None
    return None


def align_to_range(moment: datetime, date_range: DateRange) -> datetime:
    """Express ``moment`` in the range's timezone convention.

    Naive moments are read as wall time of an aware range; aware moments are
    converted into an aware range's timezone, or to naive UTC for a naive range.
    """
    range_tz = date_range.start.tzinfo
    if range_tz is None:
        if moment.tzinfo is not None:
            return moment.astimezone(timezone.utc).replace(tzinfo=None)
        return moment
    if moment.tzinfo is None:
        return moment.replace(tzinfo=range_tz)
    return moment.astimezone(range_tz)


def response_bucket_date(response: ResponseRecord) -> datetime | None:
    """Prefer the run date for daily runs, else the submission time."""
    run = response.run
    if run is not None and run.run_type == DAILY_RUN_TYPE:
        run_date = _coerce_moment(run.run_date)
        if run_date is not None:
            return run_date
    return _coerce_moment(response.submitted_at)


def score_response_answers(
    answers: Mapping[str, Any],
    questions: Mapping[str, QuestionMeta],
    require_question: bool = False,
) -> tuple[ScoredAnswer, ...]:
    """Score every answer of a response, dropping answers that are not scoreable.

    Args:
        answers: ``question_id -> answer`` mapping.
        questions: Question metadata by id.
        require_question: Skip answers whose question is missing from
            ``questions`` instead of scoring them with default metadata.
    """
    scored: list[ScoredAnswer] = []
    for question_id, answer in answers.items():
        question = questions.get(question_id)
        if question is None and require_question:
            continue
        result = score_answer(answer, question)
        if result is not None:
            scored.append(result)
    return tuple(scored)


def contribute(
    response: ResponseRecord,
    date_range: DateRange,
    granularity: BucketGranularity,
) -> ResponseContribution | None:
    """Reduce one response to its contribution, or None when it is skipped.

    A response is skipped when it has no usable bucketing date or when that
    date falls outside the inclusive range.
    """
    bucket_date = response_bucket_date(response)
    if bucket_date is None:
        return None
    bucket_date = align_to_range(bucket_date, date_range)
    if not date_range.contains(bucket_date):
        return None

    questions = {q.id: q for q in response.run.questions} if response.run else {}
    submitted_at = _coerce_moment(response.submitted_at)
    return ResponseContribution(
        bucket_key=get_bucket_key(bucket_date, granularity),
        submitted_at=align_to_range(submitted_at, date_range) if submitted_at else None,
        scored=score_response_answers(normalize_answers(response.answers), questions),
    )


def _add(buckets: dict[str, BucketAggregate], key: str, value: float) -> None:
    buckets[key] = buckets.get(key, EMPTY_AGGREGATE).add(value)


def fold_contributions(contributions: Iterable[ResponseContribution]) -> StatsAggregate:
    """Fold response contributions into one read-only aggregate.

    Per scored answer, the stress score feeds its driver and the flat stress
    totals, and the engagement score feeds the engagement totals when the
    answer's dimension is an engagement dimension. Per response with at least
    one scored answer, the mean of its stress scores feeds the overall totals.
    """
    response_count = 0
    last_response_at: datetime | None = None
    overall = flat_stress = engagement = EMPTY_AGGREGATE
    drivers: dict[DriverKey, BucketAggregate] = {}
    overall_buckets: dict[str, BucketAggregate] = {}
    flat_stress_buckets: dict[str, BucketAggregate] = {}
    engagement_buckets: dict[str, BucketAggregate] = {}
    driver_buckets: dict[DriverKey, dict[str, BucketAggregate]] = {}

    for contribution in contributions:
        response_count += 1
        if contribution.submitted_at is not None and (
            last_response_at is None or contribution.submitted_at > last_response_at
        ):
            last_response_at = contribution.submitted_at

        key = contribution.bucket_key
        response_total = EMPTY_AGGREGATE
        for scored in contribution.scored:
            response_total = response_total.add(scored.stress_score)
            drivers[scored.driver_key] = drivers.get(scored.driver_key, EMPTY_AGGREGATE).add(
                scored.stress_score
            )
            _add(driver_buckets.setdefault(scored.driver_key, {}), key, scored.stress_score)
            flat_stress = flat_stress.add(scored.stress_score)
            _add(flat_stress_buckets, key, scored.stress_score)
            if is_engagement_dimension(scored.dimension):
                engagement = engagement.add(scored.engagement_score)
                _add(engagement_buckets, key, scored.engagement_score)

        if not response_total.is_empty:
            response_mean = response_total.mean()
            overall = overall.add(response_mean)
            _add(overall_buckets, key, response_mean)

    return StatsAggregate(
        response_count=response_count,
        last_response_at=last_response_at,
        overall=overall,
        flat_stress=flat_stress,
        engagement=engagement,
        drivers=MappingProxyType(drivers),
        overall_buckets=MappingProxyType(overall_buckets),
        flat_stress_buckets=MappingProxyType(flat_stress_buckets),
        engagement_buckets=MappingProxyType(engagement_buckets),
        driver_buckets=MappingProxyType(
            {driver: MappingProxyType(buckets) for driver, buckets in driver_buckets.items()}
        ),
    )


def _mean_or_zero(aggregate: BucketAggregate) -> float:
    return 0.0 if aggregate.is_empty else aggregate.mean()


# ---------------------------------------------------------------------------
# Public entry points
# ---------------------------------------------------------------------------


def compute_stats_for_responses(
    responses: Iterable[ResponseRecord],
    locale: Locale,
    date_range: DateRange,
) -> StatsResult:
    """Aggregate responses into averages and trend series over ``date_range``.

    Args:
        responses: Materialised responses; order does not matter.
        locale: Locale for trend labels.
        date_range: Inclusive range; responses dated outside it are skipped.

    Returns:
        StatsResult. With no scoreable data every average is 0 with count 0
        and every trend is empty.
    """
    granularity = get_range_bucket_granularity(date_range)
    aggregate = fold_contributions(
        contribution
        for contribution in (contribute(r, date_range, granularity) for r in responses)
        if contribution is not None
    )

    blend = compute_overall_stress_from_drivers(aggregate.drivers)
    if blend.driver_count > 0:
        stress_avg, stress_count = blend.avg, blend.answer_count
    else:
        # Only unclassified answers: fall back to their flat mean.
        stress_avg = _mean_or_zero(aggregate.flat_stress)
        stress_count = aggregate.flat_stress.count

    bucket_starts = build_bucket_starts(date_range, granularity)

    def series(points: list[TrendPoint]) -> tuple[TrendPoint, ...]:
        return tuple(ensure_coverage(points, date_range, locale, granularity))

    def trend(buckets: Mapping[str, BucketAggregate]) -> tuple[TrendPoint, ...]:
        return series(build_trend_series(buckets, bucket_starts, locale, granularity, date_range))

    if blend.driver_count > 0:
        stress_trend = series(
            build_driver_trend_series(
                aggregate.driver_buckets, bucket_starts, locale, granularity, date_range
            )
        )
    else:
        stress_trend = trend(aggregate.flat_stress_buckets)

    driver_averages = {
        driver_key: DriverStats(
            avg=_mean_or_zero(aggregate.drivers.get(driver_key, EMPTY_AGGREGATE)),
            count=aggregate.drivers.get(driver_key, EMPTY_AGGREGATE).count,
            trend=trend(aggregate.driver_buckets.get(driver_key, {})),
        )
        for driver_key in known_driver_keys()
    }

    return StatsResult(
        sample_size_total=aggregate.response_count,
        last_response_at=aggregate.last_response_at,
        overall_avg=_mean_or_zero(aggregate.overall),
        overall_count=aggregate.overall.count,
        overall_trend=trend(aggregate.overall_buckets),
        stress_avg=stress_avg,
        stress_count=stress_count,
        stress_trend=stress_trend,
        engagement_avg=_mean_or_zero(aggregate.engagement),
        engagement_count=aggregate.engagement.count,
        engagement_trend=trend(aggregate.engagement_buckets),
        driver_averages=MappingProxyType(driver_averages),
        granularity=granularity,
    )


def compute_run_aggregate(
    responses: Sequence[ResponseRecord],
    questions: Sequence[QuestionMeta],
) -> RunAggregate:
    """Score a whole survey run as a single bucket.

    Only answers to the run's template questions count. The stress index is
    the blended driver index, falling back to the flat mean when only
    unclassified questions were answered, and to 0 without any scored answer.
    """
    question_map = {question.id: question for question in questions}
    aggregate = fold_contributions(
        ResponseContribution(
            bucket_key=_RUN_BUCKET_KEY,
            submitted_at=None,
            scored=score_response_answers(
                normalize_answers(response.answers), question_map, require_question=True
            ),
        )
        for response in responses
    )

    blend = compute_overall_stress_from_drivers(aggregate.drivers)
    if blend.answer_count > 0:
        stress_index = blend.avg
    else:
        stress_index = _mean_or_zero(aggregate.flat_stress)

    return RunAggregate(
        stress_index=stress_index,
        engagement_score=_mean_or_zero(aggregate.engagement),
        answer_count=aggregate.flat_stress.count,
        response_count=len(responses),
    )


def display_stress_index(
    stress_index: float | None,
    engagement_score: float | None,
) -> float | None:
    """Value shown as a run's headline index.

    Engagement substitutes for a missing or zero stress index when it is
    positive.
    """
    if stress_index is None and engagement_score is None:
        return None
    if (stress_index is None or stress_index == 0) and (engagement_score or 0) > 0:
        return engagement_score
    return stress_index


def _run_date(run: RunMetric) -> datetime | None:
    return _coerce_moment(run.run_date) or _coerce_moment(run.launched_at)


def build_stats_for_runs(
    runs: Iterable[RunMetric],
    locale: Locale,
    date_range: DateRange,
) -> StatsResult:
    """Aggregate stored per-run averages into a StatsResult.

    Used when raw responses are unavailable for a range but runs carry stored
    aggregates. Each run counts once per index; driver averages are empty.
    """
    granularity = get_range_bucket_granularity(date_range)
    sample_size_total = 0
    last_run_at: datetime | None = None
    stress = engagement = overall = EMPTY_AGGREGATE
    stress_buckets: dict[str, BucketAggregate] = {}
    engagement_buckets: dict[str, BucketAggregate] = {}
    overall_buckets: dict[str, BucketAggregate] = {}

    for run in runs:
        moment = _run_date(run)
        if moment is None:
            continue
        moment = align_to_range(moment, date_range)
        if not date_range.contains(moment):
            continue
        if last_run_at is None or moment > last_run_at:
            last_run_at = moment
        sample_size_total += run.completed_count or 0
        key = get_bucket_key(moment, granularity)

        if run.avg_stress_index is not None:
            stress = stress.add(run.avg_stress_index)
            _add(stress_buckets, key, run.avg_stress_index)
        if run.avg_engagement_score is not None:
            engagement = engagement.add(run.avg_engagement_score)
            _add(engagement_buckets, key, run.avg_engagement_score)
        headline = display_stress_index(run.avg_stress_index, run.avg_engagement_score)
        if headline is not None:
            overall = overall.add(headline)
            _add(overall_buckets, key, headline)

    bucket_starts = build_bucket_starts(date_range, granularity)

    def trend(buckets: Mapping[str, BucketAggregate]) -> tuple[TrendPoint, ...]:
        points = build_trend_series(buckets, bucket_starts, locale, granularity, date_range)
        return tuple(ensure_coverage(points, date_range, locale, granularity))

    return StatsResult(
        sample_size_total=sample_size_total,
        last_response_at=last_run_at,
        overall_avg=_mean_or_zero(overall),
        overall_count=overall.count,
        overall_trend=trend(overall_buckets),
        stress_avg=_mean_or_zero(stress),
        stress_count=stress.count,
        stress_trend=trend(stress_buckets),
        engagement_avg=_mean_or_zero(engagement),
        engagement_count=engagement.count,
        engagement_trend=trend(engagement_buckets),
        driver_averages=MappingProxyType(
            {driver_key: DriverStats() for driver_key in known_driver_keys()}
        ),
        granularity=granularity,
    )


def select_trend_source(stats: StatsResult) -> tuple[TrendPoint, ...]:
    """Pick the overall trend, else the stress trend, else the engagement trend."""
    if stats.overall_trend:
        return stats.overall_trend
    if stats.stress_trend:
        return stats.stress_trend
    return stats.engagement_trend
