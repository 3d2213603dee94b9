"""Pydantic request/response schemas for the Stress Analytics API.

Responses serialise with camelCase aliases for the dashboard client.
No raw dicts are returned from any endpoint.
"""

from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from stress_analytics.core.metrics import ComputedMetric
from stress_analytics.core.periods import DateRange
from stress_analytics.core.services.analytics_service import PeriodReport, TimeseriesResult
from stress_analytics.core.trends import TrendPoint


class CamelModel(BaseModel):
    """Base schema serialising field names as camelCase."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Shared value objects
# ---------------------------------------------------------------------------


class TrendPointSchema(CamelModel):
    label: str
    value: float
    date: date
    synthetic: bool = False

    @classmethod
    def from_point(cls, point: TrendPoint) -> "TrendPointSchema":
        return cls(label=point.label, value=point.value, date=point.date, synthetic=point.synthetic)


class DateRangeSchema(CamelModel):
    start: datetime
    end: datetime

    @classmethod
    def from_range(cls, date_range: DateRange) -> "DateRangeSchema":
        return cls(start=date_range.start, end=date_range.end)


class MetricCardSchema(CamelModel):
    """One metric card.

    Attributes:
        key: 'stress', 'engagement' or a driver key.
        label: Localised label.
        avg_score: Current average (1 decimal).
        delta: Change versus the previous period (1 decimal).
        direction: 'up', 'down' or 'flat'.
        sample_size: Answers behind the current average.
        trend_points: Current-period trend.
        description: Driver description; None for top cards.
    """

    key: str
    label: str
    avg_score: float
    delta: float
    direction: str
    sample_size: int
    trend_points: list[TrendPointSchema]
    description: str | None = None

    @classmethod
    def from_metric(cls, metric: ComputedMetric) -> "MetricCardSchema":
        return cls(
            key=metric.key,
            label=metric.label,
            avg_score=metric.avg_score,
            delta=metric.delta,
            direction=metric.direction,
            sample_size=metric.sample_size,
            trend_points=[TrendPointSchema.from_point(p) for p in metric.trend_points],
            description=getattr(metric, "description", None),
        )


# ---------------------------------------------------------------------------
# Period metrics
# ---------------------------------------------------------------------------


class StressMetricsResponse(CamelModel):
    """Period comparison for the stress dashboard."""

    period: str
    current_range: DateRangeSchema
    previous_range: DateRangeSchema
    sample_size: int
    last_response_at: datetime | None
    source: str
    top_cards: list[MetricCardSchema]
    drivers: list[MetricCardSchema]

    @classmethod
    def from_report(cls, report: PeriodReport) -> "StressMetricsResponse":
        return cls(
            period=report.period,
            current_range=DateRangeSchema.from_range(report.current_range),
            previous_range=DateRangeSchema.from_range(report.previous_range),
            sample_size=report.sample_size,
            last_response_at=report.last_response_at,
            source=report.source,
            top_cards=[MetricCardSchema.from_metric(m) for m in report.metrics.top_cards],
            drivers=[MetricCardSchema.from_metric(d) for d in report.metrics.drivers],
        )


# ---------------------------------------------------------------------------
# Timeseries
# ---------------------------------------------------------------------------


class TimeseriesRequest(CamelModel):
    """Request body for an arbitrary-range timeseries.

    Attributes:
        org_id: Organization to report on.
        team_id: Optional team restriction.
        member_id: Optional restriction to one member's own responses.
        from_: First day of the range (ISO date or datetime), sent as ``from``.
        to: Last day of the range, inclusive.
        locale: 'en' or 'ru'.
    """

    org_id: str = Field(..., min_length=1)
    team_id: str | None = None
    member_id: str | None = None
    from_: str = Field(..., alias="from", min_length=1)
    to: str = Field(..., min_length=1)
    locale: str = "en"


class TimeseriesResponse(CamelModel):
    range: DateRangeSchema
    points: list[TrendPointSchema]
    sample_size: int

    @classmethod
    def from_result(cls, result: TimeseriesResult) -> "TimeseriesResponse":
        return cls(
            range=DateRangeSchema.from_range(result.date_range),
            points=[TrendPointSchema.from_point(p) for p in result.points],
            sample_size=result.sample_size,
        )


class HealthResponse(CamelModel):
    status: str
    service: str
    version: str
