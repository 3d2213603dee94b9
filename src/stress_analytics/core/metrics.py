"""Period-over-period metric cards.

Turns the current and previous period StatsResult into display-ready cards:
two top cards (stress index, engagement) and one card per canonical driver.
All rounding happens here, once, from full-precision statistics.
"""

from dataclasses import dataclass
from typing import Literal

from stress_analytics.core.drivers import DRIVER_DEFINITIONS
from stress_analytics.core.locales import Locale, normalize_locale
from stress_analytics.core.scoring import round_score
from stress_analytics.core.stats import StatsResult
from stress_analytics.core.trends import TrendPoint

Direction = Literal["up", "down", "flat"]

STRESS_CARD_KEY: str = "stress"
ENGAGEMENT_CARD_KEY: str = "engagement"

_TOP_CARD_LABELS: dict[str, dict[str, str]] = {
    STRESS_CARD_KEY: {"en": "Stress index", "ru": "Индекс стресса"},
    ENGAGEMENT_CARD_KEY: {"en": "Engagement", "ru": "Вовлечённость"},
}


@dataclass(frozen=True)
class ComputedMetric:
    """One display card.

    Attributes:
        key: Card identifier ('stress', 'engagement' or a driver key).
        label: Localised label.
        avg_score: Current average rounded to 1 decimal.
        delta: Current minus previous, rounded to 1 decimal; 0.0 when either
            period lacks data.
        direction: 'up', 'down' or 'flat', taken from the rounded delta.
        sample_size: Number of answers behind the current average.
        trend_points: Current-period trend series.
    """

    key: str
    label: str
    avg_score: float
    delta: float
    direction: Direction
    sample_size: int
    trend_points: tuple[TrendPoint, ...]


@dataclass(frozen=True)
class ComputedDriver(ComputedMetric):
    """Driver card with a localised description."""

    description: str = ""


@dataclass(frozen=True)
class ComputedMetrics:
    top_cards: tuple[ComputedMetric, ...]
    drivers: tuple[ComputedDriver, ...]


def compute_delta(
    current_avg: float,
    current_count: int,
    previous_avg: float,
    previous_count: int,
) -> tuple[float, Direction]:
    """Return the rounded delta and its direction.

    A delta is reported only when both periods have data; a missing period
    yields ``(0.0, 'flat')`` rather than a misleading jump from zero.
    """
    if current_count <= 0 or previous_count <= 0:
        return 0.0, "flat"
    delta = round_score(current_avg - previous_avg, 1)
    if delta > 0:
        return delta, "up"
    if delta < 0:
        return delta, "down"
    return 0.0, "flat"


def build_metric(
    key: str,
    label: str,
    current_avg: float,
    current_count: int,
    previous_avg: float,
    previous_count: int,
    trend_points: tuple[TrendPoint, ...],
) -> ComputedMetric:
    delta, direction = compute_delta(current_avg, current_count, previous_avg, previous_count)
    return ComputedMetric(
        key=key,
        label=label,
        avg_score=round_score(current_avg, 1),
        delta=delta,
        direction=direction,
        sample_size=current_count,
        trend_points=trend_points,
    )


def build_computed_metrics(
    current: StatsResult,
    previous: StatsResult,
    locale: Locale,
) -> ComputedMetrics:
    """Compose top cards and driver cards for the current period.

    Args:
        current: Statistics of the current period.
        previous: Statistics of the preceding comparable period.
        locale: Label locale; unsupported values fall back to English.

    Returns:
        ComputedMetrics with the stress and engagement cards first, then the
        ten canonical drivers in display order.
    """
    locale = normalize_locale(locale)

    top_cards = (
        build_metric(
            STRESS_CARD_KEY,
            _TOP_CARD_LABELS[STRESS_CARD_KEY][locale],
            current.stress_avg,
            current.stress_count,
            previous.stress_avg,
            previous.stress_count,
            current.stress_trend,
        ),
        build_metric(
            ENGAGEMENT_CARD_KEY,
            _TOP_CARD_LABELS[ENGAGEMENT_CARD_KEY][locale],
            current.engagement_avg,
            current.engagement_count,
            previous.engagement_avg,
            previous.engagement_count,
            current.engagement_trend,
        ),
    )

    drivers: list[ComputedDriver] = []
    for definition in DRIVER_DEFINITIONS:
        now_stats = current.driver_averages[definition.key]
        then_stats = previous.driver_averages[definition.key]
        delta, direction = compute_delta(
            now_stats.avg, now_stats.count, then_stats.avg, then_stats.count
        )
        drivers.append(
            ComputedDriver(
                key=definition.key.value,
                label=definition.label(locale),
                avg_score=round_score(now_stats.avg, 1),
                delta=delta,
                direction=direction,
                sample_size=now_stats.count,
                trend_points=now_stats.trend,
                description=definition.description(locale),
            )
        )

    return ComputedMetrics(top_cards=top_cards, drivers=tuple(drivers))
