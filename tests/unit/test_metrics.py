"""Unit tests for metric card composition."""

from datetime import date

import pytest

from stress_analytics.core.buckets import BucketGranularity
from stress_analytics.core.drivers import DriverKey, known_driver_keys
from stress_analytics.core.metrics import build_computed_metrics, compute_delta
from stress_analytics.core.stats import DriverStats, StatsResult
from stress_analytics.core.trends import TrendPoint


def _stats(
    stress: tuple[float, int] = (0.0, 0),
    engagement: tuple[float, int] = (0.0, 0),
    drivers: dict[DriverKey, DriverStats] | None = None,
    stress_trend: tuple[TrendPoint, ...] = (),
) -> StatsResult:
    driver_averages = {key: DriverStats() for key in known_driver_keys()}
    driver_averages.update(drivers or {})
    return StatsResult(
        sample_size_total=stress[1],
        last_response_at=None,
        overall_avg=stress[0],
        overall_count=stress[1],
        overall_trend=(),
        stress_avg=stress[0],
        stress_count=stress[1],
        stress_trend=stress_trend,
        engagement_avg=engagement[0],
        engagement_count=engagement[1],
        engagement_trend=(),
        driver_averages=driver_averages,
        granularity=BucketGranularity.DAY,
    )


class TestComputeDelta:
    """Deltas compare full-precision averages and round once."""

    @pytest.mark.parametrize("current", [0.0, 3.3, 10.0])
    def test_suppressed_when_previous_has_no_data(self, current: float) -> None:
        assert compute_delta(current, 5, 0.0, 0) == (0.0, "flat")

    def test_suppressed_when_current_has_no_data(self) -> None:
        assert compute_delta(0.0, 0, 6.0, 4) == (0.0, "flat")

    def test_up(self) -> None:
        assert compute_delta(6.26, 3, 5.0, 2) == (1.3, "up")

    def test_down(self) -> None:
        assert compute_delta(4.0, 3, 5.04, 2) == (-1.0, "down")

    def test_direction_from_rounded_delta(self) -> None:
        assert compute_delta(5.02, 3, 5.0, 2) == (0.0, "flat")


class TestBuildComputedMetrics:
    def test_previous_without_data_gives_flat_cards(self) -> None:
        metrics = build_computed_metrics(_stats(stress=(7.3, 12), engagement=(4.0, 3)), _stats(), "en")

        stress, engagement = metrics.top_cards
        assert (stress.key, stress.label, stress.avg_score) == ("stress", "Stress index", 7.3)
        assert (stress.delta, stress.direction) == (0.0, "flat")
        assert stress.sample_size == 12
        assert (engagement.key, engagement.label) == ("engagement", "Engagement")
        assert (engagement.delta, engagement.direction) == (0.0, "flat")

    def test_average_rounded_half_up(self) -> None:
        metrics = build_computed_metrics(_stats(stress=(2.25, 4)), _stats(stress=(2.0, 4)), "en")
        assert metrics.top_cards[0].avg_score == 2.3
        assert metrics.top_cards[0].direction == "up"

    def test_russian_labels(self) -> None:
        metrics = build_computed_metrics(_stats(), _stats(), "ru")
        assert [card.label for card in metrics.top_cards] == ["Индекс стресса", "Вовлечённость"]
        assert metrics.drivers[0].label == "Нагрузка и дедлайны"

    def test_drivers_in_fixed_order_with_descriptions(self) -> None:
        metrics = build_computed_metrics(_stats(), _stats(), "en")
        assert [d.key for d in metrics.drivers] == [key.value for key in known_driver_keys()]
        assert all(d.description for d in metrics.drivers)

    def test_driver_card_delta_and_trend(self) -> None:
        trend = (TrendPoint(label="Mar 5", value=6.0, date=date(2024, 3, 5)),)
        current = _stats(drivers={DriverKey.MANAGER_SUPPORT: DriverStats(avg=6.04, count=5, trend=trend)})
        previous = _stats(drivers={DriverKey.MANAGER_SUPPORT: DriverStats(avg=7.0, count=2)})

        metrics = build_computed_metrics(current, previous, "en")

        support = next(d for d in metrics.drivers if d.key == "manager_support")
        assert support.avg_score == 6.0
        assert (support.delta, support.direction) == (-1.0, "down")
        assert support.sample_size == 5
        assert support.trend_points == trend

    def test_top_card_carries_current_trend(self) -> None:
        trend = (TrendPoint(label="Mar 1", value=3.0, date=date(2024, 3, 1)),)
        metrics = build_computed_metrics(_stats(stress=(3.0, 1), stress_trend=trend), _stats(), "en")
        assert metrics.top_cards[0].trend_points == trend
