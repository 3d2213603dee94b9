"""Tests for StressAnalyticsService with mocked repositories."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest

from stress_analytics.core.periods import DateRange
from stress_analytics.core.questions import QuestionMeta
from stress_analytics.core.records import AnalyticsScope
from stress_analytics.core.services.analytics_service import StressAnalyticsService
from stress_analytics.core.stats import ResponseRecord, RunContext, RunMetric
from stress_analytics.errors import InvalidDateRangeError, InvalidPeriodError, StorageUnavailableError

NOW = datetime(2024, 3, 15, 12, tzinfo=timezone.utc)
SCOPE = AnalyticsScope(org_id="org-1", team_id="team-1")


def _in_march(date_range: DateRange) -> bool:
    return date_range.start.month == 3


@pytest.fixture()
def march_responses(workload_question: QuestionMeta, clarity_question: QuestionMeta) -> list[ResponseRecord]:
    context = RunContext(run_type="weekly", questions=(workload_question, clarity_question))
    return [
        ResponseRecord(datetime(2024, 3, 4, 9, tzinfo=timezone.utc), {"q-workload": 6, "q-clarity": 8}, context),
        ResponseRecord(datetime(2024, 3, 11, 9, tzinfo=timezone.utc), {"q-workload": 4}, context),
    ]


@pytest.fixture()
def response_repo() -> AsyncMock:
    return AsyncMock()


@pytest.fixture()
def run_repo() -> AsyncMock:
    repo = AsyncMock()
    repo.list_run_metrics.return_value = []
    return repo


@pytest.fixture()
def service(response_repo: AsyncMock, run_repo: AsyncMock) -> StressAnalyticsService:
    return StressAnalyticsService(response_repository=response_repo, run_repository=run_repo)


# ---------------------------------------------------------------------------
# get_period_report
# ---------------------------------------------------------------------------


class TestGetPeriodReport:
    @pytest.mark.asyncio()
    async def test_report_from_responses(
        self,
        service: StressAnalyticsService,
        response_repo: AsyncMock,
        march_responses: list[ResponseRecord],
    ) -> None:
        response_repo.list_for_scope.side_effect = lambda scope, rng: march_responses if _in_march(rng) else []

        report = await service.get_period_report(SCOPE, "month", "en", NOW)

        assert report.source == "responses"
        assert report.sample_size == 2
        assert report.last_response_at == datetime(2024, 3, 11, 9, tzinfo=timezone.utc)
        assert report.current_range.start == datetime(2024, 3, 1, tzinfo=timezone.utc)
        assert report.previous_range.start == datetime(2024, 2, 1, tzinfo=timezone.utc)
        stress = report.metrics.top_cards[0]
        # Workload mean 5.0 and clarity mean 2.0.
        assert stress.avg_score == 3.5
        assert (stress.delta, stress.direction) == (0.0, "flat")
        assert response_repo.list_for_scope.await_count == 2

    @pytest.mark.asyncio()
    async def test_delta_against_previous_period(
        self,
        service: StressAnalyticsService,
        response_repo: AsyncMock,
        march_responses: list[ResponseRecord],
        workload_question: QuestionMeta,
    ) -> None:
        february = [
            ResponseRecord(
                datetime(2024, 2, 10, tzinfo=timezone.utc),
                {"q-workload": 2},
                RunContext(questions=(workload_question,)),
            )
        ]
        response_repo.list_for_scope.side_effect = lambda scope, rng: (
            march_responses if _in_march(rng) else february
        )

        report = await service.get_period_report(SCOPE, "month", "en", NOW)

        stress = report.metrics.top_cards[0]
        assert (stress.delta, stress.direction) == (1.5, "up")
        workload = report.metrics.drivers[0]
        assert (workload.key, workload.delta, workload.direction) == ("workload_deadlines", 3.0, "up")

    @pytest.mark.asyncio()
    async def test_falls_back_to_stored_run_aggregates(
        self,
        service: StressAnalyticsService,
        response_repo: AsyncMock,
        run_repo: AsyncMock,
    ) -> None:
        response_repo.list_for_scope.return_value = []
        stored = [RunMetric(datetime(2024, 3, 5, tzinfo=timezone.utc), None, 4.0, 6.0, completed_count=3)]
        run_repo.list_run_metrics.side_effect = lambda scope, rng: stored if _in_march(rng) else []

        report = await service.get_period_report(SCOPE, "month", "ru", NOW)

        assert report.source == "runs"
        assert report.sample_size == 3
        assert report.metrics.top_cards[0].avg_score == 4.0
        assert report.metrics.top_cards[0].label == "Индекс стресса"

    @pytest.mark.asyncio()
    async def test_runs_without_samples_do_not_replace_empty_stats(
        self,
        service: StressAnalyticsService,
        response_repo: AsyncMock,
        run_repo: AsyncMock,
    ) -> None:
        response_repo.list_for_scope.return_value = []
        run_repo.list_run_metrics.return_value = [
            RunMetric(datetime(2024, 3, 5, tzinfo=timezone.utc), None, 4.0, 6.0, completed_count=0)
        ]

        report = await service.get_period_report(SCOPE, "month", "en", NOW)

        assert report.source == "responses"
        assert report.sample_size == 0
        assert report.metrics.top_cards[0].sample_size == 0

    @pytest.mark.asyncio()
    async def test_invalid_period(self, service: StressAnalyticsService, response_repo: AsyncMock) -> None:
        with pytest.raises(InvalidPeriodError):
            await service.get_period_report(SCOPE, "decade", "en", NOW)
        response_repo.list_for_scope.assert_not_awaited()

    @pytest.mark.asyncio()
    async def test_storage_errors_propagate(self, service: StressAnalyticsService, response_repo: AsyncMock) -> None:
        response_repo.list_for_scope.side_effect = StorageUnavailableError("down")
        with pytest.raises(StorageUnavailableError):
            await service.get_period_report(SCOPE, "week", "en", NOW)


# ---------------------------------------------------------------------------
# get_timeseries
# ---------------------------------------------------------------------------


class TestGetTimeseries:
    @pytest.mark.asyncio()
    async def test_padded_daily_series(
        self,
        service: StressAnalyticsService,
        response_repo: AsyncMock,
        workload_question: QuestionMeta,
    ) -> None:
        response_repo.list_for_scope.return_value = [
            ResponseRecord(datetime(2024, 3, 5, 10), {"q-workload": 6}, RunContext(questions=(workload_question,)))
        ]

        result = await service.get_timeseries(SCOPE, "2024-03-01", "2024-03-10", "en")

        assert result.sample_size == 1
        assert [(p.label, p.value, p.synthetic) for p in result.points] == [
            ("Mar 1", 6.0, True),
            ("Mar 5", 6.0, False),
            ("Mar 10", 6.0, True),
        ]
        called_range = response_repo.list_for_scope.await_args.args[1]
        assert called_range == result.date_range

    @pytest.mark.asyncio()
    async def test_invalid_dates(self, service: StressAnalyticsService) -> None:
        with pytest.raises(InvalidDateRangeError):
            await service.get_timeseries(SCOPE, "soon", "2024-03-10", "en")
