"""Abstract interfaces (Protocol classes) for the Stress Analytics engine.

All services depend on these interfaces, not concrete implementations.
Concrete SQLAlchemy implementations live in ``adapters/repositories.py``;
tests inject in-memory fakes or AsyncMock objects.

Implementations raise ``StorageUnavailableError`` when the backing store
cannot be reached.
"""

from contextlib import AbstractAsyncContextManager
from typing import Any, Protocol, runtime_checkable

from stress_analytics.core.periods import DateRange
from stress_analytics.core.records import (
    AnalyticsScope,
    QuestionRecord,
    SurveyRunRecord,
    TeamRecord,
)
from stress_analytics.core.stats import ResponseRecord, RunMetric


@runtime_checkable
class IQuestionRepository(Protocol):
    """Repository interface for survey question metadata."""

    async def list_all(self) -> list[QuestionRecord]:
        """Return every stored question."""
        ...

    async def update_metadata(self, question_id: str, updates: dict[str, Any]) -> None:
        """Apply driver_key/driver_tag/polarity/needs_review updates to one question."""
        ...


@runtime_checkable
class ISurveyRunRepository(Protocol):
    """Repository interface for survey runs and their stored aggregates."""

    def savepoint(self) -> AbstractAsyncContextManager[None]:
        """Return a context manager making the writes inside it one unit of work.

        Writes through any repository sharing the same storage session are
        kept when the block completes and discarded when it raises.
        """
        ...

    async def list_for_recompute(self) -> list[SurveyRunRecord]:
        """Return all runs ordered by launch time, with questions and responses."""
        ...

    async def update_aggregates(
        self,
        run_id: str,
        avg_stress_index: float,
        avg_engagement_score: float,
        completed_count: int,
    ) -> None:
        """Persist recomputed run averages."""
        ...

    async def list_run_metrics(
        self,
        scope: AnalyticsScope,
        date_range: DateRange,
    ) -> list[RunMetric]:
        """Return stored per-run aggregates for runs in scope launched within the range."""
        ...


@runtime_checkable
class IResponseRepository(Protocol):
    """Repository interface for submitted survey responses."""

    async def list_for_scope(
        self,
        scope: AnalyticsScope,
        date_range: DateRange,
    ) -> list[ResponseRecord]:
        """Return responses in scope, with run context, that may fall in the range.

        Implementations may over-fetch (e.g. by submission time only); the
        aggregation step applies the exact inclusive range filter.
        """
        ...


@runtime_checkable
class ITeamRepository(Protocol):
    """Repository interface for team snapshots."""

    async def get_by_id(self, team_id: str) -> TeamRecord | None:
        """Return a team or None if it does not exist."""
        ...

    async def update_snapshot(
        self,
        team_id: str,
        stress_index: float,
        engagement_score: float,
        participation: int,
    ) -> None:
        """Overwrite the team's current stress, engagement and participation."""
        ...


@runtime_checkable
class ITeamMetricsHistoryRepository(Protocol):
    """Repository interface for per-period team metric history."""

    async def update_for_period(
        self,
        team_id: str,
        period_label: str,
        stress_index: float,
        engagement_score: float,
        participation: int,
    ) -> int:
        """Update existing rows for ``(team_id, period_label)``; return the row count."""
        ...

    async def create(
        self,
        team_id: str,
        period_label: str,
        stress_index: float,
        engagement_score: float,
        participation: int,
        tags: list[str],
    ) -> None:
        """Insert a history row for ``(team_id, period_label)``."""
        ...
