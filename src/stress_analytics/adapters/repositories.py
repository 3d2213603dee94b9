"""SQLAlchemy implementations of the repository interfaces.

Each repository wraps one async session and translates ORM rows into the
frozen records defined in ``core/records.py``. Connectivity failures are
re-raised as ``StorageUnavailableError`` (see ``translate_storage_errors``) so
callers can tell an outage apart from a bad row.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from stress_analytics.adapters.database import STORAGE_ERRORS, translate_storage_errors
from stress_analytics.core.models import (
    SurveyQuestion,
    SurveyResponse,
    SurveyRun,
    SurveyTemplate,
    Team,
    TeamMetricsHistory,
)
from stress_analytics.core.periods import DateRange
from stress_analytics.core.questions import QuestionMeta
from stress_analytics.core.records import (
    AnalyticsScope,
    QuestionRecord,
    SurveyRunRecord,
    TeamRecord,
)
from stress_analytics.core.stats import DAILY_RUN_TYPE, ResponseRecord, RunContext, RunMetric
from stress_analytics.errors import StorageUnavailableError
from stress_analytics.observability import get_logger

logger = get_logger(__name__)

_QUESTION_FIELDS: frozenset[str] = frozenset({"driver_key", "driver_tag", "polarity", "needs_review"})


def question_meta_from_row(row: SurveyQuestion) -> QuestionMeta:
    return QuestionMeta(
        id=row.id,
        type=row.type,
        scale_min=row.scale_min,
        scale_max=row.scale_max,
        driver_key=row.driver_key,
        driver_tag=row.driver_tag,
        dimension=row.dimension,
        polarity=row.polarity,
        text=row.text,
    )


def run_context_from_row(row: SurveyRun) -> RunContext:
    questions = row.template.questions if row.template is not None else []
    return RunContext(
        run_date=row.run_date,
        run_type=row.run_type,
        questions=tuple(question_meta_from_row(q) for q in questions),
    )


class QuestionRepository:
    """Question metadata persistence."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialise with an async database session.

        Args:
            session: SQLAlchemy async session.
        """
        self._session = session

    @translate_storage_errors
    async def list_all(self) -> list[QuestionRecord]:
        result = await self._session.execute(select(SurveyQuestion).order_by(SurveyQuestion.id))
        return [
            QuestionRecord(
                id=row.id,
                text=row.text,
                type=row.type,
                driver_key=row.driver_key,
                driver_tag=row.driver_tag,
                dimension=row.dimension,
                polarity=row.polarity,
                needs_review=row.needs_review,
            )
            for row in result.scalars().all()
        ]

    @translate_storage_errors
    async def update_metadata(self, question_id: str, updates: dict[str, Any]) -> None:
        """Apply metadata updates to one question.

        Raises:
            ValueError: If ``updates`` names a column the backfill may not write.
        """
        unexpected = set(updates) - _QUESTION_FIELDS
        if unexpected:
            raise ValueError(f"Cannot update question fields: {', '.join(sorted(unexpected))}")
        await self._session.execute(
            update(SurveyQuestion).where(SurveyQuestion.id == question_id).values(**updates)
        )
        logger.debug("Question metadata updated", question_id=question_id, fields=sorted(updates))


class SurveyRunRepository:
    """Survey run persistence and stored-aggregate reads."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    @asynccontextmanager
    async def savepoint(self) -> AsyncIterator[None]:
        """Scope the writes made inside the block to one SAVEPOINT.

        Covers every repository sharing this session. The savepoint is
        released when the block completes and rolled back when it raises,
        which leaves the session usable for the next run.
        """
        try:
            async with self._session.begin_nested():
                yield
        except STORAGE_ERRORS as exc:
            logger.error("Storage unavailable", operation="savepoint", error=str(exc))
            raise StorageUnavailableError(f"savepoint: {exc}") from exc

    @translate_storage_errors
    async def list_for_recompute(self) -> list[SurveyRunRecord]:
        """Return all runs ordered by launch time with template questions and responses."""
        result = await self._session.execute(
            select(SurveyRun)
            .options(
                selectinload(SurveyRun.template).selectinload(SurveyTemplate.questions),
                selectinload(SurveyRun.responses),
            )
            .order_by(SurveyRun.launched_at.asc().nulls_last(), SurveyRun.id)
        )
        records: list[SurveyRunRecord] = []
        for row in result.scalars().all():
            context = run_context_from_row(row)
            records.append(
                SurveyRunRecord(
                    id=row.id,
                    team_id=row.team_id,
                    run_type=row.run_type,
                    run_date=row.run_date,
                    launched_at=row.launched_at,
                    tags=tuple(row.tags or ()),
                    questions=context.questions,
                    responses=tuple(
                        ResponseRecord(
                            submitted_at=response.submitted_at,
                            answers=response.answers,
                            run=context,
                        )
                        for response in row.responses
                    ),
                )
            )
        return records

    @translate_storage_errors
    async def update_aggregates(
        self,
        run_id: str,
        avg_stress_index: float,
        avg_engagement_score: float,
        completed_count: int,
    ) -> None:
        await self._session.execute(
            update(SurveyRun)
            .where(SurveyRun.id == run_id)
            .values(
                avg_stress_index=avg_stress_index,
                avg_engagement_score=avg_engagement_score,
                completed_count=completed_count,
            )
        )

    @translate_storage_errors
    async def list_run_metrics(
        self,
        scope: AnalyticsScope,
        date_range: DateRange,
    ) -> list[RunMetric]:
        """Return stored aggregates for runs in scope dated within the range.

        Stored aggregates are per run, not per respondent, so member scopes
        never fall back to them.
        """
        if scope.member_id is not None:
            return []
        run_moment = func.coalesce(SurveyRun.run_date, SurveyRun.launched_at)
        query = select(SurveyRun).where(
            SurveyRun.org_id == scope.org_id,
            run_moment >= date_range.start,
            run_moment <= date_range.end,
        )
        if scope.team_id is not None:
            query = query.where(SurveyRun.team_id == scope.team_id)
        result = await self._session.execute(query.order_by(run_moment))
        return [
            RunMetric(
                run_date=row.run_date,
                launched_at=row.launched_at,
                avg_stress_index=row.avg_stress_index,
                avg_engagement_score=row.avg_engagement_score,
                completed_count=row.completed_count,
            )
            for row in result.scalars().all()
        ]


class ResponseRepository:
    """Survey response reads for live analytics."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    @translate_storage_errors
    async def list_for_scope(
        self,
        scope: AnalyticsScope,
        date_range: DateRange,
    ) -> list[ResponseRecord]:
        """Return responses in scope submitted, or run daily, within the range.

        The exact inclusive range filter on the bucketing date is applied by
        the aggregation step.
        """
        in_range = or_(
            SurveyResponse.submitted_at.between(date_range.start, date_range.end),
            and_(
                SurveyRun.run_type == DAILY_RUN_TYPE,
                SurveyRun.run_date.between(date_range.start, date_range.end),
            ),
        )
        query = (
            select(SurveyResponse)
            .join(SurveyResponse.run)
            .where(SurveyRun.org_id == scope.org_id, in_range)
            .options(
                selectinload(SurveyResponse.run)
                .selectinload(SurveyRun.template)
                .selectinload(SurveyTemplate.questions)
            )
        )
        if scope.team_id is not None:
            query = query.where(SurveyRun.team_id == scope.team_id)
        if scope.member_id is not None:
            query = query.where(SurveyResponse.member_id == scope.member_id)

        result = await self._session.execute(query)
        contexts: dict[str, RunContext] = {}
        records: list[ResponseRecord] = []
        for row in result.scalars().all():
            context = contexts.get(row.run_id)
            if context is None:
                context = contexts[row.run_id] = run_context_from_row(row.run)
            records.append(
                ResponseRecord(submitted_at=row.submitted_at, answers=row.answers, run=context)
            )

        logger.debug(
            "Responses loaded",
            org_id=scope.org_id,
            team_id=scope.team_id,
            count=len(records),
        )
        return records


class TeamRepository:
    """Team snapshot persistence."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    @translate_storage_errors
    async def get_by_id(self, team_id: str) -> TeamRecord | None:
        row = await self._session.get(Team, team_id)
        if row is None:
            return None
        return TeamRecord(id=row.id, member_count=row.member_count)

    @translate_storage_errors
    async def update_snapshot(
        self,
        team_id: str,
        stress_index: float,
        engagement_score: float,
        participation: int,
    ) -> None:
        await self._session.execute(
            update(Team)
            .where(Team.id == team_id)
            .values(
                stress_index=stress_index,
                engagement_score=engagement_score,
                participation=participation,
            )
        )


class TeamMetricsHistoryRepository:
    """Per-period team metrics persistence."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    @translate_storage_errors
    async def update_for_period(
        self,
        team_id: str,
        period_label: str,
        stress_index: float,
        engagement_score: float,
        participation: int,
    ) -> int:
        result = await self._session.execute(
            update(TeamMetricsHistory)
            .where(
                TeamMetricsHistory.team_id == team_id,
                TeamMetricsHistory.period_label == period_label,
            )
            .values(
                stress_index=stress_index,
                engagement_score=engagement_score,
                participation=participation,
            )
        )
        return int(result.rowcount or 0)

    @translate_storage_errors
    async def create(
        self,
        team_id: str,
        period_label: str,
        stress_index: float,
        engagement_score: float,
        participation: int,
        tags: list[str],
    ) -> None:
        self._session.add(
            TeamMetricsHistory(
                team_id=team_id,
                period_label=period_label,
                stress_index=stress_index,
                engagement_score=engagement_score,
                participation=participation,
                tags=tags,
            )
        )
        await self._session.flush()
        logger.debug("Team history row created", team_id=team_id, period_label=period_label)
