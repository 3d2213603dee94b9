"""Recompute job against a real SQLAlchemy session on a SQLite file.

A run whose history insert violates the (team_id, period_label) unique
constraint must be rolled back on its own: later runs are still written, the
backfill phase is kept, and the final commit succeeds.
"""

from collections.abc import AsyncGenerator
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import pytest
import pytest_asyncio
from sqlalchemy import event, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from stress_analytics.adapters.database import commit_session
from stress_analytics.adapters.repositories import (
    QuestionRepository,
    SurveyRunRepository,
    TeamMetricsHistoryRepository,
    TeamRepository,
)
from stress_analytics.core.models import (
    Base,
    SurveyQuestion,
    SurveyResponse,
    SurveyRun,
    SurveyTemplate,
    Team,
    TeamMetricsHistory,
)
from stress_analytics.core.services.recompute_service import RecomputeOrchestrator

MARCH_5 = datetime(2024, 3, 5, 9, tzinfo=timezone.utc)
MARCH_6 = datetime(2024, 3, 6, 9, tzinfo=timezone.utc)


class CollidingHistoryRepository(TeamMetricsHistoryRepository):
    """Adds a duplicate history row for team-1 so the flush hits the unique constraint."""

    async def create(self, team_id: str, period_label: str, **values: Any) -> None:
        if team_id == "team-1":
            self._session.add(
                TeamMetricsHistory(
                    team_id=team_id,
                    period_label=period_label,
                    stress_index=0.0,
                    engagement_score=0.0,
                    participation=0,
                    tags=[],
                )
            )
        await super().create(team_id, period_label, **values)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture()
async def session_factory(tmp_path: Path) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Seeded SQLite store with two team runs on different days."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'store.db'}")

    # Let SQLAlchemy emit BEGIN itself so SAVEPOINT behaves as on PostgreSQL.
    @event.listens_for(engine.sync_engine, "connect")
    def _disable_driver_begin(dbapi_connection: Any, _connection_record: Any) -> None:
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _emit_begin(connection: Any) -> None:
        connection.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, expire_on_commit=False)
    async with factory() as session:
        session.add_all(
            [
                SurveyTemplate(id="tpl", name="Weekly pulse"),
                SurveyQuestion(
                    id="q-workload",
                    template_id="tpl",
                    order=0,
                    text="My workload is unmanageable",
                    type="scale-0-10",
                    driver_key="workload",
                    dimension="workload",
                    polarity="NEGATIVE",
                ),
                Team(id="team-1", org_id="org-1", name="Core", member_count=4),
                Team(id="team-2", org_id="org-1", name="Platform", member_count=2),
                SurveyRun(
                    id="r0",
                    org_id="org-1",
                    team_id="team-1",
                    template_id="tpl",
                    run_type="weekly",
                    run_date=MARCH_5,
                    launched_at=MARCH_5,
                ),
                SurveyRun(
                    id="r1",
                    org_id="org-1",
                    team_id="team-2",
                    template_id="tpl",
                    run_type="weekly",
                    run_date=MARCH_6,
                    launched_at=MARCH_6,
                ),
                SurveyResponse(id="a0", run_id="r0", answers={"q-workload": 7}, submitted_at=MARCH_5),
                SurveyResponse(id="a1", run_id="r1", answers={"q-workload": 3}, submitted_at=MARCH_6),
            ]
        )
        await session.commit()

    yield factory
    await engine.dispose()


def _orchestrator(session: AsyncSession) -> RecomputeOrchestrator:
    return RecomputeOrchestrator(
        question_repository=QuestionRepository(session),
        run_repository=SurveyRunRepository(session),
        team_repository=TeamRepository(session),
        history_repository=CollidingHistoryRepository(session),
    )


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------


class TestRecomputeOnSession:
    @pytest.mark.asyncio()
    async def test_failed_run_does_not_abort_job(
        self, session_factory: async_sessionmaker[AsyncSession]
    ) -> None:
        async with session_factory() as session:
            summary = await _orchestrator(session).run()
            await commit_session(session)

        assert (summary.runs_updated, summary.runs_failed) == (1, 1)
        assert (summary.team_rows_created, summary.team_rows_updated) == (1, 0)
        assert summary.questions_updated == 1

        async with session_factory() as session:
            question = await session.get(SurveyQuestion, "q-workload")
            rows = (await session.execute(select(TeamMetricsHistory))).scalars().all()

        assert question is not None
        assert question.driver_key == "workload_deadlines"
        assert [(row.team_id, row.period_label) for row in rows] == [("team-2", "2024-03-06")]

    @pytest.mark.asyncio()
    async def test_failed_run_leaves_stored_values_unchanged(
        self, session_factory: async_sessionmaker[AsyncSession]
    ) -> None:
        async with session_factory() as session:
            await _orchestrator(session).recompute_run_metrics()
            await commit_session(session)

        async with session_factory() as session:
            failed_run = await session.get(SurveyRun, "r0")
            failed_team = await session.get(Team, "team-1")
            written_run = await session.get(SurveyRun, "r1")
            written_team = await session.get(Team, "team-2")

        assert failed_run is not None and failed_team is not None
        assert (failed_run.avg_stress_index, failed_run.completed_count) == (None, 0)
        assert (failed_team.stress_index, failed_team.participation) == (None, None)

        assert written_run is not None and written_team is not None
        assert (written_run.avg_stress_index, written_run.completed_count) == (3.0, 1)
        assert (written_team.stress_index, written_team.participation) == (3.0, 50)
