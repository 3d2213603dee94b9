"""Tests for the recompute orchestrator.

Uses in-memory repositories so stored state can be inspected after each run:
- backfill normalises metadata and flags unresolvable questions once
- recompute writes rounded run, team and history aggregates
- a second run on unchanged data is a no-op in effect (idempotence)
- per-run failures are isolated; storage outages abort the job
"""

import copy
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Any
from unittest.mock import AsyncMock

import pytest

from stress_analytics.core.questions import QuestionMeta
from stress_analytics.core.records import QuestionRecord, SurveyRunRecord, TeamRecord
from stress_analytics.core.services.recompute_service import (
    RecomputeOrchestrator,
    RecomputeSummary,
    compute_participation,
    period_label_for,
    plan_question_updates,
)
from stress_analytics.core.stats import ResponseRecord
from stress_analytics.errors import StorageUnavailableError


# ---------------------------------------------------------------------------
# In-memory repositories
# ---------------------------------------------------------------------------


class InMemoryQuestionRepository:
    def __init__(self, questions: list[QuestionRecord]) -> None:
        self.questions = {q.id: q for q in questions}
        self.update_calls = 0

    async def list_all(self) -> list[QuestionRecord]:
        return list(self.questions.values())

    async def update_metadata(self, question_id: str, updates: dict[str, Any]) -> None:
        self.update_calls += 1
        self.questions[question_id] = replace(self.questions[question_id], **updates)


class InMemoryRunRepository:
    state_fields = ("aggregates",)

    def __init__(self, runs: list[SurveyRunRecord], failing_run_ids: frozenset[str] = frozenset()) -> None:
        self.runs = runs
        self.failing_run_ids = failing_run_ids
        self.aggregates: dict[str, dict[str, Any]] = {}
        self.enlisted: list[Any] = []
        self.rollbacks = 0

    @asynccontextmanager
    async def savepoint(self) -> AsyncIterator[None]:
        """Restore this and every enlisted repository when the block raises."""
        saved = [
            (repo, {field: copy.deepcopy(getattr(repo, field)) for field in repo.state_fields})
            for repo in (self, *self.enlisted)
        ]
        try:
            yield
        except Exception:
            self.rollbacks += 1
            for repo, state in saved:
                for field, value in state.items():
                    setattr(repo, field, value)
            raise

    async def list_for_recompute(self) -> list[SurveyRunRecord]:
        return list(self.runs)

    async def update_aggregates(
        self,
        run_id: str,
        avg_stress_index: float,
        avg_engagement_score: float,
        completed_count: int,
    ) -> None:
        if run_id in self.failing_run_ids:
            raise RuntimeError("corrupt run row")
        self.aggregates[run_id] = {
            "avg_stress_index": avg_stress_index,
            "avg_engagement_score": avg_engagement_score,
            "completed_count": completed_count,
        }

    async def list_run_metrics(self, scope: Any, date_range: Any) -> list[Any]:
        return []


class InMemoryTeamRepository:
    state_fields = ("snapshots",)

    def __init__(self, teams: list[TeamRecord]) -> None:
        self.teams = {t.id: t for t in teams}
        self.snapshots: dict[str, dict[str, Any]] = {}

    async def get_by_id(self, team_id: str) -> TeamRecord | None:
        return self.teams.get(team_id)

    async def update_snapshot(
        self,
        team_id: str,
        stress_index: float,
        engagement_score: float,
        participation: int,
    ) -> None:
        self.snapshots[team_id] = {
            "stress_index": stress_index,
            "engagement_score": engagement_score,
            "participation": participation,
        }


class InMemoryHistoryRepository:
    state_fields = ("rows",)

    def __init__(self, failing_team_ids: frozenset[str] = frozenset()) -> None:
        self.rows: list[dict[str, Any]] = []
        self.failing_team_ids = failing_team_ids

    async def update_for_period(
        self,
        team_id: str,
        period_label: str,
        stress_index: float,
        engagement_score: float,
        participation: int,
    ) -> int:
        matched = [r for r in self.rows if r["team_id"] == team_id and r["period_label"] == period_label]
        for row in matched:
            row.update(
                stress_index=stress_index,
                engagement_score=engagement_score,
                participation=participation,
            )
        return len(matched)

    async def create(
        self,
        team_id: str,
        period_label: str,
        stress_index: float,
        engagement_score: float,
        participation: int,
        tags: list[str],
    ) -> None:
        if team_id in self.failing_team_ids:
            raise ValueError("history row rejected")
        self.rows.append(
            {
                "team_id": team_id,
                "period_label": period_label,
                "stress_index": stress_index,
                "engagement_score": engagement_score,
                "participation": participation,
                "tags": tags,
            }
        )


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def template(workload_question: QuestionMeta, clarity_question: QuestionMeta) -> tuple[QuestionMeta, ...]:
    return (workload_question, clarity_question)


@pytest.fixture()
def runs(template: tuple[QuestionMeta, ...]) -> list[SurveyRunRecord]:
    launched = datetime(2024, 3, 5, 9, tzinfo=timezone.utc)
    return [
        SurveyRunRecord(
            id="run-team",
            team_id="team-1",
            run_type="weekly",
            run_date=launched,
            launched_at=launched,
            tags=("pulse",),
            questions=template,
            responses=(
                ResponseRecord(launched, {"q-workload": 6, "q-clarity": 8}),
                ResponseRecord(launched, {"q-workload": 4, "q-clarity": 6}),
            ),
        ),
        SurveyRunRecord(id="run-empty", team_id="team-1", questions=template, launched_at=launched),
        SurveyRunRecord(
            id="run-org",
            questions=template,
            launched_at=launched + timedelta(days=1),
            responses=(ResponseRecord(launched, {"q-workload": 10}),),
        ),
    ]


def _orchestrator(
    questions: InMemoryQuestionRepository | None = None,
    runs: InMemoryRunRepository | None = None,
    teams: InMemoryTeamRepository | None = None,
    history: InMemoryHistoryRepository | None = None,
    known_questions: dict[str, QuestionMeta] | None = None,
) -> RecomputeOrchestrator:
    runs = runs or InMemoryRunRepository([])
    teams = teams or InMemoryTeamRepository([])
    history = history or InMemoryHistoryRepository()
    runs.enlisted = [
        repo for repo in (teams, history) if isinstance(repo, (InMemoryTeamRepository, InMemoryHistoryRepository))
    ]
    return RecomputeOrchestrator(
        question_repository=questions or InMemoryQuestionRepository([]),
        run_repository=runs,
        team_repository=teams,
        history_repository=history,
        known_questions=known_questions,
    )


# ---------------------------------------------------------------------------
# Backfill
# ---------------------------------------------------------------------------


class TestBackfill:
    """Question metadata backfill."""

    @pytest.fixture()
    def questions(self) -> InMemoryQuestionRepository:
        return InMemoryQuestionRepository(
            [
                QuestionRecord(id="legacy", text="Deadlines", driver_key="workload"),
                QuestionRecord(
                    id="clean",
                    text="Clean",
                    driver_key="workload_deadlines",
                    driver_tag="workload",
                    polarity="POSITIVE",
                ),
                QuestionRecord(id="mystery", text="Mystery", dimension="morale"),
                QuestionRecord(
                    id="flagged",
                    text="Flagged",
                    driver_key="unknown",
                    driver_tag="unknown",
                    polarity="NEGATIVE",
                    needs_review=True,
                ),
                QuestionRecord(id="banked", text="  I have enough time  ", needs_review=True),
            ]
        )

    @pytest.mark.asyncio()
    async def test_backfill_updates_and_flags(self, questions: InMemoryQuestionRepository) -> None:
        known = {"I have enough time": QuestionMeta(id="k1", driver_key="workload_deadlines", polarity="POSITIVE")}
        orchestrator = _orchestrator(questions=questions, known_questions=known)

        result = await orchestrator.backfill_question_metadata()

        assert result.questions_updated == 3
        assert result.questions_flagged == 1
        assert questions.questions["legacy"] == QuestionRecord(
            id="legacy",
            text="Deadlines",
            driver_key="workload_deadlines",
            driver_tag="workload_deadlines",
            polarity="NEGATIVE",
        )
        mystery = questions.questions["mystery"]
        assert (mystery.driver_key, mystery.needs_review) == ("unknown", True)
        banked = questions.questions["banked"]
        assert (banked.driver_key, banked.driver_tag, banked.polarity, banked.needs_review) == (
            "workload_deadlines",
            "workload_deadlines",
            "POSITIVE",
            False,
        )

    @pytest.mark.asyncio()
    async def test_second_backfill_changes_nothing(self, questions: InMemoryQuestionRepository) -> None:
        orchestrator = _orchestrator(questions=questions)
        await orchestrator.backfill_question_metadata()
        calls_after_first = questions.update_calls

        second = await orchestrator.backfill_question_metadata()

        assert second.questions_updated == 0
        assert second.questions_flagged == 0
        assert questions.update_calls == calls_after_first

    def test_plan_keeps_existing_tag_and_polarity(self) -> None:
        question = QuestionRecord(id="q", driver_key="support", driver_tag="support", polarity="POSITIVE")
        assert plan_question_updates(question, {}) == {"driver_key": "manager_support"}


# ---------------------------------------------------------------------------
# Recompute
# ---------------------------------------------------------------------------


class TestRecompute:
    """Run, team and history aggregates."""

    @pytest.mark.asyncio()
    async def test_writes_rounded_aggregates(self, runs: list[SurveyRunRecord]) -> None:
        run_repo = InMemoryRunRepository(runs)
        teams = InMemoryTeamRepository([TeamRecord(id="team-1", member_count=4)])
        history = InMemoryHistoryRepository()

        result = await _orchestrator(runs=run_repo, teams=teams, history=history).recompute_run_metrics()

        assert (result.runs_updated, result.runs_skipped, result.runs_failed) == (2, 1, 0)
        assert (result.team_rows_created, result.team_rows_updated) == (1, 0)
        # Workload mean 5.0 and clarity mean 3.0 blend to 4.0; engagement (8 + 6) / 2.
        assert run_repo.aggregates["run-team"] == {
            "avg_stress_index": 4.0,
            "avg_engagement_score": 7.0,
            "completed_count": 2,
        }
        assert run_repo.aggregates["run-org"]["avg_stress_index"] == 10.0
        assert teams.snapshots["team-1"] == {"stress_index": 4.0, "engagement_score": 7.0, "participation": 50}
        assert history.rows == [
            {
                "team_id": "team-1",
                "period_label": "2024-03-05",
                "stress_index": 4.0,
                "engagement_score": 7.0,
                "participation": 50,
                "tags": ["pulse"],
            }
        ]

    @pytest.mark.asyncio()
    async def test_second_run_is_idempotent(self, runs: list[SurveyRunRecord]) -> None:
        run_repo = InMemoryRunRepository(runs)
        teams = InMemoryTeamRepository([TeamRecord(id="team-1", member_count=4)])
        history = InMemoryHistoryRepository()
        orchestrator = _orchestrator(runs=run_repo, teams=teams, history=history)

        await orchestrator.recompute_run_metrics()
        first_aggregates = {k: dict(v) for k, v in run_repo.aggregates.items()}
        first_history = [dict(row) for row in history.rows]

        second = await orchestrator.recompute_run_metrics()

        assert run_repo.aggregates == first_aggregates
        assert history.rows == first_history
        assert (second.team_rows_created, second.team_rows_updated) == (0, 1)

    @pytest.mark.asyncio()
    async def test_undated_team_run_skips_history(self, template: tuple[QuestionMeta, ...]) -> None:
        undated = SurveyRunRecord(
            id="undated",
            team_id="team-1",
            questions=template,
            responses=(ResponseRecord(None, {"q-workload": 2}),),
        )
        teams = InMemoryTeamRepository([])
        history = InMemoryHistoryRepository()

        result = await _orchestrator(
            runs=InMemoryRunRepository([undated]), teams=teams, history=history
        ).recompute_run_metrics()

        assert result.runs_updated == 1
        assert history.rows == []
        # Unknown team size: every response counts as a member.
        assert teams.snapshots["team-1"]["participation"] == 100

    @pytest.mark.asyncio()
    async def test_failing_run_is_isolated(self, runs: list[SurveyRunRecord]) -> None:
        run_repo = InMemoryRunRepository(runs, failing_run_ids=frozenset({"run-team"}))

        result = await _orchestrator(runs=run_repo).recompute_run_metrics()

        assert result.runs_failed == 1
        assert result.runs_updated == 1
        assert "run-org" in run_repo.aggregates
        assert run_repo.rollbacks == 1

    @pytest.mark.asyncio()
    async def test_failed_run_persists_nothing(self, runs: list[SurveyRunRecord]) -> None:
        run_repo = InMemoryRunRepository(runs)
        teams = InMemoryTeamRepository([TeamRecord(id="team-1", member_count=4)])
        history = InMemoryHistoryRepository(failing_team_ids=frozenset({"team-1"}))

        result = await _orchestrator(runs=run_repo, teams=teams, history=history).recompute_run_metrics()

        assert (result.runs_updated, result.runs_failed, result.team_rows_created) == (1, 1, 0)
        # Aggregates and snapshot were written before the history insert failed.
        assert "run-team" not in run_repo.aggregates
        assert teams.snapshots == {}
        assert history.rows == []
        assert run_repo.aggregates["run-org"]["avg_stress_index"] == 10.0

    @pytest.mark.asyncio()
    async def test_storage_outage_aborts(self, runs: list[SurveyRunRecord]) -> None:
        teams = AsyncMock()
        teams.get_by_id.side_effect = StorageUnavailableError("connection refused")
        run_repo = InMemoryRunRepository(runs)

        with pytest.raises(StorageUnavailableError):
            await _orchestrator(runs=run_repo, teams=teams).recompute_run_metrics()

        assert "run-org" not in run_repo.aggregates


# ---------------------------------------------------------------------------
# Job
# ---------------------------------------------------------------------------


class TestRun:
    @pytest.mark.asyncio()
    async def test_all_phases_summary(self, runs: list[SurveyRunRecord]) -> None:
        questions = InMemoryQuestionRepository([QuestionRecord(id="q", dimension="morale")])
        orchestrator = _orchestrator(
            questions=questions,
            runs=InMemoryRunRepository(runs),
            teams=InMemoryTeamRepository([TeamRecord(id="team-1", member_count=4)]),
        )

        summary = await orchestrator.run()

        assert summary == RecomputeSummary(
            questions_updated=1,
            questions_flagged=1,
            runs_updated=2,
            runs_skipped=1,
            runs_failed=0,
            team_rows_updated=0,
            team_rows_created=1,
        )

    @pytest.mark.asyncio()
    async def test_backfill_only_does_not_touch_runs(self) -> None:
        question_repo = AsyncMock()
        question_repo.list_all.return_value = []
        run_repo = AsyncMock()
        orchestrator = RecomputeOrchestrator(question_repo, run_repo, AsyncMock(), AsyncMock())

        summary = await orchestrator.run(["backfill"])

        assert summary == RecomputeSummary()
        run_repo.list_for_recompute.assert_not_awaited()

    @pytest.mark.asyncio()
    async def test_unknown_phase_rejected(self) -> None:
        with pytest.raises(ValueError, match="rebuild"):
            await _orchestrator().run(["rebuild"])


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class TestHelpers:
    @pytest.mark.parametrize(
        ("responses", "members", "expected"),
        [(2, 4, 50), (5, 3, 100), (1, 3, 33), (1, 8, 13), (3, None, 100), (3, 0, 3)],
    )
    def test_compute_participation(self, responses: int, members: int | None, expected: int) -> None:
        assert compute_participation(responses, members) == expected

    def test_period_label_uses_utc_date(self) -> None:
        moscow = timezone(timedelta(hours=3))
        run = SurveyRunRecord(id="r", run_date=datetime(2024, 3, 5, 1, tzinfo=moscow))
        assert period_label_for(run) == "2024-03-04"

    def test_period_label_falls_back_to_launch(self) -> None:
        run = SurveyRunRecord(id="r", launched_at=datetime(2024, 3, 7, 12))
        assert period_label_for(run) == "2024-03-07"

    def test_period_label_absent_without_dates(self) -> None:
        assert period_label_for(SurveyRunRecord(id="r")) is None
