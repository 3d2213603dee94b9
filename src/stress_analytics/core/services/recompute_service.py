"""Offline recompute of stored stress metrics.

The job runs in two phases:
    1. backfill  - normalise driver metadata on stored questions and flag
                   questions whose driver cannot be resolved for review
    2. recompute - re-score every survey run from its raw responses and
                   upsert run averages, team snapshots and team history rows

Both phases are idempotent: running the job twice on unchanged data writes
identical values and creates no additional history rows. A failing run is
rolled back to its savepoint, logged and skipped; a storage outage aborts the
whole job.

All database access goes through repository interfaces. No SQLAlchemy
imports belong here.
"""

from collections.abc import Iterable, Mapping
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any

from stress_analytics.core.drivers import DriverKey, resolve_driver_key
from stress_analytics.core.interfaces import (
    IQuestionRepository,
    ISurveyRunRepository,
    ITeamMetricsHistoryRepository,
    ITeamRepository,
)
from stress_analytics.core.questions import QuestionMeta
from stress_analytics.core.records import QuestionRecord, SurveyRunRecord
from stress_analytics.core.scoring import Polarity, round_score
from stress_analytics.core.stats import compute_run_aggregate
from stress_analytics.errors import RunRecomputeError, StorageUnavailableError
from stress_analytics.observability import get_logger

logger = get_logger(__name__)

PHASE_BACKFILL: str = "backfill"
PHASE_RECOMPUTE: str = "recompute"
ALL_PHASES: tuple[str, ...] = (PHASE_BACKFILL, PHASE_RECOMPUTE)

# Stored aggregates keep two decimals.
_STORED_DIGITS: int = 2


@dataclass(frozen=True)
class BackfillResult:
    questions_updated: int = 0
    questions_flagged: int = 0


@dataclass(frozen=True)
class RunRecomputeResult:
    runs_updated: int = 0
    runs_skipped: int = 0
    runs_failed: int = 0
    team_rows_updated: int = 0
    team_rows_created: int = 0


@dataclass(frozen=True)
class RecomputeSummary:
    """Totals reported at the end of a recompute job.

    Attributes:
        questions_updated: Questions whose metadata changed.
        questions_flagged: Questions newly flagged for review.
        runs_updated: Runs whose aggregates were written.
        runs_skipped: Runs without responses or template questions.
        runs_failed: Runs that raised and were skipped.
        team_rows_updated: Existing team history rows updated in place.
        team_rows_created: Team history rows inserted.
    """

    questions_updated: int = 0
    questions_flagged: int = 0
    runs_updated: int = 0
    runs_skipped: int = 0
    runs_failed: int = 0
    team_rows_updated: int = 0
    team_rows_created: int = 0


@dataclass(frozen=True)
class _RunOutcome:
    history_created: bool = False
    history_updated: bool = False


def compute_participation(response_count: int, member_count: int | None) -> int:
    """Return participation as a whole percentage capped at 100.

    An unknown member count is treated as the response count. A team with
    zero members reports the raw response count instead of a percentage.
    """
    denominator = response_count if member_count is None else member_count
    if not denominator:
        return response_count
    return min(100, int(round_score(response_count / denominator * 100, 0)))


def period_label_for(run: SurveyRunRecord) -> str | None:
    """Return the ISO (UTC) date labelling a run's history row, or None if undated."""
    moment: datetime | None = run.run_date or run.launched_at
    if moment is None:
        return None
    if moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc)
    return moment.date().isoformat()


def plan_question_updates(
    question: QuestionRecord,
    known_questions: Mapping[str, QuestionMeta],
) -> dict[str, Any]:
    """Compute the metadata changes the backfill phase would apply to a question.

    A question whose trimmed text matches a known question takes that
    question's driver and polarity and leaves review. Otherwise the driver is
    resolved from the question's own metadata, missing tag and polarity are
    filled in, and unresolvable questions are flagged for review.

    Args:
        question: Stored question.
        known_questions: Canonical metadata keyed by question text.

    Returns:
        Mapping of changed fields; empty when the question is already up to date.
    """
    target: dict[str, Any] = {}
    known = known_questions.get((question.text or "").strip())

    if known is not None:
        target["driver_key"] = known.driver_key
        target["driver_tag"] = known.driver_tag or known.driver_key
        target["polarity"] = known.polarity
        target["needs_review"] = False
    else:
        derived = resolve_driver_key(question).value
        target["driver_key"] = derived
        if not question.driver_tag:
            target["driver_tag"] = derived
        if not question.polarity:
            target["polarity"] = Polarity.NEGATIVE.value
        if derived == DriverKey.UNKNOWN.value:
            target["needs_review"] = True

    return {field: value for field, value in target.items() if getattr(question, field) != value}


class RecomputeOrchestrator:
    """Runs the backfill and recompute phases over injected repositories.

    Runs are processed sequentially on one storage session, each inside its
    own savepoint.
    """

    def __init__(
        self,
        question_repository: IQuestionRepository,
        run_repository: ISurveyRunRepository,
        team_repository: ITeamRepository,
        history_repository: ITeamMetricsHistoryRepository,
        known_questions: Mapping[str, QuestionMeta] | None = None,
    ) -> None:
        """Initialise the orchestrator with repository dependencies.

        Args:
            question_repository: Question metadata store.
            run_repository: Survey run store.
            team_repository: Team snapshot store.
            history_repository: Team metrics history store.
            known_questions: Optional canonical metadata keyed by question
                text, used to backfill questions from a known question bank.
        """
        self._questions = question_repository
        self._runs = run_repository
        self._teams = team_repository
        self._history = history_repository
        self._known_questions = {
            text.strip(): meta for text, meta in (known_questions or {}).items()
        }

    async def backfill_question_metadata(self) -> BackfillResult:
        """Normalise driver metadata on every stored question.

        Returns:
            BackfillResult with the number of updated and newly flagged questions.
        """
        updated = 0
        flagged = 0
        for question in await self._questions.list_all():
            updates = plan_question_updates(question, self._known_questions)
            if not updates:
                continue
            await self._questions.update_metadata(question.id, updates)
            updated += 1
            if updates.get("needs_review") is True:
                flagged += 1
                logger.warning(
                    "Question flagged for review",
                    question_id=question.id,
                    driver_key=question.driver_key,
                    driver_tag=question.driver_tag,
                    dimension=question.dimension,
                )

        logger.info(
            "Question metadata backfilled",
            questions_updated=updated,
            questions_flagged=flagged,
        )
        return BackfillResult(questions_updated=updated, questions_flagged=flagged)

    async def recompute_run_metrics(self) -> RunRecomputeResult:
        """Re-score every run and upsert run, team and history aggregates.

        Returns:
            RunRecomputeResult with per-outcome counts.

        Raises:
            StorageUnavailableError: If the store becomes unreachable.
        """
        updated = skipped = failed = history_updated = history_created = 0

        for run in await self._runs.list_for_recompute():
            if not run.responses or not run.questions:
                skipped += 1
                logger.debug("Run skipped", run_id=run.id, responses=len(run.responses))
                continue
            try:
                outcome = await self._recompute_run(run)
            except RunRecomputeError as exc:
                failed += 1
                logger.exception("Run recompute failed", run_id=exc.run_id)
                continue

            updated += 1
            history_updated += int(outcome.history_updated)
            history_created += int(outcome.history_created)

        logger.info(
            "Run metrics recomputed",
            runs_updated=updated,
            runs_skipped=skipped,
            runs_failed=failed,
            team_rows_updated=history_updated,
            team_rows_created=history_created,
        )
        return RunRecomputeResult(
            runs_updated=updated,
            runs_skipped=skipped,
            runs_failed=failed,
            team_rows_updated=history_updated,
            team_rows_created=history_created,
        )

    async def _recompute_run(self, run: SurveyRunRecord) -> _RunOutcome:
        # A failed run persists nothing and leaves the session usable.
        try:
            async with self._runs.savepoint():
                return await self._write_run(run)
        except StorageUnavailableError:
            raise
        except Exception as exc:
            raise RunRecomputeError(run.id, str(exc)) from exc

    async def _write_run(self, run: SurveyRunRecord) -> _RunOutcome:
        aggregate = compute_run_aggregate(run.responses, run.questions)
        stress_index = round_score(aggregate.stress_index, _STORED_DIGITS)
        engagement_score = round_score(aggregate.engagement_score, _STORED_DIGITS)

        await self._runs.update_aggregates(
            run.id,
            avg_stress_index=stress_index,
            avg_engagement_score=engagement_score,
            completed_count=aggregate.response_count,
        )
        logger.debug(
            "Run aggregates written",
            run_id=run.id,
            stress_index=stress_index,
            engagement_score=engagement_score,
            answer_count=aggregate.answer_count,
        )

        if run.team_id is None:
            return _RunOutcome()

        team = await self._teams.get_by_id(run.team_id)
        participation = compute_participation(
            aggregate.response_count,
            team.member_count if team is not None else None,
        )
        await self._teams.update_snapshot(
            run.team_id,
            stress_index=stress_index,
            engagement_score=engagement_score,
            participation=participation,
        )

        period_label = period_label_for(run)
        if period_label is None:
            logger.warning("Run has no date, history not written", run_id=run.id, team_id=run.team_id)
            return _RunOutcome()

        rows = await self._history.update_for_period(
            run.team_id,
            period_label,
            stress_index=stress_index,
            engagement_score=engagement_score,
            participation=participation,
        )
        if rows:
            return _RunOutcome(history_updated=True)

        await self._history.create(
            run.team_id,
            period_label,
            stress_index=stress_index,
            engagement_score=engagement_score,
            participation=participation,
            tags=list(run.tags),
        )
        return _RunOutcome(history_created=True)

    async def run(self, phases: Iterable[str] = ALL_PHASES) -> RecomputeSummary:
        """Execute the requested phases in order.

        Args:
            phases: Any of 'backfill' and 'recompute'; both by default.

        Returns:
            RecomputeSummary combining the phase results.

        Raises:
            ValueError: If an unknown phase is requested.
            StorageUnavailableError: If the store becomes unreachable.
        """
        requested = set(phases)
        unknown = requested - set(ALL_PHASES)
        if unknown:
            raise ValueError(f"Unknown recompute phase(s): {', '.join(sorted(unknown))}")

        logger.info("Recompute started", phases=sorted(requested))
        backfill = BackfillResult()
        recompute = RunRecomputeResult()
        if PHASE_BACKFILL in requested:
            backfill = await self.backfill_question_metadata()
        if PHASE_RECOMPUTE in requested:
            recompute = await self.recompute_run_metrics()

        summary = RecomputeSummary(
            questions_updated=backfill.questions_updated,
            questions_flagged=backfill.questions_flagged,
            runs_updated=recompute.runs_updated,
            runs_skipped=recompute.runs_skipped,
            runs_failed=recompute.runs_failed,
            team_rows_updated=recompute.team_rows_updated,
            team_rows_created=recompute.team_rows_created,
        )
        logger.info("Recompute finished", **asdict(summary))
        return summary
