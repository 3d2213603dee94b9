"""Command-line entry point for the nightly recompute job.

Usage:
    stress-analytics-recompute [--phase backfill|recompute|all]
                               [--known-questions questions.json]

``--known-questions`` points at a JSON list of question-bank entries
(``text``/``textEn``/``textRu``, ``driverKey``, ``driverTag``, ``polarity``)
whose metadata is copied onto stored questions with matching text.

Exit codes: 0 on success (individual run failures are reported in the
summary), 1 when the store is unreachable or the job aborts.
"""

import argparse
import asyncio
import json
import sys
from collections.abc import Sequence
from dataclasses import asdict
from pathlib import Path

from stress_analytics.adapters.database import close_database, commit_session, init_database
from stress_analytics.adapters.repositories import (
    QuestionRepository,
    SurveyRunRepository,
    TeamMetricsHistoryRepository,
    TeamRepository,
)
from stress_analytics.core.questions import QuestionMeta
from stress_analytics.core.services.recompute_service import (
    ALL_PHASES,
    PHASE_BACKFILL,
    PHASE_RECOMPUTE,
    RecomputeOrchestrator,
    RecomputeSummary,
)
from stress_analytics.errors import StorageUnavailableError
from stress_analytics.observability import configure_logging, get_logger
from stress_analytics.settings import Settings

logger = get_logger(__name__)

_PHASE_CHOICES: dict[str, tuple[str, ...]] = {
    PHASE_BACKFILL: (PHASE_BACKFILL,),
    PHASE_RECOMPUTE: (PHASE_RECOMPUTE,),
    "all": ALL_PHASES,
}


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="stress-analytics-recompute",
        description="Backfill question driver metadata and recompute stored stress metrics.",
    )
    parser.add_argument(
        "--phase",
        choices=sorted(_PHASE_CHOICES),
        default="all",
        help="Which phase to run (default: all).",
    )
    parser.add_argument(
        "--known-questions",
        type=Path,
        default=None,
        help="JSON file with canonical question metadata keyed by question text.",
    )
    return parser.parse_args(argv)


def load_known_questions(path: Path) -> dict[str, QuestionMeta]:
    """Read a question-bank JSON file into a text -> QuestionMeta map.

    Every non-empty text variant of an entry maps to the same metadata.

    Raises:
        ValueError: If the file is not a JSON list of objects.
    """
    entries = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(entries, list):
        raise ValueError(f"{path}: expected a JSON list of questions")

    known: dict[str, QuestionMeta] = {}
    for index, entry in enumerate(entries):
        if not isinstance(entry, dict):
            raise ValueError(f"{path}: entry {index} is not an object")
        meta = QuestionMeta(
            id=str(entry.get("id") or index),
            driver_key=entry.get("driverKey"),
            driver_tag=entry.get("driverTag"),
            polarity=entry.get("polarity"),
        )
        for field in ("text", "textEn", "textRu"):
            text = str(entry.get(field) or "").strip()
            if text:
                known[text] = meta
    return known


def format_summary(summary: RecomputeSummary) -> str:
    return "\n".join(f"{name}: {value}" for name, value in asdict(summary).items())


async def run_recompute(
    settings: Settings,
    phases: Sequence[str],
    known_questions: dict[str, QuestionMeta] | None = None,
) -> RecomputeSummary:
    """Run the orchestrator on one session, committing only when the job completes."""
    session_factory = init_database(settings)
    try:
        async with session_factory() as session:
            orchestrator = RecomputeOrchestrator(
                question_repository=QuestionRepository(session),
                run_repository=SurveyRunRepository(session),
                team_repository=TeamRepository(session),
                history_repository=TeamMetricsHistoryRepository(session),
                known_questions=known_questions,
            )
            try:
                summary = await orchestrator.run(phases)
            except Exception:
                await session.rollback()
                raise
            await commit_session(session)
            return summary
    finally:
        await close_database()


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(argv)
    settings = Settings()
    configure_logging(settings.log_level, json_logs=settings.log_json)

    known_questions = None
    if args.known_questions is not None:
        try:
            known_questions = load_known_questions(args.known_questions)
        except (OSError, ValueError) as exc:
            logger.error("Cannot load known questions", path=str(args.known_questions), error=str(exc))
            return 1

    try:
        summary = asyncio.run(run_recompute(settings, _PHASE_CHOICES[args.phase], known_questions))
    except StorageUnavailableError as exc:
        logger.error("Recompute aborted, storage unavailable", error=str(exc))
        return 1

    print(format_summary(summary))
    return 0


if __name__ == "__main__":
    sys.exit(main())
