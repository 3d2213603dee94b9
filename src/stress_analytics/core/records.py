"""Read models exchanged between services and repositories.

Repositories translate ORM rows into these frozen records so the services
never touch SQLAlchemy objects and can be tested against in-memory fakes.
"""

from dataclasses import dataclass
from datetime import datetime

from stress_analytics.core.questions import QuestionMeta
from stress_analytics.core.stats import ResponseRecord


@dataclass(frozen=True)
class AnalyticsScope:
    """Population an analytics query covers.

    Attributes:
        org_id: Organization the data belongs to; always required.
        team_id: Restrict to one team when set.
        member_id: Restrict to one member's own responses when set.
    """

    org_id: str
    team_id: str | None = None
    member_id: str | None = None


@dataclass(frozen=True)
class QuestionRecord:
    """Stored question with the metadata the backfill phase maintains."""

    id: str
    text: str | None = None
    type: str | None = None
    driver_key: str | None = None
    driver_tag: str | None = None
    dimension: str | None = None
    polarity: str | None = None
    needs_review: bool = False


@dataclass(frozen=True)
class SurveyRunRecord:
    """A survey run with everything needed to recompute its aggregates.

    Attributes:
        id: Run identifier.
        team_id: Owning team, or None for organization-wide runs.
        run_type: Cadence tag, e.g. 'daily'.
        run_date: Intended run date.
        launched_at: Launch timestamp.
        tags: Free-form tags copied onto new history rows.
        questions: Template questions of the run.
        responses: Submitted responses.
    """

    id: str
    team_id: str | None = None
    run_type: str | None = None
    run_date: datetime | None = None
    launched_at: datetime | None = None
    tags: tuple[str, ...] = ()
    questions: tuple[QuestionMeta, ...] = ()
    responses: tuple[ResponseRecord, ...] = ()


@dataclass(frozen=True)
class TeamRecord:
    id: str
    member_count: int | None = None
