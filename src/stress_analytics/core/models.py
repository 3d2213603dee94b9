"""SQLAlchemy ORM models for the survey store read and written by the engine.

The tables are owned by the survey platform; this module only maps the
columns the analytics engine reads or the recompute job writes.

Domain model:
  SurveyTemplate      - a reusable set of questions
  SurveyQuestion      - one question with scale and driver metadata
  Team                - a team with its current stress snapshot
  SurveyRun           - one launch of a template, with stored aggregates
  SurveyResponse      - one respondent's answers to a run
  TeamMetricsHistory  - per-period team metrics, one row per (team, period)
"""

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


# JSONB on PostgreSQL, plain JSON on other backends.
JSONDocument = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    """Declarative base for survey store models."""


class SurveyTemplate(Base):
    """A reusable survey definition.

    Table: survey_templates
    """

    __tablename__ = "survey_templates"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)

    questions: Mapped[list["SurveyQuestion"]] = relationship(
        back_populates="template",
        order_by="SurveyQuestion.order",
    )


class SurveyQuestion(Base):
    """A single survey question.

    ``driver_key``, ``driver_tag`` and ``polarity`` are maintained by the
    backfill phase of the recompute job; ``needs_review`` marks questions
    whose driver could not be resolved.

    Table: survey_questions
    """

    __tablename__ = "survey_questions"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    template_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("survey_templates.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    text: Mapped[str] = mapped_column(Text, nullable=False)
    type: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        comment="scale-1-5 | scale-0-10 | single-choice | multi-choice | text | SCALE (legacy)",
    )
    scale_min: Mapped[float | None] = mapped_column(Float, nullable=True)
    scale_max: Mapped[float | None] = mapped_column(Float, nullable=True)
    driver_key: Mapped[str | None] = mapped_column(String(64), nullable=True)
    driver_tag: Mapped[str | None] = mapped_column(String(64), nullable=True)
    dimension: Mapped[str | None] = mapped_column(String(64), nullable=True)
    polarity: Mapped[str | None] = mapped_column(
        String(16),
        nullable=True,
        comment="POSITIVE | NEGATIVE; NULL is read as NEGATIVE",
    )
    needs_review: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    template: Mapped[SurveyTemplate] = relationship(back_populates="questions")


class Team(Base):
    """A team and its latest recomputed stress snapshot.

    Table: teams
    """

    __tablename__ = "teams"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    org_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    member_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    stress_index: Mapped[float | None] = mapped_column(Float, nullable=True)
    engagement_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    participation: Mapped[int | None] = mapped_column(
        Integer,
        nullable=True,
        comment="Whole percentage 0-100 of members who responded to the latest run",
    )


class SurveyRun(Base):
    """One launch of a survey template.

    ``avg_stress_index``, ``avg_engagement_score`` and ``completed_count`` are
    written by the recompute job with two decimals.

    Table: survey_runs
    """

    __tablename__ = "survey_runs"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    org_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    team_id: Mapped[str | None] = mapped_column(
        String(64),
        ForeignKey("teams.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    template_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("survey_templates.id"),
        nullable=False,
    )
    run_type: Mapped[str | None] = mapped_column(String(32), nullable=True)
    run_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    launched_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    tags: Mapped[list] = mapped_column(JSONDocument, nullable=False, default=list)
    avg_stress_index: Mapped[float | None] = mapped_column(Float, nullable=True)
    avg_engagement_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    completed_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    template: Mapped[SurveyTemplate] = relationship()
    team: Mapped[Team | None] = relationship()
    responses: Mapped[list["SurveyResponse"]] = relationship(back_populates="run")


class SurveyResponse(Base):
    """One respondent's answers to a run.

    ``answers`` holds either a ``{question_id: answer}`` object or a list of
    ``{questionId, ...}`` records, depending on the client that submitted it.

    Table: survey_responses
    """

    __tablename__ = "survey_responses"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    run_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("survey_runs.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    member_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    answers: Mapped[Any] = mapped_column(JSONDocument, nullable=False)
    submitted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        index=True,
    )

    run: Mapped[SurveyRun] = relationship(back_populates="responses")


class TeamMetricsHistory(Base):
    """Team metrics for one reporting period.

    Table: team_metrics_history
    """

    __tablename__ = "team_metrics_history"
    __table_args__ = (UniqueConstraint("team_id", "period_label", name="uq_team_metrics_period"),)

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    team_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("teams.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    period_label: Mapped[str] = mapped_column(
        String(10),
        nullable=False,
        comment="ISO date (YYYY-MM-DD) of the run the row was computed from",
    )
    stress_index: Mapped[float] = mapped_column(Float, nullable=False)
    engagement_score: Mapped[float] = mapped_column(Float, nullable=False)
    participation: Mapped[int] = mapped_column(Integer, nullable=False)
    tags: Mapped[list] = mapped_column(JSONDocument, nullable=False, default=list)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
