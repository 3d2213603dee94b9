"""sa: stress analytics columns and team metrics history.

Adds the columns the recompute job maintains on the survey platform tables
and creates team_metrics_history.

Revision ID: sa_001_stress_metrics
Revises:
Create Date: 2024-03-01 00:00:00.000000
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "sa_001_stress_metrics"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

_QUESTION_COLUMNS: tuple[tuple[str, sa.types.TypeEngine], ...] = (
    ("driver_key", sa.String(64)),
    ("driver_tag", sa.String(64)),
    ("polarity", sa.String(16)),
)

_RUN_COLUMNS: tuple[tuple[str, sa.types.TypeEngine], ...] = (
    ("avg_stress_index", sa.Float()),
    ("avg_engagement_score", sa.Float()),
)

_TEAM_COLUMNS: tuple[tuple[str, sa.types.TypeEngine], ...] = (
    ("stress_index", sa.Float()),
    ("engagement_score", sa.Float()),
    ("participation", sa.Integer()),
)


def upgrade() -> None:
    """Add analytics columns and create team_metrics_history."""
    # survey_questions
    for name, type_ in _QUESTION_COLUMNS:
        op.add_column("survey_questions", sa.Column(name, type_, nullable=True))
    op.add_column(
        "survey_questions",
        sa.Column("needs_review", sa.Boolean, nullable=False, server_default=sa.text("false")),
    )

    # survey_runs
    for name, type_ in _RUN_COLUMNS:
        op.add_column("survey_runs", sa.Column(name, type_, nullable=True))
    op.add_column(
        "survey_runs",
        sa.Column("completed_count", sa.Integer, nullable=False, server_default="0"),
    )

    # teams
    for name, type_ in _TEAM_COLUMNS:
        op.add_column("teams", sa.Column(name, type_, nullable=True))

    # team_metrics_history
    op.create_table(
        "team_metrics_history",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "team_id",
            sa.String(64),
            sa.ForeignKey("teams.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("period_label", sa.String(10), nullable=False),
        sa.Column("stress_index", sa.Float, nullable=False),
        sa.Column("engagement_score", sa.Float, nullable=False),
        sa.Column("participation", sa.Integer, nullable=False),
        sa.Column("tags", postgresql.JSONB, nullable=False, server_default="[]"),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.UniqueConstraint("team_id", "period_label", name="uq_team_metrics_period"),
    )
    op.create_index("ix_team_metrics_history_team_id", "team_metrics_history", ["team_id"])
    op.create_index("ix_survey_responses_submitted_at", "survey_responses", ["submitted_at"])


def downgrade() -> None:
    """Drop team_metrics_history and the analytics columns."""
    op.drop_index("ix_survey_responses_submitted_at", table_name="survey_responses")
    op.execute("DROP TABLE IF EXISTS team_metrics_history CASCADE")
    for name, _ in _TEAM_COLUMNS:
        op.drop_column("teams", name)
    for name in [name for name, _ in _RUN_COLUMNS] + ["completed_count"]:
        op.drop_column("survey_runs", name)
    for name in [name for name, _ in _QUESTION_COLUMNS] + ["needs_review"]:
        op.drop_column("survey_questions", name)
