"""Add composite index backing the job claim query."""

from __future__ import annotations

from alembic import op

revision = "20261019_0002"
down_revision = "20261019_0001"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_index(
        "idx_feedback_jobs_claim",
        "feedback_jobs",
        ["status", "not_before", "locked_at", "created_at"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index("idx_feedback_jobs_claim", table_name="feedback_jobs")
