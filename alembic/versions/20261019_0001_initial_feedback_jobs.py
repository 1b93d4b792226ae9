"""Initial schema: submissions, feedback jobs and feedback items."""

from __future__ import annotations

import sqlalchemy as sa

from alembic import op

revision = "20261019_0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "submissions",
        sa.Column("subject_id", sa.String(), nullable=False),
        sa.Column("group_key", sa.String(), nullable=True),
        sa.Column("language", sa.String(), nullable=False, server_default="unknown"),
        sa.Column("code_text", sa.Text(), nullable=False),
        sa.Column("attempt_no", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("subject_id"),
    )
    op.create_index("ix_submissions_group_key", "submissions", ["group_key"], unique=False)

    op.create_table(
        "feedback_jobs",
        sa.Column("job_id", sa.String(), nullable=False),
        sa.Column("subject_id", sa.String(), nullable=False),
        sa.Column("group_key", sa.String(), nullable=True),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("max_attempts", sa.Integer(), nullable=False, server_default=sa.text("3")),
        sa.Column("not_before", sa.DateTime(timezone=True), nullable=True),
        sa.Column("locked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("lock_owner", sa.String(), nullable=True),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["subject_id"], ["submissions.subject_id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("job_id"),
        sa.UniqueConstraint("subject_id", name="uq_feedback_jobs_subject"),
    )
    op.create_index("ix_feedback_jobs_status", "feedback_jobs", ["status"], unique=False)
    op.create_index("ix_feedback_jobs_group_key", "feedback_jobs", ["group_key"], unique=False)
    op.create_index("ix_feedback_jobs_created_at", "feedback_jobs", ["created_at"], unique=False)

    op.create_table(
        "feedback_items",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("subject_id", sa.String(), nullable=False),
        sa.Column("source", sa.String(), nullable=False),
        sa.Column("category", sa.String(), nullable=False),
        sa.Column("severity", sa.String(), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("suggestion", sa.Text(), nullable=True),
        sa.Column("tags_json", sa.Text(), nullable=True),
        sa.Column("score_hint", sa.Float(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["subject_id"], ["submissions.subject_id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "subject_id",
            "source",
            "category",
            "severity",
            "message",
            name="uq_feedback_items_identity",
        ),
    )
    op.create_index(
        "idx_feedback_items_subject_time",
        "feedback_items",
        ["subject_id", "created_at"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index("idx_feedback_items_subject_time", table_name="feedback_items")
    op.drop_table("feedback_items")
    op.drop_index("ix_feedback_jobs_created_at", table_name="feedback_jobs")
    op.drop_index("ix_feedback_jobs_group_key", table_name="feedback_jobs")
    op.drop_index("ix_feedback_jobs_status", table_name="feedback_jobs")
    op.drop_table("feedback_jobs")
    op.drop_index("ix_submissions_group_key", table_name="submissions")
    op.drop_table("submissions")
