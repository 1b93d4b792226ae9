"""SQLModel ORM tables for the feedback job store."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Index, Text, UniqueConstraint
from sqlmodel import Field, SQLModel


class Submission(SQLModel, table=True):
    __tablename__ = "submissions"  # type: ignore[bad-override]

    subject_id: str = Field(primary_key=True)
    group_key: str | None = Field(default=None, index=True)
    language: str = Field(default="unknown")
    code_text: str = Field(sa_column=Column(Text, nullable=False))
    attempt_no: int = Field(default=1)
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class FeedbackJob(SQLModel, table=True):
    __tablename__ = "feedback_jobs"  # type: ignore[bad-override]
    __table_args__ = (
        UniqueConstraint("subject_id", name="uq_feedback_jobs_subject"),
        Index("idx_feedback_jobs_claim", "status", "not_before", "locked_at", "created_at"),
    )

    job_id: str = Field(primary_key=True)
    subject_id: str = Field(
        sa_column=Column(
            ForeignKey("submissions.subject_id", ondelete="CASCADE"),
            nullable=False,
        ),
    )
    group_key: str | None = Field(default=None, index=True)
    status: str = Field(index=True)
    attempts: int = Field(default=0)
    max_attempts: int = Field(default=3)
    not_before: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True)))
    locked_at: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True)))
    lock_owner: str | None = None
    last_error: str | None = Field(default=None, sa_column=Column(Text))
    created_at: datetime = Field(
        sa_column=Column(DateTime(timezone=True), nullable=False, index=True),
    )
    updated_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class FeedbackItemRow(SQLModel, table=True):
    __tablename__ = "feedback_items"  # type: ignore[bad-override]
    __table_args__ = (
        UniqueConstraint(
            "subject_id",
            "source",
            "category",
            "severity",
            "message",
            name="uq_feedback_items_identity",
        ),
        Index("idx_feedback_items_subject_time", "subject_id", "created_at"),
    )

    id: int | None = Field(default=None, primary_key=True)
    subject_id: str = Field(
        sa_column=Column(
            ForeignKey("submissions.subject_id", ondelete="CASCADE"),
            nullable=False,
        ),
    )
    source: str
    category: str
    severity: str
    message: str = Field(sa_column=Column(Text, nullable=False))
    suggestion: str | None = Field(default=None, sa_column=Column(Text))
    tags_json: str | None = Field(default=None, sa_column=Column(Text))
    score_hint: float | None = None
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
