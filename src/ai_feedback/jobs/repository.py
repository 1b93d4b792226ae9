"""Persistent job queue and result store backed by SQLModel + SQLite."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Sequence
from datetime import datetime, timedelta
from pathlib import Path
from uuid import uuid4

from sqlalchemy import and_, or_
from sqlalchemy import select as sa_select
from sqlalchemy import update as sa_update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.sql.elements import ColumnElement
from sqlmodel import Session, col, select

from ai_feedback.jobs.models import (
    TERMINAL_JOB_STATUSES,
    FeedbackItem,
    FeedbackJobView,
    FeedbackSeverity,
    FeedbackSource,
    FeedbackType,
    JobStatus,
    StoredFeedbackItem,
    SubjectContent,
    SubmissionCreate,
)
from ai_feedback.storage.alembic_runner import upgrade_head
from ai_feedback.storage.common import (
    build_sqlite_engine,
    optional_utc,
    to_db_datetime,
    to_utc_aware_datetime,
    utc_now,
)
from ai_feedback.storage.sqlmodel_models import FeedbackItemRow, FeedbackJob, Submission

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_LOCK_TTL_SECONDS = 300


class FeedbackRepository:
    """Queue persistence facade for feedback jobs, subjects and result items."""

    def __init__(self, db_path: Path, *, sqlite_busy_timeout_ms: int = 5_000) -> None:
        self.db_path = db_path
        self.engine = build_sqlite_engine(db_path=db_path, busy_timeout_ms=sqlite_busy_timeout_ms)

    def close(self) -> None:
        """Close underlying DB resources."""

        self.engine.dispose()

    def init_schema(self) -> None:
        """Run schema migrations."""

        upgrade_head(self.db_path)

    def add_submission(self, payload: SubmissionCreate) -> SubjectContent:
        """Store one subject to be analyzed."""

        subject_id = payload.subject_id or str(uuid4())
        with Session(self.engine) as session:
            row = Submission(
                subject_id=subject_id,
                group_key=payload.group_key,
                language=payload.language,
                code_text=payload.code_text,
                attempt_no=payload.attempt_no,
                created_at=to_db_datetime(utc_now()),
            )
            session.add(row)
            session.commit()
            session.refresh(row)
            return _to_subject(row)

    def get_subject(self, subject_id: str) -> SubjectContent | None:
        with Session(self.engine) as session:
            row = session.exec(
                select(Submission).where(Submission.subject_id == subject_id),
            ).one_or_none()
            return _to_subject(row) if row is not None else None

    def enqueue_job(
        self,
        *,
        subject_id: str,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ) -> tuple[FeedbackJobView, bool]:
        """Create the job for a subject; return the existing one if already queued.

        The boolean is True when this call created the job.
        """

        subject = self.get_subject(subject_id)
        if subject is None:
            raise RuntimeError(f"Subject not found: {subject_id}")

        now = to_db_datetime(utc_now())
        with Session(self.engine) as session:
            row = FeedbackJob(
                job_id=str(uuid4()),
                subject_id=subject_id,
                group_key=subject.group_key,
                status=JobStatus.PENDING.value,
                attempts=0,
                max_attempts=max_attempts,
                created_at=now,
                updated_at=now,
            )
            session.add(row)
            try:
                session.commit()
            except IntegrityError:
                session.rollback()
                logger.debug("Job for subject %s already exists", subject_id)
            else:
                session.refresh(row)
                return _to_job_view(row), True

        existing = self.get_job_by_subject(subject_id)
        if existing is None:
            raise RuntimeError(f"Job for subject {subject_id} vanished after conflict")
        return existing, False

    def get_job(self, job_id: str) -> FeedbackJobView | None:
        with Session(self.engine) as session:
            row = session.exec(
                select(FeedbackJob).where(FeedbackJob.job_id == job_id),
            ).one_or_none()
            return _to_job_view(row) if row is not None else None

    def get_job_by_subject(self, subject_id: str) -> FeedbackJobView | None:
        with Session(self.engine) as session:
            row = session.exec(
                select(FeedbackJob).where(FeedbackJob.subject_id == subject_id),
            ).one_or_none()
            return _to_job_view(row) if row is not None else None

    def claim_next_job(
        self,
        *,
        lock_owner: str,
        now: datetime | None = None,
        lock_ttl_seconds: int = DEFAULT_LOCK_TTL_SECONDS,
    ) -> FeedbackJobView | None:
        """Atomically claim the oldest claimable job for `lock_owner`.

        Candidate selection and the conditional write run as one UPDATE
        statement, so SQLite takes the write lock before the predicate is
        evaluated and concurrent claimers serialize on it. `lock_owner` must be
        unique per claim; it identifies the claimed row afterwards.
        """

        claimed_at = now or utc_now()
        predicate = _claimable_predicate(now=claimed_at, lock_ttl_seconds=lock_ttl_seconds)
        candidate = (
            sa_select(col(FeedbackJob.job_id))
            .where(predicate)
            .order_by(col(FeedbackJob.created_at).asc(), col(FeedbackJob.job_id).asc())
            .limit(1)
            .correlate(None)
            .scalar_subquery()
        )
        with Session(self.engine) as session:
            result = session.exec(
                sa_update(FeedbackJob)
                .where(col(FeedbackJob.job_id) == candidate, predicate)
                .values(
                    status=JobStatus.RUNNING.value,
                    locked_at=to_db_datetime(claimed_at),
                    lock_owner=lock_owner,
                    updated_at=to_db_datetime(claimed_at),
                )
                .execution_options(synchronize_session=False),
            )
            if result.rowcount != 1:
                session.rollback()
                return None

            claimed = session.exec(
                select(FeedbackJob).where(FeedbackJob.lock_owner == lock_owner),
            ).one()
            session.commit()
            return _to_job_view(claimed)

    def complete_job(self, *, job_id: str, lock_owner: str) -> bool:
        """Mark a claimed job as succeeded if the claim is still held."""

        now = to_db_datetime(utc_now())
        with Session(self.engine) as session:
            result = session.exec(
                sa_update(FeedbackJob)
                .where(
                    col(FeedbackJob.job_id) == job_id,
                    col(FeedbackJob.lock_owner) == lock_owner,
                    col(FeedbackJob.status) == JobStatus.RUNNING.value,
                )
                .values(
                    status=JobStatus.SUCCEEDED.value,
                    locked_at=None,
                    lock_owner=None,
                    not_before=None,
                    last_error=None,
                    updated_at=now,
                ),
            )
            if result.rowcount != 1:
                session.rollback()
                return False
            session.commit()
            return True

    def fail_job(  # noqa: PLR0913
        self,
        *,
        job_id: str,
        status: JobStatus,
        attempts: int,
        not_before: datetime | None,
        last_error: str,
    ) -> bool:
        """Record a failed attempt and release the lock.

        Rows already in a terminal state are left untouched.
        """

        if status not in {JobStatus.FAILED, JobStatus.DEAD}:
            raise ValueError(f"Unsupported failure status: {status}")

        now = to_db_datetime(utc_now())
        with Session(self.engine) as session:
            result = session.exec(
                sa_update(FeedbackJob)
                .where(
                    col(FeedbackJob.job_id) == job_id,
                    col(FeedbackJob.status).not_in(
                        [terminal.value for terminal in TERMINAL_JOB_STATUSES],
                    ),
                )
                .values(
                    status=status.value,
                    attempts=attempts,
                    not_before=to_db_datetime(not_before) if not_before is not None else None,
                    last_error=last_error,
                    locked_at=None,
                    lock_owner=None,
                    updated_at=now,
                ),
            )
            if result.rowcount != 1:
                session.rollback()
                return False
            session.commit()
            return True

    def insert_feedback_items(
        self,
        *,
        subject_id: str,
        items: Sequence[FeedbackItem],
        source: FeedbackSource = FeedbackSource.AI,
    ) -> int:
        """Insert result items, skipping ones already stored. Returns inserted count."""

        inserted = 0
        for item in items:
            with Session(self.engine) as session:
                session.add(
                    FeedbackItemRow(
                        subject_id=subject_id,
                        source=source.value,
                        category=item.type.value,
                        severity=item.severity.value,
                        message=item.message,
                        suggestion=item.suggestion,
                        tags_json=json.dumps(item.tags) if item.tags is not None else None,
                        score_hint=item.score_hint,
                        created_at=to_db_datetime(utc_now()),
                    ),
                )
                try:
                    session.commit()
                except IntegrityError:
                    session.rollback()
                    logger.debug(
                        "Skipping duplicate feedback item for subject %s: %s/%s",
                        subject_id,
                        item.type.value,
                        item.severity.value,
                    )
                    continue
            inserted += 1
        return inserted

    def list_feedback_items(self, subject_id: str) -> list[StoredFeedbackItem]:
        with Session(self.engine) as session:
            rows = session.exec(
                select(FeedbackItemRow)
                .where(FeedbackItemRow.subject_id == subject_id)
                .order_by(col(FeedbackItemRow.created_at).asc(), col(FeedbackItemRow.id).asc()),
            ).all()
        return [_to_stored_item(row) for row in rows]

    def list_jobs(
        self,
        *,
        status: JobStatus | None = None,
        limit: int = 20,
    ) -> list[FeedbackJobView]:
        """List recent jobs, newest first, optionally filtered by status."""

        with Session(self.engine) as session:
            statement = (
                select(FeedbackJob)
                .order_by(col(FeedbackJob.created_at).desc(), col(FeedbackJob.job_id).desc())
                .limit(limit)
            )
            if status is not None:
                statement = statement.where(FeedbackJob.status == status.value)
            rows = session.exec(statement).all()
        return [_to_job_view(row) for row in rows]

    def job_statuses(self, subject_ids: Iterable[str]) -> dict[str, JobStatus]:
        """Return job status per subject for the subjects that have a job."""

        wanted = list(dict.fromkeys(subject_ids))
        if not wanted:
            return {}
        with Session(self.engine) as session:
            rows = session.exec(
                select(FeedbackJob).where(col(FeedbackJob.subject_id).in_(wanted)),
            ).all()
        return {row.subject_id: JobStatus(row.status) for row in rows}


def _claimable_predicate(*, now: datetime, lock_ttl_seconds: int) -> ColumnElement[bool]:
    now_db = to_db_datetime(now)
    expired_before = to_db_datetime(now - timedelta(seconds=lock_ttl_seconds))
    locked_at = col(FeedbackJob.locked_at)
    status = col(FeedbackJob.status)
    return and_(
        or_(col(FeedbackJob.not_before).is_(None), col(FeedbackJob.not_before) <= now_db),
        or_(
            and_(
                status.in_([JobStatus.PENDING.value, JobStatus.FAILED.value]),
                or_(locked_at.is_(None), locked_at <= expired_before),
            ),
            and_(status == JobStatus.RUNNING.value, locked_at <= expired_before),
        ),
    )


def _to_subject(row: Submission) -> SubjectContent:
    return SubjectContent(
        subject_id=row.subject_id,
        code_text=row.code_text,
        language=row.language,
        group_key=row.group_key,
        attempt_no=row.attempt_no,
    )


def _to_job_view(row: FeedbackJob) -> FeedbackJobView:
    return FeedbackJobView(
        job_id=row.job_id,
        subject_id=row.subject_id,
        group_key=row.group_key,
        status=JobStatus(row.status),
        attempts=row.attempts,
        max_attempts=row.max_attempts,
        not_before=optional_utc(row.not_before),
        locked_at=optional_utc(row.locked_at),
        lock_owner=row.lock_owner,
        last_error=row.last_error,
        created_at=to_utc_aware_datetime(row.created_at),
        updated_at=to_utc_aware_datetime(row.updated_at),
    )


def _to_stored_item(row: FeedbackItemRow) -> StoredFeedbackItem:
    tags = json.loads(row.tags_json) if row.tags_json else None
    return StoredFeedbackItem(
        item_id=row.id or 0,
        subject_id=row.subject_id,
        source=FeedbackSource(row.source),
        item=FeedbackItem(
            type=FeedbackType(row.category),
            severity=FeedbackSeverity(row.severity),
            message=row.message,
            suggestion=row.suggestion,
            tags=tags if isinstance(tags, list) else None,
            score_hint=row.score_hint,
        ),
        created_at=to_utc_aware_datetime(row.created_at),
    )
