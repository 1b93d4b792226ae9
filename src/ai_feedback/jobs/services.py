"""Use-case services for requesting and reporting feedback jobs."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from ai_feedback.jobs.models import (
    FeedbackJobView,
    FeedbackStatus,
    JobEnsureResult,
    JobStatus,
    SubjectContent,
    SubmissionCreate,
)
from ai_feedback.jobs.repository import FeedbackRepository

logger = logging.getLogger(__name__)

DEFAULT_LIST_LIMIT = 20
MAX_LIST_LIMIT = 100


class FeedbackJobService:
    """Coordinates subject storage, idempotent job creation and status lookups."""

    def __init__(self, *, repository: FeedbackRepository, max_attempts: int = 3) -> None:
        self.repository = repository
        self.max_attempts = max_attempts

    def add_submission(self, payload: SubmissionCreate) -> SubjectContent:
        return self.repository.add_submission(payload)

    def enqueue(self, subject_id: str) -> FeedbackJobView:
        """Request analysis for a subject; repeated calls return the same job."""

        job, created = self.repository.enqueue_job(
            subject_id=subject_id,
            max_attempts=self.max_attempts,
        )
        if created:
            logger.info("Feedback job %s enqueued for subject %s", job.job_id, subject_id)
        else:
            logger.debug("Feedback job %s already exists for subject %s", job.job_id, subject_id)
        return job

    def ensure_job(self, subject_id: str) -> JobEnsureResult:
        job, created = self.repository.enqueue_job(
            subject_id=subject_id,
            max_attempts=self.max_attempts,
        )
        return JobEnsureResult(job_id=job.job_id, status=job.status, created=created)

    def list_jobs(
        self,
        *,
        status: JobStatus | None = None,
        limit: int = DEFAULT_LIST_LIMIT,
    ) -> list[FeedbackJobView]:
        """Newest jobs first; `limit` is clamped to 1..100."""

        clamped = min(MAX_LIST_LIMIT, max(1, limit))
        return self.repository.list_jobs(status=status, limit=clamped)

    def status_map(self, subject_ids: Iterable[str]) -> dict[str, FeedbackStatus]:
        """Feedback status per subject; subjects without a job are NOT_REQUESTED."""

        wanted = list(dict.fromkeys(subject_ids))
        statuses = self.repository.job_statuses(wanted)
        return {
            subject_id: (
                FeedbackStatus(statuses[subject_id].value)
                if subject_id in statuses
                else FeedbackStatus.NOT_REQUESTED
            )
            for subject_id in wanted
        }
