"""Batch processor: claim, guard, analyze, persist, finalize."""

from __future__ import annotations

import logging
import os
from collections.abc import Callable
from datetime import datetime
from uuid import uuid4

from ai_feedback.jobs.errors import FeedbackProviderError, ProviderErrorCode
from ai_feedback.jobs.guards import GuardService
from ai_feedback.jobs.models import FeedbackJobView, JobStatus, ProcessSummary
from ai_feedback.jobs.providers.base import FeedbackProvider
from ai_feedback.jobs.repository import FeedbackRepository
from ai_feedback.jobs.retry_policy import (
    DEFAULT_BASE_BACKOFF_SECONDS,
    DEFAULT_MAX_BACKOFF_SECONDS,
    decide_failure,
)
from ai_feedback.storage.common import utc_now

logger = logging.getLogger(__name__)

LOCK_OWNER_PREFIX = "ai-feedback-processor"
DEFAULT_BATCH_SIZE = 5
DEFAULT_LOCK_TTL_SECONDS = 300


def new_lock_owner() -> str:
    """Claim token unique per claim: prefix, process id and a random part."""

    return f"{LOCK_OWNER_PREFIX}:{os.getpid()}:{uuid4().hex}"


class FeedbackJobProcessor:
    """Processes claimable feedback jobs one at a time."""

    def __init__(  # noqa: PLR0913
        self,
        *,
        repository: FeedbackRepository,
        provider: FeedbackProvider,
        guards: GuardService,
        lock_ttl_seconds: int = DEFAULT_LOCK_TTL_SECONDS,
        base_backoff_seconds: int = DEFAULT_BASE_BACKOFF_SECONDS,
        max_backoff_seconds: int = DEFAULT_MAX_BACKOFF_SECONDS,
        default_batch_size: int = DEFAULT_BATCH_SIZE,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.repository = repository
        self.provider = provider
        self.guards = guards
        self.lock_ttl_seconds = lock_ttl_seconds
        self.base_backoff_seconds = base_backoff_seconds
        self.max_backoff_seconds = max_backoff_seconds
        self.default_batch_size = default_batch_size
        self._clock = clock

    def process_once(self, batch_size: int | None = None) -> ProcessSummary:
        """Claim and process up to `batch_size` jobs sequentially."""

        limit = batch_size if batch_size is not None else self.default_batch_size
        summary = ProcessSummary()
        for _ in range(max(0, limit)):
            lock_owner = new_lock_owner()
            job = self.repository.claim_next_job(
                lock_owner=lock_owner,
                now=self._clock(),
                lock_ttl_seconds=self.lock_ttl_seconds,
            )
            if job is None:
                break
            summary.processed += 1
            outcome = self._process_job(job=job, lock_owner=lock_owner)
            if outcome is JobStatus.SUCCEEDED:
                summary.succeeded += 1
            elif outcome is JobStatus.FAILED:
                summary.failed += 1
            elif outcome is JobStatus.DEAD:
                summary.dead += 1
        return summary

    def _process_job(self, *, job: FeedbackJobView, lock_owner: str) -> JobStatus | None:
        try:
            subject = self.repository.get_subject(job.subject_id)
            if subject is None:
                raise FeedbackProviderError(
                    ProviderErrorCode.SUBJECT_NOT_FOUND,
                    f"subject {job.subject_id} not found",
                )
            if not self.guards.try_consume(job.group_key):
                raise FeedbackProviderError(
                    ProviderErrorCode.RATE_LIMIT_LOCAL,
                    f"group {job.group_key or 'n/a'} exceeded its per-minute budget",
                )
            with self.guards.slot():
                items = self.provider.analyze(subject)
                inserted = self.repository.insert_feedback_items(
                    subject_id=job.subject_id,
                    items=items,
                )
        except FeedbackProviderError as error:
            return self._fail(job=job, error=error)
        except Exception as error:  # noqa: BLE001
            logger.exception("Unexpected error while processing job %s", job.job_id)
            return self._fail(
                job=job,
                error=FeedbackProviderError(ProviderErrorCode.UNKNOWN, str(error) or repr(error)),
            )

        if not self.repository.complete_job(job_id=job.job_id, lock_owner=lock_owner):
            logger.warning(
                "Job %s lost its claim before completion; result items kept, status untouched",
                job.job_id,
            )
            return None
        logger.debug(
            "Job %s succeeded: subject=%s items=%d inserted=%d",
            job.job_id,
            job.subject_id,
            len(items),
            inserted,
        )
        return JobStatus.SUCCEEDED

    def _fail(self, *, job: FeedbackJobView, error: FeedbackProviderError) -> JobStatus | None:
        decision = decide_failure(
            attempts=job.attempts,
            max_attempts=job.max_attempts,
            code=error.code,
            now=self._clock(),
            base_backoff_seconds=self.base_backoff_seconds,
            max_backoff_seconds=self.max_backoff_seconds,
        )
        written = self.repository.fail_job(
            job_id=job.job_id,
            status=decision.status,
            attempts=decision.attempts,
            not_before=decision.not_before,
            last_error=error.summary(),
        )
        if not written:
            logger.warning(
                "Job %s already finalized; dropping failure %s",
                job.job_id,
                error.code.value,
            )
            return None
        logger.warning(
            "Job %s failed: code=%s retryable=%s attempts=%d/%d status=%s backoff=%s",
            job.job_id,
            error.code.value,
            error.retryable,
            decision.attempts,
            job.max_attempts,
            decision.status.value,
            decision.backoff_seconds,
        )
        return decision.status
