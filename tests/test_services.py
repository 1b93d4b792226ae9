from __future__ import annotations

import allure
import pytest

from ai_feedback.jobs.models import FeedbackStatus, JobStatus, SubmissionCreate
from ai_feedback.jobs.repository import FeedbackRepository
from ai_feedback.jobs.services import FeedbackJobService

pytestmark = [
    allure.epic("Feedback Jobs"),
    allure.feature("Job Service"),
]


def _store(service: FeedbackJobService, subject_id: str) -> None:
    service.add_submission(
        SubmissionCreate(code_text="print(1)\n", language="python", subject_id=subject_id),
    )


def test_ensure_job_is_idempotent(repository: FeedbackRepository) -> None:
    service = FeedbackJobService(repository=repository, max_attempts=4)
    _store(service, "sub-1")

    first = service.ensure_job("sub-1")
    second = service.ensure_job("sub-1")

    assert first.created is True
    assert second.created is False
    assert second.job_id == first.job_id
    assert second.status == JobStatus.PENDING
    assert service.enqueue("sub-1").max_attempts == 4


def test_enqueue_unknown_subject_raises(repository: FeedbackRepository) -> None:
    service = FeedbackJobService(repository=repository)

    with pytest.raises(RuntimeError, match="Subject not found"):
        service.enqueue("missing")


def test_list_jobs_clamps_limit(repository: FeedbackRepository) -> None:
    service = FeedbackJobService(repository=repository)
    for index in range(3):
        _store(service, f"sub-{index}")
        service.enqueue(f"sub-{index}")

    assert len(service.list_jobs(limit=0)) == 1
    assert len(service.list_jobs(limit=500)) == 3
    assert service.list_jobs(status=JobStatus.DEAD) == []


def test_status_map_reports_not_requested(repository: FeedbackRepository) -> None:
    service = FeedbackJobService(repository=repository)
    _store(service, "with-job")
    _store(service, "without-job")
    service.enqueue("with-job")

    statuses = service.status_map(["with-job", "without-job", "unknown", "with-job"])

    assert statuses == {
        "with-job": FeedbackStatus.PENDING,
        "without-job": FeedbackStatus.NOT_REQUESTED,
        "unknown": FeedbackStatus.NOT_REQUESTED,
    }
