"""Shared test fixtures."""

from __future__ import annotations

import os
from collections.abc import Iterator
from pathlib import Path

import pytest

from ai_feedback.jobs.models import FeedbackJobView, SubmissionCreate
from ai_feedback.jobs.repository import FeedbackRepository

_ENV_PREFIXES = ("AI_FEEDBACK_", "OPENROUTER_")


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep developer environment variables out of the tests."""

    for name in list(os.environ):
        if name.startswith(_ENV_PREFIXES):
            monkeypatch.delenv(name, raising=False)


@pytest.fixture()
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "ai_feedback.db"


@pytest.fixture()
def repository(db_path: Path) -> Iterator[FeedbackRepository]:
    repo = FeedbackRepository(db_path)
    repo.init_schema()
    try:
        yield repo
    finally:
        repo.close()


def enqueue_subject(
    repository: FeedbackRepository,
    *,
    code_text: str = "def add(a, b):\n    return a + b\n",
    group_key: str | None = "class-1",
    subject_id: str | None = None,
    max_attempts: int = 3,
) -> FeedbackJobView:
    """Store a subject and create its job."""

    subject = repository.add_submission(
        SubmissionCreate(
            code_text=code_text,
            language="python",
            subject_id=subject_id,
            group_key=group_key,
        ),
    )
    job, _ = repository.enqueue_job(subject_id=subject.subject_id, max_attempts=max_attempts)
    return job


@pytest.fixture()
def make_job(repository: FeedbackRepository):
    def _make_job(**kwargs: object) -> FeedbackJobView:
        return enqueue_subject(repository, **kwargs)

    return _make_job
