"""Controllers for feedback job CLI commands."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path

from ai_feedback.config import Settings
from ai_feedback.jobs.guards import GuardService
from ai_feedback.jobs.models import JobStatus, SubmissionCreate
from ai_feedback.jobs.processor import FeedbackJobProcessor
from ai_feedback.jobs.providers import OpenRouterFeedbackProvider, build_provider
from ai_feedback.jobs.repository import FeedbackRepository
from ai_feedback.jobs.services import FeedbackJobService
from ai_feedback.jobs.worker import FeedbackWorker


@dataclass(slots=True)
class SubmitCommand:
    """CLI input for storing a subject and requesting feedback."""

    db_path: Path | None
    code_text: str
    language: str
    group_key: str | None
    subject_id: str | None
    enqueue: bool = True


@dataclass(slots=True)
class ListJobsCommand:
    db_path: Path | None
    status: str | None
    limit: int


@dataclass(slots=True)
class InspectJobCommand:
    db_path: Path | None
    job_id: str


@dataclass(slots=True)
class ProcessCommand:
    """CLI input for one processor batch."""

    db_path: Path | None
    batch_size: int | None


@dataclass(slots=True)
class WorkerCommand:
    """CLI input for the foreground worker loop."""

    db_path: Path | None
    once: bool
    max_ticks: int | None


@dataclass(slots=True)
class ListFeedbackCommand:
    db_path: Path | None
    subject_id: str


class FeedbackCliController:
    """Coordinates submission, processing and inspection CLI operations."""

    def submit(self, command: SubmitCommand) -> list[str]:
        settings = _settings(command.db_path)
        with _repository(settings) as repository:
            service = FeedbackJobService(
                repository=repository,
                max_attempts=settings.jobs.max_attempts,
            )
            subject = service.add_submission(
                SubmissionCreate(
                    code_text=command.code_text,
                    language=command.language,
                    subject_id=command.subject_id,
                    group_key=command.group_key,
                ),
            )
            lines = [
                f"Subject stored: subject_id={subject.subject_id} "
                f"group={subject.group_key or '-'} language={subject.language}",
            ]
            if command.enqueue:
                job = service.enqueue(subject.subject_id)
                lines.append(f"Job enqueued: job_id={job.job_id} status={job.status.value}")
        return lines

    def list_jobs(self, command: ListJobsCommand) -> list[str]:
        settings = _settings(command.db_path)
        status_filter = _parse_status(command.status)
        with _repository(settings) as repository:
            jobs = FeedbackJobService(repository=repository).list_jobs(
                status=status_filter,
                limit=command.limit,
            )

        lines = [f"Jobs: {len(jobs)}"]
        for job in jobs:
            not_before = job.not_before.isoformat() if job.not_before is not None else "-"
            lines.append(
                f"  {job.job_id} subject={job.subject_id} status={job.status.value} "
                f"attempts={job.attempts}/{job.max_attempts} not_before={not_before}",
            )
        return lines

    def inspect_job(self, command: InspectJobCommand) -> list[str]:
        settings = _settings(command.db_path)
        with _repository(settings) as repository:
            job = repository.get_job(command.job_id)
            items = repository.list_feedback_items(job.subject_id) if job is not None else []
        if job is None:
            return [f"Job not found: {command.job_id}"]

        return [
            f"Job: {job.job_id}",
            f"Subject: {job.subject_id}",
            f"Group: {job.group_key or '-'}",
            f"Status: {job.status.value}",
            f"Attempts: {job.attempts}/{job.max_attempts}",
            f"Not before: {job.not_before.isoformat() if job.not_before else '-'}",
            f"Locked at: {job.locked_at.isoformat() if job.locked_at else '-'}",
            f"Lock owner: {job.lock_owner or '-'}",
            f"Last error: {job.last_error or '-'}",
            f"Feedback items: {len(items)}",
        ]

    def process(self, command: ProcessCommand) -> list[str]:
        settings = _settings(command.db_path)
        with _repository(settings) as repository, _processor(settings, repository) as processor:
            summary = processor.process_once(command.batch_size)
        return [
            "Process summary: "
            f"processed={summary.processed} succeeded={summary.succeeded} "
            f"failed={summary.failed} dead={summary.dead}",
        ]

    def run_worker(self, command: WorkerCommand) -> list[str]:
        settings = _settings(command.db_path)
        with _repository(settings) as repository, _processor(settings, repository) as processor:
            worker = FeedbackWorker(
                processor=processor,
                interval_seconds=settings.worker.interval_ms / 1000.0,
                batch_size=settings.jobs.batch_size,
            )
            if command.once:
                summary = worker.tick()
                if summary is None:
                    return ["Worker tick skipped or failed; see logs."]
            else:
                summary = worker.run_loop(max_ticks=command.max_ticks)
        return [
            "Worker summary: "
            f"processed={summary.processed} succeeded={summary.succeeded} "
            f"failed={summary.failed} dead={summary.dead}",
        ]

    def list_feedback(self, command: ListFeedbackCommand) -> list[str]:
        settings = _settings(command.db_path)
        with _repository(settings) as repository:
            status = FeedbackJobService(repository=repository).status_map([command.subject_id])
            stored = repository.list_feedback_items(command.subject_id)

        lines = [
            f"Subject: {command.subject_id} feedback={status[command.subject_id].value}",
            f"Items: {len(stored)}",
        ]
        for entry in stored:
            item = entry.item
            tags = ",".join(item.tags) if item.tags else "-"
            lines.append(f"  [{item.severity.value}] {item.type.value} {item.message} tags={tags}")
            if item.suggestion:
                lines.append(f"    suggestion: {item.suggestion}")
        return lines


def _settings(db_path: Path | None) -> Settings:
    settings = Settings.from_env(db_path=db_path)
    settings.validate()
    return settings


def _parse_status(value: str | None) -> JobStatus | None:
    if value is None:
        return None
    return JobStatus(value.strip().upper())


@contextmanager
def _repository(settings: Settings) -> Iterator[FeedbackRepository]:
    repository = FeedbackRepository(
        settings.db_path,
        sqlite_busy_timeout_ms=settings.sqlite_busy_timeout_ms,
    )
    repository.init_schema()
    try:
        yield repository
    finally:
        repository.close()


@contextmanager
def _processor(
    settings: Settings,
    repository: FeedbackRepository,
) -> Iterator[FeedbackJobProcessor]:
    provider = build_provider(settings.provider)
    try:
        yield FeedbackJobProcessor(
            repository=repository,
            provider=provider,
            guards=GuardService(
                max_concurrency=settings.guards.max_concurrency,
                max_per_minute=settings.guards.max_per_group_per_minute,
            ),
            lock_ttl_seconds=settings.jobs.lock_ttl_seconds,
            base_backoff_seconds=settings.jobs.base_backoff_seconds,
            max_backoff_seconds=settings.jobs.max_backoff_seconds,
            default_batch_size=settings.jobs.batch_size,
        )
    finally:
        if isinstance(provider, OpenRouterFeedbackProvider):
            provider.close()
