"""Domain models for the feedback job queue and provider results."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class JobStatus(str, Enum):
    """Durable job lifecycle states."""

    PENDING = "PENDING"
    RUNNING = "RUNNING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    DEAD = "DEAD"


TERMINAL_JOB_STATUSES = frozenset({JobStatus.SUCCEEDED, JobStatus.DEAD})


class FeedbackStatus(str, Enum):
    """Per-subject feedback status as reported to callers."""

    NOT_REQUESTED = "NOT_REQUESTED"
    PENDING = "PENDING"
    RUNNING = "RUNNING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    DEAD = "DEAD"


class FeedbackType(str, Enum):
    SYNTAX = "SYNTAX"
    STYLE = "STYLE"
    DESIGN = "DESIGN"
    BUG = "BUG"
    PERFORMANCE = "PERFORMANCE"
    SECURITY = "SECURITY"
    OTHER = "OTHER"


class FeedbackSeverity(str, Enum):
    INFO = "INFO"
    WARN = "WARN"
    ERROR = "ERROR"


class FeedbackSource(str, Enum):
    AI = "AI"


@dataclass(slots=True)
class FeedbackItem:
    """One normalized feedback entry produced by a provider call."""

    type: FeedbackType
    severity: FeedbackSeverity
    message: str
    suggestion: str | None = None
    tags: list[str] | None = None
    score_hint: float | None = None


@dataclass(slots=True)
class SubjectContent:
    """Content of one subject (submission) handed to a provider."""

    subject_id: str
    code_text: str
    language: str
    group_key: str | None = None
    attempt_no: int = 1


@dataclass(slots=True)
class SubmissionCreate:
    """Input payload for storing a subject."""

    code_text: str
    language: str = "unknown"
    subject_id: str | None = None
    group_key: str | None = None
    attempt_no: int = 1


@dataclass(slots=True)
class FeedbackJobView:
    """Readable job view for processor and CLI logic."""

    job_id: str
    subject_id: str
    group_key: str | None
    status: JobStatus
    attempts: int
    max_attempts: int
    not_before: datetime | None
    locked_at: datetime | None
    lock_owner: str | None
    last_error: str | None
    created_at: datetime
    updated_at: datetime


@dataclass(slots=True)
class StoredFeedbackItem:
    """Feedback item as persisted for one subject."""

    item_id: int
    subject_id: str
    source: FeedbackSource
    item: FeedbackItem
    created_at: datetime


@dataclass(slots=True)
class JobEnsureResult:
    job_id: str
    status: JobStatus
    created: bool


@dataclass(slots=True)
class ProcessSummary:
    """Aggregate counters for one processor batch."""

    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    dead: int = 0
