"""Deterministic retry and dead-letter decisions for failed feedback jobs."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

from ai_feedback.jobs.errors import DEAD_IMMEDIATELY_CODES, RATE_LIMIT_CODES, ProviderErrorCode
from ai_feedback.jobs.models import JobStatus

DEFAULT_BASE_BACKOFF_SECONDS = 30
DEFAULT_MAX_BACKOFF_SECONDS = 600
DEFAULT_RATE_LIMIT_FLOOR_SECONDS = 30


@dataclass(slots=True)
class FailureDecision:
    """Next persisted state for a job after one failed attempt."""

    status: JobStatus
    attempts: int
    not_before: datetime | None
    backoff_seconds: float | None


def compute_backoff_seconds(
    *,
    attempts: int,
    code: ProviderErrorCode,
    base_backoff_seconds: int = DEFAULT_BASE_BACKOFF_SECONDS,
    max_backoff_seconds: int = DEFAULT_MAX_BACKOFF_SECONDS,
    rate_limit_floor_seconds: int = DEFAULT_RATE_LIMIT_FLOOR_SECONDS,
) -> float:
    """Delay before the next attempt, given the already incremented attempt count.

    Rate-limit codes get a flat floor rather than an extra multiplier.
    """

    delay = min(max_backoff_seconds, base_backoff_seconds * (2 ** max(attempts - 1, 0)))
    if code in RATE_LIMIT_CODES:
        delay = max(delay, rate_limit_floor_seconds)
    return float(delay)


def decide_failure(  # noqa: PLR0913
    *,
    attempts: int,
    max_attempts: int,
    code: ProviderErrorCode,
    now: datetime,
    base_backoff_seconds: int = DEFAULT_BASE_BACKOFF_SECONDS,
    max_backoff_seconds: int = DEFAULT_MAX_BACKOFF_SECONDS,
    rate_limit_floor_seconds: int = DEFAULT_RATE_LIMIT_FLOOR_SECONDS,
) -> FailureDecision:
    """Apply one failure to a job whose stored attempt count is `attempts`."""

    next_attempts = attempts + 1
    if code in DEAD_IMMEDIATELY_CODES or next_attempts >= max_attempts:
        return FailureDecision(
            status=JobStatus.DEAD,
            attempts=next_attempts,
            not_before=None,
            backoff_seconds=None,
        )

    backoff = compute_backoff_seconds(
        attempts=next_attempts,
        code=code,
        base_backoff_seconds=base_backoff_seconds,
        max_backoff_seconds=max_backoff_seconds,
        rate_limit_floor_seconds=rate_limit_floor_seconds,
    )
    return FailureDecision(
        status=JobStatus.FAILED,
        attempts=next_attempts,
        not_before=now + timedelta(seconds=backoff),
        backoff_seconds=backoff,
    )
