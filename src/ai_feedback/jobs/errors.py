"""Typed provider failures with fixed retry classification."""

from __future__ import annotations

from enum import Enum


class ProviderErrorCode(str, Enum):
    """Failure codes shared by providers, admission control and the processor."""

    REAL_DISABLED = "REAL_DISABLED"
    MISSING_API_KEY = "MISSING_API_KEY"
    UNAUTHORIZED = "UNAUTHORIZED"
    RATE_LIMIT_UPSTREAM = "RATE_LIMIT_UPSTREAM"
    UPSTREAM_5XX = "UPSTREAM_5XX"
    UPSTREAM_4XX = "UPSTREAM_4XX"
    TIMEOUT = "TIMEOUT"
    NETWORK_ERROR = "NETWORK_ERROR"
    BAD_RESPONSE = "BAD_RESPONSE"
    RATE_LIMIT_LOCAL = "RATE_LIMIT_LOCAL"
    SUBJECT_NOT_FOUND = "SUBJECT_NOT_FOUND"
    UNKNOWN = "UNKNOWN"


RETRYABLE_CODES: dict[ProviderErrorCode, bool] = {
    ProviderErrorCode.REAL_DISABLED: False,
    ProviderErrorCode.MISSING_API_KEY: False,
    ProviderErrorCode.UNAUTHORIZED: False,
    ProviderErrorCode.RATE_LIMIT_UPSTREAM: True,
    ProviderErrorCode.UPSTREAM_5XX: True,
    ProviderErrorCode.UPSTREAM_4XX: False,
    ProviderErrorCode.TIMEOUT: True,
    ProviderErrorCode.NETWORK_ERROR: True,
    ProviderErrorCode.BAD_RESPONSE: False,
    ProviderErrorCode.RATE_LIMIT_LOCAL: True,
    ProviderErrorCode.SUBJECT_NOT_FOUND: False,
    ProviderErrorCode.UNKNOWN: False,
}

# Configuration problems that will not resolve by retrying.
DEAD_IMMEDIATELY_CODES = frozenset(
    {
        ProviderErrorCode.UNAUTHORIZED,
        ProviderErrorCode.MISSING_API_KEY,
        ProviderErrorCode.REAL_DISABLED,
        ProviderErrorCode.SUBJECT_NOT_FOUND,
    },
)

RATE_LIMIT_CODES = frozenset(
    {ProviderErrorCode.RATE_LIMIT_LOCAL, ProviderErrorCode.RATE_LIMIT_UPSTREAM},
)


class FeedbackProviderError(RuntimeError):
    """Provider failure classified into exactly one code with a retryable bit."""

    def __init__(
        self,
        code: ProviderErrorCode,
        message: str | None = None,
        *,
        retryable: bool | None = None,
    ) -> None:
        self.code = code
        self.retryable = RETRYABLE_CODES[code] if retryable is None else retryable
        super().__init__(message or f"provider failed with {code.value}")

    def summary(self) -> str:
        """Code plus message, as persisted in a job's last_error."""

        return f"{self.code.value}: {self}"
