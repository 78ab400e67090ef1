"""Deterministic classification of remote call failures for retry policy."""

from __future__ import annotations

from dataclasses import dataclass
from http import HTTPStatus

REMOTE_FAILURE_CLASSIFIER_VERSION = 1

_RATE_LIMIT_PATTERNS: tuple[str, ...] = (
    "rate limit",
    "429",
    "too many requests",
    "quota exceeded",
)


@dataclass(slots=True)
class RemoteFailureClassification:
    """Normalized classification result."""

    retryable: bool
    matched_rule: str
    matched_pattern: str | None = None

    def to_log_details(self, *, operation: str) -> dict[str, object]:
        return {
            "classifier_version": REMOTE_FAILURE_CLASSIFIER_VERSION,
            "operation": operation,
            "retryable": self.retryable,
            "matched_rule": self.matched_rule,
            "matched_pattern": self.matched_pattern,
        }


def classify_remote_failure(error: BaseException) -> RemoteFailureClassification:
    """Rate-limit failures are retryable, everything else is fatal."""

    status_code = _status_code(error)
    if status_code == HTTPStatus.TOO_MANY_REQUESTS:
        return RemoteFailureClassification(
            retryable=True,
            matched_rule="http_too_many_requests",
        )

    pattern = _first_match(str(error).lower(), _RATE_LIMIT_PATTERNS)
    if pattern is not None:
        return RemoteFailureClassification(
            retryable=True,
            matched_rule="rate_limit_message",
            matched_pattern=pattern,
        )

    return RemoteFailureClassification(retryable=False, matched_rule="fallback_non_retryable")


def _status_code(error: BaseException) -> int | None:
    status_code = getattr(error, "status_code", None)
    if isinstance(status_code, int):
        return status_code
    response = getattr(error, "response", None)
    status_code = getattr(response, "status_code", None)
    if isinstance(status_code, int):
        return status_code
    return None


def _first_match(haystack: str, patterns: tuple[str, ...]) -> str | None:
    for pattern in patterns:
        if pattern in haystack:
            return pattern
    return None
