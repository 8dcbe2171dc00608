"""Failure classification for finished crawls."""

from __future__ import annotations

from enum import Enum

from .errors import ExitCode, InputError, NonRetryableError

FIRST_ATTEMPT_PRIORITY = 1
MIN_RETRY_PRIORITY = 2


class FailureClass(Enum):
    # Never retried; mutable state (the profile) is left untouched.
    INPUT_ERROR = "input_error"
    # Not retried; the environment is unsafe, so the profile is not rewritten.
    NON_RETRYABLE = "non_retryable"
    # Assumed transient; the assignment is requeued.
    UNCAUGHT = "uncaught"


_EXIT_CODES = {
    None: ExitCode.OK,
    FailureClass.INPUT_ERROR: ExitCode.INPUT_ERROR,
    FailureClass.NON_RETRYABLE: ExitCode.NON_RETRYABLE_ERROR,
    FailureClass.UNCAUGHT: ExitCode.UNCAUGHT_CRAWL_ERROR,
}


def classify_failure(error: BaseException) -> FailureClass:
    """Map an exception to its failure class, checking input errors first."""

    if isinstance(error, InputError):
        return FailureClass.INPUT_ERROR
    if isinstance(error, NonRetryableError):
        return FailureClass.NON_RETRYABLE
    return FailureClass.UNCAUGHT


def exit_code_for(failure: FailureClass | None) -> ExitCode:
    return _EXIT_CODES[failure]


def should_save_profile(failure: FailureClass | None) -> bool:
    return failure not in (FailureClass.INPUT_ERROR, FailureClass.NON_RETRYABLE)


def should_requeue(failure: FailureClass | None) -> bool:
    return failure is FailureClass.UNCAUGHT


def retry_priority(original: int) -> int:
    """Priority for a retry: above the original and above any first attempt."""

    return max(original + 1, MIN_RETRY_PRIORITY)


__all__ = [
    "FIRST_ATTEMPT_PRIORITY",
    "FailureClass",
    "classify_failure",
    "exit_code_for",
    "retry_priority",
    "should_requeue",
    "should_save_profile",
]
