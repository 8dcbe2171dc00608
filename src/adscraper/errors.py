"""Exception taxonomy and process exit codes for crawler workers."""

from __future__ import annotations

from enum import IntEnum


class ExitCode(IntEnum):
    """Stable exit codes; external supervisors branch on these values."""

    OK = 0
    # Malformed assignment or environment (missing fields, mismatched crawl
    # list on resume). Never restarted without fixing the inputs.
    INPUT_ERROR = 242
    # Needs manual intervention before a restart, e.g. file permissions.
    NON_RETRYABLE_ERROR = 243
    # Anything else raised during the crawl. Usually transient.
    UNCAUGHT_CRAWL_ERROR = 244
    # Failure in the entrypoint itself, outside of the crawl.
    RUN_SCRIPT_ERROR = 245


def signal_exit_code(signum: int) -> int:
    """Exit code conventionally used by a process terminated by ``signum``."""

    return 128 + int(signum)


class InputError(Exception):
    """The assignment or the environment it describes is invalid."""


class NonRetryableError(Exception):
    """The environment is in a state where retrying would be unsafe."""


class CrawlInterrupted(RuntimeError):
    """The worker received a termination signal while crawling."""


class OperationTimeout(TimeoutError):
    """A bounded operation (capture, click, crawl item) ran out of time."""


class CaptureError(RuntimeError):
    """An ad or page could not be captured (missing or tiny bounding box, ...)."""


__all__ = [
    "CaptureError",
    "CrawlInterrupted",
    "ExitCode",
    "InputError",
    "NonRetryableError",
    "OperationTimeout",
    "signal_exit_code",
]
