"""Retry policy and error taxonomy for the bench activities.

Every bench error is a Temporal ``ApplicationError`` so that its type,
details and retryability survive the trip from an activity to the
workflow and from the workflow to the client.
"""

from datetime import timedelta
from typing import List, Optional
import logging

from temporalio.common import RetryPolicy
from temporalio.exceptions import ApplicationError

logger = logging.getLogger(__name__)


class BenchError(ApplicationError):
    """Base class for errors raised by the bench harness."""

    retryable = True

    def __init__(self, message: str, *details) -> None:
        super().__init__(
            message,
            *details,
            type=type(self).__name__,
            non_retryable=not self.retryable,
        )


class InvalidSpecError(BenchError):
    """Malformed run specification. Never retried."""

    retryable = False


class BenchTimedOutError(BenchError):
    """A phase ran out of time before it finished.

    Carries the last completed index so the caller can judge how much
    progress was made.
    """

    retryable = False

    def __init__(self, message: str, last_completed_index: int = -1, total: Optional[int] = None) -> None:
        super().__init__(message, last_completed_index, total)
        self.last_completed_index = last_completed_index
        self.total = total


class BenchCancelledError(BenchError):
    """Cancellation was requested while a phase was running."""

    retryable = False


class TransientStoreInconsistency(BenchError):
    """Fewer closed executions than expected while none are open.

    Raised and handled inside the completion monitor loop only.
    """

    def __init__(self, expected: int, actual: int) -> None:
        super().__init__(
            f"no open executions but fewer closed executions than expected: {actual} < {expected}",
            expected,
            actual,
        )
        self.expected = expected
        self.actual = actual


class DriverStartError(BenchError):
    """Starting a target execution failed."""


class MonitorQueryError(BenchError):
    """Listing executions from the visibility store failed."""


class PhaseFailedError(BenchError):
    """A driving step or the monitoring phase of a run failed.

    The message names the step and shard (or the phase); the underlying
    failure is kept as the cause.
    """

    retryable = False


class MetricsBackendError(BenchError):
    """The metrics backend could not be queried or returned an unusable result."""


NON_RETRYABLE_ERRORS: List[type] = [InvalidSpecError, BenchTimedOutError, BenchCancelledError]

# Retry policy for the driver and monitor activities
BENCH_ACTIVITY_RETRY_POLICY = RetryPolicy(
    initial_interval=timedelta(milliseconds=50),
    backoff_coefficient=1.2,
    non_retryable_error_types=[error.__name__ for error in NON_RETRYABLE_ERRORS],
)


def get_retry_policy(activity_name: str) -> RetryPolicy:
    """Get retry policy for a bench activity.

    Args:
        activity_name: Name of the activity

    Returns:
        RetryPolicy for the activity
    """
    logger.debug(f"Using retry policy for {activity_name}: {BENCH_ACTIVITY_RETRY_POLICY}")
    return BENCH_ACTIVITY_RETRY_POLICY


def is_retryable_error(error: Exception) -> bool:
    """Check if an error should be retried by the activity retry policy."""
    if isinstance(error, ApplicationError):
        return not error.non_retryable and error.type not in BENCH_ACTIVITY_RETRY_POLICY.non_retryable_error_types
    return True
