"""Rate controlled, resumable batch driver.

The driver starts ``batch_size`` executions of the workflow under test, one
after another, paced by a :class:`RateLimiter`. Progress is checkpointed
through the attempt context after every start so that a retried attempt
resumes past the last start it reported. Starts use deterministic ids, so a
lost checkpoint only leads to a duplicate start attempt, never to a second
execution.
"""

import logging
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable, Optional, Protocol, Sequence

from config.retry_policies import BenchCancelledError, BenchError, BenchTimedOutError, DriverStartError
from models.bench_models import DriverTask, ProgressMarker
from utils.payload import build_payload
from utils.rate_limiter import RateLimiter


class StartOutcome(str, Enum):
    """Result of a single start request."""
    STARTED = "started"
    ALREADY_EXISTS = "already_exists"


class ExecutionStarter(Protocol):
    """Starts one execution of the workflow under test.

    ``execution_id`` is an idempotency key: starting an id that already
    exists reports ``ALREADY_EXISTS`` and leaves the original untouched. Any
    other failure is raised.
    """

    async def start(self, execution_id: str, workflow_name: str, parameters: Any) -> StartOutcome:
        ...


class AttemptContext(Protocol):
    """Deadline, cancellation and checkpoint storage of the current attempt."""

    @property
    def deadline(self) -> Optional[datetime]:
        ...

    def is_cancelled(self) -> bool:
        ...

    def heartbeat(self, *details: Any) -> None:
        ...

    def heartbeat_details(self) -> Sequence[Any]:
        ...


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BatchDriver:
    """Drives one :class:`DriverTask` to completion."""

    def __init__(
        self,
        starter: ExecutionStarter,
        context: AttemptContext,
        safety_margin: timedelta = timedelta(seconds=2),
        now: Callable[[], datetime] = utcnow,
        limiter_factory: Callable[[float], RateLimiter] = RateLimiter,
        payload_builder: Callable[[Any], Any] = build_payload,
        logger: Optional[logging.Logger] = None,
    ):
        self.starter = starter
        self.context = context
        self.safety_margin = safety_margin
        self._now = now
        self._limiter_factory = limiter_factory
        self._payload_builder = payload_builder
        self.logger = logger or logging.getLogger(__name__)

    async def run(self, task: DriverTask) -> int:
        """Start every execution of ``task`` not started by an earlier attempt.

        Args:
            task: The shard to drive

        Returns:
            Number of start requests made by this attempt

        Raises:
            BenchTimedOutError: The deadline passed before the batch finished
            BenchCancelledError: Cancellation was requested
            DriverStartError: A start request failed
        """
        deadline = self._effective_deadline()
        marker = ProgressMarker.from_heartbeat(self.context.heartbeat_details())
        first = 0
        if marker is not None:
            first = marker.resume_index
            self.logger.info(
                f"Resuming driver {task.base_id} after index {marker.last_completed_index}"
            )

        last_completed = first - 1
        limiter = self._limiter_factory(task.rate_per_second)
        started = 0

        for i in range(first, task.batch_size):
            if deadline is not None and self._now() > deadline:
                raise BenchTimedOutError(
                    f"Timed out driving bench test activity. Progress: {last_completed} out of {task.batch_size}",
                    last_completed,
                    task.batch_size,
                )
            if self.context.is_cancelled():
                raise BenchCancelledError(f"driver {task.base_id} cancelled at index {i}")

            await limiter.wait(self.context.is_cancelled)
            await self._start(task, i)

            last_completed = i
            started += 1
            self.context.heartbeat(i)

        self.logger.info(f"Driver {task.base_id} finished: {started} starts, batch size {task.batch_size}")
        return started

    async def _start(self, task: DriverTask, index: int) -> None:
        execution_id = task.execution_id(index)
        try:
            outcome = await self.starter.start(
                execution_id, task.workflow_name, self._payload_builder(task.parameters)
            )
        except BenchError:
            raise
        except Exception as e:
            self.logger.error(f"Failed to start {execution_id}: {e}")
            raise DriverStartError(f"failed to start {execution_id}: {e}") from e

        if outcome == StartOutcome.ALREADY_EXISTS:
            self.logger.info(f"Execution {execution_id} already started by an earlier attempt")

    def _effective_deadline(self) -> Optional[datetime]:
        deadline = self.context.deadline
        if deadline is None:
            return None
        return deadline - self.safety_margin
