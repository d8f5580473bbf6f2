"""Completion monitor for the executions started by a bench run."""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Awaitable, Callable, List, Optional, Protocol, Sequence, Tuple

from config.retry_policies import (
    BenchCancelledError,
    BenchError,
    BenchTimedOutError,
    MonitorQueryError,
    TransientStoreInconsistency,
)
from models.bench_models import MonitorRequest, TimingTriple
from activities.bench_driver import AttemptContext, utcnow


@dataclass(frozen=True)
class ExecutionSummary:
    """What the visibility store reports about one execution."""
    execution_id: str
    start_time: datetime
    execution_time: Optional[datetime] = None
    close_time: Optional[datetime] = None

    def to_triple(self) -> TimingTriple:
        return TimingTriple(
            start_time=self.start_time,
            execution_time=self.execution_time or self.start_time,
            close_time=self.close_time or self.start_time,
        )


class ExecutionLister(Protocol):
    """Read access to the visibility store, filtered by workflow type and start time."""

    async def list_open(self, workflow_name: str, since: datetime, page_size: int) -> Sequence[ExecutionSummary]:
        ...

    async def list_closed(
        self, workflow_name: str, since: datetime, page_token: Optional[bytes]
    ) -> Tuple[Sequence[ExecutionSummary], Optional[bytes]]:
        ...


class CompletionMonitor:
    """Polls the visibility store until every expected execution has closed.

    A poll first asks for any open execution of the workflow type. When none
    is open, all closed executions are paged through and filtered by id
    prefix. Fewer matches than expected is treated as a visibility store lag
    and the monitor keeps polling until its deadline.
    """

    def __init__(
        self,
        lister: ExecutionLister,
        context: AttemptContext,
        poll_interval: float = 3.0,
        deadline_margin: timedelta = timedelta(seconds=5),
        scope_margin: timedelta = timedelta(seconds=10),
        open_page_size: int = 1,
        now: Callable[[], datetime] = utcnow,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        logger: Optional[logging.Logger] = None,
    ):
        self.lister = lister
        self.context = context
        self.poll_interval = poll_interval
        self.deadline_margin = deadline_margin
        self.scope_margin = scope_margin
        self.open_page_size = open_page_size
        self._now = now
        self._sleep = sleep
        self.logger = logger or logging.getLogger(__name__)
        self.polls = 0

    async def run(self, request: MonitorRequest) -> List[TimingTriple]:
        """Wait for the run to drain and return the timing of its executions.

        Raises:
            BenchTimedOutError: The deadline passed before the run drained
            BenchCancelledError: Cancellation was requested between polls
            MonitorQueryError: The visibility store returned an error
        """
        wait_start = self._now()
        deadline = self.context.deadline
        if deadline is not None:
            deadline = deadline - self.deadline_margin
        since = request.start_time - self.scope_margin

        while True:
            self.polls += 1
            try:
                triples = await self._poll(request, since)
            except TransientStoreInconsistency as e:
                self.logger.warning(f"Monitor {request.id_prefix}: {e}")
                triples = None
            if triples is not None:
                self.logger.info(
                    f"Bench run {request.id_prefix} completed: {len(triples)} executions, "
                    f"waited {self._now() - wait_start}"
                )
                return triples

            elapsed = self._now() - wait_start
            self.logger.info(f"Still waiting for bench completion, duration: {elapsed}, deadline: {deadline}")
            self.context.heartbeat(f"test scenario - duration: {elapsed}, deadline: {deadline}")

            await self._sleep(self.poll_interval)

            if self.context.is_cancelled():
                raise BenchCancelledError(f"monitor {request.id_prefix} cancelled after {self.polls} polls")
            if deadline is not None and self._now() > deadline:
                raise BenchTimedOutError("timed out waiting for Monitoring phase to finish", -1, request.count)

    async def _poll(self, request: MonitorRequest, since: datetime) -> Optional[List[TimingTriple]]:
        """One poll: ``None`` while executions are open, the triples once drained."""
        open_executions = await self._call(
            "list open executions",
            self.lister.list_open(request.workflow_name, since, self.open_page_size),
        )
        if open_executions:
            return None

        triples = await self._collect_closed(request, since)
        if len(triples) < request.count:
            raise TransientStoreInconsistency(request.count, len(triples))
        return triples

    async def _collect_closed(self, request: MonitorRequest, since: datetime) -> List[TimingTriple]:
        prefix = request.id_prefix
        triples: List[TimingTriple] = []
        page_token: Optional[bytes] = None
        while True:
            executions, page_token = await self._call(
                "list closed executions",
                self.lister.list_closed(request.workflow_name, since, page_token),
            )
            triples.extend(e.to_triple() for e in executions if e.execution_id.startswith(prefix))
            if not page_token:
                return triples
            self.context.heartbeat(len(triples))

    async def _call(self, phase: str, call: Awaitable):
        try:
            return await call
        except BenchError:
            raise
        except Exception as e:
            self.logger.error(f"Monitor failed to {phase}: {e}")
            raise MonitorQueryError(f"failed to {phase}: {e}") from e
