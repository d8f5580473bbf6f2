"""Bench run coordinator.

The orchestrator is the state machine behind ``bench-workflow``:
``validating -> driving -> monitoring -> reporting`` with ``failed`` as the
other terminal state. It plans driver shards per step, runs them as a fork
join, hands the aggregate count to the monitor and finally answers report
queries from the immutable run result. Driving and monitoring are injected
as coroutines so the same logic runs inside a workflow and in tests.
"""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, List, Optional

from config.retry_policies import BenchError, PhaseFailedError
from models.bench_models import (
    BenchStep,
    DriverTask,
    HistogramBucket,
    MonitorRequest,
    ReportWindow,
    RunResult,
    RunSpec,
    RunState,
    TimingTriple,
)
from utils.histogram import build_histogram
from utils.reports import histogram_csv, histogram_json

RATE_PER_SHARD = 10


def derive_concurrency(step: BenchStep) -> int:
    """Explicit concurrency, else one shard per ten starts per second."""
    if step.concurrency > 0:
        return step.concurrency
    if step.rate_per_second > RATE_PER_SHARD:
        return max(1, min(step.rate_per_second // RATE_PER_SHARD, step.count))
    return 1


def split(total: int, parts: int) -> List[int]:
    """Split ``total`` into ``parts`` integers, the remainder going to the first parts."""
    base, remainder = divmod(total, parts)
    return [base + (1 if i < remainder else 0) for i in range(parts)]


def plan_step(base_id: str, step_index: int, step: BenchStep, workflow_name: str, parameters: Any) -> List[DriverTask]:
    """Partition a step into driver shards.

    Shard ``j`` of step ``i`` gets the base id ``{base_id}-{i}-{j}``. A
    positive step rate never becomes unlimited for a shard: when the rate
    is smaller than the shard count every shard runs at one start per
    second.
    """
    concurrency = derive_concurrency(step)
    counts = split(step.count, concurrency)
    rates = split(step.rate_per_second, concurrency)
    tasks = []
    for shard, (count, rate) in enumerate(zip(counts, rates)):
        if step.rate_per_second > 0:
            rate = max(rate, 1)
        tasks.append(DriverTask(
            base_id=f"{base_id}-{step_index}-{shard}",
            batch_size=count,
            rate_per_second=rate,
            workflow_name=workflow_name,
            parameters=parameters,
        ))
    return tasks


class BenchOrchestrator:
    """Runs one bench and serves its reports."""

    def __init__(
        self,
        base_id: str,
        run_driver: Callable[[DriverTask], Awaitable[Any]],
        run_monitor: Callable[[MonitorRequest], Awaitable[List[TimingTriple]]],
        now: Callable[[], datetime],
        logger: Optional[Any] = None,
    ):
        self.base_id = base_id
        self._run_driver = run_driver
        self._run_monitor = run_monitor
        self._now = now
        self.logger = logger or logging.getLogger(__name__)

        self.state = RunState.VALIDATING
        self.spec: Optional[RunSpec] = None
        self.result: Optional[RunResult] = None
        self.current_step: Optional[int] = None
        self.error: Optional[str] = None

    async def run(self, request: Dict[str, Any]) -> RunResult:
        """Drive every step, wait for completion and keep the result for reports.

        Raises:
            InvalidSpecError: The request is not a valid run spec
            PhaseFailedError: A driver shard or the monitor failed
        """
        try:
            self.spec = RunSpec.parse(request)
            start_time = self._now()
            self.logger.info(
                f"Bench run {self.base_id} started: {len(self.spec.steps)} steps, "
                f"{self.spec.total_count} executions of {self.spec.workflow.name}"
            )

            self.state = RunState.DRIVING
            for index, step in enumerate(self.spec.steps):
                self.current_step = index
                await self._drive_step(index, step)

            self.state = RunState.MONITORING
            triples = await self._monitor(start_time)

            self.result = RunResult(
                triples=triples,
                interval_in_seconds=self.spec.report.interval_in_seconds,
                start_time=start_time,
            )
            self.state = RunState.REPORTING
            self.logger.info(f"Bench run {self.base_id} completed with {len(triples)} executions")
            return self.result
        except (Exception, asyncio.CancelledError) as e:
            self.state = RunState.FAILED
            self.error = str(e) or type(e).__name__
            raise

    async def _drive_step(self, index: int, step: BenchStep) -> None:
        tasks = plan_step(self.base_id, index, step, self.spec.workflow.name, self.spec.workflow.args)
        self.logger.info(
            f"Step {index}: {step.count} executions in {len(tasks)} shards at {step.rate_per_second}/s"
        )

        results = await asyncio.gather(*(self._run_driver(task) for task in tasks), return_exceptions=True)

        failures = [(shard, r) for shard, r in enumerate(results) if isinstance(r, BaseException)]
        for shard, failure in failures:
            self.logger.warning(f"Step {index} shard {shard} ({tasks[shard].base_id}) failed: {failure}")
        if failures:
            shard, failure = failures[0]
            if isinstance(failure, asyncio.CancelledError):
                raise failure
            raise PhaseFailedError(
                f"step {index} shard {shard} failed: {failure}", index, shard
            ) from failure

    async def _monitor(self, start_time: datetime) -> List[TimingTriple]:
        request = MonitorRequest(
            base_id=self.base_id,
            workflow_name=self.spec.workflow.name,
            count=self.spec.total_count,
            start_time=start_time,
        )
        try:
            return await self._run_monitor(request)
        except asyncio.CancelledError:
            raise
        except BenchError:
            raise
        except Exception as e:
            raise PhaseFailedError(f"monitoring failed: {e}") from e

    def buckets(self) -> List[HistogramBucket]:
        return build_histogram(self._require_result().triples, self.result.interval_in_seconds)

    def histogram(self) -> str:
        return histogram_json(self.buckets())

    def histogram_csv(self) -> str:
        return histogram_csv(self.buckets(), self.result.interval_in_seconds, self.spec.report.csv_separator)

    def report_window(self) -> ReportWindow:
        """Window covered by the histogram, starting at the run start."""
        result = self._require_result()
        buckets = self.buckets()
        end_time = result.start_time + timedelta(seconds=result.interval_in_seconds * len(buckets))
        return ReportWindow(
            start_time=result.start_time,
            end_time=end_time,
            interval_in_seconds=result.interval_in_seconds,
            csv_separator=self.spec.report.csv_separator,
        )

    def describe(self) -> Dict[str, Any]:
        return {
            "state": self.state.value,
            "baseId": self.base_id,
            "currentStep": self.current_step,
            "totalCount": self.spec.total_count if self.spec else None,
            "completedCount": len(self.result.triples) if self.result else None,
            "error": self.error,
        }

    def _require_result(self) -> RunResult:
        if self.state != RunState.REPORTING or self.result is None:
            raise BenchError(f"bench run is not reporting yet, state: {self.state.value}")
        return self.result
