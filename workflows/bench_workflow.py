"""Bench workflow: drives a load test and serves its reports as queries."""

from datetime import timedelta
from typing import Any, Dict, List, Optional

from temporalio import workflow

with workflow.unsafe.imports_passed_through():
    from activities.bench_activities import BenchActivities
    from config.retry_policies import BENCH_ACTIVITY_RETRY_POLICY
    from config.settings import BenchConfig
    from models.bench_models import DriverTask, MonitorRequest, TimingBatch, TimingTriple
    from workflows.orchestrator import BenchOrchestrator


@workflow.defn(name="bench-workflow")
class BenchWorkflow:
    """Runs a bench with the Temporal activities as driver and monitor.

    Each activity gets the time left until the run deadline as its
    start-to-close timeout, so drivers and the monitor time out before the
    workflow itself does.
    """

    def __init__(self):
        self.bench = BenchConfig()
        self.deadline = None
        self.orchestrator: Optional[BenchOrchestrator] = None

    @workflow.run
    async def run(self, request: Dict[str, Any]) -> Dict[str, Any]:
        info = workflow.info()
        timeout = info.execution_timeout or info.run_timeout or self.bench.default_run_timeout
        self.deadline = workflow.now() + timeout

        workflow.logger.info(f"Bench driver workflow started, deadline {self.deadline}")
        self.orchestrator = BenchOrchestrator(
            base_id=info.workflow_id,
            run_driver=self._run_driver,
            run_monitor=self._run_monitor,
            now=workflow.now,
            logger=workflow.logger,
        )
        await self.orchestrator.run(request)
        workflow.logger.info("Bench driver workflow completed")
        return self.orchestrator.describe()

    async def _run_driver(self, task: DriverTask) -> int:
        return await workflow.execute_activity_method(
            BenchActivities.drive,
            task.to_payload(),
            **self._activity_options(),
        )

    async def _run_monitor(self, request: MonitorRequest) -> List[TimingTriple]:
        batch = await workflow.execute_activity_method(
            BenchActivities.monitor,
            request.to_payload(),
            **self._activity_options(),
        )
        return TimingBatch.model_validate(batch).decode()

    def _activity_options(self) -> Dict[str, Any]:
        remaining = self.deadline - workflow.now()
        return {
            "start_to_close_timeout": max(remaining, timedelta(seconds=1)),
            "heartbeat_timeout": self.bench.heartbeat_timeout,
            "retry_policy": BENCH_ACTIVITY_RETRY_POLICY,
        }

    @workflow.query
    def histogram(self) -> str:
        """Histogram buckets as JSON."""
        return self._reporting().histogram()

    @workflow.query(name="histogram_csv")
    def histogram_csv(self) -> str:
        """Histogram buckets as CSV with the run's separator."""
        return self._reporting().histogram_csv()

    @workflow.query(name="report_window")
    def report_window(self) -> Dict[str, Any]:
        """Time window of the run, used to correlate server metrics."""
        return self._reporting().report_window().to_payload()

    @workflow.query
    def state(self) -> Dict[str, Any]:
        if self.orchestrator is None:
            return {"state": "validating"}
        return self.orchestrator.describe()

    def _reporting(self) -> BenchOrchestrator:
        if self.orchestrator is None:
            raise RuntimeError("bench run has not started")
        return self.orchestrator
