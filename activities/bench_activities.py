"""Temporal activities of the bench workflow.

``bench-DriverActivity`` starts one shard of target executions and
``bench-MonitorActivity`` waits for all of them to close. Both delegate to
the Temporal agnostic :class:`BatchDriver` and :class:`CompletionMonitor`
through the adapters below.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Sequence, Tuple

from google.protobuf.timestamp_pb2 import Timestamp
from pydantic import ValidationError
from temporalio import activity
from temporalio.api.filter.v1 import StartTimeFilter, WorkflowTypeFilter
from temporalio.api.workflowservice.v1 import (
    ListClosedWorkflowExecutionsRequest,
    ListOpenWorkflowExecutionsRequest,
)
from temporalio.client import Client
from temporalio.exceptions import WorkflowAlreadyStartedError

from activities.bench_driver import BatchDriver, StartOutcome
from activities.bench_monitor import CompletionMonitor, ExecutionSummary
from config.retry_policies import InvalidSpecError
from config.settings import AppConfig
from models.bench_models import DriverTask, MonitorRequest, TimingBatch


class TemporalExecutionStarter:
    """Starts target executions with the Temporal client."""

    def __init__(
        self,
        client: Client,
        task_queue: str,
        execution_timeout: timedelta,
        task_timeout: timedelta,
    ):
        self.client = client
        self.task_queue = task_queue
        self.execution_timeout = execution_timeout
        self.task_timeout = task_timeout

    async def start(self, execution_id: str, workflow_name: str, parameters: Any) -> StartOutcome:
        try:
            await self.client.start_workflow(
                workflow_name,
                args=[] if parameters is None else [parameters],
                id=execution_id,
                task_queue=self.task_queue,
                execution_timeout=self.execution_timeout,
                task_timeout=self.task_timeout,
            )
        except WorkflowAlreadyStartedError:
            return StartOutcome.ALREADY_EXISTS
        return StartOutcome.STARTED


class TemporalExecutionLister:
    """Lists executions through the visibility API of the workflow service."""

    def __init__(self, client: Client, closed_page_size: int = 1000):
        self.client = client
        self.closed_page_size = closed_page_size

    async def list_open(self, workflow_name: str, since: datetime, page_size: int) -> Sequence[ExecutionSummary]:
        request = ListOpenWorkflowExecutionsRequest(
            namespace=self.client.namespace,
            maximum_page_size=page_size,
            start_time_filter=StartTimeFilter(earliest_time=_timestamp(since)),
            type_filter=WorkflowTypeFilter(name=workflow_name),
        )
        response = await self.client.workflow_service.list_open_workflow_executions(request)
        return [_summary(info) for info in response.executions]

    async def list_closed(
        self, workflow_name: str, since: datetime, page_token: Optional[bytes]
    ) -> Tuple[Sequence[ExecutionSummary], Optional[bytes]]:
        request = ListClosedWorkflowExecutionsRequest(
            namespace=self.client.namespace,
            maximum_page_size=self.closed_page_size,
            next_page_token=page_token or b"",
            start_time_filter=StartTimeFilter(earliest_time=_timestamp(since)),
            type_filter=WorkflowTypeFilter(name=workflow_name),
        )
        response = await self.client.workflow_service.list_closed_workflow_executions(request)
        return [_summary(info) for info in response.executions], response.next_page_token or None


class TemporalAttemptContext:
    """Attempt context backed by the running activity."""

    @property
    def deadline(self) -> Optional[datetime]:
        info = activity.info()
        deadlines = []
        if info.start_to_close_timeout:
            deadlines.append(info.started_time + info.start_to_close_timeout)
        if info.schedule_to_close_timeout:
            deadlines.append(info.scheduled_time + info.schedule_to_close_timeout)
        return min(deadlines) if deadlines else None

    def is_cancelled(self) -> bool:
        return activity.is_cancelled()

    def heartbeat(self, *details: Any) -> None:
        activity.heartbeat(*details)

    def heartbeat_details(self) -> Sequence[Any]:
        return activity.info().heartbeat_details


def _timestamp(value: datetime) -> Timestamp:
    timestamp = Timestamp()
    timestamp.FromDatetime(value)
    return timestamp


def _datetime(value: Timestamp) -> datetime:
    return value.ToDatetime(tzinfo=timezone.utc)


def _summary(info) -> ExecutionSummary:
    start_time = _datetime(info.start_time)
    execution_time = _datetime(info.execution_time) if info.HasField("execution_time") else start_time
    close_time = _datetime(info.close_time) if info.HasField("close_time") else None
    return ExecutionSummary(
        execution_id=info.execution.workflow_id,
        start_time=start_time,
        execution_time=execution_time,
        close_time=close_time,
    )


class BenchActivities:
    """Activities sharing one Temporal client and configuration."""

    def __init__(self, client: Client, app_config: AppConfig):
        self.client = client
        self.config = app_config

    @activity.defn(name="bench-DriverActivity")
    async def drive(self, request: Dict[str, Any]) -> int:
        """Start one shard of target executions.

        Args:
            request: DriverTask payload

        Returns:
            Number of executions started by this attempt
        """
        try:
            task = DriverTask.model_validate(request)
        except ValidationError as e:
            raise InvalidSpecError(f"invalid driver task: {e}") from e

        info = activity.info()
        activity.logger.info(
            f"Driver {task.base_id} attempt {info.attempt}: {task.batch_size} executions "
            f"of {task.workflow_name} at {task.rate_per_second}/s"
        )

        bench = self.config.bench
        starter = TemporalExecutionStarter(
            self.client,
            task_queue=self.config.temporal.target_task_queue,
            execution_timeout=bench.target_execution_timeout,
            task_timeout=bench.target_task_timeout,
        )
        driver = BatchDriver(
            starter,
            TemporalAttemptContext(),
            safety_margin=bench.driver_safety_margin,
            logger=activity.logger,
        )
        return await driver.run(task)

    @activity.defn(name="bench-MonitorActivity")
    async def monitor(self, request: Dict[str, Any]) -> Dict[str, Any]:
        """Wait until every execution of the run has closed.

        Args:
            request: MonitorRequest payload

        Returns:
            Timing triples as a TimingBatch payload
        """
        try:
            monitor_request = MonitorRequest.model_validate(request)
        except ValidationError as e:
            raise InvalidSpecError(f"invalid monitor request: {e}") from e

        activity.logger.info(
            f"Monitoring {monitor_request.count} executions with prefix {monitor_request.id_prefix}"
        )

        bench = self.config.bench
        monitor = CompletionMonitor(
            TemporalExecutionLister(self.client, closed_page_size=bench.closed_page_size),
            TemporalAttemptContext(),
            poll_interval=bench.monitor_poll_interval_seconds,
            deadline_margin=bench.monitor_deadline_margin,
            scope_margin=bench.monitor_scope_margin,
            logger=activity.logger,
        )
        triples = await monitor.run(monitor_request)
        activity.logger.info("!!! BENCH TEST COMPLETED !!!")
        return TimingBatch.encode(triples).to_payload()
