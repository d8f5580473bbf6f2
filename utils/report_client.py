#!/usr/bin/env python3
"""
Bench Report Client

Starts bench runs and fetches their reports: histograms come from workflow
queries, server metrics are collected from Prometheus for the window the
workflow reports.
"""

import logging
import uuid
from typing import Any, Dict, List, Optional

from temporalio.client import Client, WorkflowHandle

from config.settings import AppConfig, get_config
from models.bench_models import MetricValue, ReportWindow, RunSpec
from utils.metrics_client import PrometheusMetricsCollector
from utils.reports import metrics_csv, metrics_json
from utils.temporal_client import connect_client


logger = logging.getLogger(__name__)

BENCH_WORKFLOW = "bench-workflow"


class BenchReportClient:
    """Client for starting bench runs and reading their reports."""

    def __init__(
        self,
        app_config: Optional[AppConfig] = None,
        client: Optional[Client] = None,
        metrics_collector: Optional[PrometheusMetricsCollector] = None,
    ):
        self.config = app_config or get_config()
        self._temporal_client = client
        self.metrics_collector = metrics_collector or PrometheusMetricsCollector(self.config.prometheus)

    async def get_temporal_client(self) -> Client:
        """Get or create Temporal client."""
        if self._temporal_client is None:
            self._temporal_client = await connect_client(self.config)
        return self._temporal_client

    async def start_run(self, request: Dict[str, Any], workflow_id: Optional[str] = None) -> str:
        """Validate a run spec and start a bench workflow for it.

        Args:
            request: Run spec as parsed from JSON
            workflow_id: Id of the bench workflow; generated when omitted

        Returns:
            Id of the started bench workflow

        Raises:
            InvalidSpecError: If the run spec is invalid
        """
        spec = RunSpec.parse(request)
        workflow_id = workflow_id or f"bench-{uuid.uuid4()}"

        client = await self.get_temporal_client()
        await client.start_workflow(
            BENCH_WORKFLOW,
            spec.to_payload(),
            id=workflow_id,
            task_queue=self.config.temporal.bench_task_queue,
            execution_timeout=self.config.bench.default_run_timeout,
        )
        logger.info(
            f"Started bench run {workflow_id}: {len(spec.steps)} steps, {spec.total_count} executions"
        )
        return workflow_id

    async def _handle(self, workflow_id: str) -> WorkflowHandle:
        client = await self.get_temporal_client()
        return client.get_workflow_handle(workflow_id)

    async def get_state(self, workflow_id: str) -> Dict[str, Any]:
        handle = await self._handle(workflow_id)
        return await handle.query("state")

    async def get_histogram(self, workflow_id: str) -> str:
        handle = await self._handle(workflow_id)
        return await handle.query("histogram")

    async def get_histogram_csv(self, workflow_id: str) -> str:
        handle = await self._handle(workflow_id)
        return await handle.query("histogram_csv")

    async def get_report_window(self, workflow_id: str) -> ReportWindow:
        handle = await self._handle(workflow_id)
        return ReportWindow.model_validate(await handle.query("report_window"))

    async def get_metrics(self, workflow_id: str) -> List[MetricValue]:
        """Collect server metrics for the window of a finished run."""
        window = await self.get_report_window(workflow_id)
        return await self.metrics_collector.collect(window)

    async def get_metrics_json(self, workflow_id: str) -> str:
        return metrics_json(await self.get_metrics(workflow_id))

    async def get_metrics_csv(self, workflow_id: str) -> str:
        window = await self.get_report_window(workflow_id)
        values = await self.metrics_collector.collect(window)
        return metrics_csv(values, window.interval_in_seconds, window.csv_separator)
