#!/usr/bin/env python3
"""
Test Bench Activities

Tests for the Temporal adapters of the driver, the monitor and the basic
workflow activity, run inside an ActivityEnvironment.
"""

import dataclasses
import pytest
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from google.protobuf.timestamp_pb2 import Timestamp
from temporalio.api.common.v1 import WorkflowExecution
from temporalio.api.workflow.v1 import WorkflowExecutionInfo
from temporalio.api.workflowservice.v1 import (
    ListClosedWorkflowExecutionsResponse,
    ListOpenWorkflowExecutionsResponse,
)
from temporalio.exceptions import WorkflowAlreadyStartedError
from temporalio.testing import ActivityEnvironment

from activities.basic_activities import basic_activity
from activities.bench_activities import BenchActivities
from config.retry_policies import InvalidSpecError
from config.settings import AppConfig
from models.bench_models import TimingBatch

RUN_START = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


def execution_info(workflow_id, start_offset, close_offset):
    start = int(RUN_START.timestamp()) + start_offset
    return WorkflowExecutionInfo(
        execution=WorkflowExecution(workflow_id=workflow_id, run_id="run"),
        start_time=Timestamp(seconds=start),
        close_time=Timestamp(seconds=int(RUN_START.timestamp()) + close_offset),
    )


@pytest.fixture
def env():
    now = datetime.now(timezone.utc)
    environment = ActivityEnvironment()
    environment.info = dataclasses.replace(
        environment.info,
        started_time=now,
        scheduled_time=now,
        start_to_close_timeout=timedelta(minutes=5),
        schedule_to_close_timeout=None,
    )
    return environment


@pytest.fixture
def client():
    mock_client = MagicMock()
    mock_client.namespace = "bench-ns"
    mock_client.start_workflow = AsyncMock()
    return mock_client


@pytest.fixture
def activities(client):
    return BenchActivities(client, AppConfig())


def driver_request(batch_size=5):
    return {
        "baseId": "run-0-0",
        "batchSize": batch_size,
        "ratePerSecond": 0,
        "workflowName": "basic-workflow",
        "parameters": {"sequenceCount": 1, "payload": "$RANDOM(4)"},
    }


class TestDriverActivity:
    """Test cases for bench-DriverActivity."""

    @pytest.mark.asyncio
    async def test_resumes_from_heartbeat(self, env, client, activities):
        heartbeats = []
        env.on_heartbeat = lambda *details: heartbeats.append(details)
        env.info = dataclasses.replace(env.info, heartbeat_details=[2])

        started = await env.run(activities.drive, driver_request())

        assert started == 2
        first_call = client.start_workflow.await_args_list[0]
        assert first_call.args == ("basic-workflow",)
        assert first_call.kwargs["id"] == "basic-workflow-run-0-0-3"
        assert first_call.kwargs["task_queue"] == "temporal-basic"
        assert first_call.kwargs["execution_timeout"] == timedelta(minutes=30)
        assert first_call.kwargs["task_timeout"] == timedelta(seconds=10)
        assert len(first_call.kwargs["args"][0]["payload"]) == 4
        assert heartbeats == [(3,), (4,)]

    @pytest.mark.asyncio
    async def test_existing_execution_is_not_a_failure(self, env, client, activities):
        client.start_workflow.side_effect = WorkflowAlreadyStartedError(
            "basic-workflow-run-0-0-0", "basic-workflow"
        )

        started = await env.run(activities.drive, driver_request(2))

        assert started == 2
        assert client.start_workflow.await_count == 2

    @pytest.mark.asyncio
    async def test_no_parameters_means_no_args(self, env, client, activities):
        request = driver_request(1)
        request["parameters"] = None

        await env.run(activities.drive, request)

        assert client.start_workflow.await_args.kwargs["args"] == []

    @pytest.mark.asyncio
    async def test_invalid_task(self, env, activities):
        with pytest.raises(InvalidSpecError):
            await env.run(activities.drive, {"baseId": "run-0-0"})


class TestMonitorActivity:
    """Test cases for bench-MonitorActivity."""

    @pytest.mark.asyncio
    async def test_returns_triples_of_matching_executions(self, env, client, activities):
        service = client.workflow_service
        service.list_open_workflow_executions = AsyncMock(
            return_value=ListOpenWorkflowExecutionsResponse()
        )
        service.list_closed_workflow_executions = AsyncMock(
            return_value=ListClosedWorkflowExecutionsResponse(executions=[
                execution_info("basic-workflow-bench-1-0-0-0", 0, 4),
                execution_info("basic-workflow-bench-1-0-0-1", 1, 6),
                execution_info("basic-workflow-bench-2-0-0-0", 1, 6),
            ])
        )
        request = {
            "baseId": "bench-1",
            "workflowName": "basic-workflow",
            "count": 2,
            "startTime": RUN_START.isoformat(),
        }

        result = await env.run(activities.monitor, request)

        triples = TimingBatch.model_validate(result).decode()
        assert len(triples) == 2
        assert triples[0].start_time == RUN_START
        assert triples[0].execution_time == RUN_START
        assert triples[1].close_time == RUN_START + timedelta(seconds=6)

        open_request = service.list_open_workflow_executions.await_args.args[0]
        assert open_request.namespace == "bench-ns"
        assert open_request.maximum_page_size == 1
        assert open_request.type_filter.name == "basic-workflow"
        assert open_request.start_time_filter.earliest_time.seconds == int(RUN_START.timestamp()) - 10

        closed_request = service.list_closed_workflow_executions.await_args.args[0]
        assert closed_request.maximum_page_size == 1000


class TestBasicActivity:
    """Test cases for basic-activity."""

    @pytest.mark.asyncio
    async def test_returns_result_payload(self):
        result = await ActivityEnvironment().run(
            basic_activity,
            {"activityDelayMilliseconds": 1, "payload": "in", "resultPayload": "out"},
        )

        assert result == "out"

    @pytest.mark.asyncio
    async def test_empty_request(self):
        assert await ActivityEnvironment().run(basic_activity, None) == ""
