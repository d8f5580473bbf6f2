#!/usr/bin/env python3
"""
Test Bench Orchestrator

Tests for step planning, the fork join over driver shards and report queries.
"""

import asyncio
import json
import pytest
from datetime import datetime, timedelta, timezone

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from activities.bench_driver import BatchDriver, StartOutcome
from config.retry_policies import BenchError, BenchTimedOutError, InvalidSpecError, PhaseFailedError
from models.bench_models import BenchStep, RunState, TimingTriple
from utils.rate_limiter import RateLimiter
from workflows.orchestrator import BenchOrchestrator, derive_concurrency, plan_step, split

RUN_START = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


def make_request(steps, interval=5, separator=";"):
    return {
        "steps": steps,
        "workflow": {"name": "basic-workflow", "args": {"sequenceCount": 1}},
        "report": {"intervalInSeconds": interval, "csvSeparator": separator},
    }


def triple(start, close):
    return TimingTriple(
        start_time=RUN_START + timedelta(seconds=start),
        execution_time=RUN_START + timedelta(seconds=start),
        close_time=RUN_START + timedelta(seconds=close),
    )


class TestPlanning:
    """Test cases for shard planning."""

    @pytest.mark.parametrize("step,expected", [
        ({"count": 8, "concurrency": 4}, 4),
        ({"count": 100, "ratePerSecond": 50}, 5),
        ({"count": 100, "ratePerSecond": 10}, 1),
        ({"count": 100, "ratePerSecond": 0}, 1),
        ({"count": 20, "ratePerSecond": 1000}, 20),
    ])
    def test_derive_concurrency(self, step, expected):
        assert derive_concurrency(BenchStep.model_validate(step)) == expected

    def test_split_spreads_remainder(self):
        assert split(10, 3) == [4, 3, 3]
        assert split(9, 3) == [3, 3, 3]
        assert split(0, 2) == [0, 0]

    def test_plan_step_ids_and_sizes(self):
        step = BenchStep(count=12, concurrency=3, rate_per_second=30)

        tasks = plan_step("bench-1", 2, step, "basic-workflow", {"a": 1})

        assert [t.base_id for t in tasks] == ["bench-1-2-0", "bench-1-2-1", "bench-1-2-2"]
        assert [t.batch_size for t in tasks] == [4, 4, 4]
        assert [t.rate_per_second for t in tasks] == [10, 10, 10]
        assert all(t.parameters == {"a": 1} for t in tasks)

    def test_plan_step_derived_remainder(self):
        step = BenchStep(count=101, rate_per_second=25)

        tasks = plan_step("bench-1", 0, step, "wf", None)

        assert [t.batch_size for t in tasks] == [51, 50]
        assert [t.rate_per_second for t in tasks] == [13, 12]

    def test_small_rate_is_floored_per_shard(self):
        step = BenchStep(count=10, concurrency=5, rate_per_second=3)

        tasks = plan_step("bench-1", 0, step, "wf", None)

        assert [t.rate_per_second for t in tasks] == [1, 1, 1, 1, 1]

    def test_unlimited_rate_stays_unlimited(self):
        step = BenchStep(count=10, concurrency=2)

        tasks = plan_step("bench-1", 0, step, "wf", None)

        assert [t.rate_per_second for t in tasks] == [0, 0]


class TestBenchOrchestrator:
    """Test cases for BenchOrchestrator."""

    @pytest.fixture
    def calls(self):
        return {"drivers": [], "monitor": []}

    @pytest.fixture
    def triples(self):
        return [triple(0, 12)]

    def make_orchestrator(self, calls, triples, driver=None):
        async def run_driver(task):
            calls["drivers"].append(task)
            await asyncio.sleep(0)
            return task.batch_size

        async def run_monitor(request):
            calls["monitor"].append(request)
            return triples

        return BenchOrchestrator(
            base_id="bench-1",
            run_driver=driver or run_driver,
            run_monitor=run_monitor,
            now=lambda: RUN_START,
        )

    @pytest.mark.asyncio
    async def test_run_to_reporting(self, calls, triples):
        orchestrator = self.make_orchestrator(calls, triples)

        result = await orchestrator.run(make_request([
            {"count": 6, "concurrency": 2},
            {"count": 4, "ratePerSecond": 5},
        ]))

        assert orchestrator.state == RunState.REPORTING
        assert result.triples == triples
        assert [t.base_id for t in calls["drivers"]] == ["bench-1-0-0", "bench-1-0-1", "bench-1-1-0"]
        assert len(calls["monitor"]) == 1
        monitor_request = calls["monitor"][0]
        assert monitor_request.count == 10
        assert monitor_request.base_id == "bench-1"
        assert monitor_request.start_time == RUN_START

    @pytest.mark.asyncio
    async def test_histogram_queries(self, calls, triples):
        orchestrator = self.make_orchestrator(calls, triples)
        await orchestrator.run(make_request([{"count": 1}], interval=5, separator=","))

        histogram = json.loads(orchestrator.histogram())
        csv_lines = orchestrator.histogram_csv().split("\n")

        assert histogram == [
            {"started": 1, "execution": 1, "closed": 0, "backlog": 1},
            {"started": 0, "execution": 0, "closed": 0, "backlog": 1},
            {"started": 0, "execution": 0, "closed": 1, "backlog": 0},
        ]
        assert csv_lines[0].startswith("Time (seconds),Workflows Started,")
        assert csv_lines[1] == "5,1,0.200000,1,0.200000,0,0.000000,1"
        assert len(csv_lines) == 4
        assert orchestrator.histogram() == orchestrator.histogram()

    @pytest.mark.asyncio
    async def test_report_window(self, calls, triples):
        orchestrator = self.make_orchestrator(calls, triples)
        await orchestrator.run(make_request([{"count": 1}], interval=5))

        window = orchestrator.report_window()

        assert window.start_time == RUN_START
        assert window.end_time == RUN_START + timedelta(seconds=15)
        assert window.interval_in_seconds == 5

    @pytest.mark.asyncio
    async def test_reports_unavailable_before_reporting(self, calls, triples):
        orchestrator = self.make_orchestrator(calls, triples)

        with pytest.raises(BenchError, match="not reporting"):
            orchestrator.histogram()
        assert orchestrator.describe()["state"] == "validating"

    @pytest.mark.asyncio
    async def test_invalid_spec(self, calls, triples):
        orchestrator = self.make_orchestrator(calls, triples)

        with pytest.raises(InvalidSpecError):
            await orchestrator.run(make_request([{"count": 5, "concurrency": 2}]))

        assert orchestrator.state == RunState.FAILED
        assert calls["drivers"] == []
        assert calls["monitor"] == []

    @pytest.mark.asyncio
    async def test_shard_failure_fails_step_after_siblings(self, calls, triples):
        finished = []

        async def run_driver(task):
            calls["drivers"].append(task)
            if task.base_id == "bench-1-0-1":
                raise BenchTimedOutError("timed out", 3, 5)
            await asyncio.sleep(0)
            finished.append(task.base_id)
            return task.batch_size

        orchestrator = self.make_orchestrator(calls, triples, driver=run_driver)

        with pytest.raises(PhaseFailedError, match="step 0 shard 1") as exc_info:
            await orchestrator.run(make_request([
                {"count": 15, "concurrency": 3},
                {"count": 5},
            ]))

        assert isinstance(exc_info.value.__cause__, BenchTimedOutError)
        assert finished == ["bench-1-0-0", "bench-1-0-2"]
        assert len(calls["drivers"]) == 3
        assert calls["monitor"] == []
        assert orchestrator.state == RunState.FAILED

    @pytest.mark.asyncio
    async def test_steps_do_not_overlap(self, calls, triples):
        in_flight = []
        overlaps = []

        async def run_driver(task):
            step = task.base_id.split("-")[2]
            if any(s != step for s in in_flight):
                overlaps.append(task.base_id)
            in_flight.append(step)
            await asyncio.sleep(0)
            await asyncio.sleep(0)
            in_flight.remove(step)
            return task.batch_size

        orchestrator = self.make_orchestrator(calls, triples, driver=run_driver)
        await orchestrator.run(make_request([
            {"count": 4, "concurrency": 4},
            {"count": 4, "concurrency": 4},
            {"count": 2, "concurrency": 2},
        ]))

        assert overlaps == []

    @pytest.mark.asyncio
    async def test_monitor_failure_is_wrapped(self, calls):
        async def run_monitor(request):
            raise RuntimeError("activity worker lost")

        orchestrator = BenchOrchestrator(
            base_id="bench-1",
            run_driver=lambda task: asyncio.sleep(0),
            run_monitor=run_monitor,
            now=lambda: RUN_START,
        )

        with pytest.raises(PhaseFailedError, match="monitoring failed"):
            await orchestrator.run(make_request([{"count": 1}]))

    @pytest.mark.asyncio
    async def test_every_start_id_is_unique(self, triples):
        started = []

        class Starter:
            async def start(self, execution_id, workflow_name, parameters):
                started.append(execution_id)
                return StartOutcome.STARTED

        class Context:
            deadline = None

            def is_cancelled(self):
                return False

            def heartbeat(self, *details):
                pass

            def heartbeat_details(self):
                return []

        async def run_driver(task):
            driver = BatchDriver(Starter(), Context(), limiter_factory=lambda rate: RateLimiter(0))
            return await driver.run(task)

        async def run_monitor(request):
            return triples

        orchestrator = BenchOrchestrator("bench-1", run_driver, run_monitor, now=lambda: RUN_START)
        await orchestrator.run(make_request([
            {"count": 12, "concurrency": 3},
            {"count": 9, "ratePerSecond": 25},
        ]))

        assert len(started) == 21
        assert len(set(started)) == 21
        assert all(s.startswith("basic-workflow-bench-1-") for s in started)
