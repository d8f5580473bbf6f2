#!/usr/bin/env python3
"""
Test Prometheus Metrics Collector

Tests for query_range requests and the merge of series into metric values.
"""

import httpx
import pytest
from datetime import datetime, timedelta, timezone

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from config.retry_policies import MetricsBackendError
from config.settings import PrometheusSettings
from models.bench_models import ReportWindow
from utils.metrics_client import PrometheusMetricsCollector, cpu_query, histogram_query, to_millis

START = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


def matrix(*values):
    return {
        "status": "success",
        "data": {
            "resultType": "matrix",
            "result": [{"metric": {}, "values": [[1704110400 + i, v] for i, v in enumerate(values)]}],
        },
    }


def series_for(query):
    # Memory first: its selector also names the history container
    if "container_memory_working_set_bytes" in query:
        return matrix("2097152", "1048576")
    if "UpdateWorkflowExecution" in query:
        return matrix("0.125", "0.5")
    if "AppendHistoryNodes" in query:
        return matrix("0.25", "0.0625")
    if "visibility_persistence_latency_bucket" in query:
        return matrix("NaN", "0.0625")
    if "service_latency_bucket" in query:
        return matrix("0.5")
    if 'container="temporal-history"' in query:
        return matrix("0.5", "0.25")
    if 'container="cassandra"' in query:
        return matrix("1.5", "1")
    if 'container="elasticsearch"' in query:
        return matrix("0.125")
    raise AssertionError(f"unexpected query {query}")


class TestPrometheusMetricsCollector:
    """Test cases for PrometheusMetricsCollector."""

    @pytest.fixture
    def settings(self):
        return PrometheusSettings(
            endpoint="http://prometheus:9090",
            state_container="cassandra",
            visibility_container="elasticsearch",
        )

    @pytest.fixture
    def window(self):
        return ReportWindow(
            start_time=START,
            end_time=START + timedelta(seconds=20),
            interval_in_seconds=10,
        )

    @pytest.mark.asyncio
    async def test_collect_merges_series(self, settings, window):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json=series_for(request.url.params["query"]))

        collector = PrometheusMetricsCollector(settings, transport=httpx.MockTransport(handler))
        values = await collector.collect(window)

        assert [v.persistence for v in values] == [250, 500]
        assert [v.visibility for v in values] == [None, 62]
        assert [v.history_service for v in values] == [500, None]
        assert [v.history_cpu for v in values] == [500, 250]
        assert [v.persistence_cpu for v in values] == [1500, 1000]
        assert [v.visibility_cpu for v in values] == [125, None]
        assert [v.history_memory for v in values] == [2097152.0, 1048576.0]
        assert len(requests) == 8

    @pytest.mark.asyncio
    async def test_query_range_parameters(self, settings, window):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json=series_for(request.url.params["query"]))

        collector = PrometheusMetricsCollector(settings, transport=httpx.MockTransport(handler))
        await collector.collect(window)

        request = requests[0]
        assert request.url.host == "prometheus"
        assert request.url.path == "/api/v1/query_range"
        assert request.url.params["start"] == f"{START.timestamp():.3f}"
        assert request.url.params["end"] == f"{(START + timedelta(seconds=20)).timestamp():.3f}"
        assert request.url.params["step"] == "10s"
        assert "UpdateWorkflowExecution" in request.url.params["query"]

    @pytest.mark.asyncio
    async def test_error_status_raises(self, settings, window):
        def handler(request):
            return httpx.Response(200, json={"status": "error", "error": "bad query"})

        collector = PrometheusMetricsCollector(settings, transport=httpx.MockTransport(handler))

        with pytest.raises(MetricsBackendError, match="yielded no results"):
            await collector.collect(window)

    @pytest.mark.asyncio
    async def test_http_failure_raises(self, settings, window):
        def handler(request):
            return httpx.Response(500, text="internal error")

        collector = PrometheusMetricsCollector(settings, transport=httpx.MockTransport(handler))

        with pytest.raises(MetricsBackendError) as exc_info:
            await collector.collect(window)

        assert isinstance(exc_info.value.__cause__, httpx.HTTPStatusError)

    @pytest.mark.asyncio
    async def test_vector_result_rejected(self, settings, window):
        def handler(request):
            return httpx.Response(200, json={"status": "success", "data": {"resultType": "vector", "result": []}})

        collector = PrometheusMetricsCollector(settings, transport=httpx.MockTransport(handler))

        with pytest.raises(MetricsBackendError):
            await collector.collect(window)


class TestQueries:
    """Test cases for query helpers."""

    def test_histogram_query(self):
        assert histogram_query("m{a='b'}") == "histogram_quantile(0.95,sum(rate(m{a='b'}[5m])) by (le))"

    def test_cpu_query(self):
        assert cpu_query("cassandra") == 'sum(rate(container_cpu_usage_seconds_total{container="cassandra"}[2m]))'

    def test_to_millis(self):
        assert to_millis(0.0625) == 62
        assert to_millis(float("nan")) is None
