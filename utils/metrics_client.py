"""Prometheus client correlating a bench run with server side metrics."""

import logging
import math
from datetime import datetime
from typing import List, Optional

import httpx

from config.retry_policies import MetricsBackendError
from config.settings import PrometheusSettings
from models.bench_models import MetricValue, ReportWindow

logger = logging.getLogger(__name__)

QUERY_RANGE_PATH = "/api/v1/query_range"

PERSISTENCE_UPDATE_METRIC = "persistence_latency_bucket{type='history',operation='UpdateWorkflowExecution'}"
PERSISTENCE_APPEND_METRIC = "persistence_latency_bucket{type='history',operation='AppendHistoryNodes'}"
VISIBILITY_METRIC = "visibility_persistence_latency_bucket{type='history'}"
SERVICE_METRIC = "service_latency_bucket{type='history'}"
HISTORY_CONTAINER = "temporal-history"


def histogram_query(metric: str) -> str:
    return f"histogram_quantile(0.95,sum(rate({metric}[5m])) by (le))"


def cpu_query(container: str) -> str:
    return f'sum(rate(container_cpu_usage_seconds_total{{container="{container}"}}[2m]))'


def memory_query(container: str) -> str:
    return f'max(container_memory_working_set_bytes{{container="{container}"}})'


def to_millis(value: float) -> Optional[int]:
    """Seconds (or cores) to an integer thousandth; NaN has no value."""
    if math.isnan(value):
        return None
    return int(value * 1000)


class PrometheusMetricsCollector:
    """Collects per bucket latency, CPU and memory series for a report window.

    Every series is fetched with ``query_range`` using the report interval as
    step, so sample ``i`` of each series lines up with histogram bucket ``i``.
    """

    def __init__(self, settings: PrometheusSettings, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.settings = settings
        self._transport = transport

    async def collect(self, window: ReportWindow) -> List[MetricValue]:
        """Query every series for ``window`` and merge them into metric values.

        Args:
            window: Time window and interval of a finished run

        Returns:
            One MetricValue per sample of the persistence update series

        Raises:
            MetricsBackendError: If any query fails
        """
        async with httpx.AsyncClient(
            base_url=self.settings.endpoint,
            timeout=self.settings.query_timeout_seconds,
            transport=self._transport,
        ) as client:
            updates = await self._query(client, histogram_query(PERSISTENCE_UPDATE_METRIC), window)
            appends = await self._query(client, histogram_query(PERSISTENCE_APPEND_METRIC), window)
            visibility = await self._query(client, histogram_query(VISIBILITY_METRIC), window)
            services = await self._query(client, histogram_query(SERVICE_METRIC), window)
            history_cpus = await self._query(client, cpu_query(HISTORY_CONTAINER), window)
            history_memory = await self._query(client, memory_query(HISTORY_CONTAINER), window)
            persistence_cpus = await self._query(client, cpu_query(self.settings.state_container), window)
            visibility_cpus = await self._query(client, cpu_query(self.settings.visibility_container), window)

        def at(series: List[float], i: int) -> Optional[float]:
            return series[i] if i < len(series) else None

        def millis_at(series: List[float], i: int) -> Optional[int]:
            value = at(series, i)
            return None if value is None else to_millis(value)

        values = []
        for i, update in enumerate(updates):
            storage = update
            if i < len(appends):
                storage = max(update, appends[i])
            values.append(MetricValue(
                persistence=to_millis(storage),
                visibility=millis_at(visibility, i),
                history_service=millis_at(services, i),
                persistence_cpu=millis_at(persistence_cpus, i),
                visibility_cpu=millis_at(visibility_cpus, i),
                history_cpu=millis_at(history_cpus, i),
                history_memory=at(history_memory, i),
            ))

        logger.info(f"Collected {len(values)} metric samples for {window.start_time} - {window.end_time}")
        return values

    async def _query(self, client: httpx.AsyncClient, query: str, window: ReportWindow) -> List[float]:
        params = {
            "query": query,
            "start": _timestamp(window.start_time),
            "end": _timestamp(window.end_time),
            "step": f"{window.interval_in_seconds}s",
        }
        try:
            response = await client.get(QUERY_RANGE_PATH, params=params)
            response.raise_for_status()
            body = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Prometheus query failed: {query}: {e}")
            raise MetricsBackendError(f"query {query!r} failed: {e}") from e

        data = body.get("data") or {}
        if body.get("status") != "success" or data.get("resultType") != "matrix":
            raise MetricsBackendError(f"query {query!r} yielded no results")

        samples = []
        for series in data.get("result", []):
            for _, value in series.get("values", []):
                samples.append(float(value))
        return samples


def _timestamp(value: datetime) -> str:
    return f"{value.timestamp():.3f}"
