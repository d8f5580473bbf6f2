"""JSON and CSV renderings of bench results."""

import json
from typing import List, Optional, Sequence

from models.bench_models import DEFAULT_CSV_SEPARATOR, HistogramBucket, MetricValue

HISTOGRAM_CSV_HEADER = [
    "Time (seconds)",
    "Workflows Started",
    "Workflows Started Rate",
    "Workflows Executions",
    "Workflows Execution Rate",
    "Workflow Closed",
    "Workflow Closed Rate",
    "Backlog",
]

METRICS_CSV_HEADER = [
    "Time (seconds)",
    "Persistence Latency (ms)",
    "Visibility Latency (ms)",
    "History Service Latency (ms)",
    "Persistence CPU (mcores)",
    "Visibility CPU (mcores)",
    "History Service CPU (mcores)",
    "History Service Memory Working Set (MB)",
]

BYTES_PER_MB = 1048576.0


def histogram_json(buckets: Sequence[HistogramBucket]) -> str:
    return json.dumps([bucket.to_payload() for bucket in buckets], separators=(",", ":"))


def histogram_csv(
    buckets: Sequence[HistogramBucket],
    interval_in_seconds: int,
    separator: Optional[str] = None,
) -> str:
    """Render the histogram as CSV, one row per bucket.

    The time column is the end of each bucket; rate columns are events per
    second within the bucket.
    """
    separator = separator or DEFAULT_CSV_SEPARATOR
    lines = [separator.join(HISTOGRAM_CSV_HEADER)]
    for i, bucket in enumerate(buckets):
        lines.append(separator.join([
            str((i + 1) * interval_in_seconds),
            str(bucket.started),
            _rate(bucket.started, interval_in_seconds),
            str(bucket.execution_began),
            _rate(bucket.execution_began, interval_in_seconds),
            str(bucket.closed),
            _rate(bucket.closed, interval_in_seconds),
            str(bucket.backlog),
        ]))
    return "\n".join(lines)


def metrics_json(values: Sequence[MetricValue]) -> str:
    return json.dumps([value.to_payload() for value in values], separators=(",", ":"))


def metrics_csv(
    values: Sequence[MetricValue],
    interval_in_seconds: int,
    separator: Optional[str] = None,
) -> str:
    """Render server metrics as CSV; missing samples become empty cells."""
    separator = separator or DEFAULT_CSV_SEPARATOR
    lines = [separator.join(METRICS_CSV_HEADER)]
    for i, value in enumerate(values):
        memory_mb = None
        if value.history_memory is not None:
            memory_mb = int(value.history_memory / BYTES_PER_MB)
        lines.append(separator.join([
            str((i + 1) * interval_in_seconds),
            _cell(value.persistence),
            _cell(value.visibility),
            _cell(value.history_service),
            _cell(value.persistence_cpu),
            _cell(value.visibility_cpu),
            _cell(value.history_cpu),
            _cell(memory_mb),
        ]))
    return "\n".join(lines)


def _rate(count: int, interval_in_seconds: int) -> str:
    return f"{count / interval_in_seconds:f}"


def _cell(value: Optional[int]) -> str:
    return "" if value is None else str(value)


def parse_histogram_json(payload: str) -> List[HistogramBucket]:
    """Inverse of :func:`histogram_json`, used by report clients."""
    return [HistogramBucket.model_validate(item) for item in json.loads(payload)]
