"""Data models for the bench harness."""

from .bench_models import (
    RunState,
    BenchStep,
    TargetSpec,
    ReportSpec,
    RunSpec,
    DriverTask,
    ProgressMarker,
    MonitorRequest,
    TimingTriple,
    TimingBatch,
    HistogramBucket,
    MetricValue,
    ReportWindow,
    RunResult,
    BasicWorkflowRequest,
    BasicActivityRequest,
)

__all__ = [
    "RunState",
    "BenchStep",
    "TargetSpec",
    "ReportSpec",
    "RunSpec",
    "DriverTask",
    "ProgressMarker",
    "MonitorRequest",
    "TimingTriple",
    "TimingBatch",
    "HistogramBucket",
    "MetricValue",
    "ReportWindow",
    "RunResult",
    "BasicWorkflowRequest",
    "BasicActivityRequest",
]
