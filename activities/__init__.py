"""Temporal activities of the bench harness and the workflow under test."""

from .bench_driver import AttemptContext, BatchDriver, ExecutionStarter, StartOutcome
from .bench_monitor import CompletionMonitor, ExecutionLister, ExecutionSummary
from .bench_activities import (
    BenchActivities,
    TemporalAttemptContext,
    TemporalExecutionLister,
    TemporalExecutionStarter,
)
from .basic_activities import basic_activity

__all__ = [
    # Core
    "AttemptContext",
    "BatchDriver",
    "ExecutionStarter",
    "StartOutcome",
    "CompletionMonitor",
    "ExecutionLister",
    "ExecutionSummary",
    # Temporal bindings
    "BenchActivities",
    "TemporalAttemptContext",
    "TemporalExecutionLister",
    "TemporalExecutionStarter",
    # Workflow under test
    "basic_activity",
]
