"""Temporal workflows of the bench harness and the workflow under test."""

from .bench_workflow import BenchWorkflow
from .basic_workflow import BasicWorkflow

__all__ = [
    "BenchWorkflow",
    "BasicWorkflow",
]
