"""Data models for bench runs, driver shards and monitoring results."""

from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from config.retry_policies import InvalidSpecError


DEFAULT_INTERVAL_SECONDS = 60
DEFAULT_CSV_SEPARATOR = ";"


class RunState(str, Enum):
    """Lifecycle of a bench run."""
    VALIDATING = "validating"
    DRIVING = "driving"
    MONITORING = "monitoring"
    REPORTING = "reporting"
    FAILED = "failed"


class BenchModel(BaseModel):
    """Base model: camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    def to_payload(self) -> Dict[str, Any]:
        """Convert to a JSON compatible Temporal payload."""
        return self.model_dump(mode="json", by_alias=True)


class BenchStep(BenchModel):
    """One phase of load: ``count`` executions at ``rate_per_second``."""

    count: int = Field(..., gt=0, description="Executions to start across all shards")
    concurrency: int = Field(
        default=0,
        ge=0,
        description="Driver shards to run in parallel; 0 derives it from the rate",
    )
    rate_per_second: int = Field(
        default=0,
        ge=0,
        alias="ratePerSecond",
        description="Maximum starts per second across all shards; 0 is unlimited",
    )

    @model_validator(mode="after")
    def validate_divisible(self):
        """An explicit concurrency must split the count evenly."""
        if self.concurrency > 0 and self.count % self.concurrency != 0:
            raise ValueError(
                f"request count {self.count} must be a multiple of concurrency {self.concurrency}"
            )
        return self


class TargetSpec(BenchModel):
    """The workflow under test."""

    name: str = Field(..., min_length=1, description="Workflow type name to start")
    args: Any = Field(default=None, description="Input of every started execution")

    @model_validator(mode="before")
    @classmethod
    def accept_parameters_alias(cls, data: Any) -> Any:
        if isinstance(data, dict) and "args" not in data and "parameters" in data:
            data = dict(data)
            data["args"] = data.pop("parameters")
        return data


class ReportSpec(BenchModel):
    """Histogram granularity and CSV rendering options."""

    interval_in_seconds: int = Field(default=DEFAULT_INTERVAL_SECONDS, alias="intervalInSeconds")
    csv_separator: str = Field(default=DEFAULT_CSV_SEPARATOR, alias="csvSeparator")

    @field_validator("interval_in_seconds", mode="before")
    @classmethod
    def default_missing_interval(cls, value: Any) -> Any:
        return DEFAULT_INTERVAL_SECONDS if value is None else value

    @field_validator("interval_in_seconds")
    @classmethod
    def default_interval(cls, value: int) -> int:
        # Checked after coercion so "0" and -5.0 fall back too
        return DEFAULT_INTERVAL_SECONDS if value <= 0 else value

    @field_validator("csv_separator", mode="before")
    @classmethod
    def default_separator(cls, value: Any) -> Any:
        return value or DEFAULT_CSV_SEPARATOR


class RunSpec(BenchModel):
    """Complete description of a bench run."""

    steps: List[BenchStep] = Field(..., min_length=1)
    workflow: TargetSpec
    report: ReportSpec = Field(default_factory=ReportSpec)

    @property
    def total_count(self) -> int:
        return sum(step.count for step in self.steps)

    @classmethod
    def parse(cls, data: Dict[str, Any]) -> "RunSpec":
        """Validate raw input, raising ``InvalidSpecError`` on any problem."""
        if not isinstance(data, dict):
            raise InvalidSpecError(f"run spec must be an object, got {type(data).__name__}")
        if not data.get("steps"):
            raise InvalidSpecError("request must have at least one step defined")
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise InvalidSpecError(f"invalid run spec: {e}") from e


class DriverTask(BenchModel):
    """One shard of a step, owned by a single driver activity."""

    base_id: str = Field(..., alias="baseId")
    batch_size: int = Field(..., gt=0, alias="batchSize")
    rate_per_second: int = Field(default=0, ge=0, alias="ratePerSecond")
    workflow_name: str = Field(..., alias="workflowName")
    parameters: Any = None

    def execution_id(self, index: int) -> str:
        return f"{self.workflow_name}-{self.base_id}-{index}"


class ProgressMarker(BenchModel):
    """Last index a driver shard started successfully."""

    last_completed_index: int = Field(default=-1, ge=-1, alias="lastCompletedIndex")

    @property
    def resume_index(self) -> int:
        return self.last_completed_index + 1

    @classmethod
    def from_heartbeat(cls, details: Sequence[Any]) -> Optional["ProgressMarker"]:
        """Read the marker from heartbeat details; unreadable details mean no marker."""
        if not details:
            return None
        try:
            return cls(last_completed_index=int(details[0]))
        except (TypeError, ValueError, ValidationError):
            return None


class MonitorRequest(BenchModel):
    """Input of the completion monitor."""

    base_id: str = Field(..., alias="baseId")
    workflow_name: str = Field(..., alias="workflowName")
    count: int = Field(..., ge=0)
    start_time: datetime = Field(..., alias="startTime")

    @property
    def id_prefix(self) -> str:
        return f"{self.workflow_name}-{self.base_id}-"


EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
MILLISECOND = timedelta(milliseconds=1)


def _epoch_ms(value: datetime) -> int:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return (value - EPOCH) // MILLISECOND


def _from_epoch_ms(value: int) -> datetime:
    return EPOCH + timedelta(milliseconds=value)


class TimingTriple(BenchModel):
    """Start, execution-begin and close time of one finished execution."""

    start_time: datetime = Field(..., alias="startTime")
    execution_time: datetime = Field(..., alias="executionTime")
    close_time: datetime = Field(..., alias="closeTime")


class TimingBatch(BenchModel):
    """Compact wire form of the timing triples of a run.

    Triples are sorted by start time and flattened into integers with
    millisecond resolution: per triple the start as a delta to the previous
    start (the first one to ``base_ms``), then execution and close time as
    deltas to its own start.
    """

    base_ms: int = Field(default=0, alias="baseMs")
    values: List[int] = Field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.values) // 3

    @classmethod
    def encode(cls, triples: Sequence[TimingTriple]) -> "TimingBatch":
        ordered = sorted(triples, key=lambda t: t.start_time)
        if not ordered:
            return cls()

        base = _epoch_ms(ordered[0].start_time)
        previous = base
        values: List[int] = []
        for triple in ordered:
            start = _epoch_ms(triple.start_time)
            values.extend([
                start - previous,
                _epoch_ms(triple.execution_time) - start,
                _epoch_ms(triple.close_time) - start,
            ])
            previous = start
        return cls(base_ms=base, values=values)

    def decode(self) -> List[TimingTriple]:
        if len(self.values) % 3 != 0:
            raise ValueError(f"timing batch length {len(self.values)} is not a multiple of 3")

        triples = []
        start = self.base_ms
        for i in range(0, len(self.values), 3):
            start += self.values[i]
            triples.append(TimingTriple(
                start_time=_from_epoch_ms(start),
                execution_time=_from_epoch_ms(start + self.values[i + 1]),
                close_time=_from_epoch_ms(start + self.values[i + 2]),
            ))
        return triples


class HistogramBucket(BenchModel):
    """Counters for one time bucket of a run."""

    started: int = 0
    execution_began: int = Field(default=0, alias="execution")
    closed: int = 0
    backlog: int = 0


class MetricValue(BenchModel):
    """Server side metrics for one time bucket; ``None`` when no sample exists."""

    persistence: Optional[int] = None
    visibility: Optional[int] = None
    history_service: Optional[int] = Field(default=None, alias="historyService")
    persistence_cpu: Optional[int] = Field(default=None, alias="persistenceCpu")
    visibility_cpu: Optional[int] = Field(default=None, alias="visibilityCpu")
    history_cpu: Optional[int] = Field(default=None, alias="historyCpu")
    history_memory: Optional[float] = Field(default=None, alias="historyMemory")


class ReportWindow(BenchModel):
    """Time window a finished run covers, used for metric correlation."""

    start_time: datetime = Field(..., alias="startTime")
    end_time: datetime = Field(..., alias="endTime")
    interval_in_seconds: int = Field(..., gt=0, alias="intervalInSeconds")
    csv_separator: str = Field(default=DEFAULT_CSV_SEPARATOR, alias="csvSeparator")


class RunResult(BenchModel):
    """Immutable outcome of a run; reports are recomputed from it."""

    triples: List[TimingTriple] = Field(default_factory=list)
    interval_in_seconds: int = Field(..., gt=0, alias="intervalInSeconds")
    start_time: datetime = Field(..., alias="startTime")


class BasicWorkflowRequest(BenchModel):
    """Input of ``basic-workflow``, the default workflow under test."""

    sequence_count: int = Field(default=1, ge=0, alias="sequenceCount")
    activity_duration_milliseconds: int = Field(default=0, ge=0, alias="activityDurationMilliseconds")
    payload: str = ""
    result_payload: str = Field(default="", alias="resultPayload")
    activity_task_queue: str = Field(default="temporal-basic-act", alias="activityTaskQueue")


class BasicActivityRequest(BenchModel):
    """Input of ``basic-activity``."""

    activity_delay_milliseconds: int = Field(default=0, ge=0, alias="activityDelayMilliseconds")
    payload: str = ""
    result_payload: str = Field(default="", alias="resultPayload")
