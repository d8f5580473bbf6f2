"""Fixed width time histogram of a bench run."""

from datetime import datetime
from typing import Iterable, List

from models.bench_models import HistogramBucket, TimingTriple


def build_histogram(triples: Iterable[TimingTriple], interval_in_seconds: int) -> List[HistogramBucket]:
    """Bucket start, execution and close events of finished executions.

    The window runs from the earliest start to the latest close. Each
    bucket spans ``interval_in_seconds``; an execution adds to the backlog
    of every bucket in ``[start bucket, close bucket)``. The result does
    not depend on the order of ``triples``; an empty input has no buckets.
    """
    if interval_in_seconds <= 0:
        raise ValueError(f"interval must be positive, got {interval_in_seconds}")

    triples = list(triples)
    if not triples:
        return []

    window_start = min(t.start_time for t in triples)
    window_end = max(t.close_time for t in triples)
    count = _offset_seconds(window_end, window_start) // interval_in_seconds + 1

    started = [0] * count
    executed = [0] * count
    closed = [0] * count
    backlog = [0] * count

    def index(ts: datetime) -> int:
        i = _offset_seconds(ts, window_start) // interval_in_seconds
        return min(max(i, 0), count - 1)

    for triple in triples:
        si = index(triple.start_time)
        ei = index(triple.execution_time)
        ci = index(triple.close_time)
        started[si] += 1
        executed[ei] += 1
        closed[ci] += 1
        for i in range(si, ci):
            backlog[i] += 1

    return [
        HistogramBucket(started=s, execution_began=e, closed=c, backlog=b)
        for s, e, c, b in zip(started, executed, closed, backlog)
    ]


def _offset_seconds(ts: datetime, origin: datetime) -> int:
    # Whole seconds, truncated toward zero
    return int((ts - origin).total_seconds())
