"""
Latency and throughput summary for a finished run.

Samples are sorted once; min, max and the percentiles index into the sorted
copy.
"""

from typing import List, Optional, Sequence

from ..models.results import RunResult


def _percentile(sorted_samples: List[float], fraction: float) -> float:
    index = min(int(len(sorted_samples) * fraction), len(sorted_samples) - 1)
    return sorted_samples[index]


def messages_per_second(messages: int, duration_ms: float) -> float:
    if duration_ms <= 0:
        return 0.0
    return (messages / duration_ms) * 1000


def summarize(
    samples: Sequence[float],
    run_duration_ms: float,
    messages_processed: Optional[int] = None,
    failures: int = 0
) -> RunResult:
    """
    Aggregate latency samples (ms) into a ``RunResult``.

    ``messages_processed`` defaults to the number of samples; throughput is
    that count over ``run_duration_ms``. An empty sample list or a zero
    duration produce zeros, never a division error.
    """
    processed = len(samples) if messages_processed is None else messages_processed
    throughput = messages_per_second(processed, run_duration_ms)

    if not samples:
        return RunResult(
            total_duration_ms=run_duration_ms,
            messages_processed=processed,
            messages_per_second=throughput,
            failures=failures,
        )

    ordered = sorted(samples)
    n = len(ordered)

    return RunResult(
        count=n,
        min_ms=ordered[0],
        max_ms=ordered[-1],
        mean_ms=sum(ordered) / n,
        p50_ms=ordered[n // 2],
        p95_ms=_percentile(ordered, 0.95),
        p99_ms=_percentile(ordered, 0.99),
        total_duration_ms=run_duration_ms,
        messages_processed=processed,
        messages_per_second=throughput,
        failures=failures,
    )
