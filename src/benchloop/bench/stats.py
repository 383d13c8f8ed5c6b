"""Trimmed summary statistics over calibration samples.

Each benchmark produces one Sample per calibration step.  A summary
extracts one value per sample, drops ``ceil(10%)`` of the values from
each end of the sorted list and describes what remains with
:mod:`statistics`.
"""

from __future__ import annotations

import math
import statistics
from dataclasses import dataclass, field
from typing import Callable, Sequence

from benchloop.bench.results import Result, Sample

TRIM_FRACTION = 0.1

Extractor = Callable[[Sample], float]


# ---------------------------------------------------------------------------
# Extractors
# ---------------------------------------------------------------------------


def latency(sample: Sample) -> float:
    """Nanoseconds per iteration."""
    return sample.duration_ns / sample.n if sample.n else 0.0


def throughput(sample: Sample) -> float:
    """Iterations per second."""
    return sample.n * 1e9 / sample.duration_ns if sample.duration_ns else 0.0


def net_bytes(sample: Sample) -> float:
    """Net allocated bytes per iteration."""
    return sample.net_bytes / sample.n if sample.n else 0.0


def declared_bytes(sample: Sample) -> float:
    """Declared payload bytes per iteration."""
    return sample.bytes / sample.n if sample.n else 0.0


# ---------------------------------------------------------------------------
# StatSummary
# ---------------------------------------------------------------------------


@dataclass
class StatSummary:
    """Trimmed statistics for one metric of one benchmark."""

    value: float  # Headline value taken from the Result
    min: float
    max: float
    avg: float
    stdev: float
    stdev_pct: float  # stdev as a percentage of avg
    len: int  # Number of input values, before trimming
    values: list[float] = field(default_factory=list)  # Retained values, ascending

    @property
    def lower_value(self) -> float:
        return self.min

    @property
    def upper_value(self) -> float:
        return self.max

    def to_dict(self) -> dict[str, object]:
        """Serialize to a dict with rounded values."""
        return {
            "value": round(self.value, 6),
            "lower_value": round(self.lower_value, 6),
            "upper_value": round(self.upper_value, 6),
            "min": round(self.min, 6),
            "max": round(self.max, 6),
            "avg": round(self.avg, 6),
            "stdev": round(self.stdev, 6),
            "stdev_pct": round(self.stdev_pct, 6),
            "len": self.len,
            "values": [round(v, 6) for v in self.values],
        }


def trim(values: Sequence[float], fraction: float = TRIM_FRACTION) -> list[float]:
    """Sort *values* and drop ``ceil(fraction * n)`` from each end.

    If trimming would leave nothing (one or two values at the default
    fraction), the sorted, untrimmed values are returned.
    """
    ordered = sorted(values)
    # Round first so 0.1 * 30 counts as 3, not 3.0000000000000004.
    k = math.ceil(round(len(ordered) * fraction, 9))
    kept = ordered[k : len(ordered) - k]
    return kept if kept else ordered


def summarize_values(
    values: Sequence[float],
    headline: float,
    *,
    fraction: float = TRIM_FRACTION,
) -> StatSummary:
    """Describe *values* after trimming.

    Args:
        values: One value per sample, in any order.
        headline: The untrimmed headline value reported as ``value``.
        fraction: Fraction trimmed from each end.

    Returns:
        StatSummary.  An empty input gives ``len=0`` and NaN statistics.
    """
    if not values:
        nan = float("nan")
        return StatSummary(
            value=headline, min=nan, max=nan, avg=nan, stdev=nan, stdev_pct=nan, len=0
        )

    kept = trim(values, fraction)
    avg = statistics.fmean(kept)
    stdev = statistics.pstdev(kept)
    stdev_pct = stdev / avg * 100 if avg != 0 else 0.0

    return StatSummary(
        value=headline,
        min=kept[0],
        max=kept[-1],
        avg=avg,
        stdev=stdev,
        stdev_pct=stdev_pct,
        len=len(values),
        values=kept,
    )


def summarize(
    samples: Sequence[Sample],
    extractor: Extractor,
    headline: float,
) -> StatSummary:
    """Summarize one metric over a benchmark's samples."""
    return summarize_values([extractor(s) for s in samples], headline)


def result_summaries(result: Result) -> dict[str, StatSummary]:
    """The four standard summaries of a Result, keyed by metric name."""
    return {
        "latency": summarize(result.samples, latency, result.ns_per_op),
        "throughput": summarize(result.samples, throughput, result.ops_per_sec),
        "net_bytes": summarize(result.samples, net_bytes, result.bytes_per_op),
        "bytes": summarize(result.samples, declared_bytes, float(result.bytes)),
    }
