"""Export benchmark results as BMF JSON and CSV.

BMF (Bencher Metric Format) maps each passed benchmark's full name to
its trimmed statistics::

    {"strings_bench::bench_join": {"latency": {...}, "throughput": {...},
                                   "net_bytes": {...}, "bytes": {...}}}

CSV format: one row per calibration step of every leaf benchmark (long
format for pandas/R).  This is the raw data behind the summaries.
"""

from __future__ import annotations

import csv
import io
import json
from typing import Any

from benchloop.bench.context import Context
from benchloop.bench.stats import result_summaries


# ---------------------------------------------------------------------------
# BMF export
# ---------------------------------------------------------------------------


def bmf_summary(root: Context) -> dict[str, dict[str, Any]]:
    """Build the BMF mapping for every passed benchmark under *root*.

    Benchmarks whose measured duration is zero are left out, since none
    of their rates are defined.
    """
    summary: dict[str, dict[str, Any]] = {}
    for ctx in root.walk():
        result = ctx.result
        if not ctx.passed or result is None or result.duration_ns == 0:
            continue
        summary[ctx.name] = {
            metric: stats.to_dict() for metric, stats in result_summaries(result).items()
        }
    return summary


def export_bmf(root: Context) -> str:
    """Export the BMF mapping as indented JSON."""
    return json.dumps(bmf_summary(root), indent=2) + "\n"


# ---------------------------------------------------------------------------
# CSV export
# ---------------------------------------------------------------------------


def export_csv(root: Context) -> str:
    """Export every calibration sample as CSV (long format).

    One row per benchmark x step, for benchmarks without sub-benchmarks.
    Failed and skipped benchmarks keep the samples they recorded before
    stopping.

    Columns:
        benchmark, state, step, n, duration_ns, ns_per_op, net_bytes,
        bytes, peak_bytes
    """
    output = io.StringIO()
    writer = csv.writer(output)

    writer.writerow(
        [
            "benchmark",
            "state",
            "step",
            "n",
            "duration_ns",
            "ns_per_op",
            "net_bytes",
            "bytes",
            "peak_bytes",
        ]
    )

    for ctx in root.walk():
        if ctx.is_root or ctx.has_children:
            continue
        for step, sample in enumerate(ctx.samples, 1):
            writer.writerow(
                [
                    ctx.name,
                    ctx.state,
                    step,
                    sample.n,
                    sample.duration_ns,
                    f"{sample.ns_per_op:.3f}",
                    sample.net_bytes,
                    sample.bytes,
                    sample.peak_bytes,
                ]
            )

    return output.getvalue()
