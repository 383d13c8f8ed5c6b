"""Terminal display formatting for benchmark results.

Produces the per-benchmark result line, the plain reporter that prints
each benchmark as soon as it finishes, and the end-of-run summary table.
"""

from __future__ import annotations

from typing import Callable

import click

from benchloop.bench.context import Context
from benchloop.bench.results import Result
from benchloop.formatting import (
    format_bytes,
    format_scaled,
    format_section_header,
    format_status_icon,
    format_table,
)


# ---------------------------------------------------------------------------
# Single benchmark display
# ---------------------------------------------------------------------------


def format_result_line(result: Result) -> str:
    """Tab-separated summary of a Result.

    Example::

        '    1200\\t      1000 ns/op\\t   1000000 op/s\\t      16 B/op\\t+18.75KB'
    """
    parts = [f"{result.n:8d}"]
    if result.duration_ns != 0:
        parts.append(format_scaled(result.ns_per_op, "ns/op"))
        parts.append(format_scaled(result.ops_per_sec, "op/s"))
    mbs = result.mb_per_sec
    if mbs != 0:
        parts.append(f"{mbs:7.2f} MB/s")
    parts.append(f"{int(result.bytes_per_op):8d} B/op")
    parts.append(format_bytes(result.net_bytes))
    return "\t".join(parts)


class PlainReporter:
    """Prints each finished benchmark.

    Passed benchmarks go to stdout (or stderr when *bench_to_stderr* is
    set, so stdout can carry JSON).  Failures and skips always go to
    stderr.
    """

    def __init__(
        self,
        echo: Callable[..., None] = click.echo,
        *,
        bench_to_stderr: bool = False,
    ) -> None:
        self.echo = echo
        self.bench_to_stderr = bench_to_stderr

    def report(self, ctx: Context) -> None:
        failed, reason = ctx.is_failed()
        if failed:
            self.echo(f"\n--- FAIL:  {ctx.name}: {reason}", err=True)
            return
        skipped, reason = ctx.is_skipped()
        if skipped:
            self.echo(f"\n--- SKIP:  {ctx.name}: {reason}", err=True)
            return
        if ctx.result is not None:
            self.echo(
                f"\n--- BENCH: {ctx.name}\n{format_result_line(ctx.result)}",
                err=self.bench_to_stderr,
            )


# ---------------------------------------------------------------------------
# Run summary
# ---------------------------------------------------------------------------


def format_run_summary(root: Context) -> str:
    """Table of every benchmark in the tree, in execution order."""
    rows: list[list[str]] = []
    for ctx in root.walk():
        if ctx.is_root:
            continue
        result = ctx.result
        rows.append(
            [
                ctx.name,
                format_status_icon(ctx.state),
                str(result.n) if result else "",
                format_scaled(result.ns_per_op, "ns/op").strip() if result else "",
                f"{result.bytes_per_op:.0f} B/op" if result else "",
                ctx.reason or "",
            ]
        )

    if not rows:
        return "No benchmarks were run."

    passed = sum(1 for c in root.walk() if c.passed and not c.is_root)
    failed = sum(1 for c in root.walk() if c.failed)
    skipped = sum(1 for c in root.walk() if c.skipped)

    lines = [format_section_header("Summary")]
    lines.append(
        format_table(
            ["Benchmark", "Status", "N", "ns/op", "B/op", "Reason"],
            rows,
            alignments=["l", "l", "r", "r", "r", "l"],
            max_col_width={0: 60, 5: 50},
        )
    )
    lines.append("")
    lines.append(f"{passed} passed, {failed} failed, {skipped} skipped")
    return "\n".join(lines)
