"""Adaptive iteration-count search.

A benchmark is first probed once at ``N=1``.  In fixed mode it then runs
once at the requested count; in timed mode the count grows from the
previous step's timing until the accumulated measured time reaches the
target::

    n = target_ns / prev_ns * prev_iters * 1.2
    n = clamp(n, last + 1, 100 * last)

Every step appends one Sample to the context.  Duration, N and net bytes
accumulate over all steps, probe included, and the final Result reports
the accumulated totals.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Callable

from benchloop.bench.results import Result

if TYPE_CHECKING:
    from benchloop.bench.context import Context

log = logging.getLogger("benchloop")

GROWTH_FACTOR = 1.2
MAX_GROWTH = 100


def predict_iterations(
    target_ns: float,
    prev_ns: int,
    prev_iters: int,
    last: int,
    limit: int,
) -> int:
    """Iteration count for the next step.

    Aims 20% past the count that would fill *target_ns* at the previous
    step's rate, grows by at least one and at most 100x per step, and
    never exceeds *limit*.
    """
    n = target_ns / max(prev_ns, 1) * prev_iters
    n *= GROWTH_FACTOR
    n = min(max(n, last + 1), MAX_GROWTH * last)
    n = min(n, limit)
    return int(n)


def calibrate(ctx: Context, workload: Callable[[Context], Any]) -> Result | None:
    """Probe, calibrate and measure *workload* on *ctx*.

    Returns:
        The Result (also stored on ``ctx.result``), or None if the
        context failed, was skipped, or ran sub-benchmarks.
    """
    ctx.measure(workload, 1)
    if ctx.has_children or not ctx.running:
        return None

    bench_time = ctx.bench_time
    if bench_time.iterations is not None:
        if bench_time.iterations > 1:
            ctx.reset_totals()
            log.debug("%s: N=%d (fixed)", ctx.name, bench_time.iterations)
            ctx.measure(workload, bench_time.iterations)
    else:
        _grow(ctx, workload, (bench_time.seconds or 0.0) * 1e9)

    if not ctx.running:
        return None

    ctx.result = Result(
        n=ctx.total_n,
        duration_ns=ctx.total_duration_ns,
        net_bytes=ctx.total_net_bytes,
        bytes=ctx.bytes,
        peak_bytes=ctx.peak_bytes,
        samples=list(ctx.samples),
    )
    return ctx.result


def _grow(ctx: Context, workload: Callable[[Context], Any], target_ns: float) -> None:
    limit = ctx.config.max_iterations
    n = 1
    while ctx.running and ctx.total_duration_ns < target_ns and n < limit:
        last = n
        prev = ctx.samples[-1]
        if prev.n < last:
            log.debug("%s: workload did %d of %d iterations, stopping", ctx.name, prev.n, last)
            break
        n = predict_iterations(target_ns, prev.duration_ns, prev.n, last, limit)
        projected = max(prev.duration_ns, 1) * n / prev.n / 1e9
        log.debug("%s: N=%d (projected %.3fs)", ctx.name, n, projected)
        ctx.measure(workload, n, projected=projected)
