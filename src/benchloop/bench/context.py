"""The benchmark context handed to workloads.

A workload is any callable taking a :class:`Context` (conventionally
named ``b``) and looping ``b.N`` times::

    def bench_join(b):
        parts = ["x"] * 100
        for _ in range(b.N):
            "".join(parts)

Contexts form a tree: ``b.run(name, workload)`` creates a sub-benchmark
named ``<parent>:<name>`` and runs it to completion before returning.
The root context has the empty name and never fails, so one failing
benchmark does not stop its siblings.
"""

from __future__ import annotations

import logging
from functools import partial
from typing import Any, Callable, Iterator, Protocol

from benchloop.bench.calibrate import calibrate
from benchloop.bench.config import BenchTime, EngineConfig
from benchloop.bench.results import Result, Sample
from benchloop.bench.timing import AllocationCounter, MeasurementTimer, settle_gc
from benchloop.bench.worker import (
    BenchmarkTimeout,
    FailBenchmark,
    IsolatedWorker,
    Outcome,
    SkipBenchmark,
    timeout_reason,
)

log = logging.getLogger("benchloop")

Workload = Callable[["Context"], Any]

DEFAULT_BENCH_TIME = BenchTime(seconds=3.0)


class Reporter(Protocol):
    """Receives every sub-benchmark once it has finished."""

    def report(self, ctx: Context) -> None: ...


class Context:
    """State of one benchmark, and the API its workload uses."""

    def __init__(
        self,
        name: str,
        *,
        bench_time: BenchTime,
        config: EngineConfig,
        reporter: Reporter | None = None,
        parent: Context | None = None,
        counter: AllocationCounter | None = None,
    ) -> None:
        self.name = name
        self.parent = parent
        self.bench_time = bench_time
        self.config = config
        self.reporter = reporter
        self.counter = counter or AllocationCounter(config.track_allocations)

        self.N = 1
        self.state = "running"  # "running", "passed", "failed", "skipped"
        self.reason: str | None = None
        self.bytes = 0  # Declared payload bytes per iteration
        self.has_children = False
        self.children: list[Context] = []
        self.samples: list[Sample] = []
        self.result: Result | None = None

        self.total_n = 0
        self.total_duration_ns = 0
        self.total_net_bytes = 0
        self.peak_bytes = 0

        self._timer = MeasurementTimer(self.counter)
        self._worker = IsolatedWorker(name, config.timeout)

    # -- construction ------------------------------------------------------

    @classmethod
    def root(
        cls,
        bench_time: BenchTime | None = None,
        *,
        config: EngineConfig | None = None,
        reporter: Reporter | None = None,
    ) -> Context:
        """Create the root of a benchmark tree and start allocation tracking.

        Use as a context manager, or call :meth:`close` when done.
        """
        config = config or EngineConfig()
        ctx = cls(
            "",
            bench_time=bench_time or DEFAULT_BENCH_TIME,
            config=config,
            reporter=reporter,
        )
        ctx.counter.start()
        return ctx

    def __enter__(self) -> Context:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        """Release the worker thread.  Closing the root stops allocation tracking."""
        self._worker.close()
        if self.is_root:
            self.counter.stop()
            self._mark("passed")

    # -- state -------------------------------------------------------------

    @property
    def is_root(self) -> bool:
        return self.parent is None

    @property
    def timeout(self) -> float:
        """Hard budget of one measurement call, in seconds."""
        return self.config.timeout

    @property
    def running(self) -> bool:
        return self.state == "running"

    @property
    def passed(self) -> bool:
        return self.state == "passed"

    @property
    def failed(self) -> bool:
        return self.state == "failed"

    @property
    def skipped(self) -> bool:
        return self.state == "skipped"

    def is_failed(self) -> tuple[bool, str | None]:
        return self.failed, self.reason if self.failed else None

    def is_skipped(self) -> tuple[bool, str | None]:
        return self.skipped, self.reason if self.skipped else None

    def _mark(self, state: str, reason: str | None = None) -> None:
        """Move to a terminal state.  The first terminal state reached wins."""
        if self.state != "running":
            return
        self.state = state
        self.reason = reason
        if state == "failed":
            self._fail_ancestors()

    def _fail_ancestors(self) -> None:
        parent = self.parent
        while parent is not None and not parent.is_root:
            if parent.running:
                parent.state = "failed"
                parent.reason = f"sub-benchmark {self.name} failed"
            parent = parent.parent

    def _abandoned(self) -> bool:
        """True if a call of this context or an ancestor was given up on."""
        ctx: Context | None = self
        while ctx is not None:
            if ctx._worker.abandoned:
                return True
            ctx = ctx.parent
        return False

    def walk(self) -> Iterator[Context]:
        """Yield this context and all its descendants, depth first."""
        yield self
        for child in self.children:
            yield from child.walk()

    # -- workload API ------------------------------------------------------

    def skip(self, reason: str | None = None) -> None:
        """Mark the benchmark skipped and abort the current call."""
        self._mark("skipped", reason)
        raise SkipBenchmark(reason)

    def fail(self, reason: str | None = None) -> None:
        """Mark the benchmark failed and abort the current call."""
        self._mark("failed", reason)
        raise FailBenchmark(reason)

    def fatal(self, message: str) -> None:
        """Log *message* as an error, then fail."""
        log.error("%s: %s", self.name, message)
        self.fail(message)

    def set_bytes(self, n: int) -> None:
        """Declare the payload processed per iteration, for MB/s."""
        self.bytes = n

    def start_timer(self) -> None:
        self._timer.start()

    def stop_timer(self) -> None:
        self._timer.stop()

    def reset_timer(self) -> None:
        """Zero the time and bytes measured so far in this call."""
        self._timer.reset()

    def check_deadline(self) -> None:
        """Abort the current call if it is past its hard budget.

        Long-running workloads should call this periodically; a workload
        that never does cannot be stopped, only abandoned.
        """
        if not self.has_children and self._worker.expired():
            raise BenchmarkTimeout(timeout_reason(self.timeout))

    def run(
        self,
        name: str,
        workload: Workload,
        bench_time: BenchTime | None = None,
    ) -> bool:
        """Run *workload* as a sub-benchmark and report it.

        Returns:
            True unless the sub-benchmark failed.

        Raises:
            BenchmarkTimeout: When called from a workload whose call was
                abandoned after its hard budget.
        """
        if self._abandoned():
            raise BenchmarkTimeout(timeout_reason(self.timeout))
        self.has_children = True
        child = Context(
            name if self.is_root else f"{self.name}:{name}",
            bench_time=bench_time or self.bench_time,
            config=self.config,
            reporter=self.reporter,
            parent=self,
            counter=self.counter,
        )
        self.children.append(child)
        try:
            child._execute(workload)
        finally:
            child.close()
        if self.reporter is not None:
            self.reporter.report(child)
        return not child.failed

    # -- engine ------------------------------------------------------------

    def _execute(self, workload: Workload) -> None:
        calibrate(self, workload)
        self._mark("passed")

    def reset_totals(self) -> None:
        """Forget all samples and accumulated totals."""
        self.samples = []
        self.total_n = 0
        self.total_duration_ns = 0
        self.total_net_bytes = 0
        self.peak_bytes = 0

    def measure(self, workload: Workload, n: int, *, projected: float | None = None) -> Outcome:
        """Run one calibration step at *n* iterations on the worker thread."""
        if self.config.settle_gc:
            settle_gc(self.counter)
        outcome = self._worker.call(
            partial(self._measure_once, workload, n),
            projected_s=projected,
            keep_waiting=lambda: self.has_children,
        )
        self._apply(outcome)
        return outcome

    def _measure_once(self, workload: Workload, n: int) -> Sample:
        if self._abandoned():
            raise BenchmarkTimeout(timeout_reason(self.timeout))
        self.N = n
        self._timer.reset()
        self._timer.start()
        workload(self)
        self._timer.stop()
        reading = self._timer.reading()
        return Sample(
            n=self.N,
            duration_ns=reading.duration_ns,
            net_bytes=reading.net_bytes,
            bytes=self.bytes * self.N,
            peak_bytes=reading.peak_bytes,
        )

    def _apply(self, outcome: Outcome) -> None:
        if outcome.kind == "ok":
            sample = outcome.sample
            assert sample is not None
            self.samples.append(sample)
            self.total_n += sample.n
            self.total_duration_ns += sample.duration_ns
            self.total_net_bytes += sample.net_bytes
            self.peak_bytes = max(self.peak_bytes, sample.peak_bytes)
        elif outcome.kind == "skipped":
            self._mark("skipped", outcome.reason)
        else:
            if outcome.kind == "error":
                log.debug("%s raised", self.name, exc_info=outcome.error)
            self._mark("failed", outcome.reason)

    def __repr__(self) -> str:
        return f"<Context {self.name!r} {self.state}>"


def run_suite(
    name: str,
    workload: Workload,
    bench_time: BenchTime,
    *,
    config: EngineConfig | None = None,
    reporter: Reporter | None = None,
    root: Context | None = None,
) -> tuple[Context, Result | None]:
    """Run one top-level benchmark.

    Creates (and closes) a root context unless *root* is given.

    Returns:
        The benchmark's Context and its Result (None unless it passed
        without sub-benchmarks).
    """
    if root is not None:
        root.run(name, workload, bench_time)
        child = root.children[-1]
        return child, child.result

    with Context.root(bench_time, config=config, reporter=reporter) as new_root:
        new_root.run(name, workload, bench_time)
        child = new_root.children[-1]
    return child, child.result
