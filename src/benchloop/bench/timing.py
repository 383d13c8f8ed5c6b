"""Timing and allocation capture for measurement calls.

Measures elapsed time with the monotonic nanosecond clock and net
allocated bytes with :mod:`tracemalloc`.  The timer only accumulates
while it is running, so workloads can exclude setup and teardown with
``stop_timer()`` / ``start_timer()``.
"""

from __future__ import annotations

import gc
import logging
import sys
import time
import tracemalloc
from dataclasses import dataclass

log = logging.getLogger("benchloop")

# Module-level so tests can substitute a deterministic clock.
clock_ns = time.perf_counter_ns

GC_SETTLE_RATIO = 0.75
GC_SETTLE_MAX_ROUNDS = 16


# ---------------------------------------------------------------------------
# Allocation counter
# ---------------------------------------------------------------------------


class AllocationCounter:
    """Process-wide allocation counter backed by :mod:`tracemalloc`.

    The counter only stops tracing on :meth:`stop` if it was the one that
    started it, so an outer profiler's tracing is left alone.
    """

    def __init__(self, enabled: bool = True) -> None:
        self.enabled = enabled
        self._started_tracing = False

    @property
    def active(self) -> bool:
        """True if allocations are currently being traced."""
        return self.enabled and tracemalloc.is_tracing()

    def start(self) -> None:
        """Start tracing if enabled and not already tracing."""
        if self.enabled and not tracemalloc.is_tracing():
            tracemalloc.start()
            self._started_tracing = True
            log.debug("Started tracemalloc")

    def stop(self) -> None:
        """Stop tracing if this counter started it."""
        if self._started_tracing and tracemalloc.is_tracing():
            tracemalloc.stop()
            log.debug("Stopped tracemalloc")
        self._started_tracing = False

    def current(self) -> int:
        """Bytes currently allocated and traced (0 when inactive)."""
        if not self.active:
            return 0
        return tracemalloc.get_traced_memory()[0]

    def peak(self) -> int:
        """Peak traced bytes since the last :meth:`reset_peak`."""
        if not self.active:
            return 0
        return tracemalloc.get_traced_memory()[1]

    def reset_peak(self) -> None:
        if self.active:
            tracemalloc.reset_peak()

    def footprint(self) -> int:
        """Memory snapshot used to decide when garbage collection has settled."""
        if self.active:
            return tracemalloc.get_traced_memory()[0]
        return sys.getallocatedblocks()


def settle_gc(
    counter: AllocationCounter,
    *,
    max_rounds: int = GC_SETTLE_MAX_ROUNDS,
) -> int:
    """Run full collections until memory stops shrinking noticeably.

    Collects until the footprint after a collection is more than 75% of
    the footprint before it, bounded to *max_rounds* collections.

    Returns:
        The number of collections performed.
    """
    rounds = 0
    while rounds < max_rounds:
        before = counter.footprint()
        gc.collect()
        rounds += 1
        after = counter.footprint()
        if after > GC_SETTLE_RATIO * before:
            break
    return rounds


# ---------------------------------------------------------------------------
# Measurement timer
# ---------------------------------------------------------------------------


@dataclass
class TimerReading:
    """What one measurement call accumulated."""

    duration_ns: int
    net_bytes: int
    peak_bytes: int


class MeasurementTimer:
    """Accumulates elapsed time and net allocations while running."""

    def __init__(self, counter: AllocationCounter) -> None:
        self.counter = counter
        self.running = False
        self.duration_ns = 0
        self.net_bytes = 0
        self.peak_bytes = 0
        self._start_ns = 0
        self._start_bytes = 0

    def start(self) -> None:
        """Start measuring.  Does nothing if already running."""
        if self.running:
            return
        self.running = True
        self.counter.reset_peak()
        self._start_bytes = self.counter.current()
        self._start_ns = clock_ns()

    def stop(self) -> None:
        """Stop measuring and add the elapsed span to the totals."""
        if not self.running:
            return
        elapsed = clock_ns() - self._start_ns
        current = self.counter.current()
        peak = self.counter.peak()
        self.running = False
        self.duration_ns += elapsed
        self.net_bytes += current - self._start_bytes
        self.peak_bytes = max(self.peak_bytes, peak - self._start_bytes)

    def reset(self) -> None:
        """Zero the totals.  A running timer restarts from now."""
        self.duration_ns = 0
        self.net_bytes = 0
        self.peak_bytes = 0
        if self.running:
            self.counter.reset_peak()
            self._start_bytes = self.counter.current()
            self._start_ns = clock_ns()

    def reading(self) -> TimerReading:
        return TimerReading(
            duration_ns=self.duration_ns,
            net_bytes=self.net_bytes,
            peak_bytes=self.peak_bytes,
        )
