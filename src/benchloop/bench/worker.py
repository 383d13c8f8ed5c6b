"""Isolated execution of measurement calls.

Every measurement call runs on a dedicated single-thread executor owned
by the benchmark, and the caller blocks until it finishes.  Running on
a separate thread lets the caller stop waiting once the hard budget is
spent, and wrapping the call turns every way it can end into a typed
:class:`Outcome` instead of an exception escaping into the suite.

Python threads cannot be killed.  When the hard budget runs out the
worker sets its cancellation event (seen by ``Context.check_deadline``)
and abandons the thread; a workload that never checks the deadline keeps
running in the background until it returns on its own.
"""

from __future__ import annotations

import concurrent.futures
import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable

from benchloop.bench.results import Sample

log = logging.getLogger("benchloop")


# ---------------------------------------------------------------------------
# Abort signals
# ---------------------------------------------------------------------------


class BenchAbort(BaseException):
    """Base class for signals that end a measurement call early.

    Derives from BaseException so a workload's ``except Exception``
    cannot swallow it.
    """

    def __init__(self, reason: str | None = None) -> None:
        super().__init__(reason)
        self.reason = reason


class SkipBenchmark(BenchAbort):
    """Raised by ``Context.skip``."""


class FailBenchmark(BenchAbort):
    """Raised by ``Context.fail``."""


class BenchmarkTimeout(BenchAbort):
    """Raised by ``Context.check_deadline`` once the hard budget is spent."""


# ---------------------------------------------------------------------------
# Outcome
# ---------------------------------------------------------------------------


@dataclass
class Outcome:
    """How one measurement call ended."""

    kind: str  # "ok", "skipped", "failed", "timeout", "error"
    sample: Sample | None = None
    reason: str | None = None
    elapsed_s: float = 0.0
    error: BaseException | None = None  # Original exception for kind="error"

    @property
    def ok(self) -> bool:
        return self.kind == "ok"


def timeout_reason(timeout: float) -> str:
    return f"timed out after {timeout:g}s"


def describe_exception(exc: BaseException) -> str:
    """``'ExceptionType: message'``, or just the type when there is no message."""
    text = str(exc)
    name = type(exc).__name__
    return f"{name}: {text}" if text else name


# ---------------------------------------------------------------------------
# IsolatedWorker
# ---------------------------------------------------------------------------


class IsolatedWorker:
    """Runs measurement calls one at a time under a hard time budget."""

    def __init__(self, name: str, timeout: float) -> None:
        self.name = name
        self.timeout = timeout
        self.cancel_event = threading.Event()
        self.deadline: float | None = None
        self.abandoned = False  # Set once any call has been given up on
        self._executor: ThreadPoolExecutor | None = None

    def _get_executor(self) -> ThreadPoolExecutor:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=1,
                thread_name_prefix=f"bench[{self.name or 'root'}]",
            )
        return self._executor

    def expired(self) -> bool:
        """True if the current call was cancelled or is past its hard budget."""
        if self.cancel_event.is_set():
            return True
        return self.deadline is not None and time.monotonic() > self.deadline

    def call(
        self,
        fn: Callable[[], Sample],
        *,
        projected_s: float | None = None,
        keep_waiting: Callable[[], bool] | None = None,
    ) -> Outcome:
        """Run *fn* on the worker thread and wait for it.

        Args:
            fn: The measurement call.  Returns the step's Sample.
            projected_s: Expected duration of the call, used for the
                soft budget warning.
            keep_waiting: Checked when the hard budget runs out; if it
                returns True the caller keeps waiting instead of timing
                out (a parent whose sub-benchmarks carry their own budget).

        Returns:
            The Outcome of the call.
        """
        executor = self._get_executor()
        self.cancel_event.clear()
        start = time.monotonic()
        self.deadline = start + self.timeout

        future = executor.submit(self._guarded, fn)
        try:
            outcome = future.result(timeout=self.timeout)
        except concurrent.futures.TimeoutError:
            if keep_waiting is not None and keep_waiting():
                log.debug("%s: past the hard budget, waiting for sub-benchmarks", self.name)
                self.deadline = None
                outcome = future.result()
            else:
                outcome = self._abandon(start)
        finally:
            self.deadline = None

        outcome.elapsed_s = time.monotonic() - start
        soft_budget = max(projected_s or 0.0, self.timeout / 2)
        if outcome.ok and outcome.elapsed_s > soft_budget:
            log.warning(
                "%s: measurement took %.2fs, more than the expected %.2fs",
                self.name,
                outcome.elapsed_s,
                soft_budget,
            )
        return outcome

    def _abandon(self, start: float) -> Outcome:
        """Give up on the running call after the hard budget."""
        self.abandoned = True
        self.cancel_event.set()
        if self._executor is not None:
            self._executor.shutdown(wait=False, cancel_futures=True)
            self._executor = None
        log.warning(
            "%s: abandoned measurement after %.2fs", self.name, time.monotonic() - start
        )
        return Outcome(kind="timeout", reason=timeout_reason(self.timeout))

    def _guarded(self, fn: Callable[[], Sample]) -> Outcome:
        try:
            sample = fn()
        except SkipBenchmark as exc:
            return Outcome(kind="skipped", reason=exc.reason)
        except BenchmarkTimeout as exc:
            return Outcome(kind="timeout", reason=exc.reason or timeout_reason(self.timeout))
        except FailBenchmark as exc:
            return Outcome(kind="failed", reason=exc.reason)
        except BaseException as exc:
            # Includes SystemExit: it ends this call, not the suite.
            return Outcome(kind="error", reason=describe_exception(exc), error=exc)
        return Outcome(kind="ok", sample=sample)

    def close(self) -> None:
        """Shut down the worker thread, waiting for it if it is idle."""
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None
