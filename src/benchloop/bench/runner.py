"""Benchmark suite runner.

Orchestrates:
1. Configuration validation
2. Bench file discovery and loading
3. Before-all triggers (any failure aborts the run)
4. Preamble (interpreter and CPU description)
5. Every ``bench_*`` function, file by file, on one shared root context
6. After-all triggers

Triggers are functions taking the root context, registered at import
time by bench files::

    from benchloop import before_all

    @before_all
    def make_fixture(root):
        root.payload = b"x" * 4096
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable

from benchloop.bench.config import BenchConfig, validate_config
from benchloop.bench.context import Context, Reporter
from benchloop.bench.discovery import find_bench_files, load_bench_file
from benchloop.bench.display import PlainReporter
from benchloop.bench.system import capture_system_profile, format_preamble
from benchloop.bench.worker import describe_exception
from benchloop.formatting import format_duration

log = logging.getLogger("benchloop")

Trigger = Callable[[Context], Any]


# ---------------------------------------------------------------------------
# Triggers
# ---------------------------------------------------------------------------


class TriggerRegistry:
    """Suite-level functions run before and after all benchmarks."""

    def __init__(self) -> None:
        self.before: list[Trigger] = []
        self.after: list[Trigger] = []

    def before_all(self, fn: Trigger) -> Trigger:
        self.before.append(fn)
        return fn

    def after_all(self, fn: Trigger) -> Trigger:
        self.after.append(fn)
        return fn

    def clear(self) -> None:
        self.before.clear()
        self.after.clear()


default_registry = TriggerRegistry()


def before_all(fn: Trigger) -> Trigger:
    """Register *fn* to run before all benchmarks.  Usable as a decorator."""
    return default_registry.before_all(fn)


def after_all(fn: Trigger) -> Trigger:
    """Register *fn* to run after all benchmarks.  Usable as a decorator."""
    return default_registry.after_all(fn)


def trigger_location(fn: Trigger) -> str:
    """``'file:line'`` of a trigger's definition, or its repr."""
    code = getattr(fn, "__code__", None)
    if code is None:
        return repr(fn)
    return f"{code.co_filename}:{code.co_firstlineno}"


def run_triggers(triggers: list[Trigger], root: Context) -> int:
    """Run *triggers* in order with *root*.

    Returns:
        The number of triggers that raised.
    """
    failed = 0
    for trigger in list(triggers):
        try:
            trigger(root)
        except Exception as exc:
            log.error(
                "Trigger %s (%s) failed: %s",
                getattr(trigger, "__qualname__", repr(trigger)),
                trigger_location(trigger),
                describe_exception(exc),
            )
            log.debug("Trigger traceback", exc_info=exc)
            failed += 1
    return failed


# ---------------------------------------------------------------------------
# Progress callback
# ---------------------------------------------------------------------------


@dataclass
class RunProgress:
    """Progress info passed to the callback."""

    phase: str  # "start", "done"
    name: str
    index: int  # 1-based
    total: int
    state: str = ""


ProgressCallback = Callable[[RunProgress], None]


# ---------------------------------------------------------------------------
# RunSummary
# ---------------------------------------------------------------------------


@dataclass
class RunSummary:
    """Outcome of a complete suite run."""

    root: Context
    files: list[Path] = field(default_factory=list)
    benchmarks: list[str] = field(default_factory=list)
    before_failures: int = 0
    after_failures: int = 0
    aborted: bool = False

    def _leaves(self) -> list[Context]:
        return [c for c in self.root.walk() if not c.is_root and not c.has_children]

    @property
    def passed(self) -> list[str]:
        return [c.name for c in self._leaves() if c.passed]

    @property
    def failed(self) -> list[str]:
        return [c.name for c in self._leaves() if c.failed]

    @property
    def skipped(self) -> list[str]:
        return [c.name for c in self._leaves() if c.skipped]

    @property
    def exit_code(self) -> int:
        """1 if the run was aborted, a trigger failed, or any benchmark failed."""
        if self.aborted or self.before_failures or self.after_failures:
            return 1
        if any(c.failed for c in self.root.walk()):
            return 1
        return 0


# ---------------------------------------------------------------------------
# BenchRunner
# ---------------------------------------------------------------------------


class BenchRunner:
    """Runs every benchmark found under ``config.path``.

    Usage::

        config = BenchConfig(path=Path("benchmarks"))
        summary = BenchRunner(config).run()
    """

    def __init__(
        self,
        config: BenchConfig,
        reporter: Reporter | None = None,
        triggers: TriggerRegistry | None = None,
        progress_callback: ProgressCallback | None = None,
    ) -> None:
        self.config = config
        self.reporter = reporter or PlainReporter()
        self.triggers = triggers or default_registry
        self.progress: ProgressCallback = progress_callback or self._default_progress

    def run(self) -> RunSummary:
        """Execute the suite.

        Raises:
            ValueError: If configuration is invalid.
            BenchLoadError: If a bench file cannot be imported.
        """
        # Phase 1: Validate configuration.
        errors = validate_config(self.config)
        fatal = [e for e in errors if e.severity == "error"]
        warnings = [e for e in errors if e.severity == "warning"]
        for w in warnings:
            log.warning("Config warning: %s: %s", w.field, w.message)
        if fatal:
            messages = [f"  {e.field}: {e.message}" for e in fatal]
            raise ValueError("Invalid benchmark configuration:\n" + "\n".join(messages))

        # Phase 2: Discover and load bench files.
        files = find_bench_files(self.config.path)
        bench_files = [load_bench_file(path) for path in files]
        total = sum(len(bf.funcs) for bf in bench_files)
        log.debug("Found %d bench file(s), %d benchmark(s)", len(files), total)

        start = time.monotonic()
        with Context.root(
            self.config.duration,
            config=self.config.engine_config(),
            reporter=self.reporter,
        ) as root:
            summary = RunSummary(root=root, files=files)

            # Phase 3: Before-all triggers.
            summary.before_failures = run_triggers(self.triggers.before, root)
            if summary.before_failures:
                log.error(
                    "%d before-all trigger(s) failed, not running benchmarks",
                    summary.before_failures,
                )
                summary.aborted = True
                return summary

            # Phase 4: Preamble.
            if self.config.preamble:
                preamble = format_preamble(capture_system_profile(), self.config)
                for line in preamble.splitlines():
                    log.info("%s", line)

            # Phase 5: Benchmarks.
            index = 0
            for bench_file in bench_files:
                for name, func in bench_file.entry_points():
                    index += 1
                    summary.benchmarks.append(name)
                    self.progress(RunProgress(phase="start", name=name, index=index, total=total))
                    if not root.run(name, func):
                        log.error("%s failed", name)
                    self.progress(
                        RunProgress(
                            phase="done",
                            name=name,
                            index=index,
                            total=total,
                            state=root.children[-1].state,
                        )
                    )

            # Phase 6: After-all triggers.
            summary.after_failures = run_triggers(self.triggers.after, root)
            if summary.after_failures:
                log.error("%d after-all trigger(s) failed", summary.after_failures)

        log.info(
            "Ran %d benchmark(s) in %s",
            len(summary.benchmarks),
            format_duration(time.monotonic() - start),
        )
        return summary

    @staticmethod
    def _default_progress(progress: RunProgress) -> None:
        """Default progress callback: log at DEBUG."""
        if progress.phase == "start":
            log.debug("[%d/%d] %s", progress.index, progress.total, progress.name)
        else:
            log.debug(
                "[%d/%d] %s: %s", progress.index, progress.total, progress.name, progress.state
            )
