"""Benchmark file discovery and loading.

Bench files are Python files named ``*_bench.py``.  Each is imported as
its own module and every module-level function named ``bench_*`` becomes
a benchmark named ``<file stem>::<function name>``.
"""

from __future__ import annotations

import importlib.util
import inspect
import re
import sys
from dataclasses import dataclass, field
from pathlib import Path
from types import ModuleType
from typing import Any, Callable

from benchloop.logging import get_logger

log = get_logger("discovery")

BENCH_SUFFIX = "_bench.py"
BENCH_PREFIX = "bench_"


class BenchLoadError(Exception):
    """A bench file could not be imported."""


@dataclass
class BenchFile:
    """A loaded bench file and the benchmark functions it defines."""

    path: Path
    module: ModuleType
    funcs: list[str] = field(default_factory=list)

    def entry_points(self) -> list[tuple[str, Callable[..., Any]]]:
        """``(benchmark name, function)`` pairs, sorted by function name."""
        return [(bench_name(self.path, name), getattr(self.module, name)) for name in self.funcs]


def bench_name(path: Path, func_name: str) -> str:
    """``'<file stem>::<function name>'``."""
    return f"{path.stem}::{func_name}"


def find_bench_files(root: Path) -> list[Path]:
    """Collect bench files under *root*, sorted.

    A directory is searched recursively, skipping symlinks.  A single
    file is returned as-is, with a warning if its name does not end in
    ``_bench.py``.
    """
    if root.is_file():
        if not root.name.endswith(BENCH_SUFFIX):
            log.warning("%s does not end in %s, running it anyway", root, BENCH_SUFFIX)
        return [root]

    found: list[Path] = []
    _traverse(root, found)
    return sorted(found)


def _traverse(directory: Path, found: list[Path]) -> None:
    for entry in directory.iterdir():
        if entry.is_symlink():
            continue
        if entry.is_dir():
            _traverse(entry, found)
        elif entry.is_file() and entry.name.endswith(BENCH_SUFFIX):
            found.append(entry)


def _module_name(path: Path) -> str:
    """Unique module name derived from the file's absolute path."""
    return "_benchloop_." + re.sub(r"\W", "_", str(path.resolve().with_suffix("")))


def load_bench_file(path: Path) -> BenchFile:
    """Import a bench file and find its ``bench_*`` functions.

    Raises:
        BenchLoadError: If the file cannot be imported.
    """
    name = _module_name(path)
    spec = importlib.util.spec_from_file_location(name, path)
    if spec is None or spec.loader is None:
        raise BenchLoadError(f"Cannot load {path}: not a Python module")

    module = importlib.util.module_from_spec(spec)
    sys.modules[name] = module
    try:
        spec.loader.exec_module(module)
    except Exception as exc:
        del sys.modules[name]
        raise BenchLoadError(f"During loading file {path}: {type(exc).__name__}: {exc}") from exc

    funcs = sorted(
        attr
        for attr, value in vars(module).items()
        if attr.startswith(BENCH_PREFIX) and inspect.isfunction(value)
    )
    if not funcs:
        log.warning("Benchmark file has no bench_* functions (file: %s)", path)

    log.debug("Loaded %s: %d benchmark(s)", path, len(funcs))
    return BenchFile(path=path, module=module, funcs=funcs)
