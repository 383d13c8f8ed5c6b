"""benchloop — adaptive micro-benchmark runner for Python code.

Bench files call :func:`before_all` / :func:`after_all` at import time to
register suite-level triggers, and define ``bench_*`` functions that
receive a :class:`~benchloop.bench.context.Context`.
"""

__version__ = "0.2.0"

from benchloop.bench.config import BenchTime, EngineConfig  # noqa: E402
from benchloop.bench.context import Context, run_suite  # noqa: E402
from benchloop.bench.runner import after_all, before_all  # noqa: E402

__all__ = [
    "BenchTime",
    "Context",
    "EngineConfig",
    "__version__",
    "after_all",
    "before_all",
    "run_suite",
]
