"""Benchmark configuration.

Handles:
- The immutable engine configuration threaded through every Context.
- Bench time specifications (fixed iteration count or target duration).
- Parsing duration strings such as ``"3s"``, ``"1m30s"`` or ``"100x"``.
- Loading the ``.benchloop.yaml`` override file.
- Merging CLI options, environment variables, the override file and defaults.
- Validating the final configuration before execution.
"""

from __future__ import annotations

import logging
import os
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

log = logging.getLogger("benchloop")

MAX_ITERATIONS = 1_000_000_000
DEFAULT_TIMEOUT = 60.0
DEFAULT_DURATION = "3s"
DOTFILE_NAME = ".benchloop.yaml"

_ENV_PREFIX = "BENCHLOOP_"
_TRUE_STRINGS = {"1", "true", "yes", "on"}
_FALSE_STRINGS = {"0", "false", "no", "off", ""}


# ---------------------------------------------------------------------------
# BenchTime
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class BenchTime:
    """How long to run one benchmark.

    Exactly one of *iterations* (fixed count) or *seconds* (target
    measured time) is set.
    """

    iterations: int | None = None
    seconds: float | None = None

    def __post_init__(self) -> None:
        if (self.iterations is None) == (self.seconds is None):
            raise ValueError("BenchTime needs exactly one of 'iterations' or 'seconds'")

    @property
    def is_fixed(self) -> bool:
        """True for a fixed iteration count."""
        return self.iterations is not None

    def describe(self) -> str:
        """Short human-readable form: ``'3s'`` or ``'100 iters'``."""
        if self.iterations is not None:
            return f"{self.iterations} iters"
        return f"{self.seconds:g}s"

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible dict (sparse)."""
        if self.iterations is not None:
            return {"iterations": self.iterations}
        return {"seconds": self.seconds}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BenchTime:
        """Deserialize from a dict."""
        return cls(iterations=data.get("iterations"), seconds=data.get("seconds"))


# ---------------------------------------------------------------------------
# Duration parsing
# ---------------------------------------------------------------------------

_ITERATIONS_RE = re.compile(r"^(\d+)x$")
_DURATION_PART_RE = re.compile(r"(\d+)(\.\d+)?([^\d.]+)")
_BARE_NUMBER_RE = re.compile(r"\d+(\.\d+)?$")

_UNIT_NANOS: dict[str, float] = {
    "ns": 1,
    "us": 1e3,
    "µs": 1e3,
    "ms": 1e6,
    "s": 1e9,
    "m": 60e9,
    "h": 3600e9,
}


def parse_duration(text: str) -> BenchTime:
    """Parse a duration string into a BenchTime.

    ``"<N>x"`` means a fixed iteration count.  Anything else is a sequence
    of ``<number><unit>`` parts (units: ns, us, µs, ms, s, m, h) that are
    summed, e.g. ``"1m30s"`` or ``"1.5s"``.

    Raises:
        ValueError: If the string is empty or malformed.
    """
    text = text.strip()
    if not text:
        raise ValueError("malformed duration: empty string")

    match = _ITERATIONS_RE.match(text)
    if match:
        return BenchTime(iterations=int(match.group(1)))

    total_ns = 0.0
    pos = 0
    while pos < len(text):
        if _BARE_NUMBER_RE.match(text, pos):
            raise ValueError(
                f"malformed duration: time unit not given at position {pos + 1} for {text!r}"
            )
        part = _DURATION_PART_RE.match(text, pos)
        if part is None:
            raise ValueError(f"malformed duration at position {pos + 1} for {text!r}")
        number = float(part.group(1) + (part.group(2) or ""))
        unit = part.group(3)
        if unit not in _UNIT_NANOS:
            raise ValueError(f"malformed duration: unknown time unit given {unit!r}")
        total_ns += number * _UNIT_NANOS[unit]
        pos = part.end()

    return BenchTime(seconds=total_ns / 1e9)


def coerce_duration(value: Any) -> BenchTime:
    """Turn a config value into a BenchTime.

    Accepts a BenchTime, a duration string, or a bare number of seconds
    (YAML files commonly write ``duration: 2``).
    """
    if isinstance(value, BenchTime):
        return value
    if isinstance(value, bool):
        raise ValueError(f"Invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        return BenchTime(seconds=float(value))
    if isinstance(value, str):
        return parse_duration(value)
    raise ValueError(f"Invalid duration: {value!r}")


# ---------------------------------------------------------------------------
# Engine configuration
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class EngineConfig:
    """Settings the measurement engine needs, passed explicitly to every Context."""

    timeout: float = DEFAULT_TIMEOUT  # Hard budget per measurement call, seconds
    track_allocations: bool = True  # Count net bytes with tracemalloc
    settle_gc: bool = True  # Collect garbage before every measurement call
    max_iterations: int = MAX_ITERATIONS


# ---------------------------------------------------------------------------
# BenchConfig
# ---------------------------------------------------------------------------


@dataclass
class BenchConfig:
    """Resolved configuration for a benchmark run."""

    path: Path = field(default_factory=lambda: Path("."))
    duration: BenchTime = field(default_factory=lambda: parse_duration(DEFAULT_DURATION))
    timeout: float = DEFAULT_TIMEOUT

    # Output
    bmf: bool = False  # Print the structured summary as JSON on stdout
    preamble: bool = True
    output_path: Path | None = None
    csv_path: Path | None = None

    track_allocations: bool = True

    # Provenance
    dotfile: Path | None = None

    def engine_config(self) -> EngineConfig:
        """Derive the immutable engine settings."""
        return EngineConfig(
            timeout=self.timeout,
            track_allocations=self.track_allocations,
        )


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


@dataclass
class ValidationError:
    """A single configuration validation error."""

    field: str
    message: str
    severity: str = "error"  # "error" or "warning"


def validate_config(config: BenchConfig) -> list[ValidationError]:
    """Validate a benchmark configuration.

    Returns a list of validation errors.  Empty list means valid.
    """
    errors: list[ValidationError] = []

    if not config.path.exists():
        errors.append(
            ValidationError(field="path", message=f"Path {config.path} does not exist.")
        )
    elif not (config.path.is_file() or config.path.is_dir()):
        errors.append(
            ValidationError(
                field="path",
                message=f"Given path {config.path} is not a file nor directory.",
            )
        )

    if config.timeout <= 0:
        errors.append(
            ValidationError(
                field="timeout",
                message=f"Timeout must be positive (got {config.timeout}).",
            )
        )

    duration = config.duration
    if duration.iterations is not None and duration.iterations < 1:
        errors.append(
            ValidationError(
                field="duration",
                message=f"Iteration count must be at least 1 (got {duration.iterations}).",
            )
        )
    if duration.seconds is not None:
        if duration.seconds <= 0:
            errors.append(
                ValidationError(
                    field="duration",
                    message=f"Duration must be positive (got {duration.seconds:g}s).",
                )
            )
        elif config.timeout > 0 and duration.seconds > config.timeout:
            errors.append(
                ValidationError(
                    field="timeout",
                    message=(
                        f"Timeout ({config.timeout:g}s) is shorter than the target "
                        f"duration ({duration.seconds:g}s); long calibration steps "
                        f"may time out."
                    ),
                    severity="warning",
                )
            )

    return errors


# ---------------------------------------------------------------------------
# Override file
# ---------------------------------------------------------------------------


def find_dotfile(start: Path) -> Path | None:
    """Search *start* and its parents for a ``.benchloop.yaml`` file."""
    current = start.resolve()
    for directory in (current, *current.parents):
        candidate = directory / DOTFILE_NAME
        if candidate.is_file():
            return candidate
    return None


def load_dotfile(path: Path) -> dict[str, Any]:
    """Load a ``.benchloop.yaml`` override file.

    File format::

        path: benchmarks/
        duration: 500ms
        timeout: 30
        bmf: false
        preamble: true
        track_allocations: true

    A relative ``path`` is resolved against the directory holding the
    file, so the override works from any subdirectory.

    Raises:
        ValueError: If the file is not valid YAML or not a mapping.
    """
    try:
        data = yaml.safe_load(path.read_text())
    except yaml.YAMLError as exc:
        raise ValueError(f"Invalid YAML in {path}: {exc}") from exc

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"{path} must be a YAML mapping, got {type(data).__name__}")

    known = {"path", "duration", "timeout", "bmf", "preamble", "track_allocations"}
    for key in sorted(set(data) - known):
        log.warning("Ignoring unknown key %r in %s", key, path)
    data = {k: v for k, v in data.items() if k in known}

    if data.get("path") is not None:
        dot_path = Path(str(data["path"]))
        if not dot_path.is_absolute():
            dot_path = path.parent / dot_path
        data["path"] = dot_path

    return data


# ---------------------------------------------------------------------------
# Environment
# ---------------------------------------------------------------------------


def parse_bool(value: Any) -> bool:
    """Interpret a config value as a boolean."""
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE_STRINGS:
        return True
    if text in _FALSE_STRINGS:
        return False
    raise ValueError(f"Invalid boolean value: {value!r}")


def env_overrides(environ: Mapping[str, str]) -> dict[str, Any]:
    """Collect ``BENCHLOOP_*`` overrides from an environment mapping."""
    overrides: dict[str, Any] = {}
    for key in ("timeout", "duration", "bmf", "path"):
        value = environ.get(_ENV_PREFIX + key.upper())
        if value is not None and value != "":
            overrides[key] = value
    return overrides


# ---------------------------------------------------------------------------
# Merging
# ---------------------------------------------------------------------------


def config_from_sources(
    *,
    cli_overrides: dict[str, Any] | None = None,
    environ: Mapping[str, str] | None = None,
    cwd: Path | None = None,
) -> BenchConfig:
    """Build a BenchConfig from every configuration source.

    Precedence (first wins): CLI options, ``BENCHLOOP_*`` environment
    variables, the nearest ``.benchloop.yaml``, built-in defaults.
    ``None`` CLI values count as "not given".

    Raises:
        ValueError: If a value cannot be interpreted.
    """
    cli = {k: v for k, v in (cli_overrides or {}).items() if v is not None}
    env = env_overrides(os.environ if environ is None else environ)
    dotfile = find_dotfile(cwd or Path.cwd())
    dot = load_dotfile(dotfile) if dotfile else {}

    merged: dict[str, Any] = {}
    for source in (dot, env, cli):
        merged.update(source)

    config = BenchConfig(dotfile=dotfile)

    if "path" in merged:
        config.path = Path(merged["path"])
    if "duration" in merged:
        config.duration = coerce_duration(merged["duration"])
    if "timeout" in merged:
        try:
            config.timeout = float(merged["timeout"])
        except (TypeError, ValueError) as exc:
            raise ValueError(f"Invalid timeout: {merged['timeout']!r}") from exc
    for key in ("bmf", "preamble", "track_allocations"):
        if key in merged:
            setattr(config, key, parse_bool(merged[key]))

    if cli.get("output_path"):
        config.output_path = Path(cli["output_path"])
    if cli.get("csv_path"):
        config.csv_path = Path(cli["csv_path"])

    if dotfile:
        log.debug("Loaded overrides from %s", dotfile)
    return config
