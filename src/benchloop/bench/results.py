"""Benchmark result data structures and serialization.

Hierarchy::

    Context (one benchmark, see benchloop.bench.context)
      → samples: list[Sample]      one per calibration step
      → result: Result | None      final snapshot of a passed leaf
        → samples: list[Sample]

Derived metrics (ns/op, op/s, B/op, MB/s) are computed from the
accumulated totals on the Result.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from benchloop.formatting import format_bytes


# ---------------------------------------------------------------------------
# Step-level result
# ---------------------------------------------------------------------------


@dataclass
class Sample:
    """Measurement of one calibration step."""

    n: int  # Iterations the workload performed
    duration_ns: int  # Time accumulated while the timer ran
    net_bytes: int  # Net allocated bytes while the timer ran
    bytes: int = 0  # Declared payload for the whole step (bytes/iter * n)
    peak_bytes: int = 0  # Peak traced growth during the step

    @property
    def ns_per_op(self) -> float:
        return self.duration_ns / self.n if self.n else 0.0

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible dict."""
        return {
            "n": self.n,
            "duration_ns": self.duration_ns,
            "net_bytes": self.net_bytes,
            "bytes": self.bytes,
            "peak_bytes": self.peak_bytes,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Sample:
        """Deserialize from a dict, ignoring unknown fields."""
        known = {f.name for f in cls.__dataclass_fields__.values()}
        filtered = {k: v for k, v in data.items() if k in known}
        return cls(**filtered)


# ---------------------------------------------------------------------------
# Benchmark-level result
# ---------------------------------------------------------------------------


@dataclass
class Result:
    """Final measurement of a passed benchmark."""

    n: int
    duration_ns: int
    net_bytes: int
    bytes: int = 0  # Declared payload bytes per iteration
    peak_bytes: int = 0
    samples: list[Sample] = field(default_factory=list)

    @property
    def ns_per_op(self) -> float:
        """Average nanoseconds per iteration."""
        if self.n <= 0:
            return 0.0
        return self.duration_ns / self.n

    @property
    def ops_per_sec(self) -> float:
        """Iterations per second."""
        if self.duration_ns <= 0:
            return 0.0
        return self.n * 1e9 / self.duration_ns

    @property
    def bytes_per_op(self) -> float:
        """Net allocated bytes per iteration."""
        if self.n <= 0:
            return 0.0
        return self.net_bytes / self.n

    @property
    def mb_per_sec(self) -> float:
        """Declared payload throughput in MB/s (0 when undefined)."""
        if self.bytes <= 0 or self.duration_ns <= 0 or self.n <= 0:
            return 0.0
        return (self.bytes * self.n / 1e6) / (self.duration_ns / 1e9)

    @property
    def pretty_net_bytes(self) -> str:
        return format_bytes(self.net_bytes)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible dict, including derived metrics."""
        return {
            "n": self.n,
            "duration_ns": self.duration_ns,
            "ns_per_op": round(self.ns_per_op, 6),
            "ops_per_sec": round(self.ops_per_sec, 6),
            "bytes_per_op": round(self.bytes_per_op, 6),
            "net_bytes": self.net_bytes,
            "pretty_net_bytes": self.pretty_net_bytes,
            "bytes": self.bytes,
            "mb_per_sec": round(self.mb_per_sec, 6),
            "peak_bytes": self.peak_bytes,
            "samples": [s.to_dict() for s in self.samples],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Result:
        """Deserialize from a dict.  Derived metrics are recomputed."""
        return cls(
            n=data["n"],
            duration_ns=data["duration_ns"],
            net_bytes=data.get("net_bytes", 0),
            bytes=data.get("bytes", 0),
            peak_bytes=data.get("peak_bytes", 0),
            samples=[Sample.from_dict(s) for s in data.get("samples", [])],
        )
