"""System characterization printed before a benchmark run.

Captures the CPU, the interpreter and its runtime switches (JIT, GIL,
garbage collector) so benchmark output can be put in context.

Supports Linux and macOS for the CPU model.  Capture is best-effort:
individual failures leave default values rather than raising.
"""

from __future__ import annotations

import gc
import json
import logging
import platform
import subprocess
import sys
import time
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

from benchloop.bench.config import BenchConfig

log = logging.getLogger("benchloop")


# ---------------------------------------------------------------------------
# SystemProfile
# ---------------------------------------------------------------------------


@dataclass
class SystemProfile:
    """Characterization of the machine and interpreter running benchmarks."""

    # CPU
    cpu_model: str = "unknown"
    cpu_architecture: str = ""

    # Python
    python_version: str = ""
    python_implementation: str = ""
    python_compiler: str = ""
    python_build: str = ""
    jit_available: bool = False
    jit_enabled: bool = False
    gil_enabled: bool = True
    gc_enabled: bool = True
    gc_thresholds: list[int] = field(default_factory=list)

    # OS
    os_name: str = ""
    os_kernel_version: str = ""

    # Environment
    hostname: str = ""
    timestamp: str = ""

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible dict."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SystemProfile:
        """Deserialize from a dict, ignoring unknown fields."""
        known = {f.name for f in cls.__dataclass_fields__.values()}
        filtered = {k: v for k, v in data.items() if k in known}
        return cls(**filtered)

    def to_json(self, indent: int = 2) -> str:
        """Serialize to a JSON string."""
        return json.dumps(self.to_dict(), indent=indent)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _sysctl(key: str) -> str | None:
    """Read a sysctl string value. Returns None on failure."""
    try:
        proc = subprocess.run(
            ["sysctl", "-n", key],
            capture_output=True,
            text=True,
            timeout=5,
        )
        if proc.returncode == 0 and proc.stdout.strip():
            return proc.stdout.strip()
    except Exception:  # noqa: BLE001
        pass
    return None


# ---------------------------------------------------------------------------
# Capture functions (platform dispatch)
# ---------------------------------------------------------------------------


def capture_system_profile() -> SystemProfile:
    """Capture a system profile for the running interpreter."""
    profile = SystemProfile(
        timestamp=time.strftime("%Y-%m-%dT%H:%M:%S%z"),
        hostname=platform.node(),
        cpu_architecture=platform.machine(),
        os_name=platform.system(),
        os_kernel_version=platform.release(),
        python_version=platform.python_version(),
        python_implementation=platform.python_implementation(),
        python_compiler=platform.python_compiler(),
        python_build=" ".join(platform.python_build()),
    )

    profile.cpu_model = cpu_model() or "unknown"
    _capture_runtime(profile)
    return profile


def cpu_model() -> str | None:
    """Human-readable CPU name (dispatches by platform)."""
    if sys.platform == "linux":
        return _cpu_model_linux()
    if sys.platform == "darwin":
        return _cpu_model_darwin()
    log.debug("CPU model capture not supported on %s", sys.platform)
    return None


def _cpu_model_linux(cpuinfo_path: Path = Path("/proc/cpuinfo")) -> str | None:
    """CPU model from /proc/cpuinfo, with the clock appended when known."""
    try:
        cpuinfo = cpuinfo_path.read_text()
    except OSError:
        return None

    model = ""
    mhz = ""
    for line in cpuinfo.splitlines():
        if ":" not in line:
            continue
        name, value = (part.strip() for part in line.split(":", 1))
        name = name.lower()
        if name == "model name" and not model:
            model = value
        elif name == "cpu mhz" and not mhz:
            mhz = value
        if model and mhz:
            break

    if not model:
        return None
    if not mhz or "MHz" in model or "GHz" in model:
        return model
    return f"{model} @ {mhz}MHz"


def _cpu_model_darwin() -> str | None:
    """CPU model using sysctl on macOS."""
    model = _sysctl("machdep.cpu.brand_string")
    if not model:
        return None
    cores = _sysctl("machdep.cpu.core_count")
    if cores:
        return f"{model} @ {cores}"
    return model


def _capture_runtime(profile: SystemProfile) -> None:
    """Populate JIT, GIL and garbage collector fields."""
    jit = getattr(sys, "_jit", None)
    if jit is not None:
        try:
            profile.jit_available = bool(jit.is_available())
            profile.jit_enabled = bool(jit.is_enabled())
        except Exception:  # noqa: BLE001
            pass

    is_gil_enabled = getattr(sys, "_is_gil_enabled", None)
    if is_gil_enabled is not None:
        profile.gil_enabled = bool(is_gil_enabled())

    profile.gc_enabled = gc.isenabled()
    profile.gc_thresholds = list(gc.get_threshold())


# ---------------------------------------------------------------------------
# Display helpers
# ---------------------------------------------------------------------------


def format_preamble(profile: SystemProfile, config: BenchConfig) -> str:
    """Lines printed before the first benchmark runs."""
    lines = [
        f"Python: {profile.python_version} {profile.python_implementation}",
        f"Python build: {profile.python_build} ({profile.python_compiler})",
        f"CPU: {profile.cpu_model}",
    ]
    if profile.jit_available:
        lines.append(f"JIT: {'Enabled' if profile.jit_enabled else 'Disabled'}")
    if not profile.gil_enabled:
        lines.append("GIL: Disabled")
    lines.append(f"Duration: {config.duration.describe()}")
    lines.append(f"Global timeout: {config.timeout:g}")
    return "\n".join(lines)


def format_system_profile(profile: SystemProfile) -> str:
    """Format a system profile for terminal display."""
    lines = [
        "System Profile",
        "──────────────",
    ]

    lines.append(f"CPU:      {profile.cpu_model} ({profile.cpu_architecture})")
    lines.append(f"OS:       {profile.os_name} {profile.os_kernel_version}")
    lines.append(
        f"Python:   {profile.python_version} ({profile.python_implementation}, "
        f"{profile.python_compiler})"
    )

    if profile.jit_available:
        jit = "enabled" if profile.jit_enabled else "available, disabled"
    else:
        jit = "not available"
    lines.append(f"JIT:      {jit}")
    lines.append(f"GIL:      {'enabled' if profile.gil_enabled else 'disabled'}")

    gc_state = "enabled" if profile.gc_enabled else "disabled"
    thresholds = "/".join(str(t) for t in profile.gc_thresholds)
    lines.append(f"GC:       {gc_state} (thresholds {thresholds})")

    lines.append(f"Hostname: {profile.hostname}")
    lines.append(f"Time:     {profile.timestamp}")

    return "\n".join(lines)
