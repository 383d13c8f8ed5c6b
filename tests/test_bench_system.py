"""Tests for benchloop.bench.system — system characterization and preamble."""

from __future__ import annotations

import json
import tempfile
import unittest
from pathlib import Path
from unittest.mock import MagicMock, patch

from benchloop.bench.config import BenchConfig, BenchTime
from benchloop.bench.system import (
    SystemProfile,
    _cpu_model_darwin,
    _cpu_model_linux,
    capture_system_profile,
    format_preamble,
    format_system_profile,
)

CPUINFO = """\
processor\t: 0
vendor_id\t: GenuineIntel
model name\t: Intel(R) Core(TM) i7-8650U CPU
cpu MHz\t\t: 1900.000

processor\t: 1
model name\t: Intel(R) Core(TM) i7-8650U CPU
cpu MHz\t\t: 2100.000
"""


def _profile(**kwargs: object) -> SystemProfile:
    defaults: dict[str, object] = {
        "cpu_model": "Test CPU",
        "cpu_architecture": "x86_64",
        "python_version": "3.13.1",
        "python_implementation": "CPython",
        "python_compiler": "GCC 14.2.0",
        "python_build": "main Dec 4 2024",
        "gc_thresholds": [2000, 10, 10],
        "os_name": "Linux",
        "os_kernel_version": "6.8.0",
        "hostname": "bench-host",
        "timestamp": "2024-12-04T10:00:00+0000",
    }
    defaults.update(kwargs)
    return SystemProfile(**defaults)  # type: ignore[arg-type]


class TestCpuModelLinux(unittest.TestCase):
    def _write(self, text: str) -> Path:
        tmp = tempfile.TemporaryDirectory()
        self.addCleanup(tmp.cleanup)
        path = Path(tmp.name) / "cpuinfo"
        path.write_text(text)
        return path

    def test_model_with_clock(self) -> None:
        path = self._write(CPUINFO)
        self.assertEqual(_cpu_model_linux(path), "Intel(R) Core(TM) i7-8650U CPU @ 1900.000MHz")

    def test_model_already_has_clock(self) -> None:
        path = self._write("model name\t: Intel(R) Xeon(R) CPU @ 2.20GHz\ncpu MHz\t: 2200.000\n")
        self.assertEqual(_cpu_model_linux(path), "Intel(R) Xeon(R) CPU @ 2.20GHz")

    def test_model_without_clock(self) -> None:
        path = self._write("model name\t: Cortex-A72\n")
        self.assertEqual(_cpu_model_linux(path), "Cortex-A72")

    def test_no_model(self) -> None:
        path = self._write("processor\t: 0\nBogoMIPS\t: 108.00\n")
        self.assertIsNone(_cpu_model_linux(path))

    def test_missing_file(self) -> None:
        self.assertIsNone(_cpu_model_linux(Path("/nonexistent/cpuinfo")))


class TestCpuModelDarwin(unittest.TestCase):
    @patch("benchloop.bench.system._sysctl")
    def test_with_cores(self, sysctl: MagicMock) -> None:
        sysctl.side_effect = lambda key: {
            "machdep.cpu.brand_string": "Apple M2",
            "machdep.cpu.core_count": "8",
        }.get(key)
        self.assertEqual(_cpu_model_darwin(), "Apple M2 @ 8")

    @patch("benchloop.bench.system._sysctl", return_value=None)
    def test_unavailable(self, sysctl: MagicMock) -> None:
        self.assertIsNone(_cpu_model_darwin())


class TestCaptureSystemProfile(unittest.TestCase):
    @patch("benchloop.bench.system.cpu_model", return_value=None)
    def test_populates_interpreter_fields(self, _cpu: MagicMock) -> None:
        profile = capture_system_profile()
        self.assertEqual(profile.cpu_model, "unknown")
        self.assertTrue(profile.python_version)
        self.assertTrue(profile.python_implementation)
        self.assertEqual(len(profile.gc_thresholds), 3)
        self.assertTrue(profile.timestamp)

    def test_json_round_trip(self) -> None:
        profile = _profile(jit_available=True)
        restored = SystemProfile.from_dict(json.loads(profile.to_json()))
        self.assertEqual(restored, profile)

    def test_from_dict_ignores_unknown(self) -> None:
        profile = SystemProfile.from_dict({"cpu_model": "X", "ram_gb": 16})
        self.assertEqual(profile.cpu_model, "X")


class TestFormatPreamble(unittest.TestCase):
    def test_lines(self) -> None:
        config = BenchConfig(duration=BenchTime(seconds=0.5), timeout=30.0)
        self.assertEqual(
            format_preamble(_profile(), config).splitlines(),
            [
                "Python: 3.13.1 CPython",
                "Python build: main Dec 4 2024 (GCC 14.2.0)",
                "CPU: Test CPU",
                "Duration: 0.5s",
                "Global timeout: 30",
            ],
        )

    def test_jit_and_gil(self) -> None:
        profile = _profile(jit_available=True, jit_enabled=False, gil_enabled=False)
        text = format_preamble(profile, BenchConfig(duration=BenchTime(iterations=10)))
        self.assertIn("JIT: Disabled", text)
        self.assertIn("GIL: Disabled", text)
        self.assertIn("Duration: 10 iters", text)


class TestFormatSystemProfile(unittest.TestCase):
    def test_contents(self) -> None:
        text = format_system_profile(_profile())
        self.assertIn("Test CPU (x86_64)", text)
        self.assertIn("Linux 6.8.0", text)
        self.assertIn("JIT:      not available", text)
        self.assertIn("GC:       enabled (thresholds 2000/10/10)", text)
        self.assertIn("bench-host", text)

    def test_jit_states(self) -> None:
        self.assertIn(
            "JIT:      enabled",
            format_system_profile(_profile(jit_available=True, jit_enabled=True)),
        )
        self.assertIn(
            "JIT:      available, disabled",
            format_system_profile(_profile(jit_available=True)),
        )


if __name__ == "__main__":
    unittest.main()
