"""Tests for benchloop.bench.context — the benchmark context and its tree."""

from __future__ import annotations

import sys
import threading
import time
import tracemalloc
import unittest

from bench_test_helpers import FAST_CONFIG, FakeClock, RecordingReporter, costly, patch_clock

from benchloop.bench.config import BenchTime, EngineConfig
from benchloop.bench.context import Context, run_suite
from benchloop.bench.worker import BenchmarkTimeout

FIXED = BenchTime(iterations=10)


class TestNaming(unittest.TestCase):
    def test_root_children_use_bare_name(self) -> None:
        with Context.root(FIXED, config=FAST_CONFIG) as root:
            root.run("top", lambda b: None)
        self.assertEqual(root.children[0].name, "top")
        self.assertEqual(root.name, "")

    def test_nested_names_join_with_colon(self) -> None:
        def middle(b):
            b.run("leaf", lambda sb: None)

        def top(b):
            b.run("middle", middle)

        with Context.root(FIXED, config=FAST_CONFIG) as root:
            root.run("top", top)
        names = [c.name for c in root.walk()]
        self.assertEqual(names, ["", "top", "top:middle", "top:middle:leaf"])


class TestStates(unittest.TestCase):
    def test_passed(self) -> None:
        ctx, result = run_suite("ok", lambda b: None, FIXED, config=FAST_CONFIG)
        self.assertTrue(ctx.passed)
        self.assertEqual(ctx.is_failed(), (False, None))
        self.assertEqual(ctx.is_skipped(), (False, None))
        self.assertIsNotNone(result)

    def test_first_terminal_state_wins(self) -> None:
        def confused(b):
            try:
                b.skip("first")
            finally:
                b.fail("second")

        ctx, _ = run_suite("confused", confused, FIXED, config=FAST_CONFIG)
        self.assertEqual(ctx.is_skipped(), (True, "first"))
        self.assertFalse(ctx.failed)

    def test_skip_cannot_be_swallowed(self) -> None:
        reached: list[bool] = []

        def swallow(b):
            try:
                b.skip("really")
            except Exception:
                reached.append(True)
            reached.append(False)

        ctx, result = run_suite("swallow", swallow, FIXED, config=FAST_CONFIG)
        self.assertTrue(ctx.skipped)
        self.assertEqual(reached, [])
        self.assertIsNone(result)

    def test_fail_without_reason(self) -> None:
        ctx, _ = run_suite("bare", lambda b: b.fail(), FIXED, config=FAST_CONFIG)
        self.assertEqual(ctx.is_failed(), (True, None))

    def test_fatal_logs_and_fails(self) -> None:
        with self.assertLogs("benchloop", level="ERROR") as logs:
            ctx, _ = run_suite(
                "fatal", lambda b: b.fatal("disk on fire"), FIXED, config=FAST_CONFIG
            )
        self.assertEqual(ctx.is_failed(), (True, "disk on fire"))
        self.assertTrue(any("disk on fire" in line for line in logs.output))

    def test_exception_becomes_failure(self) -> None:
        def broken(b):
            raise ValueError("boom")

        ctx, result = run_suite("broken", broken, FIXED, config=FAST_CONFIG)
        self.assertEqual(ctx.is_failed(), (True, "ValueError: boom"))
        self.assertIsNone(result)

    def test_system_exit_fails_only_that_benchmark(self) -> None:
        ran: list[bool] = []
        with Context.root(FIXED, config=FAST_CONFIG) as root:
            root.run("exits", lambda b: sys.exit(3))
            root.run("sibling", lambda b: ran.append(True))
        exits, sibling = root.children
        self.assertEqual(exits.is_failed(), (True, "SystemExit: 3"))
        self.assertTrue(sibling.passed)
        self.assertTrue(ran)

    def test_arbitrary_attributes(self) -> None:
        with Context.root(FIXED, config=FAST_CONFIG) as root:
            root.payload = b"abc"
            seen: list[bytes] = []
            root.run("reader", lambda b: seen.append(b.parent.payload))
        self.assertEqual(seen[0], b"abc")


class TestSubBenchmarks(unittest.TestCase):
    def test_run_returns_success(self) -> None:
        outcomes: list[bool] = []

        def parent(b):
            outcomes.append(b.run("good", lambda sb: None))
            outcomes.append(b.run("bad", lambda sb: sb.fail("nope")))
            outcomes.append(b.run("skipped", lambda sb: sb.skip()))

        run_suite("parent", parent, FIXED, config=FAST_CONFIG)
        self.assertEqual(outcomes, [True, False, True])

    def test_child_failure_fails_parent_not_root(self) -> None:
        def parent(b):
            b.run("bad", lambda sb: sb.fail("nope"))

        with Context.root(FIXED, config=FAST_CONFIG) as root:
            ok = root.run("parent", parent)
            sibling_ok = root.run("sibling", lambda b: None)
        self.assertFalse(ok)
        self.assertTrue(sibling_ok)
        parent_ctx = root.children[0]
        self.assertEqual(parent_ctx.is_failed(), (True, "sub-benchmark parent:bad failed"))
        self.assertFalse(root.failed)
        self.assertTrue(root.children[1].passed)

    def test_failure_propagates_through_every_level(self) -> None:
        def middle(b):
            b.run("leaf", lambda sb: sb.fail("deep"))

        def top(b):
            b.run("middle", middle)

        ctx, _ = run_suite("top", top, FIXED, config=FAST_CONFIG)
        middle_ctx = ctx.children[0]
        self.assertTrue(middle_ctx.failed)
        self.assertTrue(ctx.failed)
        self.assertEqual(ctx.reason, "sub-benchmark top:middle:leaf failed")

    def test_parent_never_has_result(self) -> None:
        def parent(b):
            b.run("a", lambda sb: None)
            b.run("b", lambda sb: None)

        ctx, result = run_suite("parent", parent, FIXED, config=FAST_CONFIG)
        self.assertIsNone(result)
        self.assertTrue(ctx.has_children)
        self.assertEqual([c.name for c in ctx.children], ["parent:a", "parent:b"])
        self.assertTrue(all(c.result is not None for c in ctx.children))

    def test_children_inherit_bench_time(self) -> None:
        seen: list[int] = []

        def parent(b):
            b.run("inherit", lambda sb: seen.append(sb.N))
            b.run("override", lambda sb: seen.append(sb.N), BenchTime(iterations=3))

        run_suite("parent", parent, FIXED, config=FAST_CONFIG)
        self.assertEqual(seen, [1, 10, 1, 3])

    def test_reporter_sees_children_before_parent(self) -> None:
        reporter = RecordingReporter()

        def parent(b):
            b.run("a", lambda sb: None)
            b.run("b", lambda sb: None)

        run_suite("parent", parent, FIXED, config=FAST_CONFIG, reporter=reporter)
        self.assertEqual(reporter.names, ["parent:a", "parent:b", "parent"])

    def test_shared_root(self) -> None:
        with Context.root(FIXED, config=FAST_CONFIG) as root:
            run_suite("one", lambda b: None, FIXED, root=root)
            run_suite("two", lambda b: None, FIXED, root=root)
        self.assertEqual([c.name for c in root.children], ["one", "two"])
        self.assertTrue(root.passed)


class TestTimerControls(unittest.TestCase):
    def test_stopped_timer_excludes_setup(self) -> None:
        clock = FakeClock()

        def with_setup(b):
            b.stop_timer()
            clock.advance(5_000_000)
            b.start_timer()
            clock.advance(100 * b.N)

        with patch_clock(clock):
            _, result = run_suite("setup", with_setup, FIXED, config=FAST_CONFIG)
        assert result is not None
        self.assertEqual(result.duration_ns, 1000)

    def test_reset_timer_discards_elapsed(self) -> None:
        clock = FakeClock()

        def with_reset(b):
            clock.advance(999_999)
            b.reset_timer()
            clock.advance(10 * b.N)

        with patch_clock(clock):
            _, result = run_suite("reset", with_reset, FIXED, config=FAST_CONFIG)
        assert result is not None
        self.assertEqual(result.duration_ns, 100)

    def test_set_bytes(self) -> None:
        clock = FakeClock()

        def payload(b):
            b.set_bytes(1024)
            clock.advance(1000 * b.N)

        with patch_clock(clock):
            ctx, result = run_suite("payload", payload, FIXED, config=FAST_CONFIG)
        assert result is not None
        self.assertEqual(result.bytes, 1024)
        self.assertEqual(ctx.samples[0].bytes, 10240)
        self.assertAlmostEqual(result.mb_per_sec, 1024.0)


class TestAllocations(unittest.TestCase):
    def test_net_bytes_counted(self) -> None:
        was_tracing = tracemalloc.is_tracing()
        keep: list[bytearray] = []

        def hoard(b):
            for _ in range(b.N):
                keep.append(bytearray(1000))

        config = EngineConfig(timeout=5.0, track_allocations=True, settle_gc=True)
        _, result = run_suite("hoard", hoard, BenchTime(iterations=100), config=config)
        assert result is not None
        self.assertGreaterEqual(result.net_bytes, 100 * 1000)
        self.assertGreaterEqual(result.bytes_per_op, 1000)
        self.assertGreaterEqual(result.peak_bytes, 100 * 1000)
        self.assertEqual(tracemalloc.is_tracing(), was_tracing)

    def test_disabled_tracking_reports_zero(self) -> None:
        keep: list[bytearray] = []

        def hoard(b):
            for _ in range(b.N):
                keep.append(bytearray(1000))

        _, result = run_suite("hoard", hoard, FIXED, config=FAST_CONFIG)
        assert result is not None
        self.assertEqual(result.net_bytes, 0)


class TestTimeouts(unittest.TestCase):
    def test_check_deadline_aborts(self) -> None:
        def spin(b):
            while True:
                b.check_deadline()
                time.sleep(0.01)

        config = EngineConfig(timeout=0.2, track_allocations=False, settle_gc=False)
        ctx, result = run_suite("spin", spin, FIXED, config=config)
        self.assertEqual(ctx.is_failed(), (True, "timed out after 0.2s"))
        self.assertIsNone(result)

    def test_unresponsive_workload_is_abandoned(self) -> None:
        release = threading.Event()
        self.addCleanup(release.set)

        def stuck(b):
            release.wait(10)

        config = EngineConfig(timeout=0.2, track_allocations=False, settle_gc=False)
        start = time.monotonic()
        ctx, result = run_suite("stuck", stuck, FIXED, config=config)
        self.assertLess(time.monotonic() - start, 5)
        self.assertEqual(ctx.is_failed(), (True, "timed out after 0.2s"))
        self.assertIsNone(result)

    def test_abandoned_workload_cannot_start_sub_benchmarks(self) -> None:
        finished = threading.Event()
        child_ran: list[bool] = []
        refused: list[BaseException] = []

        def parent(b):
            time.sleep(0.4)
            try:
                b.run("late_child", lambda sb: child_ran.append(True))
            except BenchmarkTimeout as exc:
                refused.append(exc)
                raise
            finally:
                finished.set()

        reporter = RecordingReporter()
        config = EngineConfig(timeout=0.2, track_allocations=False, settle_gc=False)
        with Context.root(FIXED, config=config, reporter=reporter) as root:
            root.run("parent", parent)
            root.run("sibling", lambda b: None)
            self.assertTrue(finished.wait(5))
        self.assertEqual(reporter.names, ["parent", "sibling"])
        self.assertEqual(root.children[0].children, [])
        self.assertEqual(child_ran, [])
        self.assertEqual(len(refused), 1)

    def test_timeout_property(self) -> None:
        seen: list[float] = []
        config = EngineConfig(timeout=12.5, track_allocations=False, settle_gc=False)
        run_suite("t", lambda b: seen.append(b.timeout), FIXED, config=config)
        self.assertEqual(seen[0], 12.5)

    def test_parent_waits_for_children_past_budget(self) -> None:
        def slow_child(sb):
            time.sleep(0.15)

        def parent(b):
            b.run("one", slow_child)
            b.run("two", slow_child)

        # Each child call fits in the budget; the parent's probe does not.
        config = EngineConfig(timeout=0.25, track_allocations=False, settle_gc=False)
        ctx, _ = run_suite("parent", parent, BenchTime(iterations=1), config=config)
        self.assertTrue(ctx.passed, ctx.reason)
        self.assertTrue(all(c.passed for c in ctx.children))


class TestFakeClockWorkload(unittest.TestCase):
    def test_costly_workload_helper(self) -> None:
        clock = FakeClock(start=0)
        with patch_clock(clock):
            _, result = run_suite("c", costly(clock, 3), FIXED, config=FAST_CONFIG)
        assert result is not None
        self.assertEqual(result.duration_ns, 30)


if __name__ == "__main__":
    unittest.main()
