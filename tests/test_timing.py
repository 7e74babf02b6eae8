"""
Tests for the timing window and the host benchmark loop.

Copyright (c) 2025, Jim Schilling

Please keep this header when you use this code.

This module is licensed under the MIT License.
"""
import os
import sys
import tracemalloc
import unittest

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from sqlite_driver_bench.timing import (
    AllocationMeter,
    BenchmarkContext,
    BenchmarkResult,
    TimingWindow,
    run_benchmark,
)


class FakeClock:
    def __init__(self):
        self.now = 0

    def __call__(self):
        return self.now

    def advance(self, ns):
        self.now += ns


class TestTimingWindow(unittest.TestCase):

    def setUp(self):
        self.clock = FakeClock()
        self.window = TimingWindow(self.clock)

    def test_accumulates_only_matched_pairs(self):
        """Test that time outside start/stop pairs is never counted."""
        self.clock.advance(100)
        self.window.start()
        self.clock.advance(10)
        self.window.stop()
        self.clock.advance(1000)
        self.window.start()
        self.clock.advance(5)
        self.window.stop()
        self.assertEqual(self.window.elapsed_ns, 15)

    def test_start_and_stop_are_idempotent(self):
        self.window.start()
        self.clock.advance(10)
        self.window.start()
        self.clock.advance(10)
        self.window.stop()
        self.window.stop()
        self.assertEqual(self.window.elapsed_ns, 20)

    def test_elapsed_while_running(self):
        self.window.start()
        self.clock.advance(7)
        self.assertTrue(self.window.running)
        self.assertEqual(self.window.elapsed_ns, 7)

    def test_exclude_restores_running_state(self):
        self.window.start()
        self.clock.advance(3)
        with self.window.exclude():
            self.assertFalse(self.window.running)
            self.clock.advance(1000)
        self.assertTrue(self.window.running)
        self.clock.advance(2)
        self.window.stop()
        self.assertEqual(self.window.elapsed_ns, 5)

    def test_exclude_keeps_stopped_window_stopped(self):
        with self.window.exclude():
            self.clock.advance(50)
        self.assertFalse(self.window.running)
        self.assertEqual(self.window.elapsed_ns, 0)

    def test_measure_stops_on_error(self):
        """Test that a failing measured block still closes the window."""
        with pytest.raises(RuntimeError):
            with self.window.measure():
                self.clock.advance(4)
                raise RuntimeError("boom")
        self.assertFalse(self.window.running)
        self.clock.advance(100)
        self.assertEqual(self.window.elapsed_ns, 4)

    def test_exclude_restarts_on_error(self):
        self.window.start()
        with pytest.raises(RuntimeError):
            with self.window.exclude():
                self.clock.advance(100)
                raise RuntimeError("boom")
        self.assertTrue(self.window.running)
        self.assertEqual(self.window.elapsed_ns, 0)

    def test_reset(self):
        self.window.start()
        self.clock.advance(10)
        self.window.reset()
        self.clock.advance(3)
        self.window.stop()
        self.assertEqual(self.window.elapsed_ns, 3)



class TestAllocationMeter(unittest.TestCase):

    def setUp(self):
        self.started_tracing = not tracemalloc.is_tracing()

    def tearDown(self):
        if self.started_tracing and tracemalloc.is_tracing():
            tracemalloc.stop()

    def test_idle_without_tracing(self):
        if not self.started_tracing:
            self.skipTest("tracemalloc already tracing")
        meter = AllocationMeter()
        meter.start()
        held = [bytearray(1024) for _ in range(10)]
        meter.stop()
        self.assertFalse(meter.measured)
        self.assertEqual((meter.alloc_bytes, meter.allocs), (0, 0))
        self.assertEqual(len(held), 10)

    def test_counts_interval_allocations(self):
        """Test that only allocations inside start/stop pairs are counted."""
        tracemalloc.start()
        meter = AllocationMeter()
        outside = bytearray(1 << 20)
        meter.start()
        transient = bytearray(64 * 1024)
        held = [object() for _ in range(100)]
        del transient
        meter.stop()
        self.assertTrue(meter.measured)
        self.assertGreaterEqual(meter.alloc_bytes, 64 * 1024)
        self.assertLess(meter.alloc_bytes, len(outside))
        self.assertGreater(meter.allocs, 0)
        self.assertEqual(len(held), 100)
        meter.reset()
        self.assertFalse(meter.measured)
        self.assertEqual(meter.alloc_bytes, 0)

    def test_unmeasured_run_reports_none(self):
        if not self.started_tracing:
            self.skipTest("tracemalloc already tracing")
        result = run_benchmark("plain", lambda b: None, iterations=3, clock=FakeClock())
        self.assertIsNone(result.alloc_bytes_per_op)
        self.assertIsNone(result.allocs_per_op)
        self.assertIsNone(result.to_dict()["alloc_bytes_per_op"])

    def test_per_op_figures(self):
        result = BenchmarkResult("r", iterations=4, elapsed_ns=40, alloc_bytes=400, allocs=8)
        self.assertEqual(result.alloc_bytes_per_op, 100)
        self.assertEqual(result.allocs_per_op, 2)
        self.assertEqual(result.to_dict()["allocs_per_op"], 2)


class TestRunBenchmark(unittest.TestCase):

    def setUp(self):
        self.clock = FakeClock()
        self.rounds = []

    def _body(self, per_op_ns, setup_ns=0):
        def bench(b: BenchmarkContext):
            self.rounds.append(b.n)
            with b.timer.exclude():
                self.clock.advance(setup_ns)
            for _ in range(b.n):
                self.clock.advance(per_op_ns)
        return bench

    def test_fixed_iterations(self):
        result = run_benchmark("fixed", self._body(50), iterations=7, clock=self.clock)
        self.assertEqual(self.rounds, [7])
        self.assertEqual(result.iterations, 7)
        self.assertEqual(result.elapsed_ns, 350)
        self.assertEqual(result.ns_per_op, 50)

    def test_ramp_reaches_benchtime(self):
        """Test that n grows until the measured time reaches the goal."""
        result = run_benchmark("ramp", self._body(1000), benchtime=1e-5, clock=self.clock)
        self.assertEqual(self.rounds, [1, 12])
        self.assertEqual(result.iterations, 12)
        self.assertGreaterEqual(result.elapsed_ns, 10_000)

    def test_ramp_growth_is_bounded(self):
        run_benchmark("bounded", self._body(1), benchtime=1e-3, clock=self.clock)
        for previous, current in zip(self.rounds, self.rounds[1:]):
            self.assertGreater(current, previous)
            self.assertLessEqual(current, previous * 100)

    def test_excluded_setup_is_not_reported(self):
        result = run_benchmark("setup", self._body(10, setup_ns=1_000_000), iterations=5, clock=self.clock)
        self.assertEqual(result.elapsed_ns, 50)

    def test_rejects_non_positive_settings(self):
        with pytest.raises(ValueError):
            run_benchmark("bad", self._body(1), iterations=0, clock=self.clock)
        with pytest.raises(ValueError):
            run_benchmark("bad", self._body(1), benchtime=0, clock=self.clock)

    def test_result_throughput(self):
        result = BenchmarkResult("r", iterations=10, elapsed_ns=1_000_000_000, bytes_per_op=2_000_000)
        self.assertAlmostEqual(result.mb_per_sec, 20.0)
        self.assertEqual(result.ns_per_op, 100_000_000)
        self.assertIsNone(BenchmarkResult("r", 10, 100).mb_per_sec)
        self.assertEqual(result.to_dict()["iterations"], 10)


if __name__ == '__main__':
    unittest.main()
