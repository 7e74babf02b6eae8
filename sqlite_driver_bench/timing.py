"""
Timer discipline and the host benchmark loop.

Copyright (c) 2025, Jim Schilling

Please keep this header when you use this code.

This module is licensed under the MIT License.
"""
import logging
import sys
import time
import tracemalloc
from collections.abc import Callable, Generator
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any

from sqlite_driver_bench.audit import reset_traced_peak

_NS_PER_SECOND = 1_000_000_000
_MAX_ITERATIONS = 1_000_000_000


class AllocationMeter:
    """
    Allocation activity between matched start/stop pairs, measured only
    while tracemalloc is tracing (i.e. inside a memory audit session).

    ``alloc_bytes`` adds up how far traced memory peaked above its level at
    each start; ``allocs`` adds up the memory blocks still allocated at each
    stop that were not at the matching start.
    """

    def __init__(self) -> None:
        self.alloc_bytes = 0
        self.allocs = 0
        self.measured = False
        self._traced_at_start: int | None = None
        self._blocks_at_start = 0

    def start(self) -> None:
        if not tracemalloc.is_tracing():
            return
        reset_traced_peak()
        self._traced_at_start = tracemalloc.get_traced_memory()[0]
        self._blocks_at_start = sys.getallocatedblocks()

    def stop(self) -> None:
        if self._traced_at_start is None:
            return
        if tracemalloc.is_tracing():
            peak = tracemalloc.get_traced_memory()[1]
            self.alloc_bytes += max(peak - self._traced_at_start, 0)
            self.allocs += max(sys.getallocatedblocks() - self._blocks_at_start, 0)
            self.measured = True
        self._traced_at_start = None

    def reset(self) -> None:
        self.alloc_bytes = 0
        self.allocs = 0
        self.measured = False


class TimingWindow:
    """
    Accumulates time only between matched start/stop pairs, together with
    the allocation activity of those intervals.

    ``measure()`` and ``exclude()`` pair the boundaries on every exit path,
    including exceptions.
    """

    def __init__(self, clock: Callable[[], int] = time.perf_counter_ns) -> None:
        self._clock = clock
        self._elapsed_ns = 0
        self._started_at: int | None = None
        self.allocations = AllocationMeter()

    @property
    def running(self) -> bool:
        return self._started_at is not None

    @property
    def elapsed_ns(self) -> int:
        if self._started_at is None:
            return self._elapsed_ns
        return self._elapsed_ns + (self._clock() - self._started_at)

    def start(self) -> None:
        if self._started_at is None:
            self.allocations.start()
            self._started_at = self._clock()

    def stop(self) -> None:
        if self._started_at is not None:
            self._elapsed_ns += self._clock() - self._started_at
            self._started_at = None
            self.allocations.stop()

    def reset(self) -> None:
        """Zero the accumulated time, keeping the running state."""
        self._elapsed_ns = 0
        self.allocations.reset()
        if self._started_at is not None:
            self.allocations.start()
            self._started_at = self._clock()

    @contextmanager
    def measure(self) -> Generator[None, None, None]:
        """Count the enclosed block; the window is stopped on exit."""
        self.start()
        try:
            yield
        finally:
            self.stop()

    @contextmanager
    def exclude(self) -> Generator[None, None, None]:
        """Keep the enclosed block out of the window, restoring the prior state."""
        was_running = self.running
        self.stop()
        try:
            yield
        finally:
            if was_running:
                self.start()


class BenchmarkContext:
    """
    State handed to a benchmark function: the iteration count ``n`` it must
    run and the timing window it reports through.
    """

    def __init__(self, name: str, n: int, clock: Callable[[], int] = time.perf_counter_ns) -> None:
        self.name = name
        self.n = n
        self.timer = TimingWindow(clock)
        self.bytes_per_op = 0
        self.audit: Any = None

    def reset_timer(self) -> None:
        self.timer.reset()

    def set_bytes(self, count: int) -> None:
        self.bytes_per_op = count

    @property
    def alloc_bytes(self) -> int:
        return self.timer.allocations.alloc_bytes

    @property
    def allocs(self) -> int:
        return self.timer.allocations.allocs

    @property
    def allocs_measured(self) -> bool:
        return self.timer.allocations.measured


@dataclass
class BenchmarkResult:
    name: str
    iterations: int
    elapsed_ns: int
    bytes_per_op: int = 0
    audit: Any = None
    alloc_bytes: int | None = None
    allocs: int | None = None

    @property
    def ns_per_op(self) -> float:
        if self.iterations <= 0:
            return 0.0
        return self.elapsed_ns / self.iterations

    @property
    def mb_per_sec(self) -> float | None:
        if self.bytes_per_op <= 0 or self.elapsed_ns <= 0:
            return None
        return (self.bytes_per_op * self.iterations / 1e6) / (self.elapsed_ns / _NS_PER_SECOND)

    @property
    def alloc_bytes_per_op(self) -> float | None:
        if self.alloc_bytes is None or self.iterations <= 0:
            return None
        return self.alloc_bytes / self.iterations

    @property
    def allocs_per_op(self) -> float | None:
        if self.allocs is None or self.iterations <= 0:
            return None
        return self.allocs / self.iterations

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "name": self.name,
            "iterations": self.iterations,
            "elapsed_ns": self.elapsed_ns,
            "ns_per_op": self.ns_per_op,
            "bytes_per_op": self.bytes_per_op,
            "mb_per_sec": self.mb_per_sec,
            "alloc_bytes_per_op": self.alloc_bytes_per_op,
            "allocs_per_op": self.allocs_per_op,
        }
        if self.audit is not None:
            result["audit"] = self.audit.to_dict()
        return result


def _predict_n(goal_ns: int, prev_iters: int, prev_ns: int, last: int) -> int:
    # Aim 20% past the goal, grow at least by one and at most 100x.
    prev_ns = max(prev_ns, 1)
    n = int(goal_ns * prev_iters * 1.2 / prev_ns)
    n = max(n, last + 1)
    n = min(n, 100 * last)
    return min(n, _MAX_ITERATIONS)


def _run_n(name: str, fn: Callable[[BenchmarkContext], None], n: int,
           clock: Callable[[], int]) -> BenchmarkContext:
    b = BenchmarkContext(name, n, clock)
    b.timer.start()
    try:
        fn(b)
    finally:
        b.timer.stop()
    return b


def run_benchmark(
    name: str,
    fn: Callable[[BenchmarkContext], None],
    benchtime: float = 1.0,
    iterations: int | None = None,
    clock: Callable[[], int] = time.perf_counter_ns,
) -> BenchmarkResult:
    """
    Run ``fn`` with increasing iteration counts until its measured time
    reaches ``benchtime`` seconds, or exactly once with ``iterations``.

    Each round calls ``fn`` afresh, so setup and teardown repeat per round.
    Only the final round is reported.

    Raises:
        ValueError: If ``benchtime`` or ``iterations`` is not positive
    """
    if iterations is not None:
        if iterations <= 0:
            raise ValueError(f"iterations must be > 0, got {iterations}")
        b = _run_n(name, fn, iterations, clock)
    else:
        if benchtime <= 0:
            raise ValueError(f"benchtime must be > 0, got {benchtime}")
        goal_ns = int(benchtime * _NS_PER_SECOND)
        n = 1
        b = _run_n(name, fn, n, clock)
        while b.timer.elapsed_ns < goal_ns and n < _MAX_ITERATIONS:
            n = _predict_n(goal_ns, b.n, b.timer.elapsed_ns, n)
            logging.debug(f"{name}: rerunning with n={n}")
            b = _run_n(name, fn, n, clock)

    return BenchmarkResult(
        name=name,
        iterations=b.n,
        elapsed_ns=b.timer.elapsed_ns,
        bytes_per_op=b.bytes_per_op,
        audit=b.audit,
        alloc_bytes=b.alloc_bytes if b.allocs_measured else None,
        allocs=b.allocs if b.allocs_measured else None,
    )
