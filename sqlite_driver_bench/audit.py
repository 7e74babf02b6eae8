"""
Memory audit sessions around a benchmark case.

Copyright (c) 2025, Jim Schilling

Please keep this header when you use this code.

This module is licensed under the MIT License.
"""
import gc
import logging
import tracemalloc
from dataclasses import dataclass
from typing import Any

import psutil

from sqlite_driver_bench.errors import AuditSessionError

DEFAULT_TOLERANCE_BYTES = 256 * 1024
DEFAULT_TRACE_FRAMES = 25
_TOP_SOURCES = 3

_NEW = "new"
_STARTED = "started"
_REPORTED = "reported"

# tracemalloc is process-wide, so at most one session may be active.
_active_session: "MemoryAuditSession | None" = None

# Highest traced peak observed before the last reset_traced_peak().
_high_water = 0

_ERROR_ALREADY_ACTIVE = "A memory audit session is already active"
_ERROR_BAD_STATE = "Cannot {} a memory audit session that is {}"


@dataclass
class AuditReport:
    retained_bytes: int
    peak_bytes: int
    rss_delta_bytes: int
    anomaly: str | None = None

    @property
    def ok(self) -> bool:
        return self.anomaly is None

    def to_dict(self) -> dict[str, Any]:
        return {
            "retained_bytes": self.retained_bytes,
            "peak_bytes": self.peak_bytes,
            "rss_delta_bytes": self.rss_delta_bytes,
            "anomaly": self.anomaly,
        }


def _trace_filters() -> list[tracemalloc.Filter]:
    return [
        tracemalloc.Filter(False, "<frozen importlib._bootstrap>", all_frames=True),
        tracemalloc.Filter(False, "<frozen importlib._bootstrap_external>", all_frames=True),
        tracemalloc.Filter(False, tracemalloc.__file__),
        tracemalloc.Filter(False, __file__),
        tracemalloc.Filter(False, "<unknown>"),
    ]


def active_session() -> "MemoryAuditSession | None":
    return _active_session


def reset_traced_peak() -> None:
    """
    Restart tracemalloc peak tracking without losing the peak seen so far,
    so interval measurements and the session peak can share the tracer.
    """
    global _high_water
    _high_water = max(_high_water, tracemalloc.get_traced_memory()[1])
    tracemalloc.reset_peak()


def traced_peak() -> int:
    return max(_high_water, tracemalloc.get_traced_memory()[1])


class MemoryAuditSession:
    """
    One bounded period of allocation tracking, started once and reported once.

    ``report()`` compares the live Python allocations against the baseline
    taken by ``start()``; growth above ``tolerance_bytes`` that survives a
    full garbage collection is reported as an anomaly.
    """

    def __init__(self, label: str = "", tolerance_bytes: int = DEFAULT_TOLERANCE_BYTES,
                 frames: int = DEFAULT_TRACE_FRAMES) -> None:
        self.label = label
        self.tolerance_bytes = tolerance_bytes
        self.frames = frames
        self.state = _NEW
        self._started_tracing = False
        self._baseline: tracemalloc.Snapshot | None = None
        self._baseline_traced = 0
        self._rss_before = 0

    @property
    def active(self) -> bool:
        return self.state == _STARTED

    def start(self) -> None:
        """
        Raises:
            AuditSessionError: If any session is active or this one was used
        """
        global _active_session, _high_water
        if _active_session is not None:
            raise AuditSessionError(_ERROR_ALREADY_ACTIVE)
        if self.state != _NEW:
            raise AuditSessionError(_ERROR_BAD_STATE.format("start", self.state))

        self._started_tracing = not tracemalloc.is_tracing()
        if self._started_tracing:
            tracemalloc.start(self.frames)
        gc.collect()
        _high_water = 0
        tracemalloc.reset_peak()
        self._baseline = tracemalloc.take_snapshot().filter_traces(_trace_filters())
        self._baseline_traced = tracemalloc.get_traced_memory()[0]
        self._rss_before = psutil.Process().memory_info().rss
        self.state = _STARTED
        _active_session = self
        logging.debug(f"Memory audit started for {self.label or 'unnamed case'}")

    def report(self) -> AuditReport:
        """
        End the session and describe anything it left allocated.

        Raises:
            AuditSessionError: If the session is not active
        """
        global _active_session
        if self.state != _STARTED:
            raise AuditSessionError(_ERROR_BAD_STATE.format("report", self.state))

        try:
            gc.collect()
            snapshot = tracemalloc.take_snapshot().filter_traces(_trace_filters())
            peak = traced_peak()
            rss_after = psutil.Process().memory_info().rss
            stats = snapshot.compare_to(self._baseline, "lineno")
        finally:
            if self._started_tracing:
                tracemalloc.stop()
            self._baseline = None
            self.state = _REPORTED
            _active_session = None

        retained = sum(stat.size_diff for stat in stats)
        report = AuditReport(
            retained_bytes=retained,
            peak_bytes=max(peak - self._baseline_traced, 0),
            rss_delta_bytes=rss_after - self._rss_before,
        )
        if retained > self.tolerance_bytes:
            growth = [stat for stat in stats if stat.size_diff > 0][:_TOP_SOURCES]
            sources = "; ".join(str(stat) for stat in growth)
            report.anomaly = (
                f"{self.label or 'case'} retained {retained} bytes "
                f"(tolerance {self.tolerance_bytes}): {sources}"
            )
        logging.debug(f"Memory audit report for {self.label or 'unnamed case'}: {report}")
        return report
