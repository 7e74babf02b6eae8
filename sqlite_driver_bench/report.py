"""
Benchmark result formatting.

Copyright (c) 2025, Jim Schilling

Please keep this header when you use this code.

This module is licensed under the MIT License.
"""
import json
from collections.abc import Iterable

from sqlite_driver_bench.timing import BenchmarkResult


def format_result(result: BenchmarkResult, name_width: int = 0) -> str:
    """
    One line in the usual benchmark layout, e.g.
    ``BenchmarkReading1/sqlite3InMemory1e2   20000   61234 ns/op   1633.10 MB/s``
    """
    parts = [f"{result.name:<{name_width}}", f"{result.iterations:>10}", f"{result.ns_per_op:>14.0f} ns/op"]
    if result.mb_per_sec is not None:
        parts.append(f"{result.mb_per_sec:>12.2f} MB/s")
    if result.alloc_bytes_per_op is not None:
        parts.append(f"{result.alloc_bytes_per_op:>10.0f} B/op")
        parts.append(f"{result.allocs_per_op:>8.0f} allocs/op")
    if result.audit is not None:
        parts.append(f"{result.audit.retained_bytes:>10} B retained")
        parts.append(f"{result.audit.peak_bytes:>10} B peak")
    return "\t".join(parts)


def format_results(results: Iterable[BenchmarkResult]) -> str:
    results = list(results)
    width = max((len(r.name) for r in results), default=0)
    return "\n".join(format_result(r, width) for r in results)


def write_json(results: Iterable[BenchmarkResult], path: str) -> None:
    with open(path, "w", encoding="utf-8") as f:
        json.dump([r.to_dict() for r in results], f, indent=2)
