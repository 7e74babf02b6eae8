"""
Scenario matrix: runs every storage mode x backend x scale cell of a suite,
one case at a time.

Copyright (c) 2025, Jim Schilling

Please keep this header when you use this code.

This module is licensed under the MIT License.
"""
import logging
import os
from collections.abc import Callable

from sqlite_driver_bench.cases import BenchmarkCase, iter_cases
from sqlite_driver_bench.config import BenchConfig
from sqlite_driver_bench.errors import CleanupError
from sqlite_driver_bench.runner import (
    benchmark_insert,
    benchmark_read,
    prepare_database,
    remove_database,
)
from sqlite_driver_bench.timing import BenchmarkContext, BenchmarkResult, run_benchmark

READ_SUITE = "read"
INSERT_SUITE = "insert"

SUITES: dict[str, tuple[str, Callable[..., None]]] = {
    READ_SUITE: ("BenchmarkReading1", benchmark_read),
    INSERT_SUITE: ("BenchmarkInsertComparative", benchmark_insert),
}


def suite_names() -> list[str]:
    return list(SUITES)


def run_case(suite: str, case: BenchmarkCase, config: BenchConfig,
             path: str | None = None) -> BenchmarkResult:
    """
    Run one case of a suite through the host benchmark loop.

    On-disk cases use ``path`` as their database file; it is removed after
    the case and must not exist afterwards.

    Raises:
        ValueError: If the suite is unknown or an on-disk case has no path
        BenchmarkError: If the case fails at any phase
    """
    if suite not in SUITES:
        raise ValueError(f"Unknown suite {suite!r}, expected one of {suite_names()}")
    if not case.in_memory and not path:
        raise ValueError(f"On-disk case {case.name} requires a database path")
    prefix, body = SUITES[suite]
    name = f"{prefix}/{case.name}"
    db_path = None if case.in_memory else path

    def bench(b: BenchmarkContext) -> None:
        body(b, case.backend_id, case.storage_mode, db_path, case.row_count, config)

    logging.debug(f"Running {name} ({case.row_count} rows)")
    result = run_benchmark(name, bench, benchtime=config.benchtime, iterations=config.iterations)

    if db_path is not None:
        remove_database(db_path, missing_ok=False)
        if os.path.exists(db_path):
            raise CleanupError(f"Database file {db_path} still exists after {name}")
    return result


def run_matrix(suite: str, config: BenchConfig, directory: str,
               on_result: Callable[[BenchmarkResult], None] | None = None) -> list[BenchmarkResult]:
    """
    Run every cell of ``suite`` in a fixed order: storage mode, then
    backend, then scale exponent. The first failure aborts the run.

    Args:
        suite: Suite name, one of ``suite_names()``
        config: Run configuration
        directory: Directory holding the on-disk database file
        on_result: Called with each result as soon as its case completes

    Returns:
        Results in run order
    """
    path = prepare_database(directory)
    logging.info(f"Running {suite} suite, on-disk database {path}")
    results = []
    for case in iter_cases(config.backends, config.storage_modes, config.exponents):
        result = run_case(suite, case, config, path)
        results.append(result)
        if on_result is not None:
            on_result(result)
    return results
