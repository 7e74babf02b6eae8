"""
Benchmark bodies with timer discipline: setup and per-iteration overhead are
kept out of the timing window, only per-row work is measured.

Copyright (c) 2025, Jim Schilling

Please keep this header when you use this code.

This module is licensed under the MIT License.
"""
import logging
import os
from collections.abc import Generator
from contextlib import contextmanager

from sqlite_driver_bench.audit import MemoryAuditSession
from sqlite_driver_bench.backends import Backend, Rows, get_backend, open_backend
from sqlite_driver_bench.cases import StorageMode
from sqlite_driver_bench.config import BenchConfig
from sqlite_driver_bench.errors import (
    CleanupError,
    DbOperationError,
    ExecutionError,
    MemoryLeakError,
    SetupError,
    ShortReadError,
)
from sqlite_driver_bench.timing import BenchmarkContext
from sqlite_driver_bench.workload import (
    BEGIN_SQL,
    COMMIT_SQL,
    DELETE_ALL_SQL,
    INSERT_SQL,
    SELECT_ALL_SQL,
    row_values,
    setup_script,
    throughput_bytes,
)

_DATABASE_NAME = "{}bench.db"
_SIDECAR_SUFFIXES = ("-journal", "-wal", "-shm")


def prepare_database(directory: str = ".") -> str:
    """
    First ``<i>bench.db`` path in ``directory`` that does not exist yet, so
    files left behind by an earlier run are never reused.
    """
    i = 0
    while True:
        path = os.path.join(directory, _DATABASE_NAME.format(i))
        if not os.path.exists(path):
            return path
        i += 1


def remove_database(path: str, missing_ok: bool = True) -> None:
    """
    Remove a database file and its sidecar files.

    Raises:
        CleanupError: If a file cannot be removed, or ``path`` is missing
            and ``missing_ok`` is False
    """
    try:
        os.remove(path)
    except FileNotFoundError as e:
        if not missing_ok:
            raise CleanupError(f"Database file {path} is missing") from e
    except OSError as e:
        raise CleanupError(f"Could not remove database file {path}: {e}") from e
    for suffix in _SIDECAR_SUFFIXES:
        try:
            os.remove(path + suffix)
        except FileNotFoundError:
            pass
        except OSError as e:
            raise CleanupError(f"Could not remove {path + suffix}: {e}") from e


@contextmanager
def _phase(error_cls: type[Exception], what: str) -> Generator[None, None, None]:
    try:
        yield
    except DbOperationError as e:
        raise error_cls(f"{what}: {e}") from e


@contextmanager
def open_case(b: BenchmarkContext, backend_id: str, mode: StorageMode, path: str | None,
              config: BenchConfig) -> Generator[Backend, None, None]:
    """
    Open the backend for one case and tear it down on every exit path.

    Any on-disk file at ``path`` is removed before opening. With
    ``config.mem_audit`` the whole case runs inside one audit session when
    the backend supports it; the report lands on ``b.audit``.

    Raises:
        SetupError: If the backend cannot be opened
        CleanupError: If the backend cannot be closed
        MemoryLeakError: If the audit reports an anomaly
    """
    backend_cls = get_backend(backend_id)
    session = None
    if config.mem_audit:
        if backend_cls.supports_memory_audit:
            session = MemoryAuditSession(b.name, config.audit_tolerance)
            session.start()
        else:
            logging.debug(f"{b.name}: {backend_id} does not support memory audit, skipping")

    try:
        if not mode.in_memory:
            remove_database(path)
        db = open_backend(backend_id, backend_cls.target_for(mode, path))
        try:
            yield db
        except BaseException:
            # The case already failed; its error is the one to report.
            try:
                db.close()
            except DbOperationError as close_error:
                logging.warning(f"{b.name}: close after failure also failed: {close_error}")
            raise
        with _phase(CleanupError, "close"):
            db.close()
    finally:
        if session is not None:
            b.audit = session.report()

    if b.audit is not None and not b.audit.ok:
        raise MemoryLeakError(b.audit.anomaly)


def scan_rows(rows: Rows, n: int) -> int:
    """
    Read exactly ``n`` rows, returning the last value scanned.

    Raises:
        ShortReadError: If the cursor runs out first
    """
    dst = 0
    for scanned in range(n):
        row = rows.fetchone()
        if row is None:
            raise ShortReadError(n, scanned)
        dst = int(row[0])
    return dst


def benchmark_read(b: BenchmarkContext, backend_id: str, mode: StorageMode, path: str | None,
                   n: int, config: BenchConfig) -> None:
    """
    Scan an ``n`` row table ``b.n`` times. The table is populated once in a
    single transaction; query issue and cursor close are not measured.
    """
    with open_case(b, backend_id, mode, path, config) as db:
        with _phase(SetupError, "create schema"):
            db.exec(setup_script(open_transaction=True))
        with _phase(SetupError, "prepare insert"):
            stmt = db.prepare(INSERT_SQL)
        try:
            with _phase(SetupError, "populate"):
                for value in row_values(n):
                    stmt.exec(value)
                db.exec(COMMIT_SQL)

            b.reset_timer()
            for _ in range(b.n):
                with b.timer.exclude(), _phase(ExecutionError, "query"):
                    rows = db.query(SELECT_ALL_SQL)
                try:
                    with b.timer.measure(), _phase(ExecutionError, "scan"):
                        scan_rows(rows, n)
                finally:
                    rows.close()
            b.timer.stop()
        finally:
            stmt.close()

    if config.recs_per_sec:
        b.set_bytes(throughput_bytes(n))


def benchmark_insert(b: BenchmarkContext, backend_id: str, mode: StorageMode, path: str | None,
                     n: int, config: BenchConfig) -> None:
    """
    Refill an ``n`` row table ``b.n`` times. Each iteration begins a
    transaction and empties the table unmeasured, then times ``n`` prepared
    inserts and the commit.
    """
    with open_case(b, backend_id, mode, path, config) as db:
        with _phase(SetupError, "create schema"):
            db.exec(setup_script())
        with _phase(SetupError, "prepare insert"):
            stmt = db.prepare(INSERT_SQL)
        try:
            b.reset_timer()
            for _ in range(b.n):
                with b.timer.exclude(), _phase(ExecutionError, "begin"):
                    db.exec(BEGIN_SQL)
                    db.exec(DELETE_ALL_SQL)
                with b.timer.measure(), _phase(ExecutionError, "insert"):
                    for value in row_values(n):
                        stmt.exec(value)
                    db.exec(COMMIT_SQL)
        finally:
            stmt.close()

    if config.recs_per_sec:
        b.set_bytes(throughput_bytes(n))
