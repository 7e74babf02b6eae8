"""
Exception types raised by the benchmark harness.

Copyright (c) 2025, Jim Schilling

Please keep this header when you use this code.

This module is licensed under the MIT License.
"""


class BenchmarkError(Exception):
    """
    Base class for every fault that aborts a benchmark run.
    """

    pass


class DbOperationError(Exception):
    """
    Exception raised by a backend when a database operation fails.
    """

    pass


class SetupError(BenchmarkError):
    """
    Raised when opening the backend, creating the schema or preparing a
    statement fails.
    """

    pass


class BackendOpenError(SetupError):
    pass


class UnknownBackendError(SetupError):
    def __init__(self, backend_id: str, available: list[str]) -> None:
        self.backend_id = backend_id
        self.available = available
        super().__init__(
            f"Unknown backend {backend_id!r} (registered: {', '.join(available) or 'none'})"
        )


class ExecutionError(BenchmarkError):
    """
    Raised when a statement fails while the workload is being measured.
    """

    pass


class ShortReadError(ExecutionError):
    """
    Raised when a cursor is exhausted before the expected number of rows.
    """

    def __init__(self, expected: int, scanned: int) -> None:
        self.expected = expected
        self.scanned = scanned
        super().__init__(f"Cursor exhausted after {scanned} of {expected} rows")


class CleanupError(BenchmarkError):
    pass


class MemoryLeakError(BenchmarkError):
    """
    Raised when a memory audit session reports an anomaly.
    """

    pass


class AuditSessionError(BenchmarkError):
    """
    Raised when a memory audit session is started or reported out of order.
    """

    pass
