"""
Run configuration for the benchmark harness.

Copyright (c) 2025, Jim Schilling

Please keep this header when you use this code.

This module is licensed under the MIT License.
"""
from dataclasses import dataclass, field

from sqlite_driver_bench.audit import DEFAULT_TOLERANCE_BYTES
from sqlite_driver_bench.cases import STORAGE_MODES, StorageMode
from sqlite_driver_bench.workload import SCALE_EXPONENTS

DEFAULT_BACKENDS = ("sqlalchemy", "sqlite3")


@dataclass
class BenchConfig:
    """
    Options shared by every case of a run.

    Attributes:
        benchtime: Target measured seconds per case when ``iterations`` is unset
        iterations: Fixed iteration count per case, overriding ``benchtime``
        recs_per_sec: Report 1e6 bytes per record so MB/s reads as records/s
        mem_audit: Wrap each case of an auditable backend in an audit session
        audit_tolerance: Retained bytes tolerated before an audit anomaly
        backends: Backend identifiers, in run order
        storage_modes: Storage modes, in run order
        exponents: Scale exponents, in run order
    """

    benchtime: float = 1.0
    iterations: int | None = None
    recs_per_sec: bool = False
    mem_audit: bool = False
    audit_tolerance: int = DEFAULT_TOLERANCE_BYTES
    backends: tuple[str, ...] = DEFAULT_BACKENDS
    storage_modes: tuple[StorageMode, ...] = STORAGE_MODES
    exponents: tuple[int, ...] = field(default=SCALE_EXPONENTS)

    def validate(self) -> list[str]:
        """
        Returns:
            List of validation error messages (empty if valid)
        """
        errors = []
        if self.benchtime <= 0:
            errors.append(f"benchtime must be > 0, got {self.benchtime}")
        if self.iterations is not None and self.iterations <= 0:
            errors.append(f"iterations must be > 0, got {self.iterations}")
        if self.audit_tolerance < 0:
            errors.append(f"audit_tolerance must be >= 0, got {self.audit_tolerance}")
        if not self.backends:
            errors.append("at least one backend is required")
        if len(set(self.backends)) != len(self.backends):
            errors.append(f"backends must be unique, got {list(self.backends)}")
        if not self.storage_modes:
            errors.append("at least one storage mode is required")
        if not self.exponents:
            errors.append("at least one scale exponent is required")
        for exponent in self.exponents:
            if exponent not in SCALE_EXPONENTS:
                errors.append(f"scale exponent must be one of {list(SCALE_EXPONENTS)}, got {exponent}")
        return errors
