"""
Benchmark case identity: storage modes, case naming and matrix enumeration.

Copyright (c) 2025, Jim Schilling

Please keep this header when you use this code.

This module is licensed under the MIT License.
"""
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from enum import Enum

from sqlite_driver_bench.workload import SCALE_EXPONENTS, row_count


class StorageMode(Enum):
    IN_MEMORY = "InMemory"
    ON_DISK = "OnDisk"

    @property
    def in_memory(self) -> bool:
        return self is StorageMode.IN_MEMORY


STORAGE_MODES = (StorageMode.IN_MEMORY, StorageMode.ON_DISK)


def make_name(mode: StorageMode, backend_id: str, exponent: int) -> str:
    """
    Label for one matrix cell: backend id, storage suffix, then ``1e<exponent>``.

    Example:
        make_name(StorageMode.IN_MEMORY, "sqlite3", 2) == "sqlite3InMemory1e2"
    """
    return f"{backend_id}{mode.value}1e{exponent}"


@dataclass(frozen=True)
class BenchmarkCase:
    storage_mode: StorageMode
    backend_id: str
    scale_exponent: int
    row_count: int = field(default=-1)

    def __post_init__(self) -> None:
        expected = row_count(self.scale_exponent)
        if self.row_count == -1:
            object.__setattr__(self, "row_count", expected)
        elif self.row_count != expected:
            raise ValueError(
                f"row_count must be 10**{self.scale_exponent} = {expected}, got {self.row_count}"
            )

    @property
    def name(self) -> str:
        return make_name(self.storage_mode, self.backend_id, self.scale_exponent)

    @property
    def in_memory(self) -> bool:
        return self.storage_mode.in_memory


def iter_cases(
    backends: Iterable[str],
    modes: Iterable[StorageMode] = STORAGE_MODES,
    exponents: Iterable[int] = SCALE_EXPONENTS,
) -> Iterator[BenchmarkCase]:
    """
    Enumerate modes x backends x exponents in that nesting order.

    Raises:
        ValueError: If two cells would share a name
    """
    backends = list(backends)
    exponents = list(exponents)
    seen: set[str] = set()
    for mode in modes:
        for backend_id in backends:
            for exponent in exponents:
                case = BenchmarkCase(mode, backend_id, exponent)
                if case.name in seen:
                    raise ValueError(f"Duplicate benchmark case name: {case.name}")
                seen.add(case.name)
                yield case
