"""
Comparative throughput and memory benchmarks for SQLite driver backends.

Copyright (c) 2025, Jim Schilling

Please keep this header when you use this code.

This module is licensed under the MIT License.
"""
from sqlite_driver_bench.backends import (
    Backend,
    available_backends,
    open_backend,
    register_backend,
)
from sqlite_driver_bench.cases import BenchmarkCase, StorageMode, iter_cases, make_name
from sqlite_driver_bench.config import BenchConfig
from sqlite_driver_bench.matrix import run_case, run_matrix

__version__ = "0.1.0"

__all__ = [
    "Backend",
    "BenchConfig",
    "BenchmarkCase",
    "StorageMode",
    "available_backends",
    "iter_cases",
    "make_name",
    "open_backend",
    "register_backend",
    "run_case",
    "run_matrix",
]
