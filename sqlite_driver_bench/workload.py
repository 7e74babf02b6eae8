"""
Deterministic workload for the driver benchmarks: a single integer column
table populated with the values 0..N-1.

Copyright (c) 2025, Jim Schilling

Please keep this header when you use this code.

This module is licensed under the MIT License.
"""
from collections.abc import Iterator

SCALE_EXPONENTS = (1, 2, 3, 4, 5, 6)

CREATE_TABLE_SQL = "create table t(i int)"
INSERT_SQL = "insert into t values(?)"
SELECT_ALL_SQL = "select * from t"
DELETE_ALL_SQL = "delete from t"
COUNT_SQL = "select count(*) from t"

BEGIN_SQL = "begin"
COMMIT_SQL = "commit"

# Bytes attributed to each record when throughput is reported as records/s.
RECORD_BYTES = 1_000_000


def row_count(exponent: int) -> int:
    """
    Number of rows for a scale exponent, always exactly 10**exponent.

    Raises:
        ValueError: If the exponent is negative or not an int
    """
    if isinstance(exponent, bool) or not isinstance(exponent, int):
        raise ValueError(f"Scale exponent must be an int, got {exponent!r}")
    if exponent < 0:
        raise ValueError(f"Scale exponent must be >= 0, got {exponent}")
    return 10**exponent


def row_values(count: int) -> Iterator[int]:
    """Yield the values inserted for a table of ``count`` rows."""
    return iter(range(count))


def setup_script(open_transaction: bool = False) -> str:
    """
    Schema creation script. With ``open_transaction`` the script also opens
    the transaction that wraps the initial bulk insert.
    """
    if open_transaction:
        return f"{CREATE_TABLE_SQL};\n{BEGIN_SQL};"
    return f"{CREATE_TABLE_SQL};"


def throughput_bytes(count: int) -> int:
    """Bytes per operation that make MB/s read as records per second."""
    return RECORD_BYTES * count
