"""
Tests for the scenario matrix driver.

Copyright (c) 2025, Jim Schilling

Please keep this header when you use this code.

This module is licensed under the MIT License.
"""
import os
import shutil
import sys
import tempfile
import unittest
from unittest import mock

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from backend_doubles import BROKEN_BACKEND, REF_BACKEND, RefBackend

from sqlite_driver_bench.audit import active_session
from sqlite_driver_bench.cases import BenchmarkCase, StorageMode
from sqlite_driver_bench.config import BenchConfig
from sqlite_driver_bench.errors import BackendOpenError, CleanupError
from sqlite_driver_bench.matrix import (
    INSERT_SUITE,
    READ_SUITE,
    run_case,
    run_matrix,
    suite_names,
)


class TestScenarioMatrix(unittest.TestCase):

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp(prefix='matrix_test_')
        RefBackend.last_row_count = None

    def tearDown(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_suites(self):
        self.assertEqual(suite_names(), [READ_SUITE, INSERT_SUITE])

    def test_end_to_end_insert_ref_backend(self):
        """Test one audited in-memory insert case of 100 rows on refA."""
        config = BenchConfig(iterations=1, mem_audit=True)
        case = BenchmarkCase(StorageMode.IN_MEMORY, REF_BACKEND, 2)
        result = run_case(INSERT_SUITE, case, config)

        self.assertEqual(case.name, "refAInMemory1e2")
        self.assertEqual(result.name, "BenchmarkInsertComparative/refAInMemory1e2")
        self.assertEqual(result.iterations, 1)
        self.assertEqual(RefBackend.last_row_count, 100)
        self.assertIsNotNone(result.audit)
        self.assertIsNone(result.audit.anomaly)
        self.assertIsNone(active_session())

    def test_matrix_order_and_names(self):
        """Test that every cell runs once, in mode/backend/exponent order."""
        config = BenchConfig(iterations=1, backends=(REF_BACKEND, "sqlite3"), exponents=(1, 2))
        seen = []
        results = run_matrix(READ_SUITE, config, self.temp_dir, on_result=seen.append)
        self.assertEqual([r.name for r in results], [
            "BenchmarkReading1/refAInMemory1e1",
            "BenchmarkReading1/refAInMemory1e2",
            "BenchmarkReading1/sqlite3InMemory1e1",
            "BenchmarkReading1/sqlite3InMemory1e2",
            "BenchmarkReading1/refAOnDisk1e1",
            "BenchmarkReading1/refAOnDisk1e2",
            "BenchmarkReading1/sqlite3OnDisk1e1",
            "BenchmarkReading1/sqlite3OnDisk1e2",
        ])
        self.assertEqual(seen, results)

    def test_on_disk_cases_leave_no_files(self):
        config = BenchConfig(iterations=1, backends=(REF_BACKEND,), exponents=(1,),
                             storage_modes=(StorageMode.ON_DISK,))
        run_matrix(INSERT_SUITE, config, self.temp_dir)
        self.assertEqual(os.listdir(self.temp_dir), [])

    def test_stale_file_is_not_reused(self):
        """Test that a leftover 0bench.db is left alone and a fresh path used."""
        stale = os.path.join(self.temp_dir, '0bench.db')
        with open(stale, 'w') as f:
            f.write('not a database')
        config = BenchConfig(iterations=1, backends=(REF_BACKEND,), exponents=(1,),
                             storage_modes=(StorageMode.ON_DISK,))
        run_matrix(INSERT_SUITE, config, self.temp_dir)
        self.assertEqual(os.listdir(self.temp_dir), ['0bench.db'])

    def test_residual_file_is_fatal(self):
        path = os.path.join(self.temp_dir, 'case.db')
        case = BenchmarkCase(StorageMode.ON_DISK, REF_BACKEND, 1)
        with mock.patch('sqlite_driver_bench.matrix.remove_database'):
            with pytest.raises(CleanupError):
                run_case(INSERT_SUITE, case, BenchConfig(iterations=1), path)

    def test_remove_failure_is_fatal(self):
        path = os.path.join(self.temp_dir, 'case.db')
        case = BenchmarkCase(StorageMode.ON_DISK, REF_BACKEND, 1)
        real_remove = os.remove

        def remove(target):
            if target == path and os.path.exists(path):
                raise PermissionError(13, 'Permission denied', target)
            real_remove(target)

        with mock.patch('sqlite_driver_bench.runner.os.remove', side_effect=remove):
            with pytest.raises(CleanupError):
                run_case(INSERT_SUITE, case, BenchConfig(iterations=1), path)

    def test_failure_halts_matrix(self):
        config = BenchConfig(iterations=1, backends=(BROKEN_BACKEND, REF_BACKEND), exponents=(1,))
        seen = []
        with pytest.raises(BackendOpenError):
            run_matrix(READ_SUITE, config, self.temp_dir, on_result=seen.append)
        self.assertEqual(seen, [])

    def test_on_disk_case_requires_path(self):
        case = BenchmarkCase(StorageMode.ON_DISK, REF_BACKEND, 1)
        with pytest.raises(ValueError):
            run_case(READ_SUITE, case, BenchConfig(iterations=1))

    def test_unknown_suite(self):
        case = BenchmarkCase(StorageMode.IN_MEMORY, REF_BACKEND, 1)
        with pytest.raises(ValueError):
            run_case("update", case, BenchConfig(iterations=1))


if __name__ == '__main__':
    unittest.main()
