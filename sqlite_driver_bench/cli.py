"""
Command line entry point for the driver benchmarks.

Copyright (c) 2025, Jim Schilling

Please keep this header when you use this code.

This module is licensed under the MIT License.
"""
import argparse
import contextlib
import logging
import sys
import tempfile

from sqlite_driver_bench.audit import DEFAULT_TOLERANCE_BYTES
from sqlite_driver_bench.backends import available_backends
from sqlite_driver_bench.config import DEFAULT_BACKENDS, BenchConfig
from sqlite_driver_bench.errors import BenchmarkError
from sqlite_driver_bench.matrix import run_matrix, suite_names
from sqlite_driver_bench.report import format_result, write_json
from sqlite_driver_bench.workload import SCALE_EXPONENTS


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sqlite-driver-bench",
        description="Compare SQLite driver backends on read and insert workloads",
    )
    parser.add_argument('--suite', choices=suite_names() + ['all'], default='all',
                        help='Benchmark suite to run')
    parser.add_argument('--backends', nargs='+', default=list(DEFAULT_BACKENDS),
                        help=f'Backends to compare (registered: {", ".join(available_backends())})')
    parser.add_argument('--max-exponent', type=int, default=SCALE_EXPONENTS[-1],
                        choices=SCALE_EXPONENTS, help='Largest table size as a power of ten')
    parser.add_argument('--benchtime', type=float, default=1.0,
                        help='Target measured seconds per case')
    parser.add_argument('--iterations', '-n', type=int, default=None,
                        help='Run exactly this many iterations per case')
    parser.add_argument('--recs-per-sec', action='store_true',
                        help='Report throughput so that MB/s reads as records/s')
    parser.add_argument('--mem-audit', action='store_true',
                        help='Audit memory around each case of backends that support it')
    parser.add_argument('--audit-tolerance', type=int, default=DEFAULT_TOLERANCE_BYTES,
                        help='Retained bytes tolerated before a case fails the audit')
    parser.add_argument('--dir', '-d', default=None,
                        help='Directory for on-disk databases (default: a temporary directory)')
    parser.add_argument('--json', default=None, help='Also write results as JSON to this path')
    parser.add_argument('--verbose', '-v', action='store_true', help='Enable debug logging')
    return parser


def config_from_args(args: argparse.Namespace) -> BenchConfig:
    return BenchConfig(
        benchtime=args.benchtime,
        iterations=args.iterations,
        recs_per_sec=args.recs_per_sec,
        mem_audit=args.mem_audit,
        audit_tolerance=args.audit_tolerance,
        backends=tuple(args.backends),
        exponents=tuple(e for e in SCALE_EXPONENTS if e <= args.max_exponent),
    )


def run(args: argparse.Namespace) -> list:
    config = config_from_args(args)
    suites = suite_names() if args.suite == 'all' else [args.suite]
    results = []
    workspace = (contextlib.nullcontext(args.dir) if args.dir
                 else tempfile.TemporaryDirectory(prefix='sqlite_driver_bench_'))
    with workspace as directory:
        for suite in suites:
            results.extend(run_matrix(suite, config, directory,
                                      on_result=lambda r: print(format_result(r), flush=True)))
    if args.json:
        write_json(results, args.json)
    return results


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(message)s",
    )

    errors = config_from_args(args).validate()
    unknown = [b for b in args.backends if b not in available_backends()]
    if unknown:
        errors.append(f"unknown backends: {', '.join(unknown)}")
    if errors:
        for error in errors:
            print(f"error: {error}", file=sys.stderr)
        return 2

    try:
        run(args)
    except BenchmarkError as e:
        logging.error(f"Benchmark failed: {e}")
        return 1
    return 0


if __name__ == '__main__':
    sys.exit(main())
