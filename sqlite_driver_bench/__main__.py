"""
Allows ``python -m sqlite_driver_bench``.

Copyright (c) 2025, Jim Schilling

Please keep this header when you use this code.

This module is licensed under the MIT License.
"""
import sys

from sqlite_driver_bench.cli import main

sys.exit(main())
