"""
Pytest configuration file for tests.

Puts the project root and the tests directory on sys.path so the packages
and the shared fakes import without installation.
"""

import os
import sys

_tests_dir = os.path.dirname(os.path.abspath(__file__))

# Add project root to path
sys.path.insert(0, os.path.dirname(_tests_dir))
sys.path.insert(0, _tests_dir)
