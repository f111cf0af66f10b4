"""
testkit - a self-contained test harness in the style of go test.

This package provides tools to:
- Write tests as Test-prefixed functions in executable suite files
- Run each test in its own process and working directory
- Capture the stdout, stderr and combined output of commands run by tests
- Report results in a go test like text format
"""

__version__ = "0.1.0"

from testkit.core.lifecycle import Context
from testkit.core.models import CaptureResult, Status
from testkit.exceptions import FailNow, SkipNow
from testkit.suite import main, registry, run_suite, test

__all__ = [
    "CaptureResult",
    "Context",
    "FailNow",
    "SkipNow",
    "Status",
    "main",
    "registry",
    "run_suite",
    "test",
]
