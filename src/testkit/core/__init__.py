"""Core test execution functionality."""

from testkit.core.discovery import Registry, SuiteDiscovery, collect_tests
from testkit.core.lifecycle import Context, Lifecycle
from testkit.core.runner import DirectoryRunner, SuiteRunner

__all__ = [
    "Context",
    "DirectoryRunner",
    "Lifecycle",
    "Registry",
    "SuiteDiscovery",
    "SuiteRunner",
    "collect_tests",
]
