"""Test discovery functionality.

Two kinds of discovery exist. Inside a suite process, the tests are the
``Test``-prefixed functions of the suite module plus anything registered
explicitly, in source order. Across a directory tree, the suites are the
executable files matching the naming pattern that mention the engine.
"""

import inspect
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Mapping, Optional

from testkit.config import HarnessConfig
from testkit.core.models import DiscoveredTest

TEST_PREFIX = "Test"


def _describe(func: Callable, name: Optional[str] = None) -> DiscoveredTest:
    # Decorated tests are placed by the function they wrap.
    code = getattr(inspect.unwrap(func), "__code__", None)
    return DiscoveredTest(
        name=name or getattr(func, "__name__", type(func).__name__),
        func=func,
        file_path=code.co_filename if code else "",
        line_number=code.co_firstlineno if code else 0,
    )


class Registry:
    """Tests registered explicitly, in registration order."""

    def __init__(self):
        self._tests: list[DiscoveredTest] = []

    def __len__(self) -> int:
        return len(self._tests)

    def register(self, func: Optional[Callable] = None, *, name: Optional[str] = None):
        """Register a test function. Usable as ``@test`` or ``@test(name=...)``."""

        def decorator(f: Callable) -> Callable:
            self._tests.append(_describe(f, name))
            return f

        if func is not None:
            return decorator(func)
        return decorator

    def tests(self) -> list[DiscoveredTest]:
        return list(self._tests)

    def clear(self) -> None:
        self._tests.clear()


def collect_tests(
    namespace: Mapping[str, Any],
    registry: Optional[Registry] = None,
) -> list[DiscoveredTest]:
    """Collect the tests of a suite module in declaration order.

    Functions whose name starts with ``Test`` and that are defined in the
    module itself are picked up automatically. Registered tests from the same
    module are merged in; a function found both ways is kept once.
    """
    module_name = namespace.get("__name__")
    found: list[DiscoveredTest] = []
    seen: set[int] = set()

    if registry is not None:
        for test in registry.tests():
            if getattr(test.func, "__module__", module_name) != module_name:
                continue
            found.append(test)
            seen.add(id(test.func))

    for name, value in list(namespace.items()):
        if not name.startswith(TEST_PREFIX) or not inspect.isfunction(value):
            continue
        if value.__module__ != module_name or id(value) in seen:
            continue
        found.append(_describe(value, name))
        seen.add(id(value))

    # Source order, not alphabetical or registration order. Tests without a
    # known line keep their collection order after the rest.
    ordered = sorted(
        enumerate(found),
        key=lambda pair: (pair[1].line_number == 0, pair[1].line_number, pair[0]),
    )
    return [test for _, test in ordered]


@dataclass
class DiscoveredSuite:
    """A suite file found on disk."""

    path: Path

    @property
    def name(self) -> str:
        return suite_name(self.path.name)


@dataclass
class DiscoveryResult:
    """Result of suite discovery."""

    suites: list[DiscoveredSuite] = field(default_factory=list)
    skipped: list[tuple[Path, str]] = field(default_factory=list)


def suite_name(program: str) -> str:
    """Derive a suite name from the path a suite was invoked as."""
    name = program
    if name.startswith("./"):
        name = name[2:]
    path = Path(name)
    # Suite data must stay under the test data root.
    if path.is_absolute() or ".." in path.parts:
        name = path.name
    for suffix in (".test", ".py"):
        if name.endswith(suffix) and len(name) > len(suffix):
            name = name[: -len(suffix)]
            break
    return name


class SuiteDiscovery:
    """Discovers suite files beneath a directory."""

    def __init__(self, config: HarnessConfig, base_dir: Path):
        """Initialize suite discovery."""
        self.config = config
        self.base_dir = base_dir

    def discover(self) -> DiscoveryResult:
        """Find all runnable suites, in filesystem enumeration order."""
        result = DiscoveryResult()

        for path in self.base_dir.rglob(self.config.pattern):
            relative = path.relative_to(self.base_dir)
            if any(part.startswith(".") for part in relative.parts):
                continue
            if not path.is_file():
                continue

            reason = self.check(path)
            if reason:
                result.skipped.append((path, reason))
                continue
            result.suites.append(DiscoveredSuite(path=path))

        return result

    def check(self, path: Path) -> Optional[str]:
        """Return why a candidate should not be run, or None if it should."""
        if not os.access(path, os.X_OK):
            return f"{path} is not executable"
        try:
            content = path.read_bytes()
        except OSError as e:
            return f"{path} could not be read: {e}"
        if self.config.token.encode() not in content:
            return f"{path} does not mention {self.config.token}"
        return None
