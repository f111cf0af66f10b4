"""Entry points used from inside a suite file.

A suite file is an executable script::

    #!/usr/bin/env python3
    import testkit

    def TestAdd(t):
        if 1 + 1 != 2:
            t.error("maths is broken")

    if __name__ == "__main__":
        testkit.main()
"""

import sys
from pathlib import Path
from typing import Any, Mapping, Optional

from testkit.config import HarnessConfig, load_config
from testkit.core.discovery import Registry, collect_tests, suite_name
from testkit.core.runner import SuiteRunner
from testkit.report.console import Reporter

# Tests registered with the @test decorator.
registry = Registry()
test = registry.register


def run_suite(
    namespace: Mapping[str, Any],
    name: Optional[str] = None,
    config: Optional[HarnessConfig] = None,
    registry: Optional[Registry] = registry,
    base_dir: Optional[Path] = None,
    reporter: Optional[Reporter] = None,
) -> int:
    """Run the tests found in ``namespace`` and return the exit code."""
    if config is None:
        config = load_config()
    if name is None:
        program = sys.argv[0] if sys.argv and sys.argv[0] else ""
        name = suite_name(program) if program else str(namespace.get("__name__", "suite"))

    tests = collect_tests(namespace, registry)
    runner = SuiteRunner(name, tests, config, base_dir=base_dir, reporter=reporter)
    return runner.run()


def main(
    args: Optional[list[str]] = None,
    *,
    name: Optional[str] = None,
    namespace: Optional[Mapping[str, Any]] = None,
) -> None:
    """Parse the command line, run the calling module's tests and exit."""
    if namespace is None:
        namespace = sys._getframe(1).f_globals

    from testkit.cli import suite_command

    suite_command.main(
        args=args,
        obj={"namespace": namespace, "name": name, "registry": registry},
    )
