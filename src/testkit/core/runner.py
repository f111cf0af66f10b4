"""Test execution orchestration."""

import os
import subprocess
import sys
import traceback
from pathlib import Path
from typing import NoReturn, Optional, Sequence

from testkit.config import HarnessConfig
from testkit.core import counters
from testkit.core.counters import CounterStore
from testkit.core.discovery import DiscoveredSuite, SuiteDiscovery
from testkit.core.lifecycle import Lifecycle
from testkit.core.models import DiscoveredTest, Outcome, Status
from testkit.core.workspace import Workspace
from testkit.exceptions import DiscoveryError
from testkit.report.console import Reporter

# Exit status of a test process that was interrupted after finalizing.
INTERRUPTED = 130


class SuiteRunner:
    """Runs the tests of one suite sequentially, each in isolation."""

    def __init__(
        self,
        name: str,
        tests: Sequence[DiscoveredTest],
        config: HarnessConfig,
        base_dir: Optional[Path] = None,
        reporter: Optional[Reporter] = None,
    ):
        """Initialize the suite runner.

        Args:
            name: Suite name, the prefix of every test id
            tests: Tests in execution order
            config: Harness configuration
            base_dir: Directory the test data root is relative to
            reporter: Console reporter
        """
        self.name = name
        self.tests = list(tests)
        self.config = config
        self.base_dir = base_dir or Path.cwd()
        self.reporter = reporter or Reporter(config)

        self.workspace = Workspace(config.testdata_path(self.base_dir))
        self.lifecycle = Lifecycle(name, self.workspace, config, self.reporter)
        self.counters = CounterStore(self.workspace.suite_dir(name))
        self.outcomes: list[Outcome] = []

    def run(self) -> int:
        """Run every selected test and return the suite's exit code."""
        self.workspace.reset_suite(self.name)
        seen: set[str] = set()
        duplicates: list[DiscoveredTest] = []

        for test in self.tests:
            test_id = test.test_id(self.name)
            if not self.config.matches(test_id):
                self.reporter.debug(
                    f"=== NOT RUNNING {test_id}: Name does not match RUN='{self.config.run}'"
                )
                continue
            if self.config.list_only:
                self.reporter.listed(test_id)
                continue

            if test.name in seen:
                duplicates.append(test)
                continue
            seen.add(test.name)
            self.outcomes.append(self._execute(test))

        if self.config.list_only:
            return 0
        # Reported once every test has run, leaving the first one's data intact.
        for test in duplicates:
            self.outcomes.append(self.lifecycle.reject_duplicate(test))
        return self.report()

    def report(self, natural_code: int = 0) -> int:
        """Print the suite summary from the suite counters."""
        return self.reporter.summary(
            self.name,
            test_count=self.counters.read(counters.TEST_COUNT),
            fail_count=self.counters.read(counters.FAIL_COUNT),
            natural_code=natural_code,
        )

    def _execute(self, test: DiscoveredTest) -> Outcome:
        if self.config.isolation == "inline":
            return self.lifecycle.execute(test)
        return self._execute_forked(test)

    def _execute_forked(self, test: DiscoveredTest) -> Outcome:
        """Run a test in a forked child so that nothing it does leaks back."""
        self._flush()
        pid = os.fork()
        if pid == 0:
            self._run_child(test)

        try:
            _, status = os.waitpid(pid, 0)
        except KeyboardInterrupt:
            # The child got the same interrupt; let it finalize and reap it.
            os.waitpid(pid, 0)
            raise
        exit_code = os.waitstatus_to_exitcode(status)
        if exit_code == INTERRUPTED:
            raise KeyboardInterrupt
        if exit_code != 0:
            return self.lifecycle.recover(test, exit_code)
        return self._read_outcome(test)

    def _run_child(self, test: DiscoveredTest) -> NoReturn:
        code = 0
        try:
            self.lifecycle.execute(test)
        except KeyboardInterrupt:
            code = INTERRUPTED
        except BaseException:
            traceback.print_exc()
            if not self.lifecycle.finalized:
                code = 1
        finally:
            self._flush()
            os._exit(code)

    def _read_outcome(self, test: DiscoveredTest) -> Outcome:
        """Rebuild a child's outcome from its counters."""
        store = CounterStore(self.workspace.test_paths(self.name, test.name).root)
        errors = store.read(counters.ERROR_COUNT)
        if errors:
            status = Status.FAILED
        elif store.read(counters.SKIP_COUNT):
            status = Status.SKIPPED
        else:
            status = Status.PASSED
        return Outcome(test_id=test.test_id(self.name), status=status, error_count=errors)

    def _flush(self) -> None:
        self.reporter.flush()
        sys.stdout.flush()
        sys.stderr.flush()


class DirectoryRunner:
    """Runs suite files as separate processes."""

    def __init__(
        self,
        config: HarnessConfig,
        base_dir: Optional[Path] = None,
        reporter: Optional[Reporter] = None,
    ):
        self.config = config
        self.base_dir = base_dir or Path.cwd()
        self.reporter = reporter or Reporter(config)

    def collect(self, paths: Sequence[str]) -> list[DiscoveredSuite]:
        """Resolve command-line paths to suites.

        ``DIR/...`` walks DIR for suites; other paths name suite files and
        are run as given.
        """
        suites: list[DiscoveredSuite] = []
        for arg in paths:
            if arg.endswith("..."):
                root = self.base_dir / (arg[:-3] or ".")
                result = SuiteDiscovery(self.config, root.resolve()).discover()
                for path, reason in result.skipped:
                    self.reporter.warning(reason)
                suites.extend(result.suites)
                continue

            path = self.base_dir / arg
            if not path.is_file():
                raise DiscoveryError(f"Suite not found: {arg}")
            suites.append(DiscoveredSuite(path=path))
        return suites

    def run(self, paths: Sequence[str]) -> int:
        """Run the suites named by ``paths``; 1 if any of them failed."""
        exit_code = 0
        for suite in self.collect(paths):
            if self.run_suite(suite) != 0:
                exit_code = 1
        return exit_code

    def run_suite(self, suite: DiscoveredSuite) -> int:
        """Run one suite file from its own directory."""
        self.reporter.flush()
        env = {**os.environ, **self.config.to_env()}
        try:
            result = subprocess.run(
                [f"./{suite.path.name}"],
                cwd=suite.path.parent,
                env=env,
            )
        except OSError as e:
            self.reporter.warning(f"{suite.path} could not be run: {e}")
            return 1
        return result.returncode
