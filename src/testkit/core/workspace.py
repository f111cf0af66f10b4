"""Per-suite and per-test working directories."""

import os
import shutil
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from testkit.core.models import TestPaths


class Workspace:
    """Allocates the directories under the test data root.

    Layout::

        <root>/<suite>/test-count
        <root>/<suite>/fail-count
        <root>/<suite>/<test>/{log,error-count,skip-count,start-time}
        <root>/<suite>/<test>/work/
        <root>/<suite>/<test>/run/<line>-<cmd>/{stdout,stderr,combined}
    """

    def __init__(self, root: Path):
        self.root = root

    def suite_dir(self, suite_name: str) -> Path:
        return self.root / suite_name

    def test_paths(self, suite_name: str, test_name: str) -> TestPaths:
        return TestPaths(self.suite_dir(suite_name) / test_name)

    def reset_suite(self, suite_name: str) -> Path:
        """Wipe and recreate the suite directory."""
        suite_dir = self.suite_dir(suite_name)
        if suite_dir.exists():
            shutil.rmtree(suite_dir)
        suite_dir.mkdir(parents=True)
        return suite_dir

    def acquire(self, suite_name: str, test_name: str) -> TestPaths:
        """Wipe and recreate a test directory with an empty log and work dir."""
        paths = self.test_paths(suite_name, test_name)
        if paths.root.exists():
            shutil.rmtree(paths.root)
        paths.root.mkdir(parents=True)
        paths.log.touch()
        paths.work.mkdir()
        return paths

    @contextmanager
    def enter(self, paths: TestPaths) -> Iterator[Path]:
        """Change into the test's work directory for the duration of the body."""
        previous = os.getcwd()
        os.chdir(paths.work)
        try:
            yield paths.work
        finally:
            os.chdir(previous)
