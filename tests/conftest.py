"""Shared fixtures for the testkit tests."""

import os
import stat
import sys
from pathlib import Path
from typing import Callable

import pytest

from testkit.config import HarnessConfig
from testkit.core.models import DiscoveredTest
from testkit.core.runner import SuiteRunner

SRC_DIR = Path(__file__).resolve().parent.parent / "src"


@pytest.fixture(autouse=True)
def harness_env(monkeypatch):
    """Keep harness variables from the outer environment out of the tests."""
    for name in ("QUIET", "VERBOSE", "DEBUG", "LOG_LEVEL", "RUN", "LIST_ONLY", "NOTIME", "TESTKIT_ISOLATION"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def make_config() -> Callable[..., HarnessConfig]:
    """Build an inline-isolation config with overrides."""

    def factory(**overrides) -> HarnessConfig:
        data = {"isolation": "inline", "notime": True}
        data.update(overrides)
        return HarnessConfig(**data)

    return factory


@pytest.fixture
def run_tests(tmp_path, make_config):
    """Run a list of (name, func) pairs as a suite and return (runner, exit code)."""

    def runner(tests, suite="suite", **overrides):
        discovered = [DiscoveredTest(name=name, func=func) for name, func in tests]
        suite_runner = SuiteRunner(suite, discovered, make_config(**overrides), base_dir=tmp_path)
        return suite_runner, suite_runner.run()

    return runner


@pytest.fixture
def write_suite(tmp_path) -> Callable[..., Path]:
    """Write an executable Python suite file."""

    def writer(name: str, body: str, directory: Path | None = None, executable: bool = True) -> Path:
        directory = directory or tmp_path
        directory.mkdir(parents=True, exist_ok=True)
        path = directory / name
        path.write_text(f"#!{sys.executable}\nimport testkit\n\n{body}\n\ntestkit.main()\n")
        if executable:
            path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return path

    return writer


@pytest.fixture
def suite_env(monkeypatch):
    """Make the package importable from spawned suite processes."""
    pythonpath = os.environ.get("PYTHONPATH", "")
    monkeypatch.setenv("PYTHONPATH", f"{SRC_DIR}{os.pathsep}{pythonpath}" if pythonpath else str(SRC_DIR))
