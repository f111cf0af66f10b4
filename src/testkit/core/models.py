"""Data models for tests, log entries and command captures."""

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Optional


class Status(str, Enum):
    """Lifecycle state of a test."""

    PENDING = "pending"
    RUNNING = "running"
    PASSED = "passed"
    FAILED = "failed"
    SKIPPED = "skipped"

    @property
    def terminal(self) -> bool:
        return self in (Status.PASSED, Status.FAILED, Status.SKIPPED)


class LogLevel(str, Enum):
    """Level of a log entry."""

    DEBUG = "debug"
    INFO = "info"
    ERROR = "error"


@dataclass
class LogEntry:
    """One line appended to a test's log."""

    level: LogLevel
    message: str
    location: Optional[str] = None

    def format(self) -> str:
        if self.location:
            return f"{self.location}: {self.message}"
        return self.message


@dataclass
class DiscoveredTest:
    """A test function registered with a suite."""

    name: str
    func: Callable
    file_path: str = ""
    line_number: int = 0

    def test_id(self, suite_name: str) -> str:
        return f"{suite_name}/{self.name}"


@dataclass
class TestPaths:
    """On-disk layout of one test's data directory."""

    root: Path

    __test__ = False

    @property
    def log(self) -> Path:
        return self.root / "log"

    @property
    def error_count(self) -> Path:
        return self.root / "error-count"

    @property
    def skip_count(self) -> Path:
        return self.root / "skip-count"

    @property
    def start_time(self) -> Path:
        return self.root / "start-time"

    @property
    def work(self) -> Path:
        return self.root / "work"

    @property
    def run(self) -> Path:
        return self.root / "run"


@dataclass
class Outcome:
    """Terminal result of one test."""

    test_id: str
    status: Status
    error_count: int = 0
    duration: str = ""

    @property
    def passed(self) -> bool:
        return self.status == Status.PASSED

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "test_id": self.test_id,
            "status": self.status.value,
            "error_count": self.error_count,
            "duration": self.duration,
        }


@dataclass
class CaptureResult:
    """Output and exit code of one command run inside a test body."""

    argv: list[str]
    stdout: str
    stderr: str
    combined: str
    exit_code: int
    duration_ms: int = 0
    output_dir: Optional[Path] = None

    @property
    def ok(self) -> bool:
        return self.exit_code == 0

    @property
    def stdout_file(self) -> Optional[Path]:
        return self.output_dir / "stdout" if self.output_dir else None

    @property
    def stderr_file(self) -> Optional[Path]:
        return self.output_dir / "stderr" if self.output_dir else None

    @property
    def combined_file(self) -> Optional[Path]:
        return self.output_dir / "combined" if self.output_dir else None

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "argv": self.argv,
            "stdout": self.stdout,
            "stderr": self.stderr,
            "combined": self.combined,
            "exit_code": self.exit_code,
            "duration_ms": self.duration_ms,
            "output_dir": str(self.output_dir) if self.output_dir else None,
        }
