"""Lifecycle of a single test: begin, run the body, finalize.

A test moves from PENDING to RUNNING when it begins. While running, errors
are counted without ending the body; ``fatal`` and ``skip`` end it early.
The finalizer runs exactly once on every exit path and derives the terminal
status from the test's error and skip counters.
"""

import os
import sys
import time
import traceback
from pathlib import Path
from types import CodeType, FrameType
from typing import Any, Callable, Optional, Sequence

from testkit.config import HarnessConfig
from testkit.core import counters
from testkit.core.capture import OutputCapture, command_name
from testkit.core.counters import CounterStore
from testkit.core.models import (
    CaptureResult,
    DiscoveredTest,
    LogEntry,
    LogLevel,
    Outcome,
    Status,
    TestPaths,
)
from testkit.core.workspace import Workspace
from testkit.exceptions import FailNow, SkipNow
from testkit.report.console import Reporter, format_duration, high_resolution_clock

PACKAGE_DIR = os.path.realpath(Path(__file__).parent.parent)


def _is_engine_file(filename: str) -> bool:
    return os.path.realpath(filename).startswith(PACKAGE_DIR + os.sep)


class Timer:
    """Start time of a test, kept on disk so any process can finalize it."""

    def __init__(self, path: Path, enabled: bool = True):
        self.path = path
        self.enabled = enabled

    def start(self) -> None:
        if self.enabled:
            self.path.write_text(f"{time.time_ns()}\n")

    def read(self) -> str:
        """Return the formatted elapsed time, or "" if timing is off."""
        if not self.enabled:
            return ""
        try:
            start = int(self.path.read_text().strip())
        except (FileNotFoundError, ValueError):
            return ""
        return format_duration(time.time_ns() - start, precise=high_resolution_clock())


class Context:
    """Handle passed to a test body, conventionally named ``t``."""

    def __init__(
        self,
        suite_name: str,
        name: str,
        paths: TestPaths,
        config: HarnessConfig,
        reporter: Reporter,
    ):
        self.suite_name = suite_name
        self.name = name
        self.paths = paths
        self.config = config
        self.reporter = reporter
        self.status = Status.RUNNING
        self.entries: list[LogEntry] = []

        self._counters = CounterStore(paths.root)
        self._helpers: set[CodeType] = set()
        self._capture = OutputCapture(paths.work, sink=self._stream_output)

    @property
    def id(self) -> str:
        return f"{self.suite_name}/{self.name}"

    @property
    def workdir(self) -> Path:
        return self.paths.work

    @property
    def testdata(self) -> Path:
        return self.paths.root

    def helper(self) -> None:
        """Mark the calling function as a helper.

        Log locations then point at the helper's caller instead of the helper.
        """
        self._helpers.add(sys._getframe(1).f_code)

    def log(self, msg: Any, *args: Any) -> None:
        self._append(LogLevel.INFO, _format(msg, args), self._caller_location())

    def debug(self, msg: Any, *args: Any) -> None:
        self._append(LogLevel.DEBUG, _format(msg, args), self._caller_location())

    def error(self, msg: Any, *args: Any) -> None:
        """Record a failure and let the test continue."""
        self.add_error(_format(msg, args), self._caller_location())

    def fatal(self, msg: Any, *args: Any) -> None:
        """Record a failure and end the test body immediately."""
        message = _format(msg, args)
        self.add_error(message, self._caller_location())
        raise FailNow(message)

    def skip(self, msg: Any = "", *args: Any) -> None:
        """Mark the test skipped and end the test body immediately."""
        message = _format(msg, args)
        if message:
            self._append(LogLevel.INFO, message, self._caller_location())
        self._counters.increment(counters.SKIP_COUNT)
        raise SkipNow(message)

    def failed(self) -> bool:
        return self.error_count() != 0

    def skipped(self) -> bool:
        return self._counters.read(counters.SKIP_COUNT) != 0

    def error_count(self) -> int:
        return self._counters.read(counters.ERROR_COUNT)

    def run(
        self,
        *argv: Any,
        shell: bool = False,
        input: Optional[str] = None,
        env: Optional[dict[str, str]] = None,
    ) -> CaptureResult:
        """Run a command in the work directory and capture its output.

        The log records the command line followed by its combined output as
        it arrives. A non-zero exit code does not fail the test; see
        ``mustrun``.
        """
        if len(argv) == 1 and isinstance(argv[0], (list, tuple)):
            argv = tuple(argv[0])
        if not argv:
            raise ValueError("run requires a command")

        frame = self._caller_frame()
        line = frame.f_lineno if frame is not None else 0
        output_dir = self.paths.run / f"{line}-{command_name(argv)}"
        if output_dir.exists():
            self.fatal("More than one 'run' on the same line.")

        command: Any = " ".join(str(a) for a in argv) if shell else [str(a) for a in argv]
        display = command if shell else " ".join(command)
        self._write_log(f"$ {display}")
        return self._capture.invoke(
            command, output_dir, shell=shell, input=input, environment=env
        )

    def mustrun(self, *argv: Any, **kwargs: Any) -> CaptureResult:
        """Like ``run``, but a non-zero exit code is fatal."""
        result = self.run(*argv, **kwargs)
        if result.exit_code != 0:
            self.fatal("Command failed with exit code %d", result.exit_code)
        return result

    def add_error(self, message: str, location: Optional[str] = None) -> None:
        self._append(LogLevel.ERROR, message, location)
        self._counters.increment(counters.ERROR_COUNT)

    def record_exception(self, exc: BaseException) -> None:
        """Record an exception that escaped the test body as an error."""
        location = None
        for frame in reversed(traceback.extract_tb(exc.__traceback__)):
            if not _is_engine_file(frame.filename):
                location = f"{os.path.basename(frame.filename)}:{frame.lineno}"
                break

        detail = str(exc)
        message = f"Test body raised {type(exc).__name__}"
        if detail:
            message = f"{message}: {detail}"
        self.add_error(message, location)

        formatted = "".join(traceback.format_exception(exc)).rstrip()
        self._append(LogLevel.DEBUG, formatted)

    def _append(self, level: LogLevel, message: str, location: Optional[str] = None) -> None:
        if level == LogLevel.DEBUG and not self.config.debug:
            return
        entry = LogEntry(level=level, message=message, location=location)
        self.entries.append(entry)
        self._write_log(entry.format())

    def _write_log(self, line: str) -> None:
        with open(self.paths.log, "a") as f:
            f.write(f"{line}\n")

    def _stream_output(self, text: str) -> None:
        with open(self.paths.log, "a") as f:
            f.write(text)
        self.reporter.echo(text)

    def _caller_frame(self) -> Optional[FrameType]:
        """Innermost frame outside the engine and outside marked helpers."""
        frame = sys._getframe(1)
        while frame is not None:
            code = frame.f_code
            if code not in self._helpers and not _is_engine_file(code.co_filename):
                return frame
            frame = frame.f_back
        return None

    def _caller_location(self) -> Optional[str]:
        frame = self._caller_frame()
        if frame is None:
            return None
        return f"{os.path.basename(frame.f_code.co_filename)}:{frame.f_lineno}"


def _format(msg: Any, args: Sequence[Any]) -> str:
    if args:
        return str(msg) % tuple(args)
    return str(msg)


class Lifecycle:
    """Runs the tests of one suite through begin, body and finalize."""

    def __init__(
        self,
        suite_name: str,
        workspace: Workspace,
        config: HarnessConfig,
        reporter: Reporter,
    ):
        self.suite_name = suite_name
        self.workspace = workspace
        self.config = config
        self.reporter = reporter
        self.suite_counters = CounterStore(workspace.suite_dir(suite_name))
        self.finalized = False

    def begin(self, test: DiscoveredTest) -> Context:
        """Allocate the workspace, start the timer and count the test."""
        self.finalized = False
        paths = self.workspace.acquire(self.suite_name, test.name)
        Timer(paths.start_time, enabled=not self.config.notime).start()
        self.suite_counters.increment(counters.TEST_COUNT)

        ctx = Context(self.suite_name, test.name, paths, self.config, self.reporter)
        self.reporter.run(ctx.id)
        self.reporter.debug(f"{test.name} {test.line_number} {test.file_path}")
        return ctx

    def execute(self, test: DiscoveredTest) -> Outcome:
        """Run one test to its terminal state.

        Exceptions other than the body's own failures (KeyboardInterrupt)
        propagate after the finalizer has run.
        """
        ctx = self.begin(test)
        try:
            with self.workspace.enter(ctx.paths):
                self.run_body(ctx, test.func)
        finally:
            outcome = self.finalize(ctx)
        return outcome

    def run_body(self, ctx: Context, func: Callable[[Context], Any]) -> None:
        try:
            func(ctx)
        except (FailNow, SkipNow):
            pass
        except SystemExit as e:
            code = e.code
            if code is None or code == 0:
                return
            if not isinstance(code, int):
                ctx.log(str(code))
                code = 1
            ctx.add_error(f"Test body failed with exit code {code}")
        except Exception as e:
            ctx.record_exception(e)

    def finalize(self, ctx: Context) -> Outcome:
        """Compute the terminal status, report it and update suite counters."""
        duration = Timer(ctx.paths.start_time, enabled=not self.config.notime).read()
        errors = ctx.error_count()

        if errors:
            status = Status.FAILED
            self.suite_counters.increment(counters.FAIL_COUNT)
            self.reporter.failed(ctx.id, duration)
        elif ctx.skipped():
            status = Status.SKIPPED
            self.reporter.skipped(ctx.id, duration)
        else:
            status = Status.PASSED
            self.reporter.passed(ctx.id, duration)

        if status == Status.FAILED or self.config.debug or (
            status != Status.PASSED and self.config.verbose
        ):
            self.reporter.dump_log(ctx.paths.log)

        ctx.status = status
        self.finalized = True
        return Outcome(test_id=ctx.id, status=status, error_count=errors, duration=duration)

    def recover(self, test: DiscoveredTest, exit_code: int) -> Outcome:
        """Finalize a test whose isolated process died before finalizing."""
        paths = self.workspace.test_paths(self.suite_name, test.name)
        if not paths.log.exists():
            # Died before begin counted it.
            self.suite_counters.increment(counters.TEST_COUNT)
        paths.root.mkdir(parents=True, exist_ok=True)
        ctx = Context(self.suite_name, test.name, paths, self.config, self.reporter)

        if exit_code < 0:
            ctx.add_error(f"Test process was killed by signal {-exit_code}")
        else:
            ctx.add_error(f"Test process exited abnormally with status {exit_code}")
        return self.finalize(ctx)

    def reject_duplicate(self, test: DiscoveredTest) -> Outcome:
        """Fail a repeated declaration of a test id that already ran.

        The id's directory belongs to the first declaration, so nothing is
        written to it; the error goes straight to the console.
        """
        test_id = test.test_id(self.suite_name)
        message = f"Test {test_id} is declared more than once"
        if test.file_path:
            message = f"{os.path.basename(test.file_path)}:{test.line_number}: {message}"

        self.suite_counters.increment(counters.FAIL_COUNT)
        self.reporter.failed(test_id)
        self.reporter.detail(message)
        return Outcome(test_id=test_id, status=Status.FAILED, error_count=1)
