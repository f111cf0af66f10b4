"""Console reporting in a go test style text protocol."""

import time
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.markup import escape

from testkit.config import DEBUG, QUIET, VERBOSE, HarnessConfig

# Prefix for lines of a dumped test log.
INDENT = "    "


def high_resolution_clock() -> bool:
    """Check whether the wall clock resolves below one second."""
    return time.get_clock_info("time").resolution < 1


def format_duration(elapsed_ns: int, precise: bool = True) -> str:
    """Format an elapsed time as it appears after a test status line."""
    seconds = elapsed_ns / 1_000_000_000
    if precise:
        return f" ({seconds:.3f}s)"
    return f" ({int(seconds)}s)"


class Reporter:
    """Writes per-test and per-suite results to the console."""

    def __init__(
        self,
        config: HarnessConfig,
        console: Optional[Console] = None,
        err_console: Optional[Console] = None,
    ):
        self.config = config
        self.console = console or Console(highlight=False)
        self.err_console = err_console or Console(stderr=True, highlight=False)

    def println(self, level: int, text: str) -> None:
        """Print a line if the configured log level includes ``level``."""
        if level > self.config.log_level:
            return
        self.console.out(text, highlight=False)

    def debug(self, text: str) -> None:
        self.println(DEBUG, text)

    def echo(self, text: str) -> None:
        """Stream raw command output to the console in debug mode."""
        if self.config.debug:
            self.console.out(text, end="", highlight=False)

    def warning(self, text: str) -> None:
        self.err_console.print(f"[yellow]warning:[/yellow] {escape(text)}", soft_wrap=True)

    def listed(self, test_id: str) -> None:
        self.console.out(test_id, highlight=False)

    def run(self, test_id: str) -> None:
        self.println(VERBOSE, f"=== RUN   {test_id}")

    def passed(self, test_id: str, duration: str = "") -> None:
        self.println(VERBOSE, f"--- PASS: {test_id}{duration}")

    def skipped(self, test_id: str, duration: str = "") -> None:
        self.println(VERBOSE, f"--- SKIP: {test_id}{duration}")

    def failed(self, test_id: str, duration: str = "") -> None:
        self.println(QUIET, f"--- FAIL: {test_id}{duration}")

    def detail(self, text: str) -> None:
        """Print a line belonging to the test reported just before."""
        self.console.out(f"{INDENT}{text}", highlight=False)

    def dump_log(self, log_path: Path) -> None:
        """Print a test's log, indented."""
        try:
            content = log_path.read_text(errors="replace")
        except FileNotFoundError:
            return
        for line in content.splitlines():
            self.detail(line)

    def summary(
        self,
        suite_name: str,
        test_count: int,
        fail_count: int,
        natural_code: int = 0,
    ) -> int:
        """Print the suite result and return the process exit code."""
        if test_count == 0:
            self.println(QUIET, f"{'ok':<10}{suite_name} [no tests run]")
            return natural_code

        self.debug(f"Tests run: {test_count}")

        if fail_count:
            self.println(QUIET, "FAIL")
            self.println(QUIET, f"{'fail':<10}{suite_name}")
            return 1

        self.println(QUIET, "PASS")
        self.println(QUIET, f"{'ok':<10}{suite_name}")
        return 0

    def flush(self) -> None:
        self.console.file.flush()
        self.err_console.file.flush()
