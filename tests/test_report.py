"""Tests for console reporting."""

import io

import pytest
from rich.console import Console

from testkit.config import DEBUG, QUIET, VERBOSE, HarnessConfig
from testkit.report.console import Reporter, format_duration


@pytest.fixture
def make_reporter():
    """Build a Reporter writing into string buffers."""

    def factory(log_level=QUIET):
        out, err = io.StringIO(), io.StringIO()
        reporter = Reporter(
            HarnessConfig(isolation="inline", log_level=log_level),
            console=Console(file=out, highlight=False),
            err_console=Console(file=err, highlight=False),
        )
        return reporter, out, err

    return factory


class TestFormatDuration:
    """Tests for format_duration."""

    def test_precise(self):
        assert format_duration(1_234_000_000) == " (1.234s)"

    def test_whole_seconds(self):
        assert format_duration(2_900_000_000, precise=False) == " (2s)"

    def test_zero(self):
        assert format_duration(0) == " (0.000s)"


class TestReporter:
    """Tests for Reporter."""

    def test_level_gating(self, make_reporter):
        reporter, out, _ = make_reporter(QUIET)
        reporter.run("s/A")
        reporter.passed("s/A")
        reporter.skipped("s/B")
        reporter.failed("s/C")
        assert out.getvalue() == "--- FAIL: s/C\n"

    def test_verbose_lines(self, make_reporter):
        reporter, out, _ = make_reporter(VERBOSE)
        reporter.run("s/A")
        reporter.passed("s/A", " (0.010s)")
        reporter.debug("hidden")
        assert out.getvalue() == "=== RUN   s/A\n--- PASS: s/A (0.010s)\n"

    def test_echo_only_in_debug(self, make_reporter):
        reporter, out, _ = make_reporter(VERBOSE)
        reporter.echo("partial")
        assert out.getvalue() == ""

        reporter, out, _ = make_reporter(DEBUG)
        reporter.echo("partial")
        assert out.getvalue() == "partial"

    def test_text_is_not_interpreted(self, make_reporter):
        reporter, out, _ = make_reporter(QUIET)
        reporter.failed("s/[bold]x[/bold]")
        assert out.getvalue() == "--- FAIL: s/[bold]x[/bold]\n"

    def test_dump_log_indents(self, make_reporter, tmp_path):
        log = tmp_path / "log"
        log.write_text("first\nsecond\n")
        reporter, out, _ = make_reporter(QUIET)

        reporter.dump_log(log)
        assert out.getvalue() == "    first\n    second\n"

    def test_dump_missing_log(self, make_reporter, tmp_path):
        reporter, out, _ = make_reporter(QUIET)
        reporter.dump_log(tmp_path / "missing")
        assert out.getvalue() == ""

    def test_warning_goes_to_stderr(self, make_reporter):
        reporter, out, err = make_reporter(QUIET)
        reporter.warning("a.test is not executable")
        assert out.getvalue() == ""
        assert "warning: a.test is not executable" in err.getvalue()


class TestSummary:
    """Tests for the suite summary."""

    def test_pass(self, make_reporter):
        reporter, out, _ = make_reporter(QUIET)
        assert reporter.summary("maths", test_count=3, fail_count=0) == 0
        assert out.getvalue() == "PASS\nok        maths\n"

    def test_fail(self, make_reporter):
        reporter, out, _ = make_reporter(QUIET)
        assert reporter.summary("maths", test_count=3, fail_count=1) == 1
        assert out.getvalue() == "FAIL\nfail      maths\n"

    def test_no_tests_run_keeps_natural_code(self, make_reporter):
        reporter, out, _ = make_reporter(QUIET)
        assert reporter.summary("maths", test_count=0, fail_count=0, natural_code=3) == 3
        assert out.getvalue() == "ok        maths [no tests run]\n"

    def test_debug_prints_test_count(self, make_reporter):
        reporter, out, _ = make_reporter(DEBUG)
        reporter.summary("maths", test_count=2, fail_count=0)
        assert out.getvalue() == "Tests run: 2\nPASS\nok        maths\n"
