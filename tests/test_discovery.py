"""Tests for test and suite discovery."""

import os
import textwrap

import pytest

from testkit.config import HarnessConfig
from testkit.core.discovery import (
    Registry,
    SuiteDiscovery,
    collect_tests,
    suite_name,
)


def load_module(
    source: str, name: str = "suite_module", filename: str = "suite.test", **names
) -> dict:
    """Execute suite source into a fresh namespace."""
    namespace = {"__name__": name, **names}
    exec(compile(textwrap.dedent(source), filename, "exec"), namespace)
    return namespace


class TestCollectTests:
    """Tests for collect_tests."""

    def test_collects_in_source_order(self):
        namespace = load_module(
            """
            def TestZebra(t):
                pass

            def TestApple(t):
                pass

            def TestMango(t):
                pass
            """
        )

        tests = collect_tests(namespace)
        assert [t.name for t in tests] == ["TestZebra", "TestApple", "TestMango"]
        assert tests[0].line_number < tests[1].line_number < tests[2].line_number
        assert tests[0].file_path == "suite.test"

    def test_ignores_non_test_names(self):
        namespace = load_module(
            """
            def helper(t):
                pass

            def test_lowercase(t):
                pass

            def TestReal(t):
                pass
            """
        )

        assert [t.name for t in collect_tests(namespace)] == ["TestReal"]

    def test_ignores_non_functions(self):
        namespace = load_module(
            """
            TestValue = 3

            class TestThing:
                pass

            def TestReal(t):
                pass
            """
        )

        assert [t.name for t in collect_tests(namespace)] == ["TestReal"]

    def test_ignores_imported_functions(self):
        other = load_module("def TestForeign(t):\n    pass\n", name="other_module")
        namespace = load_module("def TestLocal(t):\n    pass\n")
        namespace["TestForeign"] = other["TestForeign"]

        assert [t.name for t in collect_tests(namespace)] == ["TestLocal"]

    def test_empty_module(self):
        assert collect_tests(load_module("x = 1\n")) == []

    def test_decorated_tests_keep_declaration_order(self):
        """A wrapper defined further down another file does not move the test."""
        helpers = load_module(
            "\n" * 100
            + textwrap.dedent(
                """
                import functools

                def traced(func):
                    @functools.wraps(func)
                    def wrapper(t):
                        return func(t)
                    return wrapper
                """
            ),
            name="helpers",
            filename="helpers.py",
        )
        namespace = load_module(
            """
            def TestA(t):
                pass

            @traced
            def TestB(t):
                pass

            def TestC(t):
                pass
            """,
            traced=helpers["traced"],
        )

        tests = collect_tests(namespace)
        assert [t.name for t in tests] == ["TestA", "TestB", "TestC"]
        assert tests[1].file_path == "suite.test"

    def test_tests_without_source_line_run_last(self):
        registry = Registry()
        namespace = load_module(
            """
            class Check:
                def __call__(self, t):
                    pass

            def TestFirst(t):
                pass

            def TestLast(t):
                pass
            """
        )
        registry.register(namespace["Check"](), name="TestCallable")

        tests = collect_tests(namespace, registry)
        assert [t.name for t in tests] == ["TestFirst", "TestLast", "TestCallable"]
        assert tests[2].line_number == 0


class TestRegistry:
    """Tests for explicitly registered tests."""

    def test_register_decorator_forms(self):
        registry = Registry()

        @registry.register
        def first(t):
            pass

        @registry.register(name="Second")
        def second(t):
            pass

        assert len(registry) == 2
        assert [t.name for t in registry.tests()] == ["first", "Second"]
        # The decorator returns the function unchanged.
        assert callable(first)

    def test_clear(self):
        registry = Registry()
        registry.register(lambda t: None)
        registry.clear()
        assert len(registry) == 0

    def test_registered_tests_merge_in_source_order(self):
        registry = Registry()
        namespace = load_module(
            """
            def TestFirst(t):
                pass

            def checks_something(t):
                pass

            def TestLast(t):
                pass
            """
        )
        registry.register(namespace["checks_something"], name="TestMiddle")

        tests = collect_tests(namespace, registry)
        assert [t.name for t in tests] == ["TestFirst", "TestMiddle", "TestLast"]

    def test_function_found_both_ways_is_kept_once(self):
        registry = Registry()
        namespace = load_module("def TestOnce(t):\n    pass\n")
        registry.register(namespace["TestOnce"])

        assert [t.name for t in collect_tests(namespace, registry)] == ["TestOnce"]

    def test_registrations_from_other_modules_are_ignored(self):
        registry = Registry()
        other = load_module("def elsewhere(t):\n    pass\n", name="other_module")
        registry.register(other["elsewhere"], name="TestElsewhere")

        namespace = load_module("def TestHere(t):\n    pass\n")
        assert [t.name for t in collect_tests(namespace, registry)] == ["TestHere"]


class TestSuiteName:
    """Tests for suite_name."""

    @pytest.mark.parametrize(
        "program,expected",
        [
            ("./maths.test", "maths"),
            ("maths.test", "maths"),
            ("tests/maths.test", "tests/maths"),
            ("checks.py", "checks"),
            ("plain", "plain"),
            ("/usr/local/suites/maths.test", "maths"),
            ("../maths.test", "maths"),
            (".test", ".test"),
        ],
    )
    def test_suite_name(self, program, expected):
        assert suite_name(program) == expected


class TestSuiteDiscovery:
    """Tests for SuiteDiscovery."""

    @pytest.fixture
    def config(self):
        return HarnessConfig(isolation="inline")

    def make_file(self, path, content="import testkit\n", executable=True):
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)
        if executable:
            os.chmod(path, 0o755)
        return path

    def test_finds_suites_recursively(self, tmp_path, config):
        self.make_file(tmp_path / "a.test")
        self.make_file(tmp_path / "sub" / "deeper" / "b.test")
        self.make_file(tmp_path / "notes.txt")

        result = SuiteDiscovery(config, tmp_path).discover()

        names = sorted(s.path.name for s in result.suites)
        assert names == ["a.test", "b.test"]
        assert result.skipped == []

    def test_skips_hidden_directories(self, tmp_path, config):
        self.make_file(tmp_path / ".testdata" / "old.test")
        self.make_file(tmp_path / ".hidden.test")
        self.make_file(tmp_path / "visible.test")

        result = SuiteDiscovery(config, tmp_path).discover()
        assert [s.path.name for s in result.suites] == ["visible.test"]

    def test_skips_non_executable(self, tmp_path, config):
        path = self.make_file(tmp_path / "plain.test", executable=False)

        result = SuiteDiscovery(config, tmp_path).discover()

        assert result.suites == []
        assert result.skipped == [(path, f"{path} is not executable")]

    def test_skips_files_without_token(self, tmp_path, config):
        path = self.make_file(tmp_path / "other.test", content="#!/bin/sh\necho hi\n")

        result = SuiteDiscovery(config, tmp_path).discover()

        assert result.suites == []
        assert result.skipped == [(path, f"{path} does not mention testkit")]

    def test_custom_pattern_and_token(self, tmp_path):
        config = HarnessConfig(isolation="inline", pattern="*_check.py", token="mytoken")
        self.make_file(tmp_path / "db_check.py", content="# mytoken\n")
        self.make_file(tmp_path / "db.test")

        result = SuiteDiscovery(config, tmp_path).discover()
        assert [s.path.name for s in result.suites] == ["db_check.py"]

    def test_suite_names(self, tmp_path, config):
        self.make_file(tmp_path / "maths.test")
        result = SuiteDiscovery(config, tmp_path).discover()
        assert result.suites[0].name == "maths"
