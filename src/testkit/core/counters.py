"""File-backed counters shared between a suite and its test processes.

Each counter is a single file whose content is its decimal value. Tests run
in forked children that share no memory with the suite process, so the
filesystem is where their bookkeeping meets. Increments are read-modify-write
and assume a single writer per counter at a time, which holds because the
tests of one suite run sequentially.
"""

from pathlib import Path

TEST_COUNT = "test-count"
FAIL_COUNT = "fail-count"
ERROR_COUNT = "error-count"
SKIP_COUNT = "skip-count"


class Counter:
    """A non-negative integer persisted in one file."""

    def __init__(self, path: Path):
        self.path = path

    @property
    def name(self) -> str:
        return self.path.name

    def read(self) -> int:
        """Read the current value, 0 if the file is absent or empty."""
        try:
            text = self.path.read_text().strip()
        except FileNotFoundError:
            return 0
        if not text:
            return 0
        value = int(text)
        if value < 0:
            raise ValueError(f"Counter {self.path} holds a negative value: {value}")
        return value

    def increment(self) -> int:
        """Add one and return the new value."""
        value = self.read() + 1
        self.path.write_text(f"{value}\n")
        return value


class CounterStore:
    """Counters living in one directory, addressed by name."""

    def __init__(self, directory: Path):
        self.directory = directory

    def counter(self, name: str) -> Counter:
        return Counter(self.directory / name)

    def increment(self, name: str) -> int:
        return self.counter(name).increment()

    def read(self, name: str) -> int:
        return self.counter(name).read()
