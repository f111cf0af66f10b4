"""Configuration management for testkit."""

import json
import os
import re
from pathlib import Path
from typing import Any, Mapping, Optional

from pydantic import BaseModel, Field, field_validator

# Log levels, matching the -v and -d flags.
QUIET = 0
VERBOSE = 1
DEBUG = 2

CONFIG_NAMES = ["testkit.json", ".testkit.json"]


def _default_isolation() -> str:
    return "fork" if hasattr(os, "fork") else "inline"


class HarnessConfig(BaseModel):
    """Settings consumed by the test engine."""

    log_level: int = Field(default=QUIET, description="0 quiet, 1 verbose, 2 debug")
    run: Optional[str] = Field(default=None, description="Only run tests whose id matches this regex")
    list_only: bool = Field(default=False, description="List test ids instead of running them")
    notime: bool = Field(default=False, description="Do not print test durations")
    testdata_root: str = Field(default=".testdata", description="Directory holding per-suite test data")
    isolation: str = Field(
        default_factory=_default_isolation,
        description="How each test body is isolated (fork, inline)",
    )
    pattern: str = Field(default="*.test", description="Glob matching suite files")
    token: str = Field(default="testkit", description="Text a suite file must contain to be run")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: int) -> int:
        if v < QUIET or v > DEBUG:
            raise ValueError(f"Log level must be between {QUIET} and {DEBUG}")
        return v

    @field_validator("run")
    @classmethod
    def validate_run(cls, v: Optional[str]) -> Optional[str]:
        if not v:
            return None
        try:
            re.compile(v)
        except re.error as e:
            raise ValueError(f"Invalid run pattern {v!r}: {e}") from e
        return v

    @field_validator("isolation")
    @classmethod
    def validate_isolation(cls, v: str) -> str:
        allowed = {"fork", "inline"}
        if v.lower() not in allowed:
            raise ValueError(f"Isolation must be one of: {allowed}")
        if v.lower() == "fork" and not hasattr(os, "fork"):
            raise ValueError("Fork isolation is not available on this platform")
        return v.lower()

    @field_validator("pattern", "token")
    @classmethod
    def validate_not_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Value cannot be empty")
        return v

    @property
    def verbose(self) -> bool:
        return self.log_level >= VERBOSE

    @property
    def debug(self) -> bool:
        return self.log_level >= DEBUG

    def matches(self, test_id: str) -> bool:
        """Check a test id against the run filter."""
        if not self.run:
            return True
        return re.search(self.run, test_id) is not None

    def with_overrides(self, **overrides: Any) -> "HarnessConfig":
        """Return a validated copy with the given fields replaced."""
        data = self.model_dump()
        data.update({k: v for k, v in overrides.items() if v is not None})
        return type(self).model_validate(data)

    @classmethod
    def from_file(cls, path: Path | str) -> "HarnessConfig":
        """Load configuration from a JSON file."""
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {path}")

        with open(path, "r") as f:
            data = json.load(f)

        return cls.model_validate(data)

    @classmethod
    def find_and_load(cls, start_dir: Path | str | None = None) -> "HarnessConfig":
        """Find and load a configuration file, searching up the directory tree."""
        if start_dir is None:
            start_dir = Path.cwd()
        else:
            start_dir = Path(start_dir)

        current = start_dir.resolve()
        while True:
            for name in CONFIG_NAMES:
                config_path = current / name
                if config_path.exists():
                    return cls.from_file(config_path)
            if current == current.parent:
                break
            current = current.parent

        raise FileNotFoundError(f"No configuration file found above {start_dir}")

    @classmethod
    def from_env(
        cls,
        environ: Optional[Mapping[str, str]] = None,
        base: Optional["HarnessConfig"] = None,
    ) -> "HarnessConfig":
        """Apply the harness environment variables on top of ``base``.

        QUIET, VERBOSE and DEBUG are applied in that order, so DEBUG wins.
        """
        env = os.environ if environ is None else environ
        data: dict[str, Any] = base.model_dump() if base is not None else {}

        if env.get("LOG_LEVEL"):
            data["log_level"] = env["LOG_LEVEL"]
        if env.get("QUIET") == "YES":
            data["log_level"] = QUIET
        if env.get("VERBOSE") == "YES":
            data["log_level"] = VERBOSE
        if env.get("DEBUG") == "YES":
            data["log_level"] = DEBUG
        if env.get("RUN"):
            data["run"] = env["RUN"]
        if env.get("LIST_ONLY") == "YES":
            data["list_only"] = True
        if env.get("NOTIME") == "YES":
            data["notime"] = True
        if env.get("TESTKIT_ISOLATION"):
            data["isolation"] = env["TESTKIT_ISOLATION"]

        return cls.model_validate(data)

    def to_env(self) -> dict[str, str]:
        """Export the run-scoped settings for spawned suites."""
        env = {"LOG_LEVEL": str(self.log_level), "TESTKIT_ISOLATION": self.isolation}
        if self.verbose:
            env["VERBOSE"] = "YES"
        if self.debug:
            env["DEBUG"] = "YES"
        if self.run:
            env["RUN"] = self.run
        if self.list_only:
            env["LIST_ONLY"] = "YES"
        if self.notime:
            env["NOTIME"] = "YES"
        return env

    def to_file(self, path: Path | str) -> None:
        """Save configuration to a JSON file."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, "w") as f:
            json.dump(self.model_dump(), f, indent=2)

    def testdata_path(self, base_dir: Path | str | None = None) -> Path:
        """Get the absolute test data root."""
        if base_dir is None:
            base_dir = Path.cwd()
        return (Path(base_dir) / self.testdata_root).resolve()


def load_config(
    config_path: Path | str | None = None,
    start_dir: Path | str | None = None,
    environ: Optional[Mapping[str, str]] = None,
) -> HarnessConfig:
    """Load the project file (if any), then apply the environment."""
    if config_path:
        config = HarnessConfig.from_file(config_path)
    else:
        try:
            config = HarnessConfig.find_and_load(start_dir)
        except FileNotFoundError:
            config = HarnessConfig()

    return HarnessConfig.from_env(environ, base=config)
