"""Command-line interface for testkit."""

import sys
from pathlib import Path
from typing import Any, Callable, Optional

import click
from pydantic import ValidationError
from rich.console import Console

from testkit import __version__
from testkit.config import DEBUG, VERBOSE, HarnessConfig, load_config
from testkit.exceptions import DiscoveryError


console = Console(stderr=True, highlight=False)

CONTEXT_SETTINGS = {"help_option_names": ["-h", "--help"]}
EPILOG = "Made with testkit - a small test harness inspired by go test."


def harness_options(func: Callable) -> Callable:
    """Options shared by the directory runner and suite files."""
    options = [
        click.option("-v", "verbose", is_flag=True, help="Verbose mode (sets VERBOSE=YES)"),
        click.option("-d", "debug", is_flag=True, help="Debug mode (sets DEBUG=YES)"),
        click.option(
            "-run",
            "run_pattern",
            metavar="PATTERN",
            help="Filter tests by regex PATTERN (sets RUN=PATTERN)",
        ),
        click.option(
            "-list", "list_only", is_flag=True, help="List all tests after -run filtering"
        ),
        click.option("-notime", "notime", is_flag=True, help="Do not print test durations"),
        click.option(
            "--config",
            "-c",
            "config_path",
            type=click.Path(dir_okay=False),
            help="Path to configuration file (default: testkit.json)",
        ),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def _load_config(
    config_path: Optional[str],
    verbose: bool,
    debug: bool,
    run_pattern: Optional[str],
    list_only: bool,
    notime: bool,
) -> HarnessConfig:
    """Load configuration and apply command-line flags on top."""
    log_level = None
    if verbose:
        log_level = VERBOSE
    if debug:
        log_level = DEBUG

    try:
        config = load_config(config_path)
        return config.with_overrides(
            log_level=log_level,
            run=run_pattern,
            list_only=list_only or None,
            notime=notime or None,
        )
    except FileNotFoundError as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)
    except ValidationError as e:
        console.print(f"[red]Invalid configuration:[/red] {e}")
        sys.exit(2)


@click.command(context_settings=CONTEXT_SETTINGS, epilog=EPILOG)
@click.version_option(version=__version__, prog_name="testkit")
@harness_options
@click.argument("paths", nargs=-1)
@click.pass_context
def main(ctx: click.Context, paths: tuple[str, ...], **flags: Any) -> None:
    """Run test suites.

    Each PATH is a suite file, or DIR/... to run every suite beneath DIR
    (use ./... for the current directory).
    """
    if not paths:
        click.echo(ctx.get_help())
        sys.exit(1)

    config = _load_config(**flags)

    from testkit.core.runner import DirectoryRunner

    runner = DirectoryRunner(config, Path.cwd())
    try:
        exit_code = runner.run(paths)
    except DiscoveryError as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)

    sys.exit(exit_code)


@click.command(context_settings=CONTEXT_SETTINGS, epilog=EPILOG)
@harness_options
@click.argument("extra", nargs=-1)
@click.pass_context
def suite_command(ctx: click.Context, extra: tuple[str, ...], **flags: Any) -> None:
    """Run the tests in this suite file."""
    if extra:
        console.print(f"Unrecognised args for single file mode: {' '.join(extra)}", markup=False)

    config = _load_config(**flags)
    options = ctx.obj or {}

    from testkit.suite import run_suite

    sys.exit(
        run_suite(
            options.get("namespace", {}),
            name=options.get("name"),
            config=config,
            registry=options.get("registry"),
        )
    )


if __name__ == "__main__":
    main()
