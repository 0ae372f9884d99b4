"""rbspy - command line entry point."""

import dataclasses
import logging
import os
import sys
from collections.abc import Sequence
from datetime import timedelta
from enum import Enum
from typing import Protocol

from rich.console import Console
from rich.table import Table
from rich.text import Text

from rbspy.errors import HelpRequested, ParseError, TargetError
from rbspy.models import Command, PidTarget, Record, Report, Snapshot, SubprocessTarget
from rbspy.parser import SCHEMAS, parse, usage
from rbspy.procs import check_pid, check_target, describe_pid

logger = logging.getLogger(__name__)

LOG_LEVEL_ENV = "RBSPY_LOG_LEVEL"
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

EXIT_OK = 0
EXIT_TARGET_ERROR = 1
EXIT_USAGE = 2


class Engine(Protocol):
    """The profiling engine that receives validated commands."""

    def snapshot(self, command: Snapshot) -> int: ...

    def record(self, command: Record) -> int: ...

    def report(self, command: Report) -> int: ...


def configure_logging() -> None:
    """Set up logging from RBSPY_LOG_LEVEL (default WARNING)."""
    level = os.environ.get(LOG_LEVEL_ENV, "WARNING").upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.WARNING),
        format=LOG_FORMAT,
    )


def dispatch(command: Command, engine: Engine) -> int:
    """
    Hand a parsed command to the engine.

    Targets are checked against the live system first, so the engine never
    starts on a pid that does not exist or a program that cannot be found.
    """
    if isinstance(command, Snapshot):
        check_pid(command.pid)
        return engine.snapshot(command)
    if isinstance(command, Record):
        check_target(command.target)
        return engine.record(command)
    if isinstance(command, Report):
        return engine.report(command)
    raise TypeError(f"not a command: {command!r}")


def _format_value(value: object) -> str:
    """Format a command field for display."""
    if value is None:
        return "-"
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, timedelta):
        return f"{int(value.total_seconds())}s"
    if isinstance(value, SubprocessTarget):
        return " ".join((value.prog, *value.args))
    return str(value)


def describe(command: Command) -> Table:
    """Render a command as a two-column table."""
    table = Table(title=f"rbspy {type(command).__name__.lower()}", show_header=False)
    table.add_column("field", style="bold")
    table.add_column("value")

    for field in dataclasses.fields(command):
        value = getattr(command, field.name)
        if isinstance(value, PidTarget):
            for pid in value.pids:
                table.add_row(Text("pid"), Text(f"{pid} {describe_pid(pid)}"))
        elif field.name == "pid":
            table.add_row(Text("pid"), Text(f"{value} {describe_pid(value)}"))
        else:
            table.add_row(Text(field.name), Text(_format_value(value)))
    return table


def main(argv: Sequence[str] | None = None, engine: Engine | None = None) -> int:
    """Entry point for the rbspy command. Returns the process exit status."""
    configure_logging()
    out = Console(highlight=False)
    err = Console(stderr=True, highlight=False)
    tokens = list(sys.argv[1:] if argv is None else argv)

    try:
        command = parse(tokens)
    except HelpRequested as exc:
        out.print(usage(exc.command), markup=False, soft_wrap=True)
        return EXIT_OK
    except ParseError as exc:
        err.print(f"error: {exc}", markup=False, soft_wrap=True)
        hint = f"rbspy {tokens[0]} --help" if tokens and tokens[0] in SCHEMAS else "rbspy --help"
        err.print(f"For more information try '{hint}'", markup=False, soft_wrap=True)
        return EXIT_USAGE

    logger.info("Parsed %s", command)

    if engine is None:
        logger.info("No profiling engine installed, showing the parsed command")
        out.print(describe(command))
        return EXIT_OK

    try:
        return dispatch(command, engine)
    except TargetError as exc:
        err.print(f"error: {exc}", markup=False, soft_wrap=True)
        return EXIT_TARGET_ERROR


if __name__ == "__main__":
    sys.exit(main())
