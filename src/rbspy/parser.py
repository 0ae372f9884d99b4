"""Command line schema and parser for rbspy.

Each subcommand is described by a table of ``Field`` entries. An argparse
parser is built from each table to split the tokens into raw option values and
positionals. A validator then walks the table in declaration order, converting
each value and raising the first problem it finds.
"""

import argparse
import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import timedelta
from enum import Enum
from pathlib import Path
from typing import Any, NoReturn

from rbspy.errors import (
    HelpRequested,
    InvalidDurationError,
    InvalidPidError,
    InvalidRateError,
    MalformedValueError,
    MissingFieldError,
    TargetConflictError,
    UnexpectedArgumentError,
    UnknownCommandError,
)
from rbspy.models import (
    PID_MAX,
    Command,
    OutputFormat,
    PidTarget,
    Record,
    Report,
    Snapshot,
    SubprocessTarget,
)

_DIGITS = re.compile(r"[0-9]+")
_HELP_FLAGS = ("-h", "--help")

RATE_MAX = 2**32 - 1
DURATION_MAX = 2**64 - 1


def _unsigned(token: str, limit: int) -> int | None:
    if not _DIGITS.fullmatch(token):
        return None
    value = int(token)
    return value if value <= limit else None


def parse_pid(token: str) -> int:
    value = _unsigned(token, PID_MAX)
    if not value:
        raise InvalidPidError(token)
    return value


def parse_rate(token: str) -> int:
    value = _unsigned(token, RATE_MAX)
    if not value:
        raise InvalidRateError(token)
    return value


def parse_duration(token: str) -> timedelta:
    """
    Parse a duration given as a bare number of seconds.

    Only ASCII digits are accepted: no sign, no whitespace and no unit suffix.
    Values that do not fit in an unsigned 64-bit integer are rejected.
    """
    value = _unsigned(token, DURATION_MAX)
    if value is None:
        raise InvalidDurationError(token)
    # timedelta tops out well below u64 seconds
    try:
        return timedelta(seconds=value)
    except OverflowError:
        raise InvalidDurationError(token) from None


class FieldKind(Enum):
    """How a field appears on the command line."""

    VALUE = "value"  # --flag <value>, at most once
    SWITCH = "switch"  # --flag, boolean
    POSITIONAL = "positional"
    TARGET = "target"  # repeatable --pid, or a program and its arguments


@dataclass(slots=True, frozen=True)
class Field:
    """One entry of a subcommand's schema table."""

    name: str
    kind: FieldKind
    flags: tuple[str, ...] = ()
    parse: Callable[[str], Any] = str
    required: bool = True
    default: Any = None
    metavar: str = ""
    help: str = ""

    @property
    def spelling(self) -> str:
        """How the field is named in messages and help text."""
        if self.kind is FieldKind.POSITIONAL:
            return f"<{self.metavar or self.name}>"
        if self.kind is FieldKind.TARGET:
            return f"{'/'.join(self.flags)} or <program> [args...]"
        return "/".join(self.flags)


@dataclass(slots=True, frozen=True)
class Schema:
    """A subcommand: its field table and the command type it builds."""

    name: str
    fields: tuple[Field, ...]
    build: Callable[..., Command]
    summary: str = ""

    @property
    def takes_program(self) -> bool:
        return any(f.kind is FieldKind.TARGET for f in self.fields)

    @property
    def positionals(self) -> tuple[Field, ...]:
        return tuple(f for f in self.fields if f.kind is FieldKind.POSITIONAL)


_FORMATS = ", ".join(fmt.value for fmt in OutputFormat)

SNAPSHOT_FIELDS = (
    Field(
        "pid",
        FieldKind.VALUE,
        ("-p", "--pid"),
        parse_pid,
        metavar="PID",
        help="Pid of the Ruby process you want to profile.",
    ),
)

RECORD_FIELDS = (
    Field(
        "target",
        FieldKind.TARGET,
        ("-p", "--pid"),
        parse_pid,
        metavar="PID",
        help="Pid of the Ruby process you want to profile (repeatable).",
    ),
    Field("out_path", FieldKind.POSITIONAL, parse=Path, help="Where to write the rendered output."),
    Field("raw_path", FieldKind.POSITIONAL, parse=Path, help="Where to write the raw capture."),
    Field(
        "sample_rate",
        FieldKind.VALUE,
        ("-r", "--rate"),
        parse_rate,
        metavar="RATE",
        help="Samples per second.",
    ),
    Field(
        "duration",
        FieldKind.POSITIONAL,
        parse=parse_duration,
        required=False,
        help="Seconds to record for; until the process exits if omitted.",
    ),
    Field(
        "format",
        FieldKind.VALUE,
        ("--format",),
        OutputFormat.from_token,
        metavar="FORMAT",
        help=f"One of: {_FORMATS}.",
    ),
    Field(
        "no_drop_root",
        FieldKind.SWITCH,
        ("--no-drop-sudo",),
        default=False,
        help="Don't drop root privileges when running a Ruby program as a subprocess.",
    ),
    Field(
        "with_subprocesses",
        FieldKind.SWITCH,
        ("-s", "--sub-processes"),
        default=False,
        help="Record all subprocesses of the given PID or command.",
    ),
    Field(
        "silent",
        FieldKind.SWITCH,
        ("--silent",),
        default=False,
        help="Don't print the summary profiling data every second.",
    ),
)

REPORT_FIELDS = (
    Field(
        "format",
        FieldKind.VALUE,
        ("--format",),
        OutputFormat.from_token,
        metavar="FORMAT",
        help=f"One of: {_FORMATS}.",
    ),
    Field("input", FieldKind.VALUE, ("--input",), Path, metavar="PATH", help="Raw capture to read."),
    Field("output", FieldKind.VALUE, ("--output",), Path, metavar="PATH", help="File to write."),
)

SCHEMAS: dict[str, Schema] = {
    "snapshot": Schema("snapshot", SNAPSHOT_FIELDS, Snapshot, "Print a single stack trace of a process"),
    "record": Schema("record", RECORD_FIELDS, Record, "Sample a process and write a profile"),
    "report": Schema("report", REPORT_FIELDS, Report, "Render a raw capture into a report"),
}


def _synopsis(schema: Schema) -> str:
    head = f"rbspy {schema.name}"
    options = " ".join(
        f"[{f.flags[-1]}]" if f.kind is FieldKind.SWITCH else f"{f.flags[0]} {f.metavar}"
        for f in schema.fields
        if f.kind in (FieldKind.VALUE, FieldKind.SWITCH)
    )
    positionals = " ".join(f.spelling if f.required else f"[{f.spelling}]" for f in schema.positionals)
    if not schema.takes_program:
        return " ".join(part for part in (head, options, positionals) if part)

    target = next(f for f in schema.fields if f.kind is FieldKind.TARGET)
    return "\n       ".join(
        [
            f"{head} ({target.flags[0]} {target.metavar})... {positionals} {options}",
            f"{head} <program> [args...] {positionals} {options}",
            f"{head} {positionals} {options} -- <program> [args...]",
        ]
    )


def _positional_help(schema: Schema) -> str | None:
    lines = [f"  {f.spelling:<24} {f.help}" for f in schema.positionals]
    if schema.takes_program:
        lines.append(f"  {'<program> [args...]':<24} Ruby program to run and profile from the start.")
    if not lines:
        return None
    return "\n".join(["positional arguments:", *lines])


class SchemaParser(argparse.ArgumentParser):
    """ArgumentParser for one subcommand that raises ParseError instead of exiting."""

    def __init__(self, schema: Schema) -> None:
        super().__init__(
            prog=f"rbspy {schema.name}",
            usage=_synopsis(schema),
            description=schema.summary,
            epilog=_positional_help(schema),
            formatter_class=argparse.RawDescriptionHelpFormatter,
            add_help=False,
            allow_abbrev=False,
        )
        self._by_flags = {"/".join(f.flags): f for f in schema.fields if f.flags}
        for entry in schema.fields:
            if entry.kind is FieldKind.SWITCH:
                self.add_argument(*entry.flags, dest=entry.name, action="store_true", help=entry.help)
            elif entry.kind is not FieldKind.POSITIONAL:
                self.add_argument(
                    *entry.flags,
                    dest=entry.name,
                    action="append",
                    type=str,
                    required=False,
                    metavar=entry.metavar,
                    help=entry.help,
                )
        self.add_argument("positionals", nargs="*", default=[], help=argparse.SUPPRESS)

    def error(self, message: str) -> NoReturn:
        context, _, detail = message.partition(": ")
        if detail == "expected one argument":
            flag = context.removeprefix("argument ")
            entry = self._by_flags.get(flag)
            raise MissingFieldError(entry.name if entry else flag, f"value for {flag}")
        if context == "unrecognized arguments":
            raise UnexpectedArgumentError(detail.split()[0], "unknown option")
        raise UnexpectedArgumentError(context.removeprefix("argument "), detail or "invalid argument")


@dataclass(slots=True)
class _Raw:
    """Raw strings per field, before any conversion."""

    namespace: argparse.Namespace
    positionals: list[str]
    program: list[str] | None  # tokens after --, None when there is no --


def _collect(schema: Schema, tokens: Sequence[str]) -> _Raw:
    tokens = list(tokens)
    program = None
    if "--" in tokens:
        cut = tokens.index("--")
        tokens, program = tokens[:cut], tokens[cut + 1 :]
    if any(token in _HELP_FLAGS for token in tokens):
        raise HelpRequested(schema.name)

    namespace = SchemaParser(schema).parse_intermixed_args(tokens)
    positionals = list(namespace.positionals or [])
    if program is not None and not schema.takes_program:
        positionals += program
        program = None
    return _Raw(namespace, positionals, program)


def _split_program(schema: Schema, positionals: list[str]) -> tuple[list[str], list[str]]:
    """Split `<program> [args...] <out_path> <raw_path> [duration]` given without --."""
    slots = schema.positionals
    keep = sum(f.required for f in slots)
    if positionals and _DIGITS.fullmatch(positionals[-1]):
        keep = len(slots)
    if len(positionals) <= keep:
        return [], positionals
    return positionals[:-keep], positionals[-keep:]


def _target(schema: Schema, entry: Field, raw: _Raw) -> tuple[PidTarget | SubprocessTarget, list[str]]:
    """Build the target and return the positionals left for the other fields."""
    pids = getattr(raw.namespace, entry.name) or []
    positionals = raw.positionals
    if pids:
        if raw.program or len(positionals) > len(schema.positionals):
            raise TargetConflictError()
        return PidTarget(tuple(entry.parse(token) for token in pids)), positionals

    program = raw.program
    if program is None:
        program, positionals = _split_program(schema, positionals)
    if not program:
        raise MissingFieldError(entry.name, entry.spelling)
    prog, *args = program
    if not prog:
        raise MalformedValueError(entry.name, prog, "program name is empty")
    return SubprocessTarget(prog, tuple(args)), positionals


def _validate(schema: Schema, raw: _Raw) -> dict[str, Any]:
    """Convert raw strings field by field, in declaration order."""
    values: dict[str, Any] = {}
    positionals = iter(raw.positionals)

    for entry in schema.fields:
        if entry.kind is FieldKind.TARGET:
            values[entry.name], remaining = _target(schema, entry, raw)
            positionals = iter(remaining)
            continue

        if entry.kind is FieldKind.SWITCH:
            values[entry.name] = getattr(raw.namespace, entry.name)
            continue

        if entry.kind is FieldKind.POSITIONAL:
            token = next(positionals, None)
        else:
            given = getattr(raw.namespace, entry.name) or []
            if len(given) > 1:
                raise UnexpectedArgumentError(entry.flags[-1], "option given more than once")
            token = given[0] if given else None

        if token is None:
            if entry.required:
                raise MissingFieldError(entry.name, entry.spelling)
            values[entry.name] = entry.default
        else:
            values[entry.name] = entry.parse(token)

    extra = next(positionals, None)
    if extra is not None:
        raise UnexpectedArgumentError(extra)
    return values


def parse(tokens: Sequence[str]) -> Command:
    """
    Parse command line tokens (without the program name) into a command.

    Raises:
        HelpRequested: -h/--help was given.
        ParseError: the first problem found, in field declaration order.
    """
    if not tokens:
        raise MissingFieldError("command", "command (snapshot, record or report)")

    selector = tokens[0]
    if selector in _HELP_FLAGS:
        raise HelpRequested()
    if selector.startswith("-"):
        raise UnexpectedArgumentError(selector, "unknown option")

    schema = SCHEMAS.get(selector)
    if schema is None:
        raise UnknownCommandError(selector)

    return schema.build(**_validate(schema, _collect(schema, tokens[1:])))


def usage(command: str | None = None) -> str:
    """Build help text for one subcommand, or an overview of all of them."""
    schema = SCHEMAS.get(command) if command else None
    if schema is not None:
        return SchemaParser(schema).format_help()

    overview = argparse.ArgumentParser(prog="rbspy", usage="rbspy <command> [options]", add_help=False)
    commands = overview.add_subparsers(title="commands", metavar="<command>")
    for s in SCHEMAS.values():
        commands.add_parser(s.name, help=s.summary, add_help=False)
    return overview.format_help()
