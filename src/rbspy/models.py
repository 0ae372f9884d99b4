"""Data models for rbspy commands."""

from dataclasses import dataclass
from datetime import timedelta
from enum import Enum
from pathlib import Path

from rbspy.errors import UnknownFormatError

PID_MAX = 2**31 - 1  # pid_t


class OutputFormat(Enum):
    """Output formats the profiling engine can render."""

    FLAMEGRAPH = "flamegraph"
    CALLGRIND = "callgrind"
    SPEEDSCOPE = "speedscope"
    SUMMARY = "summary"
    SUMMARY_BY_LINE = "summary_by_line"

    @classmethod
    def from_token(cls, token: str) -> "OutputFormat":
        """Map a command line token to its format, rejecting anything unknown."""
        for fmt in cls:
            if fmt.value == token:
                return fmt
        raise UnknownFormatError(token)


@dataclass(slots=True, frozen=True)
class PidTarget:
    """One or more already running processes."""

    pids: tuple[int, ...]

    def __post_init__(self) -> None:
        if not self.pids:
            raise ValueError("PidTarget needs at least one pid")
        for pid in self.pids:
            if not 0 < pid <= PID_MAX:
                raise ValueError(f"pid out of range: {pid}")


@dataclass(slots=True, frozen=True)
class SubprocessTarget:
    """A program to spawn and profile from birth."""

    prog: str
    args: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if not self.prog:
            raise ValueError("SubprocessTarget needs a program")


Target = PidTarget | SubprocessTarget


@dataclass(slots=True, frozen=True)
class Snapshot:
    """Take a single stack capture of one running process."""

    pid: int


@dataclass(slots=True, frozen=True)
class Record:
    """Continuously sample a target and write a profile."""

    target: Target
    out_path: Path
    raw_path: Path
    sample_rate: int  # samples per second
    duration: timedelta | None
    format: OutputFormat
    no_drop_root: bool = False
    with_subprocesses: bool = False
    silent: bool = False


@dataclass(slots=True, frozen=True)
class Report:
    """Render an existing raw capture into an output format."""

    format: OutputFormat
    input: Path
    output: Path


Command = Snapshot | Record | Report
