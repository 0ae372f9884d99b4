"""Error types raised while parsing and checking rbspy commands."""


class ParseError(Exception):
    """Base class for command line parse failures."""

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field


class UnknownCommandError(ParseError):
    """The subcommand selector is not one of snapshot, record or report."""

    def __init__(self, selector: str) -> None:
        super().__init__(f"unknown command '{selector}'")
        self.selector = selector


class MissingFieldError(ParseError):
    """A required option or positional argument is absent."""

    def __init__(self, field: str, spelling: str | None = None) -> None:
        super().__init__(f"missing required argument {spelling or field}", field)


class MalformedValueError(ParseError):
    """A value was supplied but could not be parsed."""

    def __init__(self, field: str, token: str, reason: str) -> None:
        super().__init__(f"invalid {field} '{token}': {reason}", field)
        self.token = token


class InvalidDurationError(MalformedValueError):
    def __init__(self, token: str) -> None:
        super().__init__("duration", token, "expected a whole number of seconds")


class UnknownFormatError(MalformedValueError):
    def __init__(self, token: str) -> None:
        super().__init__("format", token, "unknown format")


class InvalidPidError(MalformedValueError):
    def __init__(self, token: str) -> None:
        super().__init__("pid", token, "expected a positive process id")


class InvalidRateError(MalformedValueError):
    def __init__(self, token: str) -> None:
        super().__init__("rate", token, "expected a positive number of samples per second")


class TargetConflictError(ParseError):
    """Both --pid and a program to spawn were given."""

    def __init__(self) -> None:
        super().__init__("--pid cannot be combined with a program to run", "target")


class UnexpectedArgumentError(ParseError):
    """A stray positional, an unknown flag, or a repeated single-valued option."""

    def __init__(self, token: str, reason: str = "unexpected argument") -> None:
        super().__init__(f"{reason}: {token}")
        self.token = token


class HelpRequested(Exception):
    """Raised when -h/--help is seen; carries the subcommand, if any."""

    def __init__(self, command: str | None = None) -> None:
        super().__init__(command or "")
        self.command = command


class TargetError(Exception):
    """A parsed target failed a runtime check before profiling started."""


class ProcessNotFoundError(TargetError):
    def __init__(self, pid: int) -> None:
        super().__init__(f"no process with pid {pid}")
        self.pid = pid


class ProgramNotFoundError(TargetError):
    def __init__(self, prog: str) -> None:
        super().__init__(f"program not found: {prog}")
        self.prog = prog
