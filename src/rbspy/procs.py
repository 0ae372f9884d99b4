"""Runtime checks on profiling targets, using psutil."""

import logging
import os
import shutil

import psutil

from rbspy.errors import ProcessNotFoundError, ProgramNotFoundError
from rbspy.models import PidTarget, SubprocessTarget, Target

logger = logging.getLogger(__name__)


def check_pid(pid: int) -> None:
    """Raise ProcessNotFoundError unless a process with this pid exists."""
    if not psutil.pid_exists(pid):
        raise ProcessNotFoundError(pid)


def check_program(prog: str) -> None:
    """Raise ProgramNotFoundError unless prog is on PATH or an existing file."""
    if shutil.which(prog) is None and not os.path.isfile(prog):
        raise ProgramNotFoundError(prog)


def check_target(target: Target) -> None:
    """
    Check that a parsed target can actually be profiled.

    The parser only guarantees the shape of the target. This confirms the pids
    are alive or the program can be found, before the engine is started.
    """
    if isinstance(target, PidTarget):
        for pid in target.pids:
            check_pid(pid)
    elif isinstance(target, SubprocessTarget):
        check_program(target.prog)
    logger.debug("Target ok: %s", target)


def describe_pid(pid: int) -> str:
    """
    Return a short "name (user)" label for a pid.

    Handles processes that vanished, are zombies, or are not readable.
    """
    try:
        proc = psutil.Process(pid)
        with proc.oneshot():
            name = proc.name() or "?"
            try:
                user = proc.username()
            except psutil.AccessDenied:
                user = "?"
        return f"{name} ({user})"
    except psutil.ZombieProcess:
        return "<zombie>"
    except psutil.NoSuchProcess:
        return "<exited>"
    except psutil.AccessDenied:
        return "<access denied>"
