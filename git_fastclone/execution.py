#!/usr/bin/env python3
"""
Subprocess wrapper used for every git invocation.

Differences from a plain ``subprocess.run``:
- The command is logged (DEBUG) before it runs.
- Anything shaped like an implicit shell invocation is refused.
- A nonzero exit raises ExecutionError carrying the command's exit code,
  which the CLI turns into the process exit status.
"""

from __future__ import annotations
import logging
import os
import shlex
import signal
import subprocess
import threading
from pathlib import Path
from typing import Mapping, Optional, Sequence, Union

logger = logging.getLogger(__name__)

# Exit code used when a command dies abnormally (signal, etc.)
ABNORMAL_EXIT_CODE = 1


class FastCloneError(Exception):
    """Base class for errors that end a run."""

    exit_code = 1


class ExecutionError(FastCloneError):
    def __init__(self, cmd: Sequence[str], returncode: int, output: str, detail: str = "") -> None:
        self.cmd = list(cmd)
        self.returncode = returncode
        self.output = output
        self.exit_code = returncode
        message = f"Command {format_command(self.cmd)} failed: {detail or f'return code was {returncode}'}"
        super().__init__(message)


class ShellInvocationError(FastCloneError):
    pass


class CancelledError(FastCloneError):
    """Raised instead of starting a command once the run has been cancelled."""


def format_command(cmd: Sequence[str]) -> str:
    """
    Render an argv list as a string that would do the same thing at a shell.
    Only used for log lines and error messages.
    """
    return " ".join(shlex.quote(str(arg)) for arg in cmd)


def shell_safe(cmd: Union[str, Sequence[object]]) -> None:
    """
    Refuse command specs that would make us run a shell.

    A bare string, or a list whose only textual element is a single string
    (everything else being env/cwd metadata), would be handed to a shell.
    """
    if isinstance(cmd, str):
        raise ShellInvocationError(f"Refusing to run {cmd!r} through a shell; pass an argument list")
    strings = [element for element in cmd if isinstance(element, str)]
    if len(strings) == 1:
        raise ShellInvocationError(
            f"Refusing single-string command {strings[0]!r}; it would be run by a shell"
        )


def _describe_abnormal(returncode: int) -> str:
    try:
        name = signal.Signals(-returncode).name
    except ValueError:
        name = "unknown signal"
    return f"terminated abnormally by {name} (raw status {returncode})"


def fail_on_error(
    *cmd: Union[str, os.PathLike],
    cwd: Optional[Path] = None,
    env: Optional[Mapping[str, str]] = None,
) -> str:
    """
    Run *cmd* and return its combined stdout/stderr.

    Raises ExecutionError with the command's own exit code on failure, or with
    ABNORMAL_EXIT_CODE if the command was killed by a signal.
    """
    argv = [os.fspath(arg) for arg in cmd]
    shell_safe(argv)
    logger.debug("Running: %s%s", format_command(argv), f" (in {cwd})" if cwd else "")
    proc = subprocess.run(
        argv,
        cwd=str(cwd) if cwd else None,
        env=dict(env) if env is not None else None,
        stdout=subprocess.PIPE,
        stderr=subprocess.STDOUT,
        text=True,
    )
    if proc.returncode == 0:
        return proc.stdout
    if proc.returncode > 0:
        raise ExecutionError(argv, proc.returncode, proc.stdout)
    raise ExecutionError(argv, ABNORMAL_EXIT_CODE, proc.stdout, detail=_describe_abnormal(proc.returncode))


class CommandRunner:
    """
    Callable wrapper around fail_on_error shared by all workers of a run.

    Once *cancel_event* is set no further commands are started; commands
    already running are left to finish.
    """

    def __init__(self, cancel_event: Optional[threading.Event] = None) -> None:
        self.cancel_event = cancel_event or threading.Event()

    def __call__(self, *cmd: Union[str, os.PathLike], cwd: Optional[Path] = None) -> str:
        if self.cancel_event.is_set():
            raise CancelledError(f"Run cancelled, not starting {format_command([os.fspath(c) for c in cmd])}")
        return fail_on_error(*cmd, cwd=cwd)
