"""Command execution helpers for the provisioning steps."""

from __future__ import annotations

import logging
import os
from collections import abc as cabc
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from plumbum import local
from plumbum.commands.processes import (
    CommandNotFound,
    ProcessExecutionError,
    ProcessTimedOut,
)

from ._install_errors import CommandError

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class CommandContext:
    """Execution options for :func:`run_command`."""

    cwd: Path | None = None
    env: cabc.Mapping[str, str] | None = None
    stdin: str | None = None
    timeout: int | None = None


class CommandRunner(Protocol):
    """Callable that runs an external command and returns its stdout."""

    def __call__(
        self,
        command: str,
        *args: str,
        context: CommandContext | None = None,
    ) -> str: ...


def build_command_env(extra: cabc.Mapping[str, str] | None = None) -> dict[str, str]:
    """Return the process environment with a fixed ``C`` locale.

    Parsing ``hostnamectl`` and apt output relies on untranslated messages.

    Examples
    --------
    >>> build_command_env({"DEBIAN_FRONTEND": "noninteractive"})["LANG"]
    'C'
    """

    env = os.environ.copy()
    env["LANG"] = "C"
    if extra:
        env.update(extra)
    return env


def run_command(
    command: str,
    *args: str,
    context: CommandContext | None = None,
) -> str:
    """Execute an external command and return its standard output.

    Raises
    ------
    CommandError
        When the command cannot be found or exits with a non-zero status.

    Examples
    --------
    >>> run_command("printf", "hello")
    'hello'
    """

    ctx = context or CommandContext()
    argv = [command, *args]
    env = build_command_env(ctx.env)
    logger.debug("Running %s", " ".join(argv))
    try:
        bound = local[command][list(args)]
    except CommandNotFound as exc:
        raise CommandError(argv, None, f"{command} not found on PATH") from exc
    if ctx.stdin is not None:
        bound = bound << ctx.stdin
    try:
        if ctx.cwd is None:
            _, stdout, _ = bound.run(env=env, timeout=ctx.timeout)
        else:
            with local.cwd(ctx.cwd):
                _, stdout, _ = bound.run(env=env, timeout=ctx.timeout)
    except ProcessExecutionError as exc:
        raise CommandError(argv, exc.retcode, str(exc.stderr).strip()) from exc
    except ProcessTimedOut as exc:
        raise CommandError(argv, None, f"timed out after {ctx.timeout}s") from exc
    if stdout:
        logger.debug("%s", stdout.rstrip())
    return stdout


__all__ = [
    "CommandContext",
    "CommandRunner",
    "build_command_env",
    "run_command",
]
