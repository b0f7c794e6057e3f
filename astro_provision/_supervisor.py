"""pm2 process supervision for the Astro applications."""

from __future__ import annotations

import logging
from collections import abc as cabc
from pathlib import Path

from ._commands import CommandContext, CommandRunner
from ._install_errors import CommandError, SupervisorError

logger = logging.getLogger(__name__)

SUPERVISOR = "pm2"


def start_process(app_dir: Path, descriptor: str, runner: CommandRunner) -> None:
    """Start the processes declared in *app_dir*/*descriptor* under pm2."""

    descriptor_path = app_dir / descriptor
    if not descriptor_path.is_file():
        msg = f"Process descriptor {descriptor_path} not found"
        raise SupervisorError(msg)
    try:
        runner(SUPERVISOR, "start", descriptor, context=CommandContext(cwd=app_dir))
    except CommandError as exc:
        msg = f"pm2 could not start {app_dir.name}: {exc}"
        raise SupervisorError(msg) from exc
    logger.info("Started %s under pm2", app_dir.name)


def persist_processes(runner: CommandRunner) -> None:
    """Register pm2 as a boot service and save the running process list."""

    try:
        runner(SUPERVISOR, "startup")
        runner(SUPERVISOR, "save")
    except CommandError as exc:
        msg = f"pm2 could not persist the process list: {exc}"
        raise SupervisorError(msg) from exc


def start_supervised(
    workdir: Path,
    app_dirs: cabc.Iterable[str],
    descriptor: str,
    runner: CommandRunner,
) -> None:
    """Start every application in *app_dirs*, then persist pm2 state."""

    for name in app_dirs:
        start_process(workdir / name, descriptor, runner)
    logger.info("Setting up pm2 startup")
    persist_processes(runner)


__all__ = [
    "SUPERVISOR",
    "persist_processes",
    "start_process",
    "start_supervised",
]
