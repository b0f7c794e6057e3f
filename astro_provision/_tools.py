"""Detect and install the command-line tools the installer depends on."""

from __future__ import annotations

import logging
import shutil
from collections import abc as cabc

from ._commands import CommandContext, CommandRunner
from ._install_config import ToolRequirement
from ._install_errors import CommandError, PackageManagerError

logger = logging.getLogger(__name__)

PACKAGE_MANAGER = "apt-get"

Which = cabc.Callable[[str], str | None]


def collect_missing(
    required: cabc.Iterable[ToolRequirement],
    which: Which = shutil.which,
) -> list[ToolRequirement]:
    """Return the requirements whose executables are not found on ``PATH``.

    Examples
    --------
    >>> collect_missing([ToolRequirement("curl")], which=lambda name: None)
    [ToolRequirement(name='curl', package=None)]
    >>> collect_missing([])
    []
    """

    return [requirement for requirement in required if which(requirement.name) is None]


def ensure_installed(
    required: cabc.Iterable[ToolRequirement],
    runner: CommandRunner,
    which: Which = shutil.which,
) -> tuple[str, ...]:
    """Install every absent requirement with one batched apt transaction.

    Returns the packages that were installed; an empty tuple means every tool
    was already present and apt was not invoked.

    Raises
    ------
    PackageManagerError
        When apt is unavailable or the index refresh or install fails.
    """

    missing = collect_missing(required, which)
    if not missing:
        logger.info("All required tools are present")
        return ()

    packages = tuple(dict.fromkeys(item.install_name for item in missing))
    if which(PACKAGE_MANAGER) is None:
        msg = f"{PACKAGE_MANAGER} is not available; cannot install {', '.join(packages)}"
        raise PackageManagerError(packages, None, msg)

    logger.info("Installing missing tools: %s", " ".join(packages))
    apt_context = CommandContext(env={"DEBIAN_FRONTEND": "noninteractive"})
    try:
        runner(PACKAGE_MANAGER, "update", context=apt_context)
        runner(PACKAGE_MANAGER, "install", "-y", *packages, context=apt_context)
    except CommandError as exc:
        raise PackageManagerError(packages, exc.exit_status) from exc
    return packages


__all__ = ["PACKAGE_MANAGER", "collect_missing", "ensure_installed"]
