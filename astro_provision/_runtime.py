"""Install the pinned Node.js runtime and the global npm tooling."""

from __future__ import annotations

import logging

import requests

from ._commands import CommandContext, CommandRunner
from ._install_config import InstallConfig
from ._install_errors import CommandError, DownloadError, RuntimeInstallError

logger = logging.getLogger(__name__)

NODESOURCE_SETUP_URL = "https://deb.nodesource.com/setup_{major}.x"


def fetch_setup_script(
    session: requests.Session,
    major: str,
    timeout: float,
) -> str:
    """Return the NodeSource repository setup script for *major*."""

    url = NODESOURCE_SETUP_URL.format(major=major)
    try:
        response = session.get(url, timeout=timeout)
        response.raise_for_status()
    except requests.RequestException as exc:
        msg = f"Failed to download NodeSource setup script from {url}: {exc}"
        raise DownloadError(msg) from exc
    return response.text


def install_runtime(
    config: InstallConfig,
    session: requests.Session,
    runner: CommandRunner,
) -> str:
    """Register the NodeSource repository and install the pinned ``nodejs``.

    Returns the version reported by ``node -v``.
    """

    logger.info("Installing Node.js %s.x", config.node_major)
    script = fetch_setup_script(session, config.node_major, config.http_timeout)
    apt_env = {"DEBIAN_FRONTEND": "noninteractive"}
    try:
        runner("bash", "-", context=CommandContext(stdin=script, env=apt_env))
        runner(
            "apt-get",
            "install",
            "--allow-downgrades",
            "-y",
            f"nodejs={config.node_version}",
            context=CommandContext(env=apt_env),
        )
        version = runner("node", "-v").strip()
    except CommandError as exc:
        msg = f"Node.js installation failed: {exc}"
        raise RuntimeInstallError(msg) from exc
    logger.info("Node.js version: %s", version)
    return version


def install_global_packages(config: InstallConfig, runner: CommandRunner) -> None:
    """Install the global npm packages and pm2 modules."""

    logger.info("Installing global dependencies: %s", " ".join(config.global_packages))
    try:
        if config.global_packages:
            runner("npm", "install", "-g", *config.global_packages)
        for module in config.supervisor_modules:
            logger.info("Installing %s", module)
            runner("pm2", "install", module)
    except CommandError as exc:
        msg = f"Global dependency installation failed: {exc}"
        raise RuntimeInstallError(msg) from exc


__all__ = [
    "NODESOURCE_SETUP_URL",
    "fetch_setup_script",
    "install_global_packages",
    "install_runtime",
]
