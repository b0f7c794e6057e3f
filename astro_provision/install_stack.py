#!/usr/bin/env -S uv run python
# /// script
# requires-python = ">=3.13"
# dependencies = ["cyclopts>=2.9", "plumbum", "requests"]
# ///
"""Install the Astro stack on a fresh Ubuntu 24.x LTS x86-64 server.

This script:
- verifies the host release and architecture;
- confirms the public IP address the admin server is bound to;
- installs the pinned Node.js runtime plus pm2, bytenode, and yarn;
- downloads and extracts the latest Astro release;
- configures astro-core and astro-server; and
- starts both under pm2 and registers pm2 to start on boot.
"""

from __future__ import annotations

import logging
import os
import sys
from collections import abc as cabc
from dataclasses import dataclass
from pathlib import Path

import requests
from cyclopts import App

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from astro_provision._input_resolution import (
    InputResolution,
    resolve_bool,
    resolve_input,
    resolve_int,
)
from astro_provision._install_config import (
    DEFAULT_IP_LOOKUP_URL,
    DEFAULT_NODE_MAJOR,
    DEFAULT_NODE_VERSION,
    DEFAULT_RELEASE_REPOSITORY,
    InstallConfig,
)
from astro_provision._install_flow import InstallReport, StackInstaller

app = App(help="Install and start the Astro stack on this host.")
logger = logging.getLogger(__name__)

LOG_FORMAT = "----> [ASTRO-INSTALL] %(message)s"


@dataclass(frozen=True, slots=True)
class EnvContext:
    """Environment resolution context."""

    env: cabc.Mapping[str, str]

    @classmethod
    def from_os_environ(cls) -> EnvContext:
        """Create context from os.environ."""

        return cls(env=os.environ)


@dataclass(frozen=True, slots=True)
class RawInstallInputs:
    """Installer inputs as given on the command line."""

    workdir: Path | None = None
    server_ip: str | None = None
    release_repository: str | None = None
    ip_lookup_url: str | None = None
    node_major: str | None = None
    node_version: str | None = None
    release_sha256: str | None = None
    native_asset_sha256: str | None = None
    owner: str | None = None
    http_timeout: int | None = None


def _optional_str(value: str | Path | None) -> str | None:
    return None if value is None else str(value)


def build_config(
    raw: RawInstallInputs,
    context: EnvContext | None = None,
) -> InstallConfig:
    """Build the installer configuration from CLI values and environment."""

    context = context or EnvContext.from_os_environ()
    env = context.env

    workdir = resolve_input(
        raw.workdir,
        InputResolution(env_key="ASTRO_WORKDIR", as_path=True),
        env=env,
    )
    http_timeout = resolve_int(
        raw.http_timeout,
        InputResolution(env_key="ASTRO_HTTP_TIMEOUT", default="30"),
        env=env,
    )
    if http_timeout <= 0:
        msg = f"ASTRO_HTTP_TIMEOUT must be positive, got: {http_timeout}"
        raise SystemExit(msg)

    return InstallConfig(
        workdir=Path(workdir) if workdir is not None else Path.cwd(),
        release_repository=str(
            resolve_input(
                raw.release_repository,
                InputResolution(
                    env_key="ASTRO_RELEASE_REPOSITORY",
                    default=DEFAULT_RELEASE_REPOSITORY,
                ),
                env=env,
            )
        ),
        ip_lookup_url=str(
            resolve_input(
                raw.ip_lookup_url,
                InputResolution(
                    env_key="ASTRO_IP_LOOKUP_URL", default=DEFAULT_IP_LOOKUP_URL
                ),
                env=env,
            )
        ),
        server_ip=_optional_str(
            resolve_input(
                raw.server_ip, InputResolution(env_key="ASTRO_SERVER_IP"), env=env
            )
        ),
        node_major=str(
            resolve_input(
                raw.node_major,
                InputResolution(env_key="ASTRO_NODE_MAJOR", default=DEFAULT_NODE_MAJOR),
                env=env,
            )
        ),
        node_version=str(
            resolve_input(
                raw.node_version,
                InputResolution(
                    env_key="ASTRO_NODE_VERSION", default=DEFAULT_NODE_VERSION
                ),
                env=env,
            )
        ),
        release_sha256=_optional_str(
            resolve_input(
                raw.release_sha256,
                InputResolution(env_key="ASTRO_RELEASE_SHA256"),
                env=env,
            )
        ),
        native_asset_sha256=_optional_str(
            resolve_input(
                raw.native_asset_sha256,
                InputResolution(env_key="ASTRO_NATIVE_ASSET_SHA256"),
                env=env,
            )
        ),
        owner=_optional_str(
            resolve_input(raw.owner, InputResolution(env_key="SUDO_USER"), env=env)
        ),
        http_timeout=http_timeout,
    )


def configure_logging(*, verbose: bool) -> None:
    """Send installer progress to stderr in the installer's line format."""

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format=LOG_FORMAT,
        stream=sys.stderr,
    )


def run_install(config: InstallConfig) -> InstallReport:
    """Run the installer with a fresh HTTP session."""

    with requests.Session() as session:
        return StackInstaller(config, session=session).run()


def _announce(config: InstallConfig, report: InstallReport) -> None:
    identity = report.run.identity
    if identity is None:
        return
    logger.info(
        "Open https://%s:%d/%s/ in your browser",
        identity.address,
        config.admin_port,
        config.admin_path,
    )
    logger.info("Change the default admin password and 2FA secret after first login")


@app.command()
def main(
    workdir: Path | None = None,
    server_ip: str | None = None,
    release_repository: str | None = None,
    ip_lookup_url: str | None = None,
    node_major: str | None = None,
    node_version: str | None = None,
    release_sha256: str | None = None,
    native_asset_sha256: str | None = None,
    owner: str | None = None,
    http_timeout: int | None = None,
    verbose: bool | None = None,
) -> int:
    """Provision this host and start the Astro services.

    Every option can also be supplied through its ``ASTRO_*`` environment
    variable; ``--owner`` defaults to ``SUDO_USER``.

    Parameters
    ----------
    workdir
        Directory the release is extracted into (default: current directory).
    server_ip
        Public IPv4 address to bind; skips detection and prompting.
    release_repository
        GitHub ``owner/name`` whose latest release is installed.
    ip_lookup_url
        IP-echo endpoint used for auto-detection.
    node_major
        NodeSource release line, e.g. ``23``.
    node_version
        Exact ``nodejs`` package version to pin.
    release_sha256
        Expected SHA-256 of the release archive.
    native_asset_sha256
        Expected SHA-256 of the precompiled better-sqlite3 tarball.
    owner
        User that should own the extracted files.
    http_timeout
        Timeout in seconds for HTTP requests.
    verbose
        Log subprocess output.
    """

    context = EnvContext.from_os_environ()
    configure_logging(
        verbose=resolve_bool(
            verbose, InputResolution(env_key="ASTRO_VERBOSE"), env=context.env
        )
    )
    config = build_config(
        RawInstallInputs(
            workdir=workdir,
            server_ip=server_ip,
            release_repository=release_repository,
            ip_lookup_url=ip_lookup_url,
            node_major=node_major,
            node_version=node_version,
            release_sha256=release_sha256,
            native_asset_sha256=native_asset_sha256,
            owner=owner,
            http_timeout=http_timeout,
        ),
        context,
    )
    logger.info("Starting Astro installation in %s", config.workdir)

    report = run_install(config)
    if not report.succeeded:
        print(f"error: {report.error}", file=sys.stderr)
        return 1

    _announce(config, report)
    return 0


if __name__ == "__main__":  # pragma: no cover - CLI entrypoint
    raise SystemExit(app())
