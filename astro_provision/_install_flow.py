"""Ordered, fail-fast provisioning of a single Astro host.

The installer walks a fixed sequence of states. Each step receives the
results of the steps before it through :class:`InstallRun` and must finish
before the next one starts. The first :class:`InstallError` moves the run to
``aborted``; later steps never execute and earlier side effects are left in
place for manual inspection.

Prerequisites
-------------
Ubuntu 24.x LTS on x86-64, root privileges, and outbound HTTPS access to
GitHub, NodeSource, and the IP-echo service.

Examples
--------
>>> from pathlib import Path
>>> installer = StackInstaller(InstallConfig(workdir=Path("/opt/astro")))
>>> [step.state.value for step in installer.steps()][:3]
['checking-environment', 'checking-privilege', 'resolving-identity']
"""

from __future__ import annotations

import enum
import logging
import os
import shutil
from collections import abc as cabc
from dataclasses import dataclass, field

import requests

from ._commands import CommandRunner, run_command
from ._host_facts import HostFacts, collect_host_facts, verify_environment
from ._install_config import InstallConfig
from ._install_errors import FetchError, InstallError, InsufficientPrivilegeError
from ._network_identity import Console, NetworkIdentity, resolve_network_identity
from ._release import ReleaseArtifact, fetch_latest
from ._runtime import install_global_packages, install_runtime
from ._subsystems import configure_server, fix_permissions, setup_core
from ._supervisor import start_supervised
from ._tools import Which, ensure_installed

logger = logging.getLogger(__name__)


class InstallState(enum.Enum):
    """States of the provisioning state machine, in execution order."""

    CHECKING_ENVIRONMENT = "checking-environment"
    CHECKING_PRIVILEGE = "checking-privilege"
    RESOLVING_IDENTITY = "resolving-identity"
    PROVISIONING_TOOLS = "provisioning-tools"
    INSTALLING_RUNTIME = "installing-runtime"
    INSTALLING_GLOBAL_DEPS = "installing-global-deps"
    FETCHING_RELEASE = "fetching-release"
    CONFIGURING_CORE = "configuring-core"
    CONFIGURING_SERVER = "configuring-server"
    STARTING_SUPERVISOR = "starting-supervisor"
    DONE = "done"
    ABORTED = "aborted"


@dataclass(frozen=True, slots=True)
class StepOutcome:
    """Binary result of one executed step."""

    state: InstallState
    succeeded: bool
    reason: str | None = None


@dataclass(slots=True)
class InstallRun:
    """Results produced by completed steps and consumed by later ones."""

    host_facts: HostFacts | None = None
    identity: NetworkIdentity | None = None
    installed_tools: tuple[str, ...] = ()
    node_version: str | None = None
    artifact: ReleaseArtifact | None = None


@dataclass(slots=True)
class InstallReport:
    """Outcome of :meth:`StackInstaller.run`."""

    run: InstallRun
    outcomes: list[StepOutcome] = field(default_factory=list)
    state: InstallState = InstallState.CHECKING_ENVIRONMENT
    error: InstallError | None = None

    @property
    def succeeded(self) -> bool:
        """Return ``True`` when every step completed."""

        return self.state is InstallState.DONE

    @property
    def failed_step(self) -> InstallState | None:
        """Return the state whose action raised, if the run aborted."""

        for outcome in self.outcomes:
            if not outcome.succeeded:
                return outcome.state
        return None


@dataclass(frozen=True, slots=True)
class ProvisioningStep:
    """A named unit of work in the installer sequence."""

    state: InstallState
    action: cabc.Callable[[InstallRun], None]


class StackInstaller:
    """Drive the host from a bare image to supervised Astro processes.

    Parameters
    ----------
    config
        Resolved installer configuration.
    runner
        Executes external commands; defaults to :func:`run_command`.
    session
        HTTP session for GitHub, NodeSource, and IP lookups.
    console
        Operator prompt used while resolving the network identity.
    which
        Resolves commands on ``PATH``.
    geteuid
        Returns the effective user id of the process.
    """

    def __init__(
        self,
        config: InstallConfig,
        *,
        runner: CommandRunner = run_command,
        session: requests.Session | None = None,
        console: Console | None = None,
        which: Which = shutil.which,
        geteuid: cabc.Callable[[], int] = os.geteuid,
    ) -> None:
        self.config = config
        self.runner = runner
        self.session = session if session is not None else requests.Session()
        self.console = console or Console()
        self.which = which
        self.geteuid = geteuid

    def steps(self) -> tuple[ProvisioningStep, ...]:
        """Return the provisioning steps in execution order."""

        return (
            ProvisioningStep(InstallState.CHECKING_ENVIRONMENT, self._check_environment),
            ProvisioningStep(InstallState.CHECKING_PRIVILEGE, self._check_privilege),
            ProvisioningStep(InstallState.RESOLVING_IDENTITY, self._resolve_identity),
            ProvisioningStep(InstallState.PROVISIONING_TOOLS, self._provision_tools),
            ProvisioningStep(InstallState.INSTALLING_RUNTIME, self._install_runtime),
            ProvisioningStep(
                InstallState.INSTALLING_GLOBAL_DEPS, self._install_global_deps
            ),
            ProvisioningStep(InstallState.FETCHING_RELEASE, self._fetch_release),
            ProvisioningStep(InstallState.CONFIGURING_CORE, self._configure_core),
            ProvisioningStep(InstallState.CONFIGURING_SERVER, self._configure_server),
            ProvisioningStep(InstallState.STARTING_SUPERVISOR, self._start_supervisor),
        )

    def run(self) -> InstallReport:
        """Execute every step in order, stopping at the first failure."""

        report = InstallReport(run=InstallRun())
        for step in self.steps():
            report.state = step.state
            logger.info("Step %s", step.state.value)
            try:
                step.action(report.run)
            except InstallError as exc:
                logger.error("Step %s failed: %s", step.state.value, exc)
                report.outcomes.append(StepOutcome(step.state, False, str(exc)))
                report.state = InstallState.ABORTED
                report.error = exc
                return report
            report.outcomes.append(StepOutcome(step.state, True))
        report.state = InstallState.DONE
        logger.info("Installation completed")
        return report

    def _check_environment(self, run: InstallRun) -> None:
        facts = collect_host_facts(self.runner)
        run.host_facts = verify_environment(facts, self.config.environment)

    def _check_privilege(self, _run: InstallRun) -> None:
        if self.geteuid() != 0:
            msg = "Root privileges are required; please run the installer with sudo"
            raise InsufficientPrivilegeError(msg)

    def _resolve_identity(self, run: InstallRun) -> None:
        run.identity = resolve_network_identity(
            self.session,
            self.console,
            lookup_url=self.config.ip_lookup_url,
            timeout=self.config.http_timeout,
            preset=self.config.server_ip,
        )
        logger.info("Using server IP %s", run.identity.address)

    def _provision_tools(self, run: InstallRun) -> None:
        run.installed_tools = ensure_installed(
            self.config.required_tools, self.runner, self.which
        )

    def _install_runtime(self, run: InstallRun) -> None:
        run.node_version = install_runtime(self.config, self.session, self.runner)

    def _install_global_deps(self, _run: InstallRun) -> None:
        install_global_packages(self.config, self.runner)

    def _fetch_release(self, run: InstallRun) -> None:
        try:
            self.config.workdir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            msg = f"Cannot create working directory {self.config.workdir}: {exc}"
            raise FetchError(msg) from exc
        run.artifact = fetch_latest(
            self.config.release_repository,
            self.config.workdir,
            self.session,
            api_base=self.config.github_api,
            timeout=self.config.http_timeout,
            expected_sha256=self.config.release_sha256,
        )
        logger.info("Fixing file permissions")
        fix_permissions(self.config.workdir, self.config.release_dirs, self.config.owner)

    def _configure_core(self, _run: InstallRun) -> None:
        setup_core(self.config, self.session, self.runner)

    def _configure_server(self, run: InstallRun) -> None:
        if run.identity is None:
            msg = "No network identity was resolved before configuring the server"
            raise InstallError(msg)
        configure_server(self.config, run.identity, self.runner)

    def _start_supervisor(self, _run: InstallRun) -> None:
        start_supervised(
            self.config.workdir,
            self.config.supervised_dirs,
            self.config.process_descriptor,
            self.runner,
        )


__all__ = [
    "InstallReport",
    "InstallRun",
    "InstallState",
    "ProvisioningStep",
    "StackInstaller",
    "StepOutcome",
]
