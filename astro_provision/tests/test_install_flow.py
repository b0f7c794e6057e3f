"""Tests for the provisioning state machine."""

from __future__ import annotations

from dataclasses import dataclass, replace
from pathlib import Path

import pytest

from astro_provision._install_config import InstallConfig
from astro_provision._install_errors import (
    ExtractionError,
    FetchError,
    InsufficientPrivilegeError,
    MissingConfigFileError,
    UnsupportedArchitectureError,
)
from astro_provision._install_flow import InstallState, StackInstaller
from astro_provision.tests._doubles import (
    FakeResponse,
    FakeRunner,
    FakeSession,
    RecordedCall,
    ScriptedConsole,
    host_report,
    make_tar_gz,
    make_zip,
    patch_zip_headers,
)

LOOKUP_URL = "https://api.ipify.org"
SETUP_URL = "https://deb.nodesource.com/setup_23.x"
METADATA_URL = "https://api.github.com/repos/astro-btc/astro/releases/latest"
ZIP_URL = "https://github.com/astro-btc/astro/releases/download/v2.1.0/astro-v2.1.0.zip"
ENV_FILE = "PORT=12345\nALLOWED_DOMAIN=old\nLOG_LEVEL=info\n"

ALL_STEPS = [
    InstallState.CHECKING_ENVIRONMENT,
    InstallState.CHECKING_PRIVILEGE,
    InstallState.RESOLVING_IDENTITY,
    InstallState.PROVISIONING_TOOLS,
    InstallState.INSTALLING_RUNTIME,
    InstallState.INSTALLING_GLOBAL_DEPS,
    InstallState.FETCHING_RELEASE,
    InstallState.CONFIGURING_CORE,
    InstallState.CONFIGURING_SERVER,
    InstallState.STARTING_SUPERVISOR,
]


RELEASE_LAYOUT = {
    "astro-core/pm2.config.js": "module.exports = {}\n",
    "astro-core/package.json": "{}\n",
    "astro-server/pm2.config.js": "module.exports = {}\n",
    "astro-admin/index.html": "<html></html>\n",
}


def _release_archive(*, with_env: bool = True) -> bytes:
    files: dict[str, str | bytes] = dict(RELEASE_LAYOUT)
    if with_env:
        files["astro-server/.env"] = ENV_FILE
    return make_zip(files)


def _create_node_modules(call: RecordedCall) -> None:
    assert call.context is not None and call.context.cwd is not None
    (call.context.cwd / "node_modules").mkdir(exist_ok=True)


@dataclass
class Host:
    """Fake collaborators for a complete installer run."""

    config: InstallConfig
    runner: FakeRunner
    session: FakeSession
    console: ScriptedConsole
    euid: int = 0
    missing_tools: tuple[str, ...] = ()

    def which(self, name: str) -> str | None:
        return None if name in self.missing_tools else f"/usr/bin/{name}"

    def installer(self) -> StackInstaller:
        return StackInstaller(
            self.config,
            runner=self.runner,
            session=self.session,
            console=self.console.console,
            which=self.which,
            geteuid=lambda: self.euid,
        )


def _host(
    tmp_path: Path,
    *,
    arch: str = "x86-64",
    failures: dict[tuple[str, ...], int] | None = None,
    with_env: bool = True,
    answers: tuple[str, ...] = ("",),
) -> Host:
    workdir = tmp_path / "astro"
    config = InstallConfig(workdir=workdir)
    runner = FakeRunner(
        outputs={
            ("hostnamectl",): host_report("Ubuntu 24.04.1 LTS", arch),
            ("node", "-v"): "v23.11.1\n",
        },
        failures=failures,
        effects={("yarn", "install", "--ignore-scripts"): _create_node_modules},
    )
    session = FakeSession(
        routes={
            LOOKUP_URL: FakeResponse(text="203.0.113.9"),
            SETUP_URL: FakeResponse(text="#!/bin/bash\n"),
            METADATA_URL: FakeResponse(
                json_data={"assets": [{"browser_download_url": ZIP_URL}]}
            ),
            ZIP_URL: FakeResponse(content=_release_archive(with_env=with_env)),
            config.native_asset_url: FakeResponse(
                content=make_tar_gz({"better-sqlite3/package.json": b"{}"})
            ),
        }
    )
    return Host(config, runner, session, ScriptedConsole(answers))


def test_full_run_provisions_and_starts_services(tmp_path: Path) -> None:
    host = _host(tmp_path)

    report = host.installer().run()

    assert report.succeeded, report.error
    assert report.state is InstallState.DONE
    assert [outcome.state for outcome in report.outcomes] == ALL_STEPS
    assert all(outcome.succeeded for outcome in report.outcomes)
    assert report.run.identity is not None
    assert report.run.identity.address == "203.0.113.9"
    assert report.run.node_version == "v23.11.1"
    assert report.run.artifact is not None
    assert report.run.artifact.file_name == "astro-v2.1.0.zip"

    workdir = host.config.workdir
    env_text = (workdir / "astro-server" / ".env").read_text(encoding="utf-8")
    assert env_text == "PORT=12345\nALLOWED_DOMAIN=203.0.113.9\nLOG_LEVEL=info\n"
    assert (workdir / "astro-core" / "node_modules" / "better-sqlite3" / "package.json").exists()
    assert not (workdir / "astro-v2.1.0.zip").exists()
    assert host.runner.argvs[-4:] == [
        ("pm2", "start", "pm2.config.js"),
        ("pm2", "start", "pm2.config.js"),
        ("pm2", "startup"),
        ("pm2", "save"),
    ]


def test_run_order_matches_install_sequence(tmp_path: Path) -> None:
    host = _host(tmp_path)
    host.missing_tools = ("curl",)

    host.installer().run()

    assert host.runner.commands() == [
        "hostnamectl",
        "apt-get",
        "apt-get",
        "bash",
        "apt-get",
        "node",
        "npm",
        "pm2",
        "yarn",
        "yarn",
        "pm2",
        "pm2",
        "pm2",
        "pm2",
    ]


def test_unsupported_architecture_aborts_before_anything_else(tmp_path: Path) -> None:
    host = _host(tmp_path, arch="arm64")

    report = host.installer().run()

    assert report.state is InstallState.ABORTED
    assert report.failed_step is InstallState.CHECKING_ENVIRONMENT
    assert isinstance(report.error, UnsupportedArchitectureError)
    assert host.runner.argvs == [("hostnamectl",)]
    assert host.session.requested == []
    assert host.console.prompts == []


def test_unprivileged_run_aborts_before_mutation(tmp_path: Path) -> None:
    host = _host(tmp_path)
    host.euid = 1000

    report = host.installer().run()

    assert report.failed_step is InstallState.CHECKING_PRIVILEGE
    assert isinstance(report.error, InsufficientPrivilegeError)
    assert host.runner.argvs == [("hostnamectl",)]
    assert host.session.requested == []
    assert not host.config.workdir.exists()


def test_missing_config_file_stops_before_supervisor(tmp_path: Path) -> None:
    host = _host(tmp_path, with_env=False)

    report = host.installer().run()

    assert report.failed_step is InstallState.CONFIGURING_SERVER
    assert isinstance(report.error, MissingConfigFileError)
    assert ("pm2", "start", "pm2.config.js") not in host.runner.argvs
    assert ("pm2", "save") not in host.runner.argvs


@pytest.mark.parametrize(
    ("failure", "failed_state", "never_called"),
    [
        (("apt-get", "install", "-y"), InstallState.PROVISIONING_TOOLS, "bash"),
        (("apt-get", "install", "--allow-downgrades"), InstallState.INSTALLING_RUNTIME, "npm"),
        (("npm",), InstallState.INSTALLING_GLOBAL_DEPS, "yarn"),
        (("yarn", "install", "--ignore-scripts"), InstallState.CONFIGURING_CORE, "pm2 start"),
        (("pm2", "start"), InstallState.STARTING_SUPERVISOR, "pm2 save"),
    ],
)
def test_step_failure_halts_forward_progress(
    tmp_path: Path,
    failure: tuple[str, ...],
    failed_state: InstallState,
    never_called: str,
) -> None:
    host = _host(tmp_path, failures={failure: 1})
    host.missing_tools = ("curl",)

    report = host.installer().run()

    assert report.state is InstallState.ABORTED
    assert report.failed_step is failed_state
    executed = [outcome.state for outcome in report.outcomes]
    assert executed == ALL_STEPS[: ALL_STEPS.index(failed_state) + 1]
    invoked = [" ".join(argv) for argv in host.runner.argvs]
    assert not any(line.startswith(never_called) for line in invoked)


def test_release_download_failure_leaves_tree_unconfigured(tmp_path: Path) -> None:
    host = _host(tmp_path)
    host.session.routes[ZIP_URL] = FakeResponse(status=502)

    report = host.installer().run()

    assert report.failed_step is InstallState.FETCHING_RELEASE
    assert not (host.config.workdir / "astro-core").exists()
    assert "yarn" not in host.runner.commands()


def test_incompatible_release_archive_aborts_the_run(tmp_path: Path) -> None:
    host = _host(tmp_path)
    host.session.routes[ZIP_URL] = FakeResponse(
        content=patch_zip_headers(_release_archive(), method=99)
    )

    report = host.installer().run()

    assert report.state is InstallState.ABORTED
    assert report.failed_step is InstallState.FETCHING_RELEASE
    assert isinstance(report.error, ExtractionError)
    assert "yarn" not in host.runner.commands()


def test_non_utf8_config_file_is_patched(tmp_path: Path) -> None:
    host = _host(tmp_path)
    host.session.routes[ZIP_URL] = FakeResponse(
        content=make_zip(
            {**RELEASE_LAYOUT, "astro-server/.env": b"NAME=caf\xe9\nALLOWED_DOMAIN=old\n"}
        )
    )

    report = host.installer().run()

    assert report.succeeded, report.error
    env_file = host.config.workdir / "astro-server" / ".env"
    assert env_file.read_bytes() == b"NAME=caf\xe9\nALLOWED_DOMAIN=203.0.113.9\n"


def test_unwritable_workdir_aborts_at_fetch(tmp_path: Path) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("", encoding="utf-8")
    host = _host(tmp_path)
    host.config = replace(host.config, workdir=blocker / "astro")

    report = host.installer().run()

    assert report.failed_step is InstallState.FETCHING_RELEASE
    assert isinstance(report.error, FetchError)
    assert "Cannot create working directory" in str(report.error)
    assert host.session.count(METADATA_URL) == 0


@pytest.mark.xfail(
    reason="known gap: re-running re-downloads and re-extracts the release",
    strict=True,
)
def test_rerun_on_provisioned_host_skips_release_download(tmp_path: Path) -> None:
    host = _host(tmp_path, answers=("", ""))

    first = host.installer().run()
    second = host.installer().run()

    assert first.succeeded and second.succeeded
    assert host.session.count(ZIP_URL) == 1
