"""Resolved configuration for the Astro provisioning workflow."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

DEFAULT_RELEASE_REPOSITORY = "astro-btc/astro"
DEFAULT_GITHUB_API = "https://api.github.com"
DEFAULT_IP_LOOKUP_URL = "https://api.ipify.org"
DEFAULT_NODE_MAJOR = "23"
DEFAULT_NODE_VERSION = "23.11.1-1nodesource1"
DEFAULT_NATIVE_ASSET_URL = (
    "https://raw.githubusercontent.com/astro-btc/astro/refs/heads/main/"
    "bs3-ubuntu-x64.gz"
)


@dataclass(frozen=True, slots=True)
class ToolRequirement:
    """A command that must resolve on ``PATH`` before installation proceeds.

    Examples
    --------
    >>> ToolRequirement("gpg", package="gnupg").install_name
    'gnupg'
    >>> ToolRequirement("curl").install_name
    'curl'
    """

    name: str
    package: str | None = None

    @property
    def install_name(self) -> str:
        """Return the apt package providing :attr:`name`."""

        return self.package or self.name


# The NodeSource setup script needs curl and gpg; tar unpacks the native asset.
DEFAULT_TOOLS: tuple[ToolRequirement, ...] = (
    ToolRequirement("curl"),
    ToolRequirement("gpg", package="gnupg"),
    ToolRequirement("tar"),
)


@dataclass(frozen=True, slots=True)
class EnvironmentExpectation:
    """Distribution release the deployment is certified for."""

    expected_distro: str = "Ubuntu"
    expected_major_version: int = 24
    require_lts: bool = True


@dataclass(frozen=True, slots=True)
class InstallConfig:
    """Configuration supplied via the CLI and environment."""

    workdir: Path
    release_repository: str = DEFAULT_RELEASE_REPOSITORY
    github_api: str = DEFAULT_GITHUB_API
    ip_lookup_url: str = DEFAULT_IP_LOOKUP_URL
    server_ip: str | None = None
    environment: EnvironmentExpectation = field(
        default_factory=EnvironmentExpectation
    )
    required_tools: tuple[ToolRequirement, ...] = DEFAULT_TOOLS
    node_major: str = DEFAULT_NODE_MAJOR
    node_version: str = DEFAULT_NODE_VERSION
    global_packages: tuple[str, ...] = ("pm2", "bytenode", "yarn")
    supervisor_modules: tuple[str, ...] = ("pm2-logrotate",)
    core_dir: str = "astro-core"
    server_dir: str = "astro-server"
    admin_dir: str = "astro-admin"
    native_asset_url: str = DEFAULT_NATIVE_ASSET_URL
    native_asset_dir: str = "better-sqlite3"
    config_file: str = ".env"
    identity_key: str = "ALLOWED_DOMAIN"
    process_descriptor: str = "pm2.config.js"
    owner: str | None = None
    release_sha256: str | None = None
    native_asset_sha256: str | None = None
    http_timeout: int = 30
    admin_port: int = 12345
    admin_path: str = "change-after-install"

    @property
    def release_dirs(self) -> tuple[str, ...]:
        """Top-level directories shipped in the release archive."""

        return (self.core_dir, self.server_dir, self.admin_dir)

    @property
    def supervised_dirs(self) -> tuple[str, ...]:
        """Sub-applications that ship a pm2 process descriptor."""

        return (self.core_dir, self.server_dir)


__all__ = [
    "DEFAULT_TOOLS",
    "EnvironmentExpectation",
    "InstallConfig",
    "ToolRequirement",
]
