"""Exception hierarchy for the Astro provisioning helpers.

Every failure raised by a provisioning step derives from :class:`InstallError`
so the orchestrator can stop the run at a single catch site. Subclasses carry
enough context for the operator to inspect a partially provisioned host.

Exceptions
----------
InstallError
EnvironmentCheckError
UnsupportedOSError
UnsupportedArchitectureError
InsufficientPrivilegeError
IdentityError
CommandError
ProvisionError
PackageManagerError
RuntimeInstallError
FetchError
NoReleaseFoundError
DownloadError
ExtractionError
ChecksumMismatchError
ConfigError
MissingConfigFileError
SupervisorError
"""

from __future__ import annotations

from collections import abc as cabc


class InstallError(Exception):
    """Base error for the provisioning workflow.

    Examples
    --------
    >>> raise InstallError("unexpected provisioning failure")
    """


class EnvironmentCheckError(InstallError):
    """Raised when the host does not satisfy the deployment requirements."""


class UnsupportedOSError(EnvironmentCheckError):
    """Raised when the operating system name or release is not supported."""


class UnsupportedArchitectureError(EnvironmentCheckError):
    """Raised when the CPU architecture is not x86-64."""


class InsufficientPrivilegeError(InstallError):
    """Raised when the installer is not running with root privileges."""


class IdentityError(InstallError):
    """Raised when no usable network identity can be obtained."""


class CommandError(InstallError):
    """Raised when an external command exits with a non-zero status.

    Parameters
    ----------
    command
        Argument vector of the failed command.
    exit_status
        Exit status reported by the process.
    stderr
        Captured standard error, stripped.
    """

    def __init__(
        self,
        command: cabc.Sequence[str],
        exit_status: int | None,
        stderr: str = "",
    ) -> None:
        self.command = tuple(command)
        self.exit_status = exit_status
        self.stderr = stderr
        detail = f": {stderr}" if stderr else ""
        super().__init__(
            f"{' '.join(self.command)} failed with exit status {exit_status}{detail}"
        )


class ProvisionError(InstallError):
    """Raised when system tools cannot be provisioned."""


class PackageManagerError(ProvisionError):
    """Raised when apt fails to install the missing tool packages.

    Parameters
    ----------
    packages
        The packages that were absent and could not be installed.
    exit_status
        Exit status of the failing package manager invocation, if any.
    """

    def __init__(
        self,
        packages: cabc.Iterable[str],
        exit_status: int | None,
        message: str | None = None,
    ) -> None:
        self.packages = tuple(packages)
        self.exit_status = exit_status
        super().__init__(
            message
            or (
                f"Failed to install {', '.join(self.packages)} "
                f"(exit status {exit_status})"
            )
        )


class RuntimeInstallError(InstallError):
    """Raised when the Node.js runtime or its global packages fail to install."""


class FetchError(InstallError):
    """Base error for release and asset downloads."""


class NoReleaseFoundError(FetchError):
    """Raised when the latest release exposes no archive download link."""


class DownloadError(FetchError):
    """Raised when an HTTP transfer fails."""


class ExtractionError(FetchError):
    """Raised when a downloaded archive cannot be extracted."""


class ChecksumMismatchError(FetchError):
    """Raised when a downloaded file does not match its expected SHA-256."""


class ConfigError(InstallError):
    """Base error for sub-application configuration problems."""


class MissingConfigFileError(ConfigError):
    """Raised when the expected configuration file does not exist."""


class SupervisorError(InstallError):
    """Raised when pm2 cannot start or persist the supervised processes."""


__all__ = [
    "ChecksumMismatchError",
    "CommandError",
    "ConfigError",
    "DownloadError",
    "EnvironmentCheckError",
    "ExtractionError",
    "FetchError",
    "IdentityError",
    "InstallError",
    "InsufficientPrivilegeError",
    "MissingConfigFileError",
    "NoReleaseFoundError",
    "PackageManagerError",
    "ProvisionError",
    "RuntimeInstallError",
    "SupervisorError",
    "UnsupportedArchitectureError",
    "UnsupportedOSError",
]
