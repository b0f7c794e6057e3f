"""Host fact collection and the environment gate.

The installer only supports the Ubuntu LTS release it was certified on and
the x86-64 architecture, because the precompiled native asset restored into
``astro-core`` is built for that target. Facts are read once from
``hostnamectl`` and validated before any mutating step runs.

Examples
--------
>>> facts = parse_host_facts(
...     "Operating System: Ubuntu 24.04.1 LTS\\nArchitecture: x86-64\\n"
... )
>>> facts.os_version
(24, 4, 1)
>>> verify_environment(facts, EnvironmentExpectation()).architecture.value
'x86-64'
"""

from __future__ import annotations

import enum
import logging
import re
from dataclasses import dataclass

from ._commands import CommandContext, CommandRunner
from ._install_config import EnvironmentExpectation
from ._install_errors import UnsupportedArchitectureError, UnsupportedOSError

logger = logging.getLogger(__name__)

_OS_PATTERN = re.compile(
    r"^(?P<name>.*?)\s+(?P<version>\d+(?:\.\d+)*)(?P<suffix>(?:\s.*)?)$"
)
_X86_64_SPELLINGS = frozenset({"x86-64", "x86_64", "amd64"})


class Architecture(enum.Enum):
    """CPU architectures distinguished by the environment gate."""

    X86_64 = "x86-64"
    OTHER = "other"


@dataclass(frozen=True, slots=True)
class HostFacts:
    """Operating system and architecture facts reported by the host."""

    os_name: str
    os_version: tuple[int, int, int]
    lts: bool
    architecture: Architecture
    raw_os: str = ""
    raw_architecture: str = ""
    report: str = ""

    @property
    def os_description(self) -> str:
        """Return the release string as reported, e.g. ``Ubuntu 24.04.1 LTS``."""

        if self.raw_os:
            return self.raw_os
        version = ".".join(str(part) for part in self.os_version)
        suffix = " LTS" if self.lts else ""
        return f"{self.os_name} {version}{suffix}"


def _report_fields(report: str) -> dict[str, str]:
    fields: dict[str, str] = {}
    for line in report.splitlines():
        key, sep, value = line.partition(":")
        if not sep:
            continue
        fields[key.strip()] = value.strip()
    return fields


def parse_operating_system(value: str) -> tuple[str, tuple[int, int, int], bool]:
    """Split an ``Operating System`` value into name, version triple, and LTS flag.

    Unparseable values yield version ``(0, 0, 0)`` so the gate rejects them.

    Examples
    --------
    >>> parse_operating_system("Ubuntu 24.04 LTS")
    ('Ubuntu', (24, 4, 0), True)
    >>> parse_operating_system("Debian GNU/Linux 12 (bookworm)")
    ('Debian GNU/Linux', (12, 0, 0), False)
    """

    match = _OS_PATTERN.match(value.strip())
    if match is None:
        return value.strip(), (0, 0, 0), False
    numbers = [int(part) for part in match.group("version").split(".")][:3]
    numbers.extend([0] * (3 - len(numbers)))
    lts = "LTS" in match.group("suffix").split()
    return match.group("name"), (numbers[0], numbers[1], numbers[2]), lts


def parse_architecture(value: str) -> Architecture:
    """Map a reported architecture string onto :class:`Architecture`.

    Examples
    --------
    >>> parse_architecture("x86-64")
    <Architecture.X86_64: 'x86-64'>
    >>> parse_architecture("arm64")
    <Architecture.OTHER: 'other'>
    """

    if value.strip().lower() in _X86_64_SPELLINGS:
        return Architecture.X86_64
    return Architecture.OTHER


def parse_host_facts(report: str) -> HostFacts:
    """Build :class:`HostFacts` from ``hostnamectl`` output."""

    fields = _report_fields(report)
    raw_os = fields.get("Operating System", "")
    name, version, lts = parse_operating_system(raw_os)
    raw_arch = fields.get("Architecture", "")
    return HostFacts(
        os_name=name,
        os_version=version,
        lts=lts,
        architecture=parse_architecture(raw_arch),
        raw_os=raw_os,
        raw_architecture=raw_arch,
        report=report,
    )


def collect_host_facts(runner: CommandRunner) -> HostFacts:
    """Query ``hostnamectl`` and parse the result."""

    report = runner("hostnamectl", context=CommandContext())
    return parse_host_facts(report)


def verify_environment(
    facts: HostFacts,
    expectation: EnvironmentExpectation,
) -> HostFacts:
    """Return *facts* when the host matches *expectation*.

    Raises
    ------
    UnsupportedOSError
        When the distribution, major release, or LTS flag does not match.
    UnsupportedArchitectureError
        When the host is not x86-64.
    """

    logger.info("Host facts:\n%s", facts.report.rstrip() or facts.os_description)

    required = f"{expectation.expected_distro} {expectation.expected_major_version}.x"
    if expectation.require_lts:
        required += " LTS"
    if (
        facts.os_name != expectation.expected_distro
        or facts.os_version[0] != expectation.expected_major_version
        or (expectation.require_lts and not facts.lts)
    ):
        msg = f"{required} is required; host reports {facts.os_description!r}"
        raise UnsupportedOSError(msg)

    if facts.architecture is not Architecture.X86_64:
        reported = facts.raw_architecture or facts.architecture.value
        msg = f"x86-64 architecture is required; host reports {reported!r}"
        raise UnsupportedArchitectureError(msg)

    logger.info(
        "System check passed: %s / %s",
        facts.os_description,
        facts.architecture.value,
    )
    return facts


__all__ = [
    "Architecture",
    "HostFacts",
    "collect_host_facts",
    "parse_architecture",
    "parse_host_facts",
    "parse_operating_system",
    "verify_environment",
]
