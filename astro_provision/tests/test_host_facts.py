"""Unit tests for host fact parsing and the environment gate."""

from __future__ import annotations

import pytest

from astro_provision._host_facts import (
    Architecture,
    collect_host_facts,
    parse_host_facts,
    parse_operating_system,
    verify_environment,
)
from astro_provision._install_config import EnvironmentExpectation
from astro_provision._install_errors import (
    UnsupportedArchitectureError,
    UnsupportedOSError,
)
from astro_provision.tests._doubles import FakeRunner, host_report


def test_supported_host_passes() -> None:
    facts = parse_host_facts(host_report("Ubuntu 24.04 LTS", "x86-64"))
    verified = verify_environment(facts, EnvironmentExpectation())
    assert verified is facts
    assert facts.os_version == (24, 4, 0)
    assert facts.architecture is Architecture.X86_64


def test_arm_host_is_rejected() -> None:
    facts = parse_host_facts(host_report("Ubuntu 24.04 LTS", "arm64"))
    with pytest.raises(UnsupportedArchitectureError, match="arm64"):
        verify_environment(facts, EnvironmentExpectation())


def test_older_release_is_rejected() -> None:
    facts = parse_host_facts(host_report("Ubuntu 22.04 LTS", "x86-64"))
    with pytest.raises(UnsupportedOSError, match="Ubuntu 22.04 LTS"):
        verify_environment(facts, EnvironmentExpectation())


def test_interim_release_requires_lts() -> None:
    facts = parse_host_facts(host_report("Ubuntu 24.10", "x86-64"))
    with pytest.raises(UnsupportedOSError):
        verify_environment(facts, EnvironmentExpectation())

    relaxed = EnvironmentExpectation(require_lts=False)
    assert verify_environment(facts, relaxed) is facts


def test_other_distribution_is_rejected() -> None:
    facts = parse_host_facts(host_report("Debian GNU/Linux 12 (bookworm)"))
    assert facts.os_name == "Debian GNU/Linux"
    with pytest.raises(UnsupportedOSError):
        verify_environment(facts, EnvironmentExpectation())


def test_expectation_is_configurable() -> None:
    facts = parse_host_facts(host_report("Debian GNU/Linux 12 (bookworm)"))
    expectation = EnvironmentExpectation(
        expected_distro="Debian GNU/Linux",
        expected_major_version=12,
        require_lts=False,
    )
    assert verify_environment(facts, expectation) is facts


def test_missing_fields_fail_the_gate() -> None:
    facts = parse_host_facts("Static hostname: astro-1\n")
    assert facts.os_version == (0, 0, 0)
    assert facts.architecture is Architecture.OTHER
    with pytest.raises(UnsupportedOSError):
        verify_environment(facts, EnvironmentExpectation())


@pytest.mark.parametrize("spelling", ["x86-64", "x86_64", "amd64"])
def test_x86_64_spellings(spelling: str) -> None:
    facts = parse_host_facts(host_report(arch=spelling))
    assert facts.architecture is Architecture.X86_64


def test_parse_operating_system_keeps_patch_level() -> None:
    assert parse_operating_system("Ubuntu 24.04.1 LTS") == ("Ubuntu", (24, 4, 1), True)


def test_collect_host_facts_queries_hostnamectl() -> None:
    runner = FakeRunner(outputs={("hostnamectl",): host_report()})
    facts = collect_host_facts(runner)
    assert runner.argvs == [("hostnamectl",)]
    assert facts.os_description == "Ubuntu 24.04.1 LTS"
    assert "Architecture: x86-64" in facts.report
