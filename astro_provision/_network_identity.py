"""Resolve the public IPv4 address ``astro-server`` is bound to.

Auto-detection covers the common single public host; the manual entry loop
guarantees that only an address accepted by :func:`is_valid_ipv4` reaches the
server configuration.
"""

from __future__ import annotations

import logging
from collections import abc as cabc
from dataclasses import dataclass, field

import requests

from ._install_errors import IdentityError
from ._ip_validation import is_valid_ipv4

logger = logging.getLogger(__name__)

INVALID_FORMAT_HINT = "ERROR: Invalid IP format (e.g. 192.168.1.1)"


def _print(message: str) -> None:
    print(message, flush=True)


@dataclass(frozen=True, slots=True)
class Console:
    """Operator input and output used by interactive steps."""

    ask: cabc.Callable[[str], str] = input
    say: cabc.Callable[[str], None] = field(default=_print)


@dataclass(frozen=True, slots=True)
class NetworkIdentity:
    """A validated public IPv4 address.

    Examples
    --------
    >>> NetworkIdentity("203.0.113.9").address
    '203.0.113.9'
    >>> NetworkIdentity("localhost")
    Traceback (most recent call last):
    ...
    ValueError: Not a dotted-decimal IPv4 address: 'localhost'
    """

    address: str

    def __post_init__(self) -> None:
        if not is_valid_ipv4(self.address):
            msg = f"Not a dotted-decimal IPv4 address: {self.address!r}"
            raise ValueError(msg)


def lookup_public_ip(
    session: requests.Session,
    url: str,
    timeout: float,
) -> str:
    """Return the address reported by the IP-echo service, or ``""`` on failure."""

    try:
        response = session.get(url, timeout=timeout)
        response.raise_for_status()
    except requests.RequestException as exc:
        logger.warning("Public IP lookup via %s failed: %s", url, exc)
        return ""
    return response.text.strip()


def _confirm(console: Console, address: str) -> bool:
    console.say(f"Detected public IP: {address}")
    answer = console.ask("Use this IP? [Y/n] ").strip()
    return not answer or answer[0] in {"y", "Y"}


def _prompt_until_valid(console: Console) -> NetworkIdentity:
    while True:
        console.say("Please enter your server's public IP address")
        candidate = console.ask("IP: ").strip()
        if is_valid_ipv4(candidate):
            return NetworkIdentity(candidate)
        console.say(INVALID_FORMAT_HINT)


def resolve_network_identity(
    session: requests.Session,
    console: Console,
    *,
    lookup_url: str,
    timeout: float,
    preset: str | None = None,
) -> NetworkIdentity:
    """Obtain the host's public IPv4 address.

    A *preset* address bypasses the interactive protocol. Otherwise the
    detected address is offered for confirmation, and the operator is asked to
    type one in until it validates.

    Raises
    ------
    IdentityError
        When *preset* is invalid or the input stream closes before a valid
        address is entered.
    """

    if preset is not None:
        if not is_valid_ipv4(preset):
            msg = f"Configured server IP {preset!r} is not a valid IPv4 address"
            raise IdentityError(msg)
        return NetworkIdentity(preset)

    detected = lookup_public_ip(session, lookup_url, timeout)
    try:
        if is_valid_ipv4(detected) and _confirm(console, detected):
            return NetworkIdentity(detected)
        return _prompt_until_valid(console)
    except EOFError as exc:
        msg = "Input closed before a server IP address was provided"
        raise IdentityError(msg) from exc


__all__ = [
    "Console",
    "INVALID_FORMAT_HINT",
    "NetworkIdentity",
    "lookup_public_ip",
    "resolve_network_identity",
]
