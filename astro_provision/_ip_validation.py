"""Strict dotted-decimal IPv4 validation."""

from __future__ import annotations

import re

_OCTET_PATTERN = re.compile(r"[0-9]+")


def is_valid_ipv4(candidate: object) -> bool:
    """Return ``True`` when *candidate* is a dotted-decimal IPv4 address.

    Hostnames, IPv6 addresses, signed or padded octets, and octets with a
    leading zero are rejected. The check never raises.

    Examples
    --------
    >>> is_valid_ipv4("192.168.1.1")
    True
    >>> is_valid_ipv4("01.1.1.1")
    False
    >>> is_valid_ipv4("1.1.1")
    False
    """

    if not isinstance(candidate, str) or not candidate:
        return False
    if candidate.count(".") != 3:
        return False
    parts = candidate.split(".")
    if len(parts) != 4:
        return False
    for part in parts:
        if len(part) > 3 or _OCTET_PATTERN.fullmatch(part) is None:
            return False
        if int(part) > 255:
            return False
        if len(part) > 1 and part.startswith("0"):
            return False
    return True


__all__ = ["is_valid_ipv4"]
