"""Resolve installer inputs from CLI parameters, the environment, or defaults."""

from __future__ import annotations

import os
from collections import abc as cabc
from dataclasses import dataclass
from pathlib import Path

_TRUTHY = frozenset({"1", "true", "yes", "on"})


@dataclass(frozen=True, slots=True)
class InputResolution:
    """How to resolve one installer input when no CLI value is given."""

    env_key: str
    default: str | Path | None = None
    required: bool = False
    as_path: bool = False


def resolve_input(
    param_value: str | Path | None,
    resolution: InputResolution,
    env: cabc.Mapping[str, str] | None = None,
) -> str | Path | None:
    """Return the CLI value, else the environment value, else the default.

    Empty environment values count as unset.

    Examples
    --------
    >>> resolve_input(None, InputResolution("ASTRO_WORKDIR", as_path=True), {"ASTRO_WORKDIR": "/opt"})
    PosixPath('/opt')
    >>> resolve_input("cli", InputResolution("ASTRO_SERVER_IP"), {"ASTRO_SERVER_IP": "env"})
    'cli'
    """

    if param_value is not None:
        return param_value

    env_value = (os.environ if env is None else env).get(resolution.env_key)
    if env_value:
        return Path(env_value) if resolution.as_path else env_value

    if resolution.required:
        msg = f"{resolution.env_key} is required"
        raise SystemExit(msg)

    return resolution.default


def resolve_int(
    param_value: int | None,
    resolution: InputResolution,
    env: cabc.Mapping[str, str] | None = None,
) -> int:
    """Resolve an integer input, exiting with a message when it does not parse.

    Examples
    --------
    >>> resolve_int(None, InputResolution("ASTRO_HTTP_TIMEOUT", default="30"), {})
    30
    """

    if param_value is not None:
        return param_value
    raw = resolve_input(None, resolution, env=env)
    try:
        return int(str(raw))
    except (TypeError, ValueError) as exc:
        msg = f"{resolution.env_key} must be an integer, got: {raw!r}"
        raise SystemExit(msg) from exc


def resolve_bool(
    param_value: bool | None,
    resolution: InputResolution,
    env: cabc.Mapping[str, str] | None = None,
) -> bool:
    """Resolve a boolean flag from ``1``/``true``/``yes``/``on`` style values.

    Examples
    --------
    >>> resolve_bool(None, InputResolution("ASTRO_VERBOSE"), {"ASTRO_VERBOSE": "YES"})
    True
    """

    if param_value is not None:
        return param_value
    raw = resolve_input(None, resolution, env=env)
    if raw is None:
        return False
    return str(raw).strip().lower() in _TRUTHY


__all__ = ["InputResolution", "resolve_bool", "resolve_input", "resolve_int"]
