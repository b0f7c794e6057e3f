"""Per-application setup for the extracted Astro release."""

from __future__ import annotations

import logging
import os
import re
import shutil
from collections import abc as cabc
from pathlib import Path

import requests

from ._commands import CommandContext, CommandRunner
from ._install_config import InstallConfig
from ._install_errors import ConfigError, MissingConfigFileError
from ._network_identity import NetworkIdentity
from ._release import restore_tarball

logger = logging.getLogger(__name__)

RELEASE_MODE = 0o755


def _iter_tree(root: Path) -> cabc.Iterator[Path]:
    yield root
    for dirpath, dirnames, filenames in os.walk(root):
        base = Path(dirpath)
        for name in (*dirnames, *filenames):
            yield base / name


def fix_permissions(
    workdir: Path,
    names: cabc.Iterable[str],
    owner: str | None,
) -> None:
    """Apply mode 755 and, when *owner* is set, its ownership to each tree.

    Missing directories are skipped and individual failures are logged, so an
    archive that ships fewer applications still installs.
    """

    for name in names:
        root = workdir / name
        if not root.is_dir():
            logger.warning("Skipping permission fix-up; %s is missing", root)
            continue
        for path in _iter_tree(root):
            if path.is_symlink():
                continue
            try:
                path.chmod(RELEASE_MODE)
                if owner:
                    shutil.chown(path, user=owner, group=owner)
            except (OSError, LookupError) as exc:
                logger.warning("Could not fix permissions on %s: %s", path, exc)


def _require_dir(path: Path) -> Path:
    if not path.is_dir():
        msg = f"Expected directory {path} is missing from the release"
        raise ConfigError(msg)
    return path


def setup_core(
    config: InstallConfig,
    session: requests.Session,
    runner: CommandRunner,
) -> None:
    """Install ``astro-core`` dependencies and restore the native sqlite build.

    Install scripts are disabled so ``better-sqlite3`` is not compiled; the
    precompiled asset is unpacked into ``node_modules`` instead.
    """

    core = _require_dir(config.workdir / config.core_dir)
    logger.info("Installing %s dependencies (install scripts disabled)", config.core_dir)
    runner("yarn", "install", "--ignore-scripts", context=CommandContext(cwd=core))

    node_modules = _require_dir(core / "node_modules")
    try:
        (node_modules / config.native_asset_dir).mkdir(exist_ok=True)
    except OSError as exc:
        msg = f"Cannot create {config.native_asset_dir} in {node_modules}: {exc}"
        raise ConfigError(msg) from exc
    logger.info("Restoring precompiled %s", config.native_asset_dir)
    restore_tarball(
        session,
        config.native_asset_url,
        node_modules,
        timeout=config.http_timeout,
        expected_sha256=config.native_asset_sha256,
    )
    logger.info("%s setup completed", config.core_dir)


def patch_config_line(path: Path, key: str, value: str) -> int:
    """Rewrite every ``key=...`` line of *path* to ``key=value``.

    Other lines, including their line endings and any bytes that are not
    valid UTF-8, are left untouched. Returns the number of lines rewritten.

    Raises
    ------
    MissingConfigFileError
        When *path* does not exist.
    ConfigError
        When no line assigns *key* or the file cannot be read or written.
    """

    if not path.is_file():
        msg = f"{path.name} file not found in {path.parent}"
        raise MissingConfigFileError(msg)

    try:
        with path.open(
            encoding="utf-8", errors="surrogateescape", newline=""
        ) as handle:
            content = handle.read()
    except OSError as exc:
        msg = f"Cannot read {path}: {exc}"
        raise ConfigError(msg) from exc
    pattern = re.compile(rf"^{re.escape(key)}=[^\r\n]*", re.MULTILINE)
    patched, count = pattern.subn(lambda _match: f"{key}={value}", content)
    if count == 0:
        msg = f"{path} has no {key}= line to update"
        raise ConfigError(msg)
    try:
        with path.open(
            "w", encoding="utf-8", errors="surrogateescape", newline=""
        ) as handle:
            handle.write(patched)
    except OSError as exc:
        msg = f"Cannot write {path}: {exc}"
        raise ConfigError(msg) from exc
    return count


def configure_server(
    config: InstallConfig,
    identity: NetworkIdentity,
    runner: CommandRunner,
) -> None:
    """Bind ``astro-server`` to *identity* and install its dependencies."""

    server = _require_dir(config.workdir / config.server_dir)
    patch_config_line(server / config.config_file, config.identity_key, identity.address)
    logger.info("Updated %s with IP: %s", config.config_file, identity.address)

    logger.info("Installing %s dependencies", config.server_dir)
    runner("yarn", "install", context=CommandContext(cwd=server))


__all__ = [
    "configure_server",
    "fix_permissions",
    "patch_config_line",
    "setup_core",
]
