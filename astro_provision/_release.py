"""Fetch and unpack the latest Astro release and its native assets.

Release metadata comes from the GitHub ``releases/latest`` endpoint. The first
``.zip`` asset is downloaded into the working directory, extracted in place,
and removed. Downloads are only integrity-checked when a SHA-256 digest is
configured; otherwise a warning records that the artefact is trusted as
published.
"""

from __future__ import annotations

import hashlib
import logging
import tarfile
import zipfile
import zlib
from contextlib import suppress
from dataclasses import dataclass
from http import HTTPStatus
from pathlib import Path, PurePosixPath
from urllib.parse import unquote, urlparse

import requests

from ._install_errors import (
    ChecksumMismatchError,
    DownloadError,
    ExtractionError,
    NoReleaseFoundError,
)

logger = logging.getLogger(__name__)

_CHUNK_SIZE = 1 << 16


@dataclass(frozen=True, slots=True)
class ReleaseArtifact:
    """The archive that was fetched and the directories it produced."""

    download_url: str
    file_name: str
    extracted_entries: frozenset[str]


def file_name_from_url(url: str) -> str:
    """Derive a local file name from the last path segment of *url*.

    Examples
    --------
    >>> file_name_from_url("https://github.com/o/r/releases/download/v1/astro-v1.zip")
    'astro-v1.zip'
    """

    name = PurePosixPath(unquote(urlparse(url).path)).name
    if not name:
        msg = f"Cannot derive a file name from {url!r}"
        raise DownloadError(msg)
    return name


def _sha256(path: Path) -> str:
    digest = hashlib.sha256()
    with path.open("rb") as handle:
        for chunk in iter(lambda: handle.read(_CHUNK_SIZE), b""):
            digest.update(chunk)
    return digest.hexdigest()


def download_file(
    session: requests.Session,
    url: str,
    destination: Path,
    *,
    timeout: float,
    expected_sha256: str | None = None,
) -> Path:
    """Stream *url* into *destination*, optionally checking its digest.

    Raises
    ------
    DownloadError
        When the transfer fails; a partial file is removed.
    ChecksumMismatchError
        When *expected_sha256* is given and does not match; the file is removed.
    """

    logger.info("Downloading %s", url)
    try:
        with session.get(url, stream=True, timeout=timeout) as response:
            response.raise_for_status()
            with destination.open("wb") as handle:
                for chunk in response.iter_content(chunk_size=_CHUNK_SIZE):
                    handle.write(chunk)
    except (requests.RequestException, OSError) as exc:
        destination.unlink(missing_ok=True)
        msg = f"Failed to download {url}: {exc}"
        raise DownloadError(msg) from exc

    if expected_sha256 is None:
        logger.warning("No SHA-256 configured; %s is unverified", url)
        return destination

    actual = _sha256(destination)
    if actual != expected_sha256.strip().lower():
        destination.unlink(missing_ok=True)
        msg = f"SHA-256 mismatch for {url}: expected {expected_sha256}, got {actual}"
        raise ChecksumMismatchError(msg)
    return destination


def latest_release_url(
    session: requests.Session,
    repository: str,
    *,
    api_base: str,
    timeout: float,
) -> str:
    """Return the first ``.zip`` asset URL of the latest release of *repository*."""

    endpoint = f"{api_base.rstrip('/')}/repos/{repository}/releases/latest"
    try:
        response = session.get(
            endpoint,
            headers={"Accept": "application/vnd.github+json"},
            timeout=timeout,
        )
        if response.status_code == HTTPStatus.NOT_FOUND:
            msg = f"{repository} has no published release ({endpoint} returned 404)"
            raise NoReleaseFoundError(msg)
        response.raise_for_status()
    except requests.RequestException as exc:
        msg = f"Failed to query {endpoint}: {exc}"
        raise DownloadError(msg) from exc
    try:
        payload = response.json()
    except ValueError as exc:
        msg = f"{endpoint} returned invalid JSON: {exc}"
        raise NoReleaseFoundError(msg) from exc

    assets = payload.get("assets", []) if isinstance(payload, dict) else []
    for asset in assets:
        if not isinstance(asset, dict):
            continue
        url = asset.get("browser_download_url")
        if isinstance(url, str) and url.endswith(".zip"):
            return url
    msg = f"Latest release of {repository} has no .zip asset"
    raise NoReleaseFoundError(msg)


def extract_zip(archive: Path, destination: Path) -> frozenset[str]:
    """Extract *archive* into *destination* and return its top-level entries."""

    try:
        with zipfile.ZipFile(archive) as bundle:
            entries = frozenset(
                PurePosixPath(name).parts[0]
                for name in bundle.namelist()
                if PurePosixPath(name).parts
            )
            bundle.extractall(destination)
    except (
        zipfile.BadZipFile,
        NotImplementedError,
        RuntimeError,
        ValueError,
        OSError,
    ) as exc:
        msg = f"Failed to extract {archive.name}: {exc}"
        raise ExtractionError(msg) from exc
    return entries


def fetch_latest(
    repository: str,
    workdir: Path,
    session: requests.Session,
    *,
    api_base: str,
    timeout: float,
    expected_sha256: str | None = None,
) -> ReleaseArtifact:
    """Download and extract the latest release into *workdir*.

    The archive is removed once extraction finishes, whether or not it
    succeeded.
    """

    url = latest_release_url(session, repository, api_base=api_base, timeout=timeout)
    file_name = file_name_from_url(url)
    archive = workdir / file_name
    download_file(
        session,
        url,
        archive,
        timeout=timeout,
        expected_sha256=expected_sha256,
    )
    try:
        logger.info("Extracting %s", file_name)
        entries = extract_zip(archive, workdir)
    finally:
        with suppress(FileNotFoundError):
            archive.unlink()
    return ReleaseArtifact(
        download_url=url,
        file_name=file_name,
        extracted_entries=entries,
    )


def restore_tarball(
    session: requests.Session,
    url: str,
    destination: Path,
    *,
    timeout: float,
    expected_sha256: str | None = None,
) -> None:
    """Download a gzipped tarball into *destination*, unpack it there, and delete it."""

    archive = destination / file_name_from_url(url)
    download_file(
        session,
        url,
        archive,
        timeout=timeout,
        expected_sha256=expected_sha256,
    )
    try:
        with tarfile.open(archive, "r:gz") as bundle:
            bundle.extractall(destination, filter="data")
    except (tarfile.TarError, EOFError, zlib.error, OSError) as exc:
        msg = f"Failed to extract {archive.name}: {exc}"
        raise ExtractionError(msg) from exc
    finally:
        archive.unlink(missing_ok=True)


__all__ = [
    "ReleaseArtifact",
    "download_file",
    "extract_zip",
    "fetch_latest",
    "file_name_from_url",
    "latest_release_url",
    "restore_tarball",
]
