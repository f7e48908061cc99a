"""Package acquisition from a local feed directory or an HTTP feed."""

from __future__ import annotations

import os
import tarfile
import tempfile
import zipfile
from pathlib import Path
from typing import Iterable, List

import requests

from sdkup.domain.install.errors import AcquisitionError, ExtractionError
from sdkup.domain.install.value_objects import ComponentKind, ReleaseVersion
from sdkup.ports.package_acquirer import PackageAcquirer

ARCHIVE_EXTENSIONS = (".tar.gz", ".zip")
_CHUNK_SIZE = 1024 * 256


def package_filenames(kind: ComponentKind, version: ReleaseVersion, rid: str) -> List[str]:
    """Candidate archive names, preferred format first."""

    stem = f"{kind.package_id}-{version}-{rid}"
    extensions = (".zip", ".tar.gz") if rid.startswith("win") else ARCHIVE_EXTENSIONS
    return [stem + ext for ext in extensions]


def _ensure_within(destination: Path, name: str) -> None:
    target = (destination / name).resolve()
    root = destination.resolve()
    if target != root and root not in target.parents:
        raise ExtractionError(f"Archive entry '{name}' escapes the extraction directory")


def _check_tar_members(destination: Path, members: Iterable[tarfile.TarInfo]) -> None:
    for member in members:
        _ensure_within(destination, member.name)
        if member.issym() or member.islnk():
            link_base = (destination / member.name).parent if member.issym() else destination
            _ensure_within(link_base, member.linkname)
        if member.isdev():
            raise ExtractionError(f"Archive entry '{member.name}' is a device file")


def extract_archive(archive: Path, destination: Path) -> Path:
    """Unpack ``archive`` into ``destination``, refusing entries outside it."""

    destination.mkdir(parents=True, exist_ok=True)
    try:
        if archive.name.endswith(".zip"):
            with zipfile.ZipFile(archive) as bundle:
                for name in bundle.namelist():
                    _ensure_within(destination, name)
                bundle.extractall(destination)
        else:
            with tarfile.open(archive, "r:*") as bundle:
                members = bundle.getmembers()
                _check_tar_members(destination, members)
                if hasattr(tarfile, "data_filter"):
                    bundle.extractall(destination, members=members, filter="data")
                else:  # pragma: no cover - interpreters without extraction filters
                    bundle.extractall(destination, members=members)
    except (tarfile.TarError, zipfile.BadZipFile, OSError, EOFError) as exc:
        raise ExtractionError(f"Failed to extract {archive.name}: {exc}") from exc
    return destination


class ArchiveAcquirer(PackageAcquirer):
    """Looks up ``<package>-<version>-<rid>.tar.gz|.zip`` in a feed and unpacks it."""

    def __init__(self, feed: str, session: requests.Session | None = None) -> None:
        self._feed = feed
        self._session = session

    @property
    def is_remote(self) -> bool:
        return self._feed.startswith("http://") or self._feed.startswith("https://")

    def acquire(self, kind: ComponentKind, version: ReleaseVersion, rid: str, destination: Path) -> Path:
        names = package_filenames(kind, version, rid)
        if not self.is_remote:
            return extract_archive(self._find_local(names), destination)
        with tempfile.TemporaryDirectory(prefix="sdkup-download-") as tmp:
            archive = self._download(names, Path(tmp))
            return extract_archive(archive, destination)

    def _find_local(self, names: List[str]) -> Path:
        feed_dir = Path(self._feed).expanduser()
        for name in names:
            candidate = feed_dir / name
            if candidate.is_file():
                return candidate
        raise AcquisitionError(f"Package {names[0]} not found in feed {feed_dir}")

    def _download(self, names: List[str], target_dir: Path) -> Path:
        session = self._session or requests.Session()
        base = self._feed.rstrip("/")
        failures: List[str] = []
        for name in names:
            url = f"{base}/{name}"
            target = target_dir / name
            try:
                with session.get(url, stream=True, timeout=60) as response:
                    if response.status_code == 404:
                        failures.append(f"{url}: not found")
                        continue
                    if response.status_code >= 400:
                        raise AcquisitionError(f"Download failed: {response.status_code} {url}")
                    with target.open("wb") as handle:
                        for chunk in response.iter_content(chunk_size=_CHUNK_SIZE):
                            if chunk:
                                handle.write(chunk)
                        handle.flush()
                        os.fsync(handle.fileno())
            except requests.RequestException as exc:
                raise AcquisitionError(f"Download failed for {url}: {exc}") from exc
            return target
        raise AcquisitionError("Package not available: " + "; ".join(failures))


__all__ = ["ArchiveAcquirer", "extract_archive", "package_filenames"]
