from __future__ import annotations

import io
import tarfile
import zipfile
from pathlib import Path
from typing import Any, Callable, Iterator

import pytest

from sdkup.adapters.archive_acquirer import ArchiveAcquirer, extract_archive, package_filenames
from sdkup.domain.install.errors import AcquisitionError, ExtractionError
from sdkup.domain.install.value_objects import ComponentKind, ReleaseVersion

V = ReleaseVersion.parse("8.0.100")


def _tar_with(path: Path, name: str, data: bytes = b"x") -> Path:
    with tarfile.open(path, "w:gz") as bundle:
        info = tarfile.TarInfo(name)
        info.size = len(data)
        bundle.addfile(info, io.BytesIO(data))
    return path


def test_package_filenames_prefer_platform_format() -> None:
    assert package_filenames(ComponentKind.SDK, V, "linux-x64") == [
        "dotnet-sdk-8.0.100-linux-x64.tar.gz",
        "dotnet-sdk-8.0.100-linux-x64.zip",
    ]
    assert package_filenames(ComponentKind.WEB_RUNTIME, V, "win-arm64")[0] == "aspnetcore-runtime-8.0.100-win-arm64.zip"


def test_local_feed_extracts_package(
    tmp_path: Path, publish: Callable[..., Path], feed_dir: Path, rid: str
) -> None:
    publish(ComponentKind.SDK, "8.0.100", runtime="8.0.0")
    destination = tmp_path / "out"
    ArchiveAcquirer(str(feed_dir)).acquire(ComponentKind.SDK, V, rid, destination)
    assert (destination / "sdk" / "8.0.100" / "dotnet.dll").is_file()
    assert (destination / "shared" / "Microsoft.NETCore.App" / "8.0.0").is_dir()


def test_missing_package_is_an_acquisition_error(tmp_path: Path, feed_dir: Path) -> None:
    with pytest.raises(AcquisitionError):
        ArchiveAcquirer(str(feed_dir)).acquire(ComponentKind.SDK, V, "linux-x64", tmp_path / "out")


def test_zip_packages_are_supported(tmp_path: Path) -> None:
    archive = tmp_path / "pkg.zip"
    with zipfile.ZipFile(archive, "w") as bundle:
        bundle.writestr("sdk/8.0.100/dotnet.dll", "dll")
    extract_archive(archive, tmp_path / "out")
    assert (tmp_path / "out" / "sdk" / "8.0.100" / "dotnet.dll").read_text() == "dll"


@pytest.mark.parametrize("name", ["../escape.txt", "sdk/../../escape.txt"])
def test_tar_traversal_is_rejected(tmp_path: Path, name: str) -> None:
    archive = _tar_with(tmp_path / "evil.tar.gz", name)
    with pytest.raises(ExtractionError):
        extract_archive(archive, tmp_path / "out")
    assert not (tmp_path / "escape.txt").exists()


def test_zip_traversal_is_rejected(tmp_path: Path) -> None:
    archive = tmp_path / "evil.zip"
    with zipfile.ZipFile(archive, "w") as bundle:
        bundle.writestr("../escape.txt", "x")
    with pytest.raises(ExtractionError):
        extract_archive(archive, tmp_path / "out")


def test_truncated_archive_is_an_extraction_error(tmp_path: Path) -> None:
    archive = tmp_path / "broken.tar.gz"
    archive.write_bytes(b"\x1f\x8b\x08not really gzip")
    with pytest.raises(ExtractionError):
        extract_archive(archive, tmp_path / "out")


class StreamResponse:
    def __init__(self, status_code: int, body: bytes = b"") -> None:
        self.status_code = status_code
        self._body = body

    def __enter__(self) -> "StreamResponse":
        return self

    def __exit__(self, *exc: Any) -> None:
        return None

    def iter_content(self, chunk_size: int) -> Iterator[bytes]:
        for start in range(0, len(self._body), chunk_size):
            yield self._body[start : start + chunk_size]


class DummySession:
    def __init__(self, responses: dict[str, StreamResponse]) -> None:
        self._responses = responses
        self.calls: list[str] = []

    def get(self, url: str, stream: bool = False, timeout: int | None = None) -> StreamResponse:
        self.calls.append(url)
        return self._responses.get(url, StreamResponse(404))


def test_remote_feed_falls_back_to_second_format(tmp_path: Path) -> None:
    archive = tmp_path / "pkg.zip"
    with zipfile.ZipFile(archive, "w") as bundle:
        bundle.writestr("sdk/8.0.100/dotnet.dll", "dll")
    zip_url = "https://feed.test/dotnet-sdk-8.0.100-linux-x64.zip"
    session = DummySession({zip_url: StreamResponse(200, archive.read_bytes())})
    acquirer = ArchiveAcquirer("https://feed.test/", session=session)  # type: ignore[arg-type]

    acquirer.acquire(ComponentKind.SDK, V, "linux-x64", tmp_path / "out")

    assert session.calls == ["https://feed.test/dotnet-sdk-8.0.100-linux-x64.tar.gz", zip_url]
    assert (tmp_path / "out" / "sdk" / "8.0.100" / "dotnet.dll").is_file()


def test_remote_server_error_is_an_acquisition_error(tmp_path: Path) -> None:
    url = "https://feed.test/dotnet-sdk-8.0.100-linux-x64.tar.gz"
    session = DummySession({url: StreamResponse(500)})
    acquirer = ArchiveAcquirer("https://feed.test", session=session)  # type: ignore[arg-type]
    with pytest.raises(AcquisitionError):
        acquirer.acquire(ComponentKind.SDK, V, "linux-x64", tmp_path / "out")
