from __future__ import annotations

import io
import json
import tarfile
from pathlib import Path
from typing import Callable

import pytest

from sdkup.adapters.archive_acquirer import ArchiveAcquirer
from sdkup.adapters.framework_probe import RuntimeConfigProbe
from sdkup.adapters.manifest_store import ManifestStore
from sdkup.adapters.release_index import ExactVersionResolver
from sdkup.app.install.service import InstallRequest, InstallService
from sdkup.domain.install.errors import (
    AlreadyInstalledError,
    ExtractionError,
    IncompatibleRuntimeError,
    VersionResolutionError,
)
from sdkup.domain.install.layout import STAGING_DIRNAME
from sdkup.domain.install.value_objects import ComponentKind, ReleaseVersion
from sdkup.ports.progress import ProgressReporter


class RecordingProgress(ProgressReporter):
    def __init__(self) -> None:
        self.events: list[tuple[str, str | None]] = []

    def start(self, description: str, total: int) -> None:
        self.events.append(("start", description))

    def advance(self, message: str | None = None, amount: int = 1) -> None:
        self.events.append(("advance", message))

    def complete(self, message: str | None = None) -> None:
        self.events.append(("complete", message))


def _sdk_only_package(feed: Path, version: str, requires: str, rid: str) -> Path:
    """An SDK archive that bundles no runtime but declares one."""

    archive = feed / f"dotnet-sdk-{version}-{rid}.tar.gz"
    files = {
        f"sdk/{version}/dotnet.dll": b"dll",
        f"sdk/{version}/dotnet.runtimeconfig.json": json.dumps(
            {"runtimeOptions": {"framework": {"name": "Microsoft.NETCore.App", "version": requires}}}
        ).encode("utf-8"),
    }
    with tarfile.open(archive, "w:gz") as bundle:
        for name, data in files.items():
            info = tarfile.TarInfo(name)
            info.size = len(data)
            bundle.addfile(info, io.BytesIO(data))
    return archive


@pytest.fixture()
def service(feed_dir: Path) -> InstallService:
    return InstallService(
        resolver=ExactVersionResolver(),
        acquirer=ArchiveAcquirer(str(feed_dir)),
        probe=RuntimeConfigProbe(),
    )


def _request(root: Path, version: str, **kwargs) -> InstallRequest:
    return InstallRequest(channel_or_version=version, install_path=root, architecture="x64", **kwargs)


def test_install_places_components_and_records(
    tmp_path: Path, service: InstallService, publish: Callable[..., Path], rid: str
) -> None:
    publish(ComponentKind.SDK, "8.0.100", runtime="8.0.0")
    root = tmp_path / "dotnet"

    record = service.install(_request(root, "8.0.100"))

    assert record.version == ReleaseVersion.parse("8.0.100")
    assert record.root_path == root.resolve()
    assert (root / "sdk" / "8.0.100" / "dotnet.dll").is_file()
    assert (root / "shared" / "Microsoft.NETCore.App" / "8.0.0").is_dir()
    assert (root / "packs" / f"Microsoft.NETCore.App.Host.{rid}" / "8.0.0").is_dir()
    assert (root / "dotnet").is_file()
    assert not (root / STAGING_DIRNAME).exists()
    assert list(ManifestStore(root.resolve()).load()) == [record]


def test_second_sdk_reuses_existing_shared_runtime(
    tmp_path: Path, service: InstallService, publish: Callable[..., Path]
) -> None:
    publish(ComponentKind.SDK, "8.0.100", runtime="8.0.0")
    publish(ComponentKind.SDK, "8.0.200", runtime="8.0.0")
    root = tmp_path / "dotnet"
    service.install(_request(root, "8.0.100"))
    marker = root / "shared" / "Microsoft.NETCore.App" / "8.0.0" / "marker"
    marker.write_text("first")

    service.install(_request(root, "8.0.200"))

    assert marker.read_text() == "first"
    assert [str(item.version) for item in ManifestStore(root.resolve()).load()] == ["8.0.100", "8.0.200"]


def test_extraction_failure_rolls_back_and_removes_new_root(
    tmp_path: Path, service: InstallService, feed_dir: Path, rid: str
) -> None:
    (feed_dir / f"dotnet-sdk-8.0.100-{rid}.tar.gz").write_bytes(b"not an archive")
    root = tmp_path / "dotnet"

    with pytest.raises(ExtractionError):
        service.install(_request(root, "8.0.100"))

    assert not root.exists()


def test_rollback_keeps_existing_root_and_its_content(
    tmp_path: Path, service: InstallService, feed_dir: Path, rid: str
) -> None:
    (feed_dir / f"dotnet-sdk-8.0.100-{rid}.tar.gz").write_bytes(b"not an archive")
    root = tmp_path / "dotnet"
    root.mkdir()
    (root / "README").write_text("keep me")

    with pytest.raises(ExtractionError):
        service.install(_request(root, "8.0.100"))

    assert sorted(path.name for path in root.iterdir()) == ["README"]


def test_reinstall_is_rejected_without_touching_files(
    tmp_path: Path, service: InstallService, publish: Callable[..., Path]
) -> None:
    publish(ComponentKind.SDK, "8.0.100", runtime="8.0.0")
    root = tmp_path / "dotnet"
    service.install(_request(root, "8.0.100"))

    with pytest.raises(AlreadyInstalledError):
        service.install(_request(root, "8.0.100"))

    assert (root / "sdk" / "8.0.100" / "dotnet.dll").is_file()
    assert len(ManifestStore(root.resolve()).load()) == 1


def test_unrecorded_directory_blocks_install(
    tmp_path: Path, service: InstallService, publish: Callable[..., Path]
) -> None:
    publish(ComponentKind.SDK, "8.0.100", runtime="8.0.0")
    root = tmp_path / "dotnet"
    (root / "sdk" / "8.0.100").mkdir(parents=True)
    (root / "sdk" / "8.0.100" / "foreign.dll").write_text("x")

    with pytest.raises(AlreadyInstalledError):
        service.install(_request(root, "8.0.100"))


def test_incompatible_runtime_rolls_back_with_remediation(
    tmp_path: Path, service: InstallService, feed_dir: Path, dotnet_tree: Callable[..., Path], rid: str
) -> None:
    root = tmp_path / "dotnet"
    dotnet_tree(root, runtime="8.5.0", rid=rid)
    _sdk_only_package(feed_dir, "9.0.100", "9.0.0", rid)

    with pytest.raises(IncompatibleRuntimeError) as excinfo:
        service.install(_request(root, "9.0.100"))

    assert "--allow-roll-forward" in str(excinfo.value)
    assert not (root / "sdk" / "9.0.100").exists()
    assert not (root / "sdk").exists()
    assert (root / "shared" / "Microsoft.NETCore.App" / "8.5.0").is_dir()
    assert len(ManifestStore(root.resolve()).load()) == 0


def test_roll_forward_accepts_newer_runtime(
    tmp_path: Path, service: InstallService, feed_dir: Path, dotnet_tree: Callable[..., Path], rid: str
) -> None:
    root = tmp_path / "dotnet"
    dotnet_tree(root, runtime="9.0.0", rid=rid)
    _sdk_only_package(feed_dir, "8.0.100", "8.0.0", rid)

    with pytest.raises(IncompatibleRuntimeError):
        service.install(_request(root, "8.0.100"))
    record = service.install(_request(root, "8.0.100", allow_roll_forward=True))

    assert record in ManifestStore(root.resolve()).load()


def test_force_skips_compatibility(tmp_path: Path, service: InstallService, feed_dir: Path, rid: str) -> None:
    _sdk_only_package(feed_dir, "9.0.100", "9.0.0", rid)
    root = tmp_path / "dotnet"

    record = service.install(_request(root, "9.0.100", force=True))

    assert (root / "sdk" / "9.0.100").is_dir()
    assert list(ManifestStore(root.resolve()).load()) == [record]


def test_runtime_install(tmp_path: Path, service: InstallService, publish: Callable[..., Path]) -> None:
    publish(ComponentKind.CORE_RUNTIME, "8.0.4")
    root = tmp_path / "dotnet"

    record = service.install(_request(root, "8.0.4", kind=ComponentKind.CORE_RUNTIME))

    assert record.kind is ComponentKind.CORE_RUNTIME
    assert (root / "shared" / "Microsoft.NETCore.App" / "8.0.4").is_dir()
    assert (root / "host" / "fxr" / "8.0.4").is_dir()


def test_resolution_failure_creates_nothing(tmp_path: Path, service: InstallService) -> None:
    root = tmp_path / "dotnet"
    with pytest.raises(VersionResolutionError):
        service.install(_request(root, "8.0"))
    assert not root.exists()


def test_progress_is_reported(tmp_path: Path, feed_dir: Path, publish: Callable[..., Path]) -> None:
    publish(ComponentKind.SDK, "8.0.100", runtime="8.0.0")
    progress = RecordingProgress()
    service = InstallService(
        resolver=ExactVersionResolver(),
        acquirer=ArchiveAcquirer(str(feed_dir)),
        probe=RuntimeConfigProbe(),
        progress=progress,
    )
    service.install(_request(tmp_path / "dotnet", "8.0.100"))
    kinds = [kind for kind, _ in progress.events]
    assert kinds[0] == "start"
    assert kinds[-1] == "complete"
    assert kinds.count("advance") == 4


def _sdk_with_extras(feed: Path, version: str, rid: str, *, requires: str | None = None) -> Path:
    files = {
        f"sdk/{version}/dotnet.dll": b"dll",
        f"sdk-manifests/{version}/microsoft.net.workloads/WorkloadManifest.json": b"{}",
        f"metadata/workloads/{version}/installertype": b"archive",
    }
    if requires:
        files[f"sdk/{version}/dotnet.runtimeconfig.json"] = json.dumps(
            {"runtimeOptions": {"framework": {"name": "Microsoft.NETCore.App", "version": requires}}}
        ).encode("utf-8")
    archive = feed / f"dotnet-sdk-{version}-{rid}.tar.gz"
    with tarfile.open(archive, "w:gz") as bundle:
        for name, data in files.items():
            info = tarfile.TarInfo(name)
            info.size = len(data)
            bundle.addfile(info, io.BytesIO(data))
    return archive


def test_second_sdk_merges_shared_top_level_folders(
    tmp_path: Path, service: InstallService, feed_dir: Path, rid: str
) -> None:
    _sdk_with_extras(feed_dir, "8.0.100", rid)
    _sdk_with_extras(feed_dir, "9.0.100", rid)
    root = tmp_path / "dotnet"

    service.install(_request(root, "8.0.100"))
    service.install(_request(root, "9.0.100"))

    assert sorted(path.name for path in (root / "sdk-manifests").iterdir()) == ["8.0.100", "9.0.100"]
    assert sorted(path.name for path in (root / "metadata" / "workloads").iterdir()) == ["8.0.100", "9.0.100"]
    assert (root / "sdk-manifests" / "9.0.100" / "microsoft.net.workloads" / "WorkloadManifest.json").is_file()


def test_rollback_removes_merged_content_only(
    tmp_path: Path, service: InstallService, feed_dir: Path, rid: str
) -> None:
    _sdk_with_extras(feed_dir, "8.0.100", rid)
    _sdk_with_extras(feed_dir, "9.0.100", rid, requires="9.0.0")
    root = tmp_path / "dotnet"
    service.install(_request(root, "8.0.100"))

    with pytest.raises(IncompatibleRuntimeError):
        service.install(_request(root, "9.0.100"))

    assert [path.name for path in (root / "metadata" / "workloads").iterdir()] == ["8.0.100"]
    assert [path.name for path in (root / "sdk-manifests").iterdir()] == ["8.0.100"]
    assert not (root / "sdk" / "9.0.100").exists()
