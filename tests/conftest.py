from __future__ import annotations

import sys
import os
import json
import tarfile
from pathlib import Path
from typing import Callable

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
SANDBOX_HOME = ROOT / ".test_place" / "global-home"
os.environ.setdefault("SDKUP_HOME", str(SANDBOX_HOME))
os.environ.setdefault("SDKUP_TELEMETRY", "0")
SANDBOX_HOME.mkdir(parents=True, exist_ok=True)
PYTEST_TEMP = Path(os.environ.get("PYTEST_DEBUG_TEMPROOT", "/tmp/sdkup-pytest")).resolve()
os.environ.setdefault("PYTEST_DEBUG_TEMPROOT", str(PYTEST_TEMP))
PYTEST_TEMP.mkdir(parents=True, exist_ok=True)
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from sdkup.domain.install.layout import runtime_identifier  # noqa: E402
from sdkup.domain.install.value_objects import ComponentKind, InstallRecord, ReleaseVersion  # noqa: E402


def _write(path: Path, content: str = "payload") -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


def build_tree(
    base: Path,
    *,
    sdk: str | None = None,
    runtime: str | None = None,
    rid: str | None = None,
    declare: bool = True,
    web: bool = True,
) -> Path:
    """Lay out an SDK and/or runtimes the way release archives do."""

    rid = rid or runtime_identifier("x64")
    _write(base / "dotnet", "#!/bin/sh\n")
    if sdk:
        _write(base / "sdk" / sdk / "dotnet.dll")
        if declare and runtime:
            config = {
                "runtimeOptions": {
                    "tfm": "net8.0",
                    "framework": {"name": "Microsoft.NETCore.App", "version": runtime},
                }
            }
            _write(base / "sdk" / sdk / "dotnet.runtimeconfig.json", json.dumps(config))
    if runtime:
        _write(base / "shared" / "Microsoft.NETCore.App" / runtime / "System.Private.CoreLib.dll")
        _write(base / "host" / "fxr" / runtime / "libhostfxr.so")
        _write(base / "packs" / f"Microsoft.NETCore.App.Host.{rid}" / runtime / "apphost")
        if web:
            _write(base / "shared" / "Microsoft.AspNetCore.App" / runtime / "Microsoft.AspNetCore.dll")
            _write(base / "templates" / runtime / "templates.nupkg")
    return base


@pytest.fixture()
def rid() -> str:
    return runtime_identifier("x64")


@pytest.fixture()
def dotnet_tree() -> Callable[..., Path]:
    return build_tree


@pytest.fixture()
def make_record() -> Callable[..., InstallRecord]:
    def factory(root: Path, version: str, kind: ComponentKind = ComponentKind.SDK, **kwargs) -> InstallRecord:
        return InstallRecord(
            version=ReleaseVersion.parse(version),
            root_path=root,
            kind=kind,
            architecture="x64",
            **kwargs,
        )

    return factory


@pytest.fixture()
def feed_dir(tmp_path: Path) -> Path:
    feed = tmp_path / "feed"
    feed.mkdir()
    return feed


@pytest.fixture()
def publish(tmp_path: Path, feed_dir: Path) -> Callable[..., Path]:
    """Write a ``.tar.gz`` package into the local feed and return its path."""

    def _publish(
        kind: ComponentKind,
        version: str,
        *,
        runtime: str | None = None,
        declare: bool = True,
        rid: str | None = None,
    ) -> Path:
        rid = rid or runtime_identifier("x64")
        staging = tmp_path / "package-src" / f"{kind.value}-{version}"
        if kind is ComponentKind.SDK:
            build_tree(staging, sdk=version, runtime=runtime, rid=rid, declare=declare)
        else:
            build_tree(staging, runtime=version, rid=rid, web=kind is ComponentKind.WEB_RUNTIME)
        archive = feed_dir / f"{kind.package_id}-{version}-{rid}.tar.gz"
        with tarfile.open(archive, "w:gz") as bundle:
            for path in sorted(staging.rglob("*")):
                bundle.add(path, arcname=path.relative_to(staging).as_posix(), recursive=False)
        return archive

    return _publish
