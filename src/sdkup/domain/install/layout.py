"""Directory layout of a platform root."""

from __future__ import annotations

import platform
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import List

from .value_objects import ComponentKind, ReleaseVersion

MANIFEST_FILENAME = "sdkup_manifest.json"
STAGING_DIRNAME = ".sdkup-staging"

_ARCH_ALIASES = {
    "amd64": "x64",
    "x86_64": "x64",
    "x64": "x64",
    "i386": "x86",
    "i686": "x86",
    "x86": "x86",
    "aarch64": "arm64",
    "arm64": "arm64",
    "armv7l": "arm",
    "arm": "arm",
}


def normalise_architecture(value: str) -> str:
    key = value.strip().lower()
    if key not in _ARCH_ALIASES:
        raise ValueError(f"Unsupported architecture '{value}'")
    return _ARCH_ALIASES[key]


def current_architecture() -> str:
    return normalise_architecture(platform.machine() or "x64")


def runtime_identifier(architecture: str, *, os_name: str | None = None) -> str:
    """Return the runtime identifier (``linux-x64``, ``win-arm64``...) for an architecture."""

    system = os_name or sys.platform
    if system.startswith("win"):
        prefix = "win"
    elif system == "darwin" or system == "osx":
        prefix = "osx"
    else:
        prefix = "linux"
    return f"{prefix}-{normalise_architecture(architecture)}"


@dataclass(frozen=True)
class InstallLayout:
    root: Path

    @property
    def manifest_path(self) -> Path:
        return self.root / MANIFEST_FILENAME

    @property
    def staging_root(self) -> Path:
        return self.root / STAGING_DIRNAME

    def sdk_dir(self, version: ReleaseVersion) -> Path:
        return self.root / "sdk" / str(version)

    def shared_dir(self, kind: ComponentKind, version: ReleaseVersion) -> Path:
        return self.root / "shared" / kind.component_name / str(version)

    def shared_versions_dir(self, kind: ComponentKind) -> Path:
        return self.root / "shared" / kind.component_name

    def hostfxr_dir(self, version: ReleaseVersion) -> Path:
        return self.root / "host" / "fxr" / str(version)

    def host_pack_dir(self, kind: ComponentKind, rid: str, version: ReleaseVersion) -> Path:
        return self.root / "packs" / f"{kind.component_name}.Host.{rid}" / str(version)

    def templates_dir(self, version: ReleaseVersion) -> Path:
        return self.root / "templates" / str(version)

    def component_dirs(self, kind: ComponentKind, version: ReleaseVersion, rid: str) -> List[Path]:
        """All directories owned by one component version, existing or not."""

        if kind is ComponentKind.SDK:
            return [self.sdk_dir(version)]
        dirs = [self.shared_dir(kind, version)]
        if kind is ComponentKind.CORE_RUNTIME:
            dirs.append(self.hostfxr_dir(version))
            dirs.append(self.host_pack_dir(kind, rid, version))
        elif kind is ComponentKind.WEB_RUNTIME:
            dirs.append(self.templates_dir(version))
        return dirs

    def primary_dir(self, kind: ComponentKind, version: ReleaseVersion) -> Path:
        if kind is ComponentKind.SDK:
            return self.sdk_dir(version)
        return self.shared_dir(kind, version)


__all__ = [
    "InstallLayout",
    "MANIFEST_FILENAME",
    "STAGING_DIRNAME",
    "current_architecture",
    "normalise_architecture",
    "runtime_identifier",
]
