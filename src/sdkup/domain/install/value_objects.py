"""Value objects describing installed components."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from functools import total_ordering
from pathlib import Path
from typing import Any, Dict, Tuple

from packaging.version import Version

_VERSION_PATTERN = re.compile(
    r"^(?P<major>0|[1-9]\d*)\.(?P<minor>0|[1-9]\d*)\.(?P<patch>0|[1-9]\d*)"
    r"(?:-(?P<prerelease>[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?"
    r"(?:\+(?P<build>[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?$"
)


@total_ordering
@dataclass(frozen=True)
class ReleaseVersion:
    """Fully specified semantic version (``major.minor.patch[-prerelease]``).

    Build metadata is kept for display only; it takes no part in equality or ordering.
    """

    major: int
    minor: int
    patch: int
    prerelease: str = ""
    build: str = field(default="", compare=False)

    @classmethod
    def parse(cls, value: str) -> "ReleaseVersion":
        match = _VERSION_PATTERN.match(value.strip())
        if match is None:
            raise ValueError(f"'{value}' is not a fully specified version")
        return cls(
            major=int(match.group("major")),
            minor=int(match.group("minor")),
            patch=int(match.group("patch")),
            prerelease=match.group("prerelease") or "",
            build=match.group("build") or "",
        )

    @classmethod
    def try_parse(cls, value: str) -> "ReleaseVersion | None":
        try:
            return cls.parse(value)
        except ValueError:
            return None

    @property
    def base(self) -> Version:
        return Version(f"{self.major}.{self.minor}.{self.patch}")

    @property
    def is_prerelease(self) -> bool:
        return bool(self.prerelease)

    @property
    def feature_band(self) -> int:
        """SDK feature band, e.g. ``1`` for ``8.0.1xx``."""
        return self.patch // 100

    def _prerelease_key(self) -> Tuple[Tuple[int, int, str], ...]:
        parts = []
        for item in self.prerelease.split("."):
            if item.isdigit():
                parts.append((0, int(item), ""))
            else:
                parts.append((1, 0, item))
        return tuple(parts)

    def sort_key(self) -> tuple:
        # a release sorts above any of its pre-releases
        return (self.base, 0 if self.prerelease else 1, self._prerelease_key())

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, ReleaseVersion):
            return NotImplemented
        return self.sort_key() < other.sort_key()

    def __str__(self) -> str:
        text = f"{self.major}.{self.minor}.{self.patch}"
        if self.prerelease:
            text += f"-{self.prerelease}"
        if self.build:
            text += f"+{self.build}"
        return text


class ComponentKind(str, Enum):
    SDK = "sdk"
    CORE_RUNTIME = "runtime"
    WEB_RUNTIME = "aspnetcore"
    DESKTOP_RUNTIME = "windowsdesktop"

    @property
    def is_shared(self) -> bool:
        return self is not ComponentKind.SDK

    @property
    def component_name(self) -> str:
        """Directory name of the component under ``shared/``."""
        return _COMPONENT_NAMES[self]

    @property
    def package_id(self) -> str:
        """Archive name prefix used by package feeds."""
        return _PACKAGE_IDS[self]

    @classmethod
    def shared_kinds(cls) -> Tuple["ComponentKind", ...]:
        return (cls.CORE_RUNTIME, cls.WEB_RUNTIME, cls.DESKTOP_RUNTIME)

    @classmethod
    def from_component_name(cls, name: str) -> "ComponentKind":
        for kind, component in _COMPONENT_NAMES.items():
            if component == name:
                return kind
        raise ValueError(f"Unknown component '{name}'")


_COMPONENT_NAMES = {
    ComponentKind.SDK: "sdk",
    ComponentKind.CORE_RUNTIME: "Microsoft.NETCore.App",
    ComponentKind.WEB_RUNTIME: "Microsoft.AspNetCore.App",
    ComponentKind.DESKTOP_RUNTIME: "Microsoft.WindowsDesktop.App",
}

_PACKAGE_IDS = {
    ComponentKind.SDK: "dotnet-sdk",
    ComponentKind.CORE_RUNTIME: "dotnet-runtime",
    ComponentKind.WEB_RUNTIME: "aspnetcore-runtime",
    ComponentKind.DESKTOP_RUNTIME: "windowsdesktop-runtime",
}


class OwnershipScope(str, Enum):
    USER = "user"
    MACHINE = "machine"


@dataclass(frozen=True)
class ComponentRequirement:
    """A component version required by an installed record."""

    kind: ComponentKind
    version: ReleaseVersion

    def __str__(self) -> str:
        return f"{self.kind.component_name} {self.version}"


@dataclass(frozen=True)
class InstallRecord:
    """One concrete installed component under a platform root."""

    version: ReleaseVersion
    root_path: Path
    kind: ComponentKind = ComponentKind.SDK
    architecture: str = "x64"
    scope: OwnershipScope = OwnershipScope.USER
    managing_tool: str = "sdkup"

    def __post_init__(self) -> None:
        if not self.root_path.is_absolute():
            raise ValueError(f"Install root must be absolute: {self.root_path}")
        if not self.architecture.strip():
            raise ValueError("Architecture must be a non-empty string")

    @property
    def identity(self) -> Tuple[ReleaseVersion, ComponentKind, str, str]:
        return (self.version, self.kind, self.architecture, self.managing_tool)

    def same_identity(self, other: "InstallRecord") -> bool:
        return self.identity == other.identity

    def describe(self) -> str:
        return f"{self.kind.value} {self.version} ({self.architecture})"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": str(self.version),
            "kind": self.kind.value,
            "architecture": self.architecture,
            "scope": self.scope.value,
            "managingTool": self.managing_tool,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], root_path: Path) -> "InstallRecord":
        return cls(
            version=ReleaseVersion.parse(str(data["version"])),
            root_path=root_path,
            kind=ComponentKind(data["kind"]),
            architecture=str(data["architecture"]),
            scope=OwnershipScope(data.get("scope", OwnershipScope.USER.value)),
            managing_tool=str(data.get("managingTool", "sdkup")),
        )


__all__ = [
    "ComponentKind",
    "ComponentRequirement",
    "InstallRecord",
    "OwnershipScope",
    "ReleaseVersion",
]
