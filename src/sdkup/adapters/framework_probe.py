"""Filesystem-backed framework probe reading ``*.runtimeconfig.json`` files."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Iterable, List, Tuple

from sdkup.domain.install.layout import InstallLayout
from sdkup.domain.install.value_objects import (
    ComponentKind,
    ComponentRequirement,
    InstallRecord,
    ReleaseVersion,
)
from sdkup.domain.install.usage import same_version_requirements
from sdkup.ports.framework_probe import FrameworkProbe

RUNTIMECONFIG_SUFFIX = ".runtimeconfig.json"


def _frameworks(document: Any) -> List[dict]:
    if not isinstance(document, dict):
        return []
    options = document.get("runtimeOptions")
    if not isinstance(options, dict):
        return []
    entries: List[dict] = []
    single = options.get("framework")
    if isinstance(single, dict):
        entries.append(single)
    many = options.get("frameworks")
    if isinstance(many, list):
        entries.extend(item for item in many if isinstance(item, dict))
    return entries


def parse_runtimeconfig(path: Path) -> Tuple[ComponentRequirement, ...]:
    """Return the shared frameworks a runtimeconfig file asks for.

    Unknown framework names and unparsable versions are skipped.
    """

    try:
        document = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError):
        return ()
    requirements: List[ComponentRequirement] = []
    for entry in _frameworks(document):
        try:
            kind = ComponentKind.from_component_name(str(entry.get("name", "")))
        except ValueError:
            continue
        version = ReleaseVersion.try_parse(str(entry.get("version", "")))
        if version is None or not kind.is_shared:
            continue
        requirement = ComponentRequirement(kind, version)
        if requirement not in requirements:
            requirements.append(requirement)
    return tuple(requirements)


class RuntimeConfigProbe(FrameworkProbe):
    """Discovers requirements from runtimeconfig files at the top of an install directory."""

    def get_required_components(self, install_path: Path, record: InstallRecord) -> Tuple[ComponentRequirement, ...]:
        if not install_path.is_dir():
            return ()
        found: List[ComponentRequirement] = []
        for candidate in sorted(install_path.glob("*" + RUNTIMECONFIG_SUFFIX)):
            for requirement in parse_runtimeconfig(candidate):
                if requirement not in found:
                    found.append(requirement)
        return tuple(found)

    def available_versions(self, root: Path, kind: ComponentKind) -> Tuple[ReleaseVersion, ...]:
        return tuple(sorted(_scan_versions(InstallLayout(root).shared_versions_dir(kind))))


class SameVersionProbe(FrameworkProbe):
    """Assumes an SDK needs every shared runtime at its own version."""

    def get_required_components(self, install_path: Path, record: InstallRecord) -> Tuple[ComponentRequirement, ...]:
        if record.kind is not ComponentKind.SDK:
            return ()
        return same_version_requirements(record)

    def available_versions(self, root: Path, kind: ComponentKind) -> Tuple[ReleaseVersion, ...]:
        return tuple(sorted(_scan_versions(InstallLayout(root).shared_versions_dir(kind))))


def _scan_versions(directory: Path) -> Iterable[ReleaseVersion]:
    if not directory.is_dir():
        return []
    versions = []
    for entry in directory.iterdir():
        if not entry.is_dir():
            continue
        version = ReleaseVersion.try_parse(entry.name)
        if version is not None:
            versions.append(version)
    return versions


__all__ = ["RuntimeConfigProbe", "SameVersionProbe", "parse_runtimeconfig"]
