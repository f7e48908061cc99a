"""Uninstall plans computed before any file is touched."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import FrozenSet, Iterable, List, Tuple

from .errors import NotInstalledError
from .layout import InstallLayout
from .usage import RequirementsFn, compute_deletable_components, same_version_requirements
from .value_objects import ComponentKind, ComponentRequirement, InstallRecord


@dataclass(frozen=True)
class UninstallPlan:
    """Immutable description of what an uninstall will delete."""

    record: InstallRecord
    directories: Tuple[Path, ...] = ()
    components: FrozenSet[ComponentRequirement] = field(default_factory=frozenset)
    valid: bool = False
    manifest_fingerprint: str = ""
    problem: NotInstalledError | None = None

    @classmethod
    def not_installed(cls, record: InstallRecord, fingerprint: str) -> "UninstallPlan":
        problem = NotInstalledError(f"{record.describe()} is not installed under {record.root_path}.")
        return cls(record=record, valid=False, manifest_fingerprint=fingerprint, problem=problem)

    def to_dict(self) -> dict:
        return {
            "record": self.record.to_dict(),
            "valid": self.valid,
            "directories": [path.as_posix() for path in self.directories],
            "components": sorted(str(item) for item in self.components),
            "problem": str(self.problem) if self.problem else None,
        }


def directories_for(
    layout: InstallLayout,
    components: Iterable[ComponentRequirement],
    rid: str,
) -> List[Path]:
    """Existing directories owned by ``components``, SDK directories first."""

    ordered = sorted(components, key=lambda item: (item.kind is not ComponentKind.SDK, item.kind.value, item.version))
    directories: List[Path] = []
    for component in ordered:
        for path in layout.component_dirs(component.kind, component.version, rid):
            if path.is_dir() and path not in directories:
                directories.append(path)
    return directories


def build_uninstall_plan(
    target: InstallRecord,
    records: Iterable[InstallRecord],
    fingerprint: str,
    rid: str,
    requirements: RequirementsFn = same_version_requirements,
    *,
    preview: bool = False,
) -> UninstallPlan:
    """Plan the removal of ``target``.

    An absent target yields an invalid plan. With ``preview`` the plan still
    lists what would be removed, as if the target were installed once.
    """

    record_list = list(records)
    installed = any(record.same_identity(target) for record in record_list)
    if not installed and not preview:
        return UninstallPlan.not_installed(target, fingerprint)
    components = compute_deletable_components(target, record_list, requirements)
    directories = directories_for(InstallLayout(target.root_path), components, rid)
    problem = None if installed else UninstallPlan.not_installed(target, fingerprint).problem
    return UninstallPlan(
        record=target,
        directories=tuple(directories),
        components=components,
        valid=installed,
        manifest_fingerprint=fingerprint,
        problem=problem,
    )


__all__ = ["UninstallPlan", "build_uninstall_plan", "directories_for"]
