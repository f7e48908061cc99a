"""Runtime compatibility rules."""

from __future__ import annotations

from typing import Iterable

from .errors import IncompatibleRuntimeError
from .value_objects import ComponentRequirement, ReleaseVersion


def is_compatible(
    required: ReleaseVersion,
    current: ReleaseVersion,
    *,
    allow_roll_forward: bool = False,
    force: bool = False,
) -> bool:
    """Return whether ``current`` can run content built for ``required``.

    Majors must match and ``current`` must be at least ``required``. Roll-forward
    accepts any newer major; force accepts everything.
    """

    if force:
        return True
    if allow_roll_forward:
        return current.major >= required.major
    if current.major != required.major:
        return False
    return current >= required


def best_match(
    requirement: ComponentRequirement,
    available: Iterable[ReleaseVersion],
    *,
    allow_roll_forward: bool = False,
) -> ReleaseVersion | None:
    candidates = [
        version
        for version in available
        if is_compatible(requirement.version, version, allow_roll_forward=allow_roll_forward)
    ]
    return max(candidates) if candidates else None


def remediation_for(requirement: ComponentRequirement, installing: ComponentRequirement) -> str:
    version = requirement.version
    target = f"--kind {installing.kind.value} --version {installing.version}"
    return "\n".join(
        [
            f"{installing} wasn't installed because it won't run on this machine. Resolve it in one of these ways:",
            "",
            "1. Retry and allow running on a newer runtime:",
            f"    sdkup install {target} --allow-roll-forward",
            "",
            f"2. Install {requirement.kind.component_name} {version.major}.{version.minor} or later first:",
            f"    sdkup install --kind {requirement.kind.value} --version {version.major}.{version.minor}",
            "",
            "3. Install anyway and configure the runtime manually:",
            f"    sdkup install {target} --force",
        ]
    )


def ensure_compatible(
    requirement: ComponentRequirement,
    available: Iterable[ReleaseVersion],
    *,
    installing: ComponentRequirement,
    allow_roll_forward: bool = False,
    force: bool = False,
) -> ReleaseVersion | None:
    """Return the runtime that satisfies ``requirement`` or raise ``IncompatibleRuntimeError``."""

    if force:
        return None
    match = best_match(requirement, available, allow_roll_forward=allow_roll_forward)
    if match is None:
        raise IncompatibleRuntimeError(
            f"{installing} requires {requirement} which is not available.",
            remediation=remediation_for(requirement, installing),
        )
    return match


__all__ = ["best_match", "ensure_compatible", "is_compatible", "remediation_for"]
