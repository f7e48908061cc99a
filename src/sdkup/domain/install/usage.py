"""Reference counting for shared runtime components."""

from __future__ import annotations

from typing import Callable, Dict, FrozenSet, Iterable, Set, Tuple

from .value_objects import ComponentKind, ComponentRequirement, InstallRecord, ReleaseVersion

RequirementsFn = Callable[[InstallRecord], Iterable[ComponentRequirement]]


def same_version_requirements(record: InstallRecord) -> Tuple[ComponentRequirement, ...]:
    """Assume an SDK needs every shared component at its own version.

    Runtime records require only themselves.
    """

    if record.kind is ComponentKind.SDK:
        return tuple(ComponentRequirement(kind, record.version) for kind in ComponentKind.shared_kinds())
    return (ComponentRequirement(record.kind, record.version),)


def with_bundled_runtimes(requirements: Iterable[ComponentRequirement]) -> Tuple[ComponentRequirement, ...]:
    """Add the web and desktop runtimes shipped alongside each required core runtime.

    SDK archives bundle every shared runtime at the core runtime's version, while
    runtimeconfig files usually name the core runtime only.
    """

    result = list(requirements)
    for requirement in list(result):
        if requirement.kind is not ComponentKind.CORE_RUNTIME:
            continue
        for kind in (ComponentKind.WEB_RUNTIME, ComponentKind.DESKTOP_RUNTIME):
            if not any(item.kind is kind for item in result):
                result.append(ComponentRequirement(kind, requirement.version))
    return tuple(result)


def components_in_use(records: Iterable[InstallRecord], requirements: RequirementsFn) -> Dict[ComponentKind, Set[ReleaseVersion]]:
    in_use: Dict[ComponentKind, Set[ReleaseVersion]] = {kind: set() for kind in ComponentKind.shared_kinds()}
    for record in records:
        for requirement in requirements(record):
            if requirement.kind.is_shared:
                in_use[requirement.kind].add(requirement.version)
    return in_use


def compute_deletable_components(
    target: InstallRecord,
    all_records: Iterable[InstallRecord],
    requirements: RequirementsFn = same_version_requirements,
) -> FrozenSet[ComponentRequirement]:
    """Return the components that can be removed together with ``target``.

    A shared component is deletable when no other record still requires that
    version. The target's own SDK directory is never shared. When ``target`` is
    missing from ``all_records`` the answer is the same as if it were present
    once, which makes this usable for dry runs.
    """

    others = [record for record in all_records if not record.same_identity(target)]
    in_use = components_in_use(others, requirements)

    deletable: Set[ComponentRequirement] = set()
    if target.kind is ComponentKind.SDK:
        deletable.add(ComponentRequirement(ComponentKind.SDK, target.version))
    for requirement in requirements(target):
        if not requirement.kind.is_shared:
            continue
        if requirement.version not in in_use[requirement.kind]:
            deletable.add(requirement)
    return frozenset(deletable)


__all__ = [
    "RequirementsFn",
    "components_in_use",
    "compute_deletable_components",
    "same_version_requirements",
    "with_bundled_runtimes",
]
