"""Domain primitives for install lifecycle management."""

from .compat import ensure_compatible, is_compatible
from .layout import InstallLayout, runtime_identifier
from .plan import UninstallPlan, build_uninstall_plan
from .usage import compute_deletable_components, same_version_requirements
from .value_objects import (
    ComponentKind,
    ComponentRequirement,
    InstallRecord,
    OwnershipScope,
    ReleaseVersion,
)

__all__ = [
    "ComponentKind",
    "ComponentRequirement",
    "InstallLayout",
    "InstallRecord",
    "OwnershipScope",
    "ReleaseVersion",
    "UninstallPlan",
    "build_uninstall_plan",
    "compute_deletable_components",
    "ensure_compatible",
    "is_compatible",
    "runtime_identifier",
    "same_version_requirements",
]
