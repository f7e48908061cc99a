"""Port definition for framework requirement discovery."""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Tuple

from sdkup.domain.install.value_objects import ComponentKind, ComponentRequirement, InstallRecord, ReleaseVersion


class FrameworkProbe(ABC):
    @abstractmethod
    def get_required_components(self, install_path: Path, record: InstallRecord) -> Tuple[ComponentRequirement, ...]:
        """Shared components the content at ``install_path`` needs to run."""

    @abstractmethod
    def available_versions(self, root: Path, kind: ComponentKind) -> Tuple[ReleaseVersion, ...]:
        """Versions of a shared component present under ``root``."""
