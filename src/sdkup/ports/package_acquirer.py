"""Port definition for package download and extraction."""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path

from sdkup.domain.install.value_objects import ComponentKind, ReleaseVersion


class PackageAcquirer(ABC):
    @abstractmethod
    def acquire(self, kind: ComponentKind, version: ReleaseVersion, rid: str, destination: Path) -> Path:
        """Unpack the package into ``destination`` and return it.

        Raises ``AcquisitionError`` or ``ExtractionError``.
        """
