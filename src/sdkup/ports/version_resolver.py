"""Port definition for channel and version resolution."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass

from sdkup.domain.install.value_objects import ComponentKind, ReleaseVersion


@dataclass(frozen=True)
class ResolutionConstraints:
    kind: ComponentKind = ComponentKind.SDK
    architecture: str = "x64"
    allow_prerelease: bool = False


class VersionResolver(ABC):
    @abstractmethod
    def resolve(self, channel_or_version: str, constraints: ResolutionConstraints) -> ReleaseVersion:
        """Return the concrete version for a channel or version string.

        Raises ``VersionResolutionError`` when nothing matches.
        """
