"""Per-invocation wiring of adapters and lifecycle services."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

import requests

from sdkup.adapters.archive_acquirer import ArchiveAcquirer
from sdkup.adapters.framework_probe import RuntimeConfigProbe, SameVersionProbe
from sdkup.adapters.manifest_store import Manifest, ManifestStore
from sdkup.adapters.progress import NullProgressReporter
from sdkup.adapters.release_index import ExactVersionResolver, ReleaseIndexResolver
from sdkup.app.install.service import InstallRequest, InstallService
from sdkup.app.uninstall.service import UninstallResult, UninstallService
from sdkup.domain.install.errors import AcquisitionError
from sdkup.domain.install.plan import UninstallPlan
from sdkup.domain.install.value_objects import InstallRecord, ReleaseVersion
from sdkup.ports.framework_probe import FrameworkProbe
from sdkup.ports.package_acquirer import PackageAcquirer
from sdkup.ports.progress import ProgressReporter
from sdkup.ports.version_resolver import ResolutionConstraints, VersionResolver
from sdkup.settings import RuntimeSettings


@dataclass
class InstallerOrchestrator:
    """Entry point for install, uninstall and listing against explicit collaborators."""

    settings: RuntimeSettings
    resolver: VersionResolver
    probe: FrameworkProbe
    acquirer: PackageAcquirer | None = None
    progress: ProgressReporter = field(default_factory=NullProgressReporter)

    @classmethod
    def from_settings(
        cls,
        settings: RuntimeSettings,
        *,
        progress: ProgressReporter | None = None,
        session: requests.Session | None = None,
    ) -> "InstallerOrchestrator":
        resolver: VersionResolver
        if settings.release_index:
            resolver = ReleaseIndexResolver(settings.release_index, session=session)
        else:
            resolver = ExactVersionResolver()
        acquirer = ArchiveAcquirer(settings.package_feed, session=session) if settings.package_feed else None
        probe: FrameworkProbe
        if settings.framework_probe == "same-version":
            probe = SameVersionProbe()
        else:
            probe = RuntimeConfigProbe()
        return cls(
            settings=settings,
            resolver=resolver,
            probe=probe,
            acquirer=acquirer,
            progress=progress or NullProgressReporter(),
        )

    def resolve(self, channel_or_version: str, constraints: ResolutionConstraints) -> ReleaseVersion:
        return self.resolver.resolve(channel_or_version, constraints)

    def install(self, request: InstallRequest) -> InstallRecord:
        if self.acquirer is None:
            raise AcquisitionError(
                "No package feed configured; set package_feed in config.yaml or SDKUP_PACKAGE_FEED."
            )
        service = InstallService(
            resolver=self.resolver,
            acquirer=self.acquirer,
            probe=self.probe,
            progress=self.progress,
            managing_tool=self.settings.managing_tool,
            lock_timeout=self.settings.lock_timeout,
        )
        return service.install(request)

    def uninstall(self, record: InstallRecord) -> UninstallResult:
        return self._uninstall_service().uninstall(record)

    def preview_uninstall(self, record: InstallRecord) -> UninstallPlan:
        return self._uninstall_service().preview(record)

    def list_installs(self, root: Path) -> Manifest:
        return ManifestStore(root.expanduser().resolve(), lock_timeout=self.settings.lock_timeout).load()

    def _uninstall_service(self) -> UninstallService:
        return UninstallService(probe=self.probe, progress=self.progress, lock_timeout=self.settings.lock_timeout)


__all__ = ["InstallerOrchestrator"]
