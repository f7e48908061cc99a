"""Application service installing SDK and runtime archives into a root."""

from __future__ import annotations

import logging
import shutil
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator, List

from sdkup.adapters.manifest_store import Manifest, ManifestStore
from sdkup.adapters.progress import NullProgressReporter
from sdkup.domain.install.compat import ensure_compatible
from sdkup.domain.install.errors import AlreadyInstalledError, ExtractionError
from sdkup.domain.install.layout import (
    InstallLayout,
    current_architecture,
    normalise_architecture,
    runtime_identifier,
)
from sdkup.domain.install.value_objects import (
    ComponentKind,
    ComponentRequirement,
    InstallRecord,
    OwnershipScope,
)
from sdkup.ports.framework_probe import FrameworkProbe
from sdkup.ports.package_acquirer import PackageAcquirer
from sdkup.ports.progress import ProgressReporter
from sdkup.ports.version_resolver import ResolutionConstraints, VersionResolver
from sdkup.settings import DEFAULT_LOCK_TIMEOUT, MANAGING_TOOL
from sdkup.utils import transaction
from sdkup.utils.transaction import TransactionContext, prune_empty_dirs

logger = logging.getLogger(__name__)

# How deep the versioned directories sit below each top-level archive folder.
_VERSIONED_DEPTH = {"sdk": 1, "sdk-manifests": 1, "templates": 1, "shared": 2, "packs": 2, "host": 2}
_STEPS = 5


@dataclass(frozen=True)
class InstallRequest:
    channel_or_version: str
    install_path: Path
    kind: ComponentKind = ComponentKind.SDK
    architecture: str = field(default_factory=current_architecture)
    scope: OwnershipScope = OwnershipScope.USER
    allow_roll_forward: bool = False
    force: bool = False
    allow_prerelease: bool = False


@dataclass
class InstallService:
    """Resolve, stage, place and record one component as a single transaction."""

    resolver: VersionResolver
    acquirer: PackageAcquirer
    probe: FrameworkProbe
    progress: ProgressReporter = field(default_factory=NullProgressReporter)
    managing_tool: str = MANAGING_TOOL
    lock_timeout: float = DEFAULT_LOCK_TIMEOUT

    def install(self, request: InstallRequest) -> InstallRecord:
        root = request.install_path.expanduser().resolve()
        architecture = normalise_architecture(request.architecture)
        layout = InstallLayout(root)
        root_existed = root.exists()
        context = TransactionContext()

        def action() -> InstallRecord:
            return self._install(request, layout, architecture, context)

        def rollback() -> None:
            logger.info("Rolling back install into %s", root)
            context.remove_created()
            prune_empty_dirs(layout.staging_root, root, keep_stop=root_existed)
            for path in context.created_directories:
                prune_empty_dirs(path.parent, root, keep_stop=root_existed)

        return transaction.run(action, rollback)

    def check_conflicts(self, manifest: Manifest, record: InstallRecord, layout: InstallLayout) -> None:
        if manifest.find(record) is not None:
            raise AlreadyInstalledError(f"{record.describe()} is already installed under {layout.root}.")
        final_dir = layout.primary_dir(record.kind, record.version)
        if final_dir.is_dir() and any(final_dir.iterdir()):
            raise AlreadyInstalledError(
                f"{final_dir} already exists but is not recorded in {layout.manifest_path}; "
                "remove it or choose another install path."
            )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _install(
        self,
        request: InstallRequest,
        layout: InstallLayout,
        architecture: str,
        context: TransactionContext,
    ) -> InstallRecord:
        constraints = ResolutionConstraints(
            kind=request.kind,
            architecture=architecture,
            allow_prerelease=request.allow_prerelease,
        )
        self.progress.start(f"Installing {request.kind.value} {request.channel_or_version}", _STEPS)
        version = self.resolver.resolve(request.channel_or_version, constraints)
        record = InstallRecord(
            version=version,
            root_path=layout.root,
            kind=request.kind,
            architecture=architecture,
            scope=request.scope,
            managing_tool=self.managing_tool,
        )
        store = ManifestStore(layout.root, lock_timeout=self.lock_timeout)
        self.check_conflicts(store.load(), record, layout)
        self.progress.advance(f"Resolved {record.describe()}")

        staging = context.track(layout.staging_root / uuid.uuid4().hex)
        staging.mkdir(parents=True)
        rid = runtime_identifier(architecture)
        self.acquirer.acquire(record.kind, version, rid, staging)
        self.progress.advance(f"Extracted {record.kind.package_id} {version} ({rid})")

        placed = self._promote(staging, layout.root, context)
        shutil.rmtree(staging)
        prune_empty_dirs(layout.staging_root, layout.root, keep_stop=True)
        primary = layout.primary_dir(record.kind, version)
        if not primary.is_dir():
            raise ExtractionError(
                f"Package {record.kind.package_id} {version} did not contain {primary.relative_to(layout.root)}"
            )
        logger.info("Placed %d new entries under %s", len(placed), layout.root)
        self.progress.advance(f"Placed {len(placed)} component directories")

        if not request.force:
            self._verify_compatibility(record, layout, request.allow_roll_forward)
        self.progress.advance("Verified runtime compatibility")

        store.add(record)
        self.progress.complete(f"Installed {record.describe()} into {layout.root}")
        return record

    def _promote(self, staged: Path, root: Path, context: TransactionContext) -> List[Path]:
        """Move staged content into ``root``; existing versioned directories are kept as they are."""

        placed: List[Path] = []
        for entry in sorted(staged.iterdir()):
            depth = _VERSIONED_DEPTH.get(entry.name) if entry.is_dir() else None
            if depth is None:
                _merge(entry, root / entry.name, context, placed)
                continue
            for leaf in _versioned_dirs(entry, depth):
                target = root / leaf.relative_to(staged)
                if target.exists():
                    logger.debug("Keeping existing %s", target)
                    continue
                target.parent.mkdir(parents=True, exist_ok=True)
                shutil.move(str(leaf), str(target))
                placed.append(context.track(target))
        return placed

    def _verify_compatibility(self, record: InstallRecord, layout: InstallLayout, allow_roll_forward: bool) -> None:
        installing = ComponentRequirement(record.kind, record.version)
        install_path = layout.primary_dir(record.kind, record.version)
        for requirement in self.probe.get_required_components(install_path, record):
            available = self.probe.available_versions(layout.root, requirement.kind)
            match = ensure_compatible(
                requirement,
                available,
                installing=installing,
                allow_roll_forward=allow_roll_forward,
            )
            logger.debug("%s satisfied by %s", requirement, match)


def _merge(source: Path, target: Path, context: TransactionContext, placed: List[Path]) -> None:
    """Move ``source`` to ``target``, descending into directories that already exist."""

    if not target.exists():
        shutil.move(str(source), str(target))
        placed.append(context.track(target))
        return
    if not (source.is_dir() and target.is_dir()):
        logger.debug("Keeping existing %s", target)
        return
    for child in sorted(source.iterdir()):
        _merge(child, target / child.name, context, placed)


def _versioned_dirs(directory: Path, depth: int) -> Iterator[Path]:
    if depth == 0:
        yield directory
        return
    for child in sorted(directory.iterdir()):
        if child.is_dir():
            yield from _versioned_dirs(child, depth - 1)


__all__ = ["InstallRequest", "InstallService"]
