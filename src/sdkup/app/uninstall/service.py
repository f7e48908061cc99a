"""Two-phase uninstall of archive-based installs (prepare, then commit)."""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, List, Tuple

from sdkup.adapters.manifest_store import Manifest, ManifestStore
from sdkup.adapters.progress import NullProgressReporter
from sdkup.domain.install.errors import InvalidOperationError, NotInstalledError, PartialDeletionWarning
from sdkup.domain.install.layout import InstallLayout, runtime_identifier
from sdkup.domain.install.plan import UninstallPlan, build_uninstall_plan
from sdkup.domain.install.usage import same_version_requirements, with_bundled_runtimes
from sdkup.domain.install.value_objects import ComponentKind, ComponentRequirement, InstallRecord
from sdkup.ports.framework_probe import FrameworkProbe
from sdkup.ports.progress import ProgressReporter
from sdkup.settings import DEFAULT_LOCK_TIMEOUT

logger = logging.getLogger(__name__)


class UninstallState(str, Enum):
    UNINITIALIZED = "uninitialized"
    PREPARED = "prepared"
    COMMITTED = "committed"
    INVALID = "invalid"


class UninstallStatus(str, Enum):
    REMOVED = "removed"
    PARTIAL = "partial"
    NOT_INSTALLED = "not-installed"


@dataclass(frozen=True)
class UninstallResult:
    status: UninstallStatus
    record: InstallRecord
    removed: Tuple[Path, ...] = ()
    warnings: Tuple[PartialDeletionWarning, ...] = ()
    error: NotInstalledError | None = None

    @classmethod
    def not_installed(cls, record: InstallRecord, error: NotInstalledError | None) -> "UninstallResult":
        return cls(status=UninstallStatus.NOT_INSTALLED, record=record, error=error)

    @property
    def manifest_updated(self) -> bool:
        return self.status is not UninstallStatus.NOT_INSTALLED

    def to_dict(self) -> dict:
        return {
            "status": self.status.value,
            "record": self.record.to_dict(),
            "removed": [path.as_posix() for path in self.removed],
            "warnings": [{"path": warning.path, "reason": warning.reason} for warning in self.warnings],
            "error": str(self.error) if self.error else None,
        }


class DeclaredRequirements:
    """Memoised requirements per record identity.

    SDK records ask the probe; when it declares nothing the SDK is assumed to
    need every shared runtime at its own version.
    """

    def __init__(self, probe: FrameworkProbe | None) -> None:
        self._probe = probe
        self._cache: Dict[tuple, Tuple[ComponentRequirement, ...]] = {}

    def __call__(self, record: InstallRecord) -> Tuple[ComponentRequirement, ...]:
        cached = self._cache.get(record.identity)
        if cached is None:
            cached = self._derive(record)
            self._cache[record.identity] = cached
        return cached

    def clear(self) -> None:
        self._cache.clear()

    def _derive(self, record: InstallRecord) -> Tuple[ComponentRequirement, ...]:
        if record.kind is not ComponentKind.SDK or self._probe is None:
            return same_version_requirements(record)
        sdk_dir = InstallLayout(record.root_path).sdk_dir(record.version)
        declared = self._probe.get_required_components(sdk_dir, record)
        if not declared:
            return same_version_requirements(record)
        return with_bundled_runtimes(declared)


class ArchiveUninstaller:
    """Removes one install record and the components no other record still needs.

    ``prepare()`` computes an immutable plan without touching anything.
    ``commit()`` takes the manifest lock, re-validates the plan against the
    current manifest, deletes directories best-effort and removes the record.
    """

    def __init__(
        self,
        record: InstallRecord,
        store: ManifestStore,
        *,
        probe: FrameworkProbe | None = None,
        progress: ProgressReporter | None = None,
    ) -> None:
        if store.root != record.root_path:
            raise ValueError(f"Record root {record.root_path} does not match manifest root {store.root}")
        self._record = record
        self._store = store
        self._progress = progress or NullProgressReporter()
        self._requirements = DeclaredRequirements(probe)
        self._rid = runtime_identifier(record.architecture)
        self._state = UninstallState.UNINITIALIZED
        self._plan: UninstallPlan | None = None

    @property
    def state(self) -> UninstallState:
        return self._state

    @property
    def plan(self) -> UninstallPlan | None:
        return self._plan

    def prepare(self) -> UninstallPlan:
        if self._state is not UninstallState.UNINITIALIZED:
            raise InvalidOperationError(f"prepare() was already called (state: {self._state.value}).")
        try:
            manifest = self._store.load()
        except Exception:
            self._state = UninstallState.INVALID
            raise
        plan = self._plan_for(manifest)
        self._plan = plan
        if plan.valid:
            self._state = UninstallState.PREPARED
        else:
            self._state = UninstallState.INVALID
            logger.info("%s", plan.problem)
        return plan

    def commit(self) -> UninstallResult:
        if self._state is not UninstallState.PREPARED or self._plan is None:
            raise InvalidOperationError(
                "Cannot commit uninstall: prepare() has not been called or validation failed."
            )
        with self._store.exclusive():
            manifest = self._store.load()
            plan = self._plan
            if manifest.fingerprint != plan.manifest_fingerprint:
                logger.info("Manifest changed since prepare(); re-planning %s", self._record.describe())
                self._requirements.clear()
                plan = self._plan_for(manifest)
                self._plan = plan
                if not plan.valid:
                    self._state = UninstallState.INVALID
                    return UninstallResult.not_installed(self._record, plan.problem)
            removed, warnings = self._delete(plan.directories)
            self._store.remove(self._record)
        self._state = UninstallState.COMMITTED
        status = UninstallStatus.PARTIAL if warnings else UninstallStatus.REMOVED
        return UninstallResult(
            status=status,
            record=self._record,
            removed=tuple(removed),
            warnings=tuple(warnings),
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _plan_for(self, manifest: Manifest) -> UninstallPlan:
        return build_uninstall_plan(
            self._record,
            manifest.records,
            manifest.fingerprint,
            self._rid,
            self._requirements,
        )

    def _delete(self, directories: Tuple[Path, ...]) -> Tuple[List[Path], List[PartialDeletionWarning]]:
        removed: List[Path] = []
        warnings: List[PartialDeletionWarning] = []
        self._progress.start(f"Uninstalling {self._record.describe()}", len(directories))
        for directory in directories:
            try:
                shutil.rmtree(directory)
            except OSError as exc:
                warning = PartialDeletionWarning(str(directory), str(exc))
                logger.warning("%s", warning)
                warnings.append(warning)
                self._progress.advance(f"Failed to remove {directory}")
                continue
            removed.append(directory)
            self._progress.advance(f"Removed {directory}")
        self._progress.complete(f"Uninstalled {self._record.describe()}")
        return removed, warnings


@dataclass
class UninstallService:
    probe: FrameworkProbe | None = None
    progress: ProgressReporter = field(default_factory=NullProgressReporter)
    lock_timeout: float = DEFAULT_LOCK_TIMEOUT

    def store_for(self, record: InstallRecord) -> ManifestStore:
        return ManifestStore(record.root_path, lock_timeout=self.lock_timeout)

    def uninstaller(self, record: InstallRecord) -> ArchiveUninstaller:
        return ArchiveUninstaller(record, self.store_for(record), probe=self.probe, progress=self.progress)

    def preview(self, record: InstallRecord) -> UninstallPlan:
        """Plan without deleting; an absent record is planned as if installed once."""

        manifest = self.store_for(record).load()
        return build_uninstall_plan(
            record,
            manifest.records,
            manifest.fingerprint,
            runtime_identifier(record.architecture),
            DeclaredRequirements(self.probe),
            preview=True,
        )

    def uninstall(self, record: InstallRecord) -> UninstallResult:
        uninstaller = self.uninstaller(record)
        plan = uninstaller.prepare()
        if not plan.valid:
            return UninstallResult.not_installed(record, plan.problem)
        return uninstaller.commit()


__all__ = [
    "ArchiveUninstaller",
    "DeclaredRequirements",
    "UninstallResult",
    "UninstallService",
    "UninstallState",
    "UninstallStatus",
]
