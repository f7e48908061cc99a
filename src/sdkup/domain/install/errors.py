"""Error taxonomy for install and uninstall operations."""

from __future__ import annotations


class SdkupError(RuntimeError):
    """Base class for failures surfaced by the lifecycle managers."""


class VersionResolutionError(SdkupError):
    """Raised when a channel or version cannot be resolved to a concrete release."""


class AlreadyInstalledError(SdkupError):
    """Raised when an exclusive install target is already occupied."""


class IncompatibleRuntimeError(SdkupError):
    """Raised when installed content cannot run on the available runtimes."""

    def __init__(self, message: str, *, remediation: str | None = None) -> None:
        super().__init__(message)
        self.remediation = remediation

    def __str__(self) -> str:
        base = super().__str__()
        if self.remediation:
            return f"{base}\n\n{self.remediation}"
        return base


class NotInstalledError(SdkupError):
    """Describes an uninstall target that has no manifest record.

    Returned as a value by the uninstaller rather than raised.
    """


class InvalidOperationError(SdkupError):
    """Raised when the uninstall state machine is driven out of order."""


class LockTimeoutError(SdkupError):
    """Raised when the per-root manifest lock cannot be acquired in time."""


class ManifestCorruptedError(SdkupError):
    """Raised when the persisted manifest cannot be parsed."""


class AcquisitionError(SdkupError):
    """Raised when a package cannot be located or downloaded."""


class ExtractionError(AcquisitionError):
    """Raised when a downloaded package cannot be unpacked."""


class PartialDeletionWarning(UserWarning):
    """A planned directory could not be deleted during uninstall."""

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"Failed to delete directory {path}: {reason}")
        self.path = path
        self.reason = reason


__all__ = [
    "AcquisitionError",
    "AlreadyInstalledError",
    "ExtractionError",
    "IncompatibleRuntimeError",
    "InvalidOperationError",
    "LockTimeoutError",
    "ManifestCorruptedError",
    "NotInstalledError",
    "PartialDeletionWarning",
    "SdkupError",
    "VersionResolutionError",
]
