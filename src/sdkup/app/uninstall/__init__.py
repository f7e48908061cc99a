"""Uninstall lifecycle services."""

from .service import ArchiveUninstaller, UninstallResult, UninstallService, UninstallState, UninstallStatus

__all__ = ["ArchiveUninstaller", "UninstallResult", "UninstallService", "UninstallState", "UninstallStatus"]
