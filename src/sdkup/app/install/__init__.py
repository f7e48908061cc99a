"""Install lifecycle services."""

from .service import InstallRequest, InstallService

__all__ = ["InstallRequest", "InstallService"]
