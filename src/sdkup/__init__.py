"""sdkup: install and remove side-by-side SDK and runtime bundles."""

__version__ = "0.3.0"

__all__ = ["__version__"]
