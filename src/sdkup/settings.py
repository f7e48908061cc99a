"""Runtime settings for the sdkup installer."""

from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Mapping

import yaml

from sdkup import __version__

CONFIG_FILENAME = "config.yaml"
DEFAULT_LOCK_TIMEOUT = 30.0
MANAGING_TOOL = "sdkup"
FRAMEWORK_PROBES = ("runtimeconfig", "same-version")


@dataclass(frozen=True)
class RuntimeSettings:
    home_dir: Path
    state_dir: Path
    log_dir: Path
    default_install_path: Path
    lock_timeout: float = DEFAULT_LOCK_TIMEOUT
    managing_tool: str = MANAGING_TOOL
    release_index: str | None = None
    package_feed: str | None = None
    framework_probe: str = FRAMEWORK_PROBES[0]
    extra: Mapping[str, Any] = field(default_factory=dict)
    cli_version: str = __version__

    @property
    def config_file(self) -> Path:
        return self.home_dir / CONFIG_FILENAME


def _default_home_dir() -> Path:
    override = os.environ.get("SDKUP_HOME")
    if override:
        return Path(override).expanduser()
    return Path.home() / ".sdkup"


def _default_install_path() -> Path:
    return Path.home() / ".dotnet"


def _read_config(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path} must contain a mapping at the top level")
    return data


def _apply_environment(settings: RuntimeSettings) -> RuntimeSettings:
    updates: dict[str, Any] = {}
    if value := os.environ.get("SDKUP_INSTALL_PATH"):
        updates["default_install_path"] = Path(value).expanduser()
    if value := os.environ.get("SDKUP_LOCK_TIMEOUT"):
        try:
            updates["lock_timeout"] = float(value)
        except ValueError as exc:
            raise ValueError(f"SDKUP_LOCK_TIMEOUT must be a number, got {value!r}") from exc
    if value := os.environ.get("SDKUP_RELEASE_INDEX"):
        updates["release_index"] = value
    if value := os.environ.get("SDKUP_PACKAGE_FEED"):
        updates["package_feed"] = value
    if value := os.environ.get("SDKUP_FRAMEWORK_PROBE"):
        updates["framework_probe"] = value
    probe = updates.get("framework_probe", settings.framework_probe)
    if probe not in FRAMEWORK_PROBES:
        raise ValueError(f"framework_probe must be one of {', '.join(FRAMEWORK_PROBES)}, got {probe!r}")
    return replace(settings, **updates) if updates else settings


def load_settings(home_dir: Path | None = None) -> RuntimeSettings:
    """Build settings from defaults, ``<home>/config.yaml`` and the environment.

    Environment variables win over the config file, which wins over defaults.
    """

    base = home_dir or _default_home_dir()
    config = _read_config(base / CONFIG_FILENAME)
    install_path = config.pop("install_path", None)
    lock_timeout = config.pop("lock_timeout", DEFAULT_LOCK_TIMEOUT)
    settings = RuntimeSettings(
        home_dir=base,
        state_dir=base / "state",
        log_dir=base / "logs",
        default_install_path=Path(install_path).expanduser() if install_path else _default_install_path(),
        lock_timeout=float(lock_timeout),
        managing_tool=str(config.pop("managing_tool", MANAGING_TOOL)),
        release_index=config.pop("release_index", None),
        package_feed=config.pop("package_feed", None),
        framework_probe=str(config.pop("framework_probe", FRAMEWORK_PROBES[0])),
        extra=config,
    )
    return _apply_environment(settings)


SETTINGS = load_settings()
