"""Command line entry point for sdkup."""

from __future__ import annotations

import argparse
import json
import sys
import time
from pathlib import Path
from typing import Any

from sdkup import __version__
from sdkup.adapters.progress import ConsoleProgressReporter, NullProgressReporter
from sdkup.app.install.service import InstallRequest
from sdkup.app.orchestrator import InstallerOrchestrator
from sdkup.app.uninstall.service import UninstallResult
from sdkup.domain.install.errors import IncompatibleRuntimeError, SdkupError
from sdkup.domain.install.layout import current_architecture, normalise_architecture
from sdkup.domain.install.plan import UninstallPlan
from sdkup.domain.install.value_objects import ComponentKind, InstallRecord, OwnershipScope
from sdkup.ports.version_resolver import ResolutionConstraints
from sdkup.settings import SETTINGS
from sdkup.utils.telemetry import record_structured_event

HELP_OVERVIEW = """Install and remove SDKs and shared runtimes in a user-owned root.

Shared runtimes are reference counted: uninstalling an SDK removes a runtime
only when no other installed SDK still needs it."""

_KIND_CHOICES = [kind.value for kind in ComponentKind]


def _install_path(raw: str | None) -> Path:
    if raw:
        return Path(raw).expanduser().resolve()
    return SETTINGS.default_install_path.expanduser().resolve()


def _architecture(args: argparse.Namespace) -> str:
    if args.architecture:
        return normalise_architecture(args.architecture)
    return current_architecture()


def _orchestrator(args: argparse.Namespace) -> InstallerOrchestrator:
    quiet = getattr(args, "json", False)
    progress = NullProgressReporter() if quiet else ConsoleProgressReporter()
    return InstallerOrchestrator.from_settings(SETTINGS, progress=progress)


def _emit(event: str, status: str, started: float, payload: dict[str, Any], *, level: str = "info") -> None:
    record_structured_event(
        SETTINGS,
        event,
        status=status,
        level=level,
        component="installer",
        duration_ms=(time.perf_counter() - started) * 1000,
        payload=payload,
    )


def _print_error(command: str, exc: Exception) -> None:
    print(f"sdkup {command} failed: {exc}", file=sys.stderr)


def _install_cmd(args: argparse.Namespace) -> int:
    root = _install_path(args.install_path)
    event_context = {"version": args.version, "kind": args.kind, "path": str(root)}
    started = time.perf_counter()
    try:
        request = InstallRequest(
            channel_or_version=args.version,
            install_path=root,
            kind=ComponentKind(args.kind),
            architecture=_architecture(args),
            scope=OwnershipScope.USER,
            allow_roll_forward=args.allow_roll_forward,
            force=args.force,
            allow_prerelease=args.prerelease,
        )
        record = _orchestrator(args).install(request)
    except IncompatibleRuntimeError as exc:
        _emit("install", "incompatible", started, event_context | {"error": str(exc).splitlines()[0]}, level="error")
        _print_error("install", exc)
        return 1
    except (SdkupError, ValueError, OSError) as exc:
        _emit("install", "error", started, event_context | {"error": str(exc)}, level="error")
        _print_error("install", exc)
        return 1

    payload = record.to_dict() | {"root": str(record.root_path)}
    if args.json:
        print(json.dumps(payload, ensure_ascii=False, indent=2))
    else:
        print(f"Installed {record.describe()} into {record.root_path}")
    _emit("install", "ok", started, event_context | {"resolved": str(record.version)})
    return 0


def _print_plan(plan: UninstallPlan, *, as_json: bool) -> None:
    if as_json:
        print(json.dumps(plan.to_dict() | {"dryRun": True}, ensure_ascii=False, indent=2))
        return
    if plan.problem is not None:
        print(f"note: {plan.problem}")
    print(f"Would uninstall {plan.record.describe()}:")
    if not plan.directories:
        print("  (no directories on disk)")
    for directory in plan.directories:
        print(f"  - {directory}")


def _print_uninstall_result(result: UninstallResult, *, as_json: bool) -> None:
    if as_json:
        print(json.dumps(result.to_dict(), ensure_ascii=False, indent=2))
        return
    print(f"Uninstalled {result.record.describe()} from {result.record.root_path}")
    for directory in result.removed:
        print(f"  removed {directory}")
    for warning in result.warnings:
        print(f"  warning: {warning}", file=sys.stderr)


def _uninstall_cmd(args: argparse.Namespace) -> int:
    root = _install_path(args.install_path)
    event_context = {"version": args.version, "kind": args.kind, "path": str(root)}
    started = time.perf_counter()
    if not root.is_dir():
        _emit("uninstall", "error", started, event_context | {"error": "missing install path"}, level="error")
        print(f"sdkup uninstall failed: install path {root} does not exist", file=sys.stderr)
        return 1
    try:
        kind = ComponentKind(args.kind)
        architecture = _architecture(args)
        orchestrator = _orchestrator(args)
        version = orchestrator.resolve(args.version, ResolutionConstraints(kind=kind, architecture=architecture))
        record = InstallRecord(
            version=version,
            root_path=root,
            kind=kind,
            architecture=architecture,
            managing_tool=SETTINGS.managing_tool,
        )
        if args.dry_run:
            _print_plan(orchestrator.preview_uninstall(record), as_json=args.json)
            _emit("uninstall", "dry-run", started, event_context)
            return 0
        result = orchestrator.uninstall(record)
    except (SdkupError, ValueError, OSError) as exc:
        _emit("uninstall", "error", started, event_context | {"error": str(exc)}, level="error")
        _print_error("uninstall", exc)
        return 1

    if not result.manifest_updated:
        _emit("uninstall", "not-installed", started, event_context, level="warn")
        if args.json:
            print(json.dumps(result.to_dict(), ensure_ascii=False, indent=2))
        print(f"sdkup uninstall failed: {result.error}", file=sys.stderr)
        return 1

    _print_uninstall_result(result, as_json=args.json)
    level = "warn" if result.warnings else "info"
    _emit(
        "uninstall",
        result.status.value,
        started,
        event_context | {"removed": len(result.removed), "warnings": len(result.warnings)},
        level=level,
    )
    return 0


def _list_cmd(args: argparse.Namespace) -> int:
    root = _install_path(args.install_path)
    try:
        manifest = _orchestrator(args).list_installs(root)
    except (SdkupError, OSError) as exc:
        _print_error("list", exc)
        return 1
    entries = [record.to_dict() for record in manifest]
    if args.json:
        print(json.dumps({"root": str(root), "installs": entries}, ensure_ascii=False, indent=2))
        return 0
    if not entries:
        print(f"sdkup list: nothing installed under {root}")
        return 0
    print(f"sdkup list ({root}):")
    for record in manifest:
        print(f"  - {record.describe()} [{record.scope.value}, {record.managing_tool}]")
    return 0


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--architecture",
        help="Target architecture (default: this machine)",
    )
    parser.add_argument("--install-path", help="Install root (default: settings default_install_path)")
    parser.add_argument("--kind", choices=_KIND_CHOICES, default=ComponentKind.SDK.value, help="Component kind")
    parser.add_argument("--json", action="store_true", help="Print machine-readable output")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sdkup",
        description=HELP_OVERVIEW,
        formatter_class=argparse.RawTextHelpFormatter,
    )
    parser.add_argument("--version", action="version", version=f"sdkup {__version__}")

    sub = parser.add_subparsers(dest="command", required=True)

    install_cmd = sub.add_parser("install", help="Install an SDK or runtime")
    install_cmd.add_argument("--version", required=True, help="Version or channel (8.0, 8.0.1xx, latest)")
    _add_common_arguments(install_cmd)
    install_cmd.add_argument("--allow-roll-forward", action="store_true", help="Accept newer runtime majors")
    install_cmd.add_argument("--force", action="store_true", help="Skip the runtime compatibility check")
    install_cmd.add_argument("--prerelease", action="store_true", help="Let channels resolve to previews")
    install_cmd.set_defaults(func=_install_cmd)

    uninstall_cmd = sub.add_parser("uninstall", help="Uninstall an SDK or runtime")
    uninstall_cmd.add_argument("--version", required=True, help="Installed version or channel")
    _add_common_arguments(uninstall_cmd)
    uninstall_cmd.add_argument("--dry-run", action="store_true", help="Show what would be removed")
    uninstall_cmd.set_defaults(func=_uninstall_cmd)

    list_cmd = sub.add_parser("list", help="List installs recorded under a root")
    list_cmd.add_argument("--install-path", help="Install root (default: settings default_install_path)")
    list_cmd.add_argument("--json", action="store_true", help="Print machine-readable output")
    list_cmd.set_defaults(func=_list_cmd)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
