"""Version resolution against a release index document."""

from __future__ import annotations

import json
import re
from pathlib import Path
from typing import Any, Dict, List

import requests

from sdkup.domain.install.errors import VersionResolutionError
from sdkup.domain.install.value_objects import ComponentKind, ReleaseVersion
from sdkup.ports.version_resolver import ResolutionConstraints, VersionResolver

_MAJOR = re.compile(r"^(\d+)$")
_MAJOR_MINOR = re.compile(r"^(\d+)\.(\d+)$")
_FEATURE_BAND = re.compile(r"^(\d+)\.(\d+)\.(\d)xx$", re.IGNORECASE)


def _is_remote(source: str) -> bool:
    return source.startswith("http://") or source.startswith("https://")


class ExactVersionResolver(VersionResolver):
    """Accepts fully specified versions only; used when no release index is configured."""

    def resolve(self, channel_or_version: str, constraints: ResolutionConstraints) -> ReleaseVersion:
        version = ReleaseVersion.try_parse(channel_or_version)
        if version is None:
            raise VersionResolutionError(
                f"Cannot resolve channel '{channel_or_version}' without a release index; "
                "pass a full version or configure release_index."
            )
        return version


class ReleaseIndexResolver(VersionResolver):
    """Resolves channels such as ``8.0``, ``8.0.1xx`` or ``latest``.

    The index is a JSON document ``{"releases": [{"sdk": ..., "runtime": ...,
    "aspnetcore": ..., "windowsdesktop": ...}]}`` read from a path or URL.
    """

    def __init__(self, source: str, session: requests.Session | None = None) -> None:
        self._source = source
        self._session = session
        self._releases: List[Dict[str, Any]] | None = None

    def resolve(self, channel_or_version: str, constraints: ResolutionConstraints) -> ReleaseVersion:
        requested = channel_or_version.strip()
        exact = ReleaseVersion.try_parse(requested)
        if exact is not None:
            return exact

        candidates = self.versions(constraints.kind)
        if not constraints.allow_prerelease:
            candidates = [version for version in candidates if not version.is_prerelease]

        if requested.lower() == "latest":
            matching = candidates
        elif match := _MAJOR.match(requested):
            major = int(match.group(1))
            matching = [v for v in candidates if v.major == major]
        elif match := _MAJOR_MINOR.match(requested):
            major, minor = int(match.group(1)), int(match.group(2))
            matching = [v for v in candidates if (v.major, v.minor) == (major, minor)]
        elif match := _FEATURE_BAND.match(requested):
            if constraints.kind is not ComponentKind.SDK:
                raise VersionResolutionError(f"Feature band channel '{requested}' only applies to SDKs")
            major, minor, band = (int(part) for part in match.groups())
            matching = [v for v in candidates if (v.major, v.minor, v.feature_band) == (major, minor, band)]
        else:
            raise VersionResolutionError(f"'{requested}' is neither a version nor a known channel")

        if not matching:
            raise VersionResolutionError(
                f"No {constraints.kind.value} release matches '{requested}' in {self._source}"
            )
        return max(matching)

    def versions(self, kind: ComponentKind) -> List[ReleaseVersion]:
        found: List[ReleaseVersion] = []
        for release in self._load():
            raw = release.get(kind.value)
            if not isinstance(raw, str):
                continue
            version = ReleaseVersion.try_parse(raw)
            if version is not None and version not in found:
                found.append(version)
        return found

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _load(self) -> List[Dict[str, Any]]:
        if self._releases is None:
            document = self._fetch_remote() if _is_remote(self._source) else self._read_local()
            releases = document.get("releases") if isinstance(document, dict) else None
            if not isinstance(releases, list):
                raise VersionResolutionError(f"Release index {self._source} has no 'releases' list")
            self._releases = [item for item in releases if isinstance(item, dict)]
        return self._releases

    def _read_local(self) -> Any:
        path = Path(self._source).expanduser()
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError as exc:
            raise VersionResolutionError(f"Release index not found: {path}") from exc
        except json.JSONDecodeError as exc:
            raise VersionResolutionError(f"Release index {path} is not valid JSON: {exc}") from exc

    def _fetch_remote(self) -> Any:
        session = self._session or requests.Session()
        try:
            response = session.get(self._source, headers={"Accept": "application/json"}, timeout=30)
        except requests.RequestException as exc:
            raise VersionResolutionError(f"Release index request failed: {exc}") from exc
        if response.status_code >= 400:
            raise VersionResolutionError(
                f"Release index request failed: {response.status_code} {response.text[:200]}"
            )
        try:
            return response.json()
        except ValueError as exc:
            raise VersionResolutionError(f"Release index {self._source} is not valid JSON") from exc


__all__ = ["ExactVersionResolver", "ReleaseIndexResolver"]
