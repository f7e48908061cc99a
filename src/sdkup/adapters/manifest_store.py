"""Persistent, cross-process safe registry of installed components."""

from __future__ import annotations

import hashlib
import json
import os
import tempfile
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, Mapping, Tuple

from filelock import FileLock, Timeout

from sdkup.domain.install.errors import (
    AlreadyInstalledError,
    LockTimeoutError,
    ManifestCorruptedError,
)
from sdkup.domain.install.layout import MANIFEST_FILENAME
from sdkup.domain.install.value_objects import InstallRecord
from sdkup.resources import schema_validator
from sdkup.settings import DEFAULT_LOCK_TIMEOUT

SCHEMA_VERSION = 1
_SCHEMA_RESOURCE = "manifest.schema.json"
_KNOWN_RECORD_FIELDS = {"version", "kind", "architecture", "scope", "managingTool"}

RecordPredicate = Callable[[InstallRecord], bool]


@dataclass(frozen=True)
class Manifest:
    """Snapshot of the records persisted under one root."""

    root: Path
    records: Tuple[InstallRecord, ...] = ()
    fingerprint: str = ""
    record_extras: Mapping[tuple, Dict[str, Any]] = field(default_factory=dict)
    document_extras: Mapping[str, Any] = field(default_factory=dict)

    def __iter__(self) -> Iterator[InstallRecord]:
        return iter(self.records)

    def __len__(self) -> int:
        return len(self.records)

    def query(self, predicate: RecordPredicate) -> Tuple[InstallRecord, ...]:
        return tuple(record for record in self.records if predicate(record))

    def find(self, target: InstallRecord) -> InstallRecord | None:
        for record in self.records:
            if record.same_identity(target):
                return record
        return None

    def to_payload(self) -> Dict[str, Any]:
        installs = []
        for record in self.records:
            entry = dict(self.record_extras.get(record.identity, {}))
            entry.update(record.to_dict())
            installs.append(entry)
        payload: Dict[str, Any] = dict(self.document_extras)
        payload["schemaVersion"] = SCHEMA_VERSION
        payload["installs"] = installs
        return payload


def _fingerprint(raw: bytes) -> str:
    return hashlib.sha256(raw).hexdigest() if raw else ""


class ManifestStore:
    """Stores install records in ``<root>/sdkup_manifest.json``.

    Every mutation reloads the file, applies the change and atomically replaces
    the file while holding an exclusive lock scoped to the root.
    """

    def __init__(self, root: Path, *, lock_timeout: float = DEFAULT_LOCK_TIMEOUT) -> None:
        self._root = root
        self._path = root / MANIFEST_FILENAME
        self._lock_timeout = lock_timeout
        self._lock = FileLock(str(self.lock_path), timeout=lock_timeout)

    @property
    def root(self) -> Path:
        return self._root

    @property
    def path(self) -> Path:
        return self._path

    @property
    def lock_path(self) -> Path:
        return self._path.with_name(self._path.name + ".lock")

    def load(self) -> Manifest:
        if not self._path.exists():
            return Manifest(root=self._root)
        raw = self._path.read_bytes()
        try:
            document = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise ManifestCorruptedError(f"Manifest {self._path} is not valid JSON: {exc}") from exc
        return self._parse(document, _fingerprint(raw))

    @staticmethod
    def query(manifest: Manifest, predicate: RecordPredicate) -> Tuple[InstallRecord, ...]:
        return manifest.query(predicate)

    def add(self, record: InstallRecord) -> Manifest:
        self._ensure_same_root(record)
        with self.exclusive():
            manifest = self.load()
            if manifest.find(record) is not None:
                raise AlreadyInstalledError(f"{record.describe()} is already recorded in {self._path}")
            updated = Manifest(
                root=self._root,
                records=manifest.records + (record,),
                record_extras=manifest.record_extras,
                document_extras=manifest.document_extras,
            )
            return self._write(updated)

    def remove(self, record: InstallRecord) -> bool:
        """Remove ``record``; returns ``False`` when it was already absent."""

        self._ensure_same_root(record)
        if not self._root.exists():
            return False
        with self.exclusive():
            manifest = self.load()
            remaining = tuple(item for item in manifest.records if not item.same_identity(record))
            if len(remaining) == len(manifest.records):
                return False
            self._write(
                Manifest(
                    root=self._root,
                    records=remaining,
                    record_extras={k: v for k, v in manifest.record_extras.items() if k != record.identity},
                    document_extras=manifest.document_extras,
                )
            )
            return True

    @contextmanager
    def exclusive(self) -> Iterator["ManifestStore"]:
        """Hold the root's manifest lock; nested use by the same store is allowed."""

        self._root.mkdir(parents=True, exist_ok=True)
        try:
            self._lock.acquire()
        except Timeout as exc:
            raise LockTimeoutError(
                f"Timed out after {self._lock_timeout:g}s waiting for {self.lock_path}; "
                "another sdkup process is modifying this install root."
            ) from exc
        try:
            yield self
        finally:
            self._lock.release()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _ensure_same_root(self, record: InstallRecord) -> None:
        if record.root_path != self._root:
            raise ValueError(f"Record root {record.root_path} does not belong to manifest root {self._root}")

    def _parse(self, document: Any, fingerprint: str) -> Manifest:
        errors = sorted(schema_validator(_SCHEMA_RESOURCE).iter_errors(document), key=lambda err: list(err.absolute_path))
        if errors:
            details = "; ".join(
                f"{'.'.join(str(part) for part in error.absolute_path) or '<root>'}: {error.message}"
                for error in errors[:3]
            )
            raise ManifestCorruptedError(f"Manifest {self._path} is malformed: {details}")

        records = []
        extras: Dict[tuple, Dict[str, Any]] = {}
        for index, entry in enumerate(document["installs"]):
            try:
                record = InstallRecord.from_dict(entry, self._root)
            except (KeyError, ValueError) as exc:
                raise ManifestCorruptedError(f"Manifest {self._path} entry {index} is invalid: {exc}") from exc
            records.append(record)
            unknown = {key: value for key, value in entry.items() if key not in _KNOWN_RECORD_FIELDS}
            if unknown:
                extras[record.identity] = unknown
        document_extras = {key: value for key, value in document.items() if key not in {"installs", "schemaVersion"}}
        return Manifest(
            root=self._root,
            records=tuple(records),
            fingerprint=fingerprint,
            record_extras=extras,
            document_extras=document_extras,
        )

    def _write(self, manifest: Manifest) -> Manifest:
        text = json.dumps(manifest.to_payload(), ensure_ascii=False, indent=2) + "\n"
        data = text.encode("utf-8")
        self._path.parent.mkdir(parents=True, exist_ok=True)
        temp_path: Path | None = None
        try:
            with tempfile.NamedTemporaryFile(
                mode="wb",
                dir=str(self._path.parent),
                prefix=self._path.name + ".",
                suffix=".tmp",
                delete=False,
            ) as handle:
                temp_path = Path(handle.name)
                handle.write(data)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(temp_path, self._path)
            temp_path = None
        finally:
            if temp_path is not None and temp_path.exists():
                temp_path.unlink()
        return Manifest(
            root=manifest.root,
            records=manifest.records,
            fingerprint=_fingerprint(data),
            record_extras=manifest.record_extras,
            document_extras=manifest.document_extras,
        )


__all__ = ["Manifest", "ManifestStore", "RecordPredicate", "SCHEMA_VERSION"]
