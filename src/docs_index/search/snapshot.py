"""Durable snapshots of the index.

A snapshot directory holds one JSON file per persisted generation plus a
``manifest.json`` naming the latest one:

* snapshots are written to ``<name>.tmp``, fsynced, then renamed into place,
  so a crash never leaves a half-written file under its final name;
* the manifest is rewritten the same way only after the snapshot landed, so
  the "latest" pointer always references a complete file;
* older snapshots beyond ``max_snapshots`` are pruned after the manifest update.

Loading walks the manifest newest-first and returns the first snapshot that
decodes, so a damaged latest file falls back to the previous generation.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
import logging
import os
from pathlib import Path
from typing import Any, cast
from uuid import uuid4

import orjson

from docs_index.errors import PersistenceError, SnapshotCorruptError
from docs_index.search.documents import DocumentStore
from docs_index.search.postings import PostingStore


logger = logging.getLogger(__name__)

SNAPSHOT_FORMAT = 1


@dataclass(frozen=True)
class IndexSnapshot:
    """Complete persisted state of one index generation."""

    version: int
    last_updated: datetime
    documents: DocumentStore
    postings: PostingStore
    analyzer: str
    snapshot_id: str = field(default_factory=lambda: uuid4().hex)

    def to_dict(self) -> dict[str, Any]:
        return {
            "format": SNAPSHOT_FORMAT,
            "id": self.snapshot_id,
            "version": self.version,
            "last_updated": self.last_updated.isoformat(),
            "analyzer": self.analyzer,
            "documents": self.documents.to_list(),
            "postings": self.postings.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> IndexSnapshot:
        if data.get("format") != SNAPSHOT_FORMAT:
            raise SnapshotCorruptError(
                f"Unsupported snapshot format {data.get('format')!r}",
                details={"format": data.get("format")},
            )
        try:
            return cls(
                version=int(data["version"]),
                last_updated=datetime.fromisoformat(data["last_updated"]),
                documents=DocumentStore.from_list(list(data.get("documents", []))),
                postings=PostingStore.from_dict(data.get("postings", {})),
                analyzer=str(data.get("analyzer") or "simple"),
                snapshot_id=str(data.get("id") or uuid4().hex),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise SnapshotCorruptError(f"Malformed snapshot payload: {exc}") from exc


class SnapshotStore:
    """Persist ``IndexSnapshot`` objects under a directory with a manifest."""

    MANIFEST_FILENAME = "manifest.json"
    SNAPSHOT_PREFIX = "snapshot-"
    SNAPSHOT_SUFFIX = ".json"
    DEFAULT_MAX_SNAPSHOTS = 3

    def __init__(self, directory: str | Path, *, max_snapshots: int = DEFAULT_MAX_SNAPSHOTS) -> None:
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)
        self.max_snapshots = max(1, max_snapshots)
        self._manifest_path = self.directory / self.MANIFEST_FILENAME

    def save(self, snapshot: IndexSnapshot) -> Path:
        """Write ``snapshot`` and make it the latest entry of the manifest."""

        path = self._snapshot_path(snapshot)
        try:
            payload = orjson.dumps(snapshot.to_dict())
        except orjson.JSONEncodeError as exc:
            raise PersistenceError(
                f"Snapshot is not JSON serializable: {exc}", details={"version": snapshot.version}
            ) from exc
        self._atomic_write(path, payload)
        try:
            stale = self._record_in_manifest(snapshot, path)
        except OSError:
            # Never referenced by the manifest; a later rescan must not find it.
            self._delete_file(path.name)
            raise

        for entry in stale:
            self._delete_file(entry.get("file"))
        logger.debug("Saved snapshot %s (version %d)", path.name, snapshot.version)
        return path

    def load_latest(self) -> IndexSnapshot | None:
        """Return the newest snapshot that decodes, or ``None`` when none exist."""

        entries = list(reversed(self.list_snapshots()))
        for entry in entries:
            file_name = entry.get("file")
            if not isinstance(file_name, str):
                continue
            try:
                return self.load(self.directory / file_name)
            except (OSError, SnapshotCorruptError) as exc:
                logger.warning("Skipping unreadable snapshot %s: %s", file_name, exc)
        return None

    def load(self, path: Path) -> IndexSnapshot:
        try:
            payload = orjson.loads(path.read_bytes())
        except orjson.JSONDecodeError as exc:
            raise SnapshotCorruptError(f"Snapshot {path.name} is not valid JSON", details={"file": path.name}) from exc
        if not isinstance(payload, dict):
            raise SnapshotCorruptError(f"Snapshot {path.name} is not an object", details={"file": path.name})
        return IndexSnapshot.from_dict(payload)

    def list_snapshots(self) -> list[dict[str, Any]]:
        """Return manifest entries ordered oldest to newest."""
        return list(self._load_manifest().get("snapshots", []))

    def highest_version(self) -> int:
        """Highest version ever recorded, including snapshots that no longer decode."""
        versions = (entry.get("version") for entry in self.list_snapshots())
        return max((version for version in versions if isinstance(version, int)), default=0)

    def latest_path(self) -> Path | None:
        latest = self._load_manifest().get("latest")
        if not isinstance(latest, str):
            return None
        return self.directory / latest

    def _record_in_manifest(self, snapshot: IndexSnapshot, path: Path) -> list[dict[str, Any]]:
        """Point the manifest at ``path`` and return the entries that fell out of retention."""

        manifest = self._load_manifest()
        entries = [entry for entry in manifest.get("snapshots", []) if entry.get("file") != path.name]
        entries.append(
            {
                "id": snapshot.snapshot_id,
                "version": snapshot.version,
                "file": path.name,
                "created_at": datetime.now(timezone.utc).isoformat(),
            }
        )
        entries.sort(key=lambda entry: int(entry.get("version", 0)))
        manifest["snapshots"] = entries[-self.max_snapshots :]
        manifest["latest"] = path.name
        manifest["updated_at"] = datetime.now(timezone.utc).isoformat()
        self._atomic_write(self._manifest_path, orjson.dumps(manifest))
        return entries[: -self.max_snapshots]

    def _snapshot_path(self, snapshot: IndexSnapshot) -> Path:
        name = f"{self.SNAPSHOT_PREFIX}{snapshot.version:012d}-{snapshot.snapshot_id}{self.SNAPSHOT_SUFFIX}"
        return self.directory / name

    def _load_manifest(self) -> dict[str, Any]:
        if not self._manifest_path.exists():
            return {"snapshots": []}
        try:
            manifest = orjson.loads(self._manifest_path.read_bytes())
        except orjson.JSONDecodeError:
            logger.warning("Manifest %s is unreadable; rescanning snapshot files", self._manifest_path)
            return {"snapshots": self._scan_snapshot_files()}
        return cast("dict[str, Any]", manifest)

    def _scan_snapshot_files(self) -> list[dict[str, Any]]:
        entries: list[dict[str, Any]] = []
        for path in sorted(self.directory.glob(f"{self.SNAPSHOT_PREFIX}*{self.SNAPSHOT_SUFFIX}")):
            version_part = path.name[len(self.SNAPSHOT_PREFIX) :].split("-", 1)[0]
            if version_part.isdigit():
                entries.append({"file": path.name, "version": int(version_part)})
        return entries

    def _atomic_write(self, path: Path, payload: bytes) -> None:
        tmp_path = path.with_name(path.name + ".tmp")
        try:
            with tmp_path.open("wb") as handle:
                handle.write(payload)
                handle.flush()
                os.fsync(handle.fileno())
            tmp_path.replace(path)
        except OSError:
            tmp_path.unlink(missing_ok=True)
            raise

    def _delete_file(self, file_name: object) -> None:
        if not isinstance(file_name, str) or not file_name:
            return
        candidate = self.directory / file_name
        try:
            candidate.unlink(missing_ok=True)
        except OSError:
            logger.warning("Failed to remove old snapshot %s", candidate)
