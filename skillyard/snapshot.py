"""Point-in-time copies of skill directories, used for undo.

Layout on disk:

    snapshots/
      2026-10-19T08-15-02-123Z/
        manifest.json
        skills/<basename>/...

Snapshot ids sort lexicographically in creation order.
"""

from __future__ import annotations

import json
import logging
import shutil
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable

from .errors import SnapshotNotFoundError
from .symlinks import remove_managed_path


logger = logging.getLogger(__name__)

MANIFEST_NAME = "manifest.json"


@dataclass(frozen=True)
class SnapshotManifest:
    id: str
    reason: str
    created_at: str  # ISO-8601, UTC
    skills: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "reason": self.reason,
            "created": self.created_at,
            "skills": list(self.skills),
        }

    @classmethod
    def from_dict(cls, data: Any) -> SnapshotManifest:
        if not isinstance(data, dict):
            raise ValueError("manifest must be an object")
        sid = data.get("id")
        reason = data.get("reason", "")
        created = data.get("created")
        skills = data.get("skills", [])
        if not isinstance(sid, str) or not isinstance(created, str):
            raise ValueError("manifest: id and created must be strings")
        if not isinstance(reason, str):
            raise ValueError("manifest: reason must be a string")
        if not isinstance(skills, list) or not all(isinstance(s, str) for s in skills):
            raise ValueError("manifest: skills must be a list of strings")
        return cls(id=sid, reason=reason, created_at=created, skills=tuple(skills))


def _format_id(now: datetime) -> str:
    # 2026-10-19T08-15-02-123Z
    return now.strftime("%Y-%m-%dT%H-%M-%S-") + f"{now.microsecond // 1000:03d}Z"


def _order_key(m: SnapshotManifest) -> tuple[str, str, int]:
    # ids created in the same millisecond carry a numeric "-N" suffix
    head, sep, n = m.id.partition("Z-")
    base = head if sep else m.id.rstrip("Z")
    return (m.created_at, base, int(n) if n.isdigit() else 0)


class SnapshotStore:
    def __init__(self, snapshots_dir: Path, max_count: int) -> None:
        if max_count < 1:
            raise ValueError(f"snapshot max_count must be >= 1, got {max_count}")
        self.snapshots_dir = snapshots_dir
        self.max_count = max_count

    def _new_id(self, now: datetime) -> str:
        base = _format_id(now)
        sid = base
        n = 0
        while (self.snapshots_dir / sid).exists():
            n += 1
            sid = f"{base}-{n}"
        return sid

    def create_snapshot(self, paths: Iterable[Path], reason: str) -> str:
        now = datetime.now(timezone.utc)
        self.snapshots_dir.mkdir(parents=True, exist_ok=True)
        sid = self._new_id(now)
        snap_dir = self.snapshots_dir / sid
        skills_dir = snap_dir / "skills"
        skills_dir.mkdir(parents=True)

        names: list[str] = []
        for src in paths:
            name = src.name
            if name in names:
                # Same skill seen in several agents; the first copy is kept.
                continue
            shutil.copytree(src, skills_dir / name, symlinks=False)
            names.append(name)

        manifest = SnapshotManifest(
            id=sid,
            reason=reason,
            created_at=now.isoformat(timespec="milliseconds").replace("+00:00", "Z"),
            skills=tuple(names),
        )
        tmp = snap_dir / (MANIFEST_NAME + ".tmp")
        tmp.write_text(json.dumps(manifest.to_dict(), indent=2) + "\n", encoding="utf-8")
        tmp.replace(snap_dir / MANIFEST_NAME)
        logger.info("created snapshot %s (%s, %d skills)", sid, reason, len(names))

        self._prune()
        return sid

    def _read_manifest(self, snap_dir: Path) -> SnapshotManifest:
        data = json.loads((snap_dir / MANIFEST_NAME).read_text(encoding="utf-8"))
        return SnapshotManifest.from_dict(data)

    def list_snapshots(self) -> list[SnapshotManifest]:
        """All readable snapshots, newest first."""

        try:
            entries = list(self.snapshots_dir.iterdir())
        except FileNotFoundError:
            return []

        manifests: list[SnapshotManifest] = []
        for d in entries:
            if not d.is_dir():
                continue
            try:
                manifests.append(self._read_manifest(d))
            except (OSError, ValueError) as e:
                logger.debug("skipping snapshot dir %s: %s", d, e)
                continue
        manifests.sort(key=_order_key, reverse=True)
        return manifests

    def get_snapshot(self, snapshot_id: str) -> SnapshotManifest:
        snap_dir = self.snapshots_dir / snapshot_id
        try:
            return self._read_manifest(snap_dir)
        except FileNotFoundError as e:
            raise SnapshotNotFoundError(snapshot_id=snapshot_id) from e

    def get_latest_snapshot(self) -> SnapshotManifest | None:
        snaps = self.list_snapshots()
        return snaps[0] if snaps else None

    def restore(self, snapshot_id: str, target_dir: Path) -> list[str]:
        """Replace `target_dir/<name>` with the snapshotted copy for every skill in the snapshot."""

        manifest = self.get_snapshot(snapshot_id)
        backup_dir = self.snapshots_dir / snapshot_id / "skills"
        target_dir.mkdir(parents=True, exist_ok=True)

        restored: list[str] = []
        for name in manifest.skills:
            dst = target_dir / name
            remove_managed_path(dst)
            shutil.copytree(backup_dir / name, dst)
            restored.append(name)
        logger.info("restored snapshot %s into %s", snapshot_id, target_dir)
        return restored

    def delete_snapshot(self, snapshot_id: str) -> None:
        snap_dir = self.snapshots_dir / snapshot_id
        if not snap_dir.is_dir():
            raise SnapshotNotFoundError(snapshot_id=snapshot_id)
        shutil.rmtree(snap_dir)

    def _prune(self) -> list[str]:
        snaps = self.list_snapshots()
        if len(snaps) <= self.max_count:
            return []
        removed: list[str] = []
        for m in snaps[self.max_count :]:
            shutil.rmtree(self.snapshots_dir / m.id)
            removed.append(m.id)
        logger.debug("pruned snapshots: %s", ", ".join(removed))
        return removed
