"""Rollback recorder: snapshot files before a destructive change, restore later.

A rollback point is a directory under the snapshots root holding a copy of
every file that is about to be modified or deleted, plus a ``manifest.json``
listing path and action for every affected file. The manifest is written
last; a point without a manifest is not a valid rollback point.
"""

import json
import logging
import shutil
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from hive_build.errors import NotFoundError, RollbackError
from hive_build.plan.models import FileChange

logger = logging.getLogger(__name__)

MANIFEST_NAME = "manifest.json"
SNAPSHOT_ACTIONS = ("modified", "deleted")


def snapshot_name(path: str) -> str:
    """Flatten a relative path into a single snapshot file name."""
    return path.replace("\\", "/").strip("/").replace("/", "__")


@dataclass
class RollbackPoint:
    """A recorded snapshot and its manifest."""

    version: str
    scope: str
    base_dir: str
    timestamp: str
    files: list[dict] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "version": self.version,
            "scope": self.scope,
            "base_dir": self.base_dir,
            "timestamp": self.timestamp,
            "files": self.files,
        }


@dataclass
class RestoreReport:
    """Outcome of walking a manifest."""

    version: str
    restored: list[str] = field(default_factory=list)
    flagged: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "version": self.version,
            "restored": self.restored,
            "flagged_for_deletion": self.flagged,
            "errors": self.errors,
        }


class RollbackRecorder:
    """Creates and restores file snapshots under a snapshots root."""

    def __init__(self, snapshots_dir: Path):
        self.snapshots_dir = Path(snapshots_dir)

    def _point_dir(self, version: str) -> Path:
        return self.snapshots_dir / version

    def has_manifest(self, version: str) -> bool:
        return (self._point_dir(version) / MANIFEST_NAME).is_file()

    def create(self, scope: str, base_dir: Path, changes: list[FileChange]) -> RollbackPoint:
        """Snapshot the current content of files about to be modified or deleted.

        Args:
            scope: Grouping for the point, e.g. "<plan_id>/<task_id>"
            base_dir: Root the change paths are relative to
            changes: Files about to change and how

        Raises:
            RollbackError: if any snapshot or the manifest could not be written.
                The partial directory is removed.
        """
        base_dir = Path(base_dir)
        timestamp = datetime.now(timezone.utc).isoformat()
        stamp = timestamp.replace(":", "-").replace(".", "-")
        version = f"{scope}/{stamp}" if scope else stamp
        point_dir = self._point_dir(version)

        files = []
        try:
            point_dir.mkdir(parents=True, exist_ok=False)
            for change in changes:
                entry = {"path": change.path, "action": change.action, "snapshot": None}
                source = base_dir / change.path
                if change.action in SNAPSHOT_ACTIONS and source.is_file():
                    name = snapshot_name(change.path)
                    shutil.copyfile(source, point_dir / name)
                    entry["snapshot"] = name
                files.append(entry)

            point = RollbackPoint(
                version=version,
                scope=scope,
                base_dir=str(base_dir.resolve()),
                timestamp=timestamp,
                files=files,
            )
            (point_dir / MANIFEST_NAME).write_text(
                json.dumps(point.to_dict(), indent=2), encoding="utf-8"
            )
        except OSError as e:
            shutil.rmtree(point_dir, ignore_errors=True)
            raise RollbackError(f"Failed to record rollback point {version}: {e}", version=version) from e

        logger.info("Recorded rollback point %s (%d files)", version, len(files))
        return point

    def load(self, version: str) -> RollbackPoint:
        manifest_path = self._point_dir(version) / MANIFEST_NAME
        if not manifest_path.is_file():
            raise NotFoundError(
                f"Rollback point not found: {version}", kind="rollback_point", ref=version
            )
        data = json.loads(manifest_path.read_text(encoding="utf-8"))
        return RollbackPoint(
            version=data.get("version", version),
            scope=data.get("scope", ""),
            base_dir=data["base_dir"],
            timestamp=data.get("timestamp", ""),
            files=data.get("files", []),
        )

    def restore(self, version: str, base_dir: Optional[Path] = None) -> RestoreReport:
        """Walk a manifest and put modified/deleted files back.

        Created files are only flagged; nothing is deleted.
        """
        point = self.load(version)
        root = Path(base_dir or point.base_dir).resolve()
        point_dir = self._point_dir(version)
        report = RestoreReport(version=version)

        for entry in point.files:
            path = entry["path"]
            action = entry["action"]

            if action == "created":
                report.flagged.append(path)
                continue

            target = (root / path).resolve()
            if not target.is_relative_to(root):
                report.errors.append(f"Refusing to restore outside {root}: {path}")
                continue

            snapshot = entry.get("snapshot")
            if not snapshot or not (point_dir / snapshot).is_file():
                report.errors.append(f"No snapshot recorded for {path}; manual revert needed")
                continue

            try:
                target.parent.mkdir(parents=True, exist_ok=True)
                shutil.copyfile(point_dir / snapshot, target)
                report.restored.append(path)
            except OSError as e:
                report.errors.append(f"Failed to restore {path}: {e}")

        logger.info(
            "Restored rollback point %s: %d restored, %d flagged, %d errors",
            version, len(report.restored), len(report.flagged), len(report.errors),
        )
        return report

    def list_points(self, scope: Optional[str] = None) -> list[RollbackPoint]:
        """List valid rollback points, newest first."""
        root = self.snapshots_dir / scope if scope else self.snapshots_dir
        if not root.is_dir():
            return []

        points = []
        for manifest_path in root.rglob(MANIFEST_NAME):
            version = manifest_path.parent.relative_to(self.snapshots_dir).as_posix()
            points.append(self.load(version))
        points.sort(key=lambda p: p.timestamp, reverse=True)
        return points
