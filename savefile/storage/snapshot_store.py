"""Versioned snapshot store.

Each backup is a full copy of a profile's matched files under its own
numbered directory, mirroring the paths relative to the profile base::

    saves/
    +-- <profile>/
        +-- 1/
        |   +-- game.sav
        |   +-- slots/slot1.dat
        +-- 2/
        +-- ...

The ledger row is written first so the directory can be named after the
allocated id. If populating the directory fails, the row and the partial
directory are removed again before the error is raised.
"""

import logging
import os
import shutil
from datetime import datetime
from pathlib import Path

from savefile.config.paths import backup_dir, profile_save_dir
from savefile.config.settings import TAG_PLACEHOLDER, SavefileConfig
from savefile.core.errors import (
    BackupNotFoundError,
    SnapshotIOError,
    StorageError,
)
from savefile.profile.profile import Profile
from savefile.storage.ledger import BackupLedger, Snapshot

logger = logging.getLogger(__name__)


def copy_entry(src: Path, dest: Path):
    """Copy one matched entry into a snapshot.

    Directories are created empty (their contents are only copied when they
    are matched themselves). Files are copied with their parents, unless the
    destination already exists.
    """
    if src.is_dir():
        dest.mkdir(parents=True, exist_ok=True)
    elif not dest.exists():
        dest.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(str(src), str(dest))


class SnapshotStore:
    """Creates, queries and deletes snapshots for any number of profiles."""

    def __init__(self, config: SavefileConfig, ledger: BackupLedger):
        self.config = config
        self.ledger = ledger

    def snapshot_dir(self, profile_name: str, backup_id: int) -> Path:
        return backup_dir(self.config, profile_name, backup_id)

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def create(
        self,
        profile_name: str,
        profile: Profile,
        relative_paths: list[Path] | None = None,
        timestamp: datetime | None = None,
    ) -> Snapshot:
        """Record a new snapshot and copy the matched files into it.

        ``relative_paths`` defaults to the profile's live include expansion.
        """
        if relative_paths is None:
            relative_paths = profile.expand_includes(relative=True)

        snapshot = self.ledger.insert(profile_name, TAG_PLACEHOLDER, timestamp)
        dest_root = self.snapshot_dir(profile_name, snapshot.id)
        try:
            if dest_root.exists():
                # Orphan left by an interrupted delete; its id is ours now
                logger.warning("Replacing orphaned snapshot directory %s", dest_root)
                shutil.rmtree(dest_root)
            dest_root.mkdir(parents=True, exist_ok=True)
            for rel in relative_paths:
                rel = Path(rel)
                copy_entry(profile.base / rel, dest_root / rel)
        except OSError as exc:
            logger.error("Backup %d of %s failed: %s", snapshot.id, profile_name, exc)
            self._rollback(profile_name, snapshot.id, dest_root)
            raise SnapshotIOError(
                f"failed to populate backup {snapshot.id} for {profile_name}: {exc}",
                path=getattr(exc, "filename", None) or dest_root,
            ) from exc

        logger.info(
            "Created backup %d for %s (%d entries) -> %s",
            snapshot.id, profile_name, len(relative_paths), dest_root,
        )
        return snapshot

    def _rollback(self, profile_name: str, backup_id: int, dest_root: Path):
        shutil.rmtree(dest_root, ignore_errors=True)
        try:
            self.ledger.remove(profile_name, backup_id)
        except StorageError:
            logger.exception("Could not roll back ledger row %d for %s",
                             backup_id, profile_name)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def list_snapshots(self, profile_name: str) -> list[Snapshot]:
        """All snapshots in id order. Sort by timestamp for recency."""
        return self.ledger.select_all(profile_name)

    def get(self, profile_name: str, backup_id: int) -> Snapshot | None:
        return self.ledger.select(profile_name, backup_id)

    def latest(self, profile_name: str) -> Snapshot | None:
        snapshots = self.ledger.select_all(profile_name)
        if not snapshots:
            return None
        return max(snapshots, key=lambda s: (s.timestamp, s.id))

    # ------------------------------------------------------------------
    # Deletion
    # ------------------------------------------------------------------

    def delete_one(self, profile_name: str, backup_id: int):
        """Remove the ledger row, then the snapshot directory."""
        if self.ledger.select(profile_name, backup_id) is None:
            raise BackupNotFoundError(profile_name, backup_id)

        self.ledger.remove(profile_name, backup_id)
        path = self.snapshot_dir(profile_name, backup_id)
        if not path.exists():
            logger.warning("Backup %d of %s had no directory at %s",
                           backup_id, profile_name, path)
            return
        try:
            shutil.rmtree(path)
        except OSError as exc:
            raise SnapshotIOError(
                f"failed to delete directory of backup {backup_id}: {exc}",
                path=path,
                ledger_mutated=True,
            ) from exc
        logger.info("Deleted backup %d of %s", backup_id, profile_name)

    def delete_all(self, profile_name: str) -> int:
        """Drop the profile's ledger and its whole save directory.

        Returns the number of snapshots the ledger held.
        """
        count = len(self.ledger.select_all(profile_name))
        self.ledger.drop(profile_name)
        path = profile_save_dir(self.config, profile_name)
        if os.path.exists(path):
            try:
                shutil.rmtree(path)
            except OSError as exc:
                raise SnapshotIOError(
                    f"failed to delete save directory of {profile_name}: {exc}",
                    path=path,
                    ledger_mutated=True,
                ) from exc
        logger.info("Deleted all %d backup(s) of %s", count, profile_name)
        return count
