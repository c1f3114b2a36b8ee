"""Backup orchestration.

Single entry point for the CLI and the HTTP API. Composes the ledger, the
snapshot store, restore and retention, and runs the watch loop.

Usage::

    mgr = BackupManager(load_config())
    snapshot, path = mgr.create_backup("game")
    mgr.retain("game", 5)
    mgr.restore_backup("game")          # latest
"""

import logging
import threading
from pathlib import Path

from savefile.config.paths import create_required_dirs
from savefile.config.settings import SavefileConfig, load_config
from savefile.core.errors import BackupError, SavefileError
from savefile.profile.profile import Profile, load_profile
from savefile.storage.ledger import BackupLedger, Snapshot
from savefile.storage.recovery import RecoveryManager, RestoreResult
from savefile.storage.retention import RetentionResult, select_for_deletion
from savefile.storage.snapshot_store import SnapshotStore
from savefile.watch.engine import BackupEngine
from savefile.watch.lock import WatcherLock

logger = logging.getLogger(__name__)


class BackupManager:
    """High-level backup operations, all scoped by profile name."""

    def __init__(self, config: SavefileConfig = None):
        self.config = config or load_config()
        create_required_dirs(self.config)
        self.ledger = BackupLedger(str(self.config.database_path))
        self.store = SnapshotStore(self.config, self.ledger)
        self.recovery = RecoveryManager(self.store)

    def load_profile(self, profile_name: str) -> Profile:
        return load_profile(self.config, profile_name)

    def _check_not_watched(self, profile_name: str, force: bool):
        pid = WatcherLock(self.config, profile_name).holder()
        if pid is None:
            return
        if force:
            logger.warning("Profile %s is being watched by pid %d, continuing (forced)",
                           profile_name, pid)
            return
        raise BackupError(
            f"profile {profile_name!r} is being watched by pid {pid}; "
            "stop the watcher first or force the operation"
        )

    # ------------------------------------------------------------------
    # Create / list
    # ------------------------------------------------------------------

    def create_backup(self, profile_name: str) -> tuple[Snapshot, Path]:
        """Back up the profile's matched files now.

        Returns the new snapshot and the directory it was saved to.
        """
        profile = self.load_profile(profile_name)
        profile.validate()
        snapshot = self.store.create(profile_name, profile)
        return snapshot, self.store.snapshot_dir(profile_name, snapshot.id)

    def list_backups(self, profile_name: str, count: int = None) -> list[Snapshot]:
        """Snapshots newest first, optionally limited to ``count``."""
        snapshots = sorted(
            self.store.list_snapshots(profile_name),
            key=lambda s: (s.timestamp, s.id),
            reverse=True,
        )
        if count is not None:
            snapshots = snapshots[:max(count, 0)]
        return snapshots

    # ------------------------------------------------------------------
    # Restore
    # ------------------------------------------------------------------

    def restore_backup(self, profile_name: str, backup_id: int = None,
                       force: bool = False) -> RestoreResult:
        """Restore ``backup_id``, or the latest backup when it is None."""
        self._check_not_watched(profile_name, force)
        profile = self.load_profile(profile_name)
        if backup_id is None:
            return self.recovery.restore_latest(profile_name, profile)
        return self.recovery.restore(profile_name, profile, backup_id)

    # ------------------------------------------------------------------
    # Deletion and retention
    # ------------------------------------------------------------------

    def delete_one_backup(self, profile_name: str, backup_id: int, force: bool = False):
        self._check_not_watched(profile_name, force)
        self.store.delete_one(profile_name, backup_id)

    def delete_all_backups(self, profile_name: str, force: bool = False) -> int:
        self._check_not_watched(profile_name, force)
        return self.store.delete_all(profile_name)

    def retain(self, profile_name: str, count: int, force: bool = False) -> RetentionResult:
        """Delete all but the ``count`` most recent backups, best effort."""
        self._check_not_watched(profile_name, force)
        snapshots = self.store.list_snapshots(profile_name)
        to_delete = select_for_deletion(snapshots, count)
        doomed = set(to_delete)
        result = RetentionResult(
            total=len(snapshots),
            kept=sorted(s.id for s in snapshots if s.id not in doomed),
        )
        if not to_delete:
            logger.info("Retention for %s: nothing to delete (%d backup(s))",
                        profile_name, len(snapshots))
            return result

        logger.info("Retention for %s: deleting %d backup(s)", profile_name, len(to_delete))
        for backup_id in to_delete:
            try:
                self.store.delete_one(profile_name, backup_id)
            except SavefileError as exc:
                logger.error("Retention could not delete backup %d of %s: %s",
                             backup_id, profile_name, exc)
                result.failed[backup_id] = str(exc)
            else:
                result.deleted.append(backup_id)
        return result

    # ------------------------------------------------------------------
    # Watching
    # ------------------------------------------------------------------

    def watch(self, profile_name: str, stop_event: threading.Event = None, on_backup=None):
        """Run the watch loop for a profile until stopped or a backup fails."""
        profile = self.load_profile(profile_name)
        engine = BackupEngine(self.store, profile_name, profile, on_backup=on_backup)
        with WatcherLock(self.config, profile_name):
            engine.run(stop_event)

    def close(self):
        self.ledger.close()
