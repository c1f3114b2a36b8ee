"""Restoring snapshots onto a profile's base directory.

A restore copies the entire snapshot tree back onto ``base``. Files at the
same relative paths are overwritten; anything else under ``base`` is left
alone.
"""

import logging
import os
import shutil
from dataclasses import dataclass, field
from pathlib import Path

from savefile.core.errors import BackupError, BackupNotFoundError, SnapshotIOError
from savefile.profile.profile import Profile
from savefile.storage.snapshot_store import SnapshotStore

logger = logging.getLogger(__name__)


@dataclass
class RestoreResult:
    profile: str
    backup_id: int
    source: str
    destination: str
    restored: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "profile": self.profile,
            "backup_id": self.backup_id,
            "source": self.source,
            "destination": self.destination,
            "restored": self.restored,
        }


def copy_tree_over(src: Path, dest: Path) -> list[str]:
    """Recursively copy ``src`` into ``dest``, overwriting files.

    Returns the copied file paths relative to ``dest``.
    """
    copied = []
    dest.mkdir(parents=True, exist_ok=True)
    for dirpath, dirnames, filenames in os.walk(src):
        rel_dir = Path(dirpath).relative_to(src)
        target_dir = dest / rel_dir
        target_dir.mkdir(parents=True, exist_ok=True)
        for d in dirnames:
            (target_dir / d).mkdir(exist_ok=True)
        for name in filenames:
            shutil.copy2(os.path.join(dirpath, name), str(target_dir / name))
            copied.append((rel_dir / name).as_posix())
    return sorted(copied)


class RecoveryManager:
    """Handles restoring snapshots from the store."""

    def __init__(self, store: SnapshotStore):
        self.store = store

    def restore(self, profile_name: str, profile: Profile, backup_id: int) -> RestoreResult:
        """Copy snapshot ``backup_id`` back onto ``profile.base``."""
        if self.store.get(profile_name, backup_id) is None:
            raise BackupNotFoundError(profile_name, backup_id)

        src = self.store.snapshot_dir(profile_name, backup_id)
        if not src.is_dir():
            raise SnapshotIOError(
                f"directory of backup {backup_id} is missing: {src}", path=src
            )

        try:
            restored = copy_tree_over(src, profile.base)
        except OSError as exc:
            raise SnapshotIOError(
                f"failed to restore backup {backup_id} of {profile_name}: {exc}",
                path=getattr(exc, "filename", None) or src,
            ) from exc

        logger.info("Restored backup %d of %s onto %s (%d files)",
                    backup_id, profile_name, profile.base, len(restored))
        return RestoreResult(
            profile=profile_name,
            backup_id=backup_id,
            source=str(src),
            destination=str(profile.base),
            restored=restored,
        )

    def restore_latest(self, profile_name: str, profile: Profile) -> RestoreResult:
        latest = self.store.latest(profile_name)
        if latest is None:
            raise BackupError(f"no backups exist for profile {profile_name!r}")
        return self.restore(profile_name, profile, latest.id)
