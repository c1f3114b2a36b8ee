"""PID lock file marking a profile as being watched.

Restore and delete operations check the lock so they do not race a running
watcher. A lock whose PID no longer exists is treated as stale.
"""

import logging
import os
import time

import psutil

from savefile.config.paths import lock_path
from savefile.config.settings import SavefileConfig
from savefile.core.errors import BackupError

logger = logging.getLogger(__name__)

# An empty lock file younger than this is assumed to be mid-acquire
PID_WRITE_GRACE_SECONDS = 5.0


def _pid_alive(pid: int) -> bool:
    try:
        return psutil.pid_exists(pid) and psutil.Process(pid).status() != psutil.STATUS_ZOMBIE
    except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
        return False


class WatcherLock:
    """Per-profile lock held by the watch loop for its lifetime."""

    def __init__(self, config: SavefileConfig, profile_name: str):
        self.path = lock_path(config, profile_name)
        self.profile_name = profile_name
        self._held = False

    def _read_pid(self) -> str | None:
        try:
            return self.path.read_text().strip()
        except FileNotFoundError:
            return None

    def _mtime(self) -> float:
        try:
            return self.path.stat().st_mtime
        except FileNotFoundError:
            return 0.0

    def holder(self) -> int | None:
        """PID of the live process holding the lock, if any."""
        try:
            pid = int(self._read_pid() or "")
        except (OSError, ValueError):
            return None
        return pid if _pid_alive(pid) else None

    def acquire(self):
        """Create the lock file exclusively, replacing it only if stale."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        for _ in range(2):
            try:
                fd = os.open(self.path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
            except FileExistsError:
                self._check_stale()
                continue
            with os.fdopen(fd, "w") as f:
                f.write(str(os.getpid()))
            self._held = True
            logger.debug("Acquired watcher lock %s", self.path)
            return
        raise BackupError(f"could not acquire watcher lock {self.path}")

    def _check_stale(self):
        """Remove an existing lock unless a live foreign process owns it."""
        raw = self._read_pid()
        if raw == "" and time.time() - self._mtime() < PID_WRITE_GRACE_SECONDS:
            # Another watcher created the file and has not written its PID yet
            raise BackupError(
                f"profile {self.profile_name!r} is already being watched"
            )
        pid = self.holder()
        if pid is not None and pid != os.getpid():
            raise BackupError(
                f"profile {self.profile_name!r} is already being watched (pid {pid})"
            )
        logger.info("Replacing stale watcher lock %s", self.path)
        self.path.unlink(missing_ok=True)

    def release(self):
        if not self._held:
            return
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass
        self._held = False
        logger.debug("Released watcher lock %s", self.path)

    def __enter__(self):
        self.acquire()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.release()
