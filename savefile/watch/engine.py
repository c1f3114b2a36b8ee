"""Change-triggered backup engine.

Wires a recursive watchdog observer on the profile base to the debouncer
and the snapshot store. The observer thread only filters and enqueues; the
loop in ``run()`` is the single consumer and the only place that decides
when to back up. Backups run synchronously in the loop, so two can never
be in flight at once. Changes that arrive meanwhile wait in the queue and
start the next quiet period.
"""

import logging
import queue
import threading
import time

from watchdog.observers import Observer

from savefile.core.errors import ProfileError, WatchError
from savefile.profile.profile import Profile
from savefile.storage.snapshot_store import SnapshotStore
from savefile.watch.debouncer import ChangeDebouncer
from savefile.watch.handler import IncludeFilterHandler

logger = logging.getLogger(__name__)

# How long the loop blocks while idle before re-checking the stop flag
IDLE_POLL_SECONDS = 1.0


class BackupEngine:
    """Long-running watch loop for one profile.

    Parameters
    ----------
    store:
        SnapshotStore that receives ``create`` calls.
    profile_name, profile:
        The profile being watched.
    on_backup:
        Optional callback invoked with each new ``Snapshot``.
    """

    def __init__(
        self,
        store: SnapshotStore,
        profile_name: str,
        profile: Profile,
        on_backup=None,
        observer_factory=Observer,
    ):
        self.store = store
        self.profile_name = profile_name
        self.profile = profile
        self.on_backup = on_backup
        self.events: queue.Queue = queue.Queue()
        try:
            self.debouncer = ChangeDebouncer(profile.delay)
        except ValueError as exc:
            raise ProfileError(f"invalid profile {profile_name!r}: {exc}") from exc
        self.handler = IncludeFilterHandler(profile, self.events)
        self._observer_factory = observer_factory
        self.observer = None
        self._running = False
        self.backups_created = 0

    def start(self):
        """Subscribe to changes under the profile base. Fails fast on a bad base."""
        self.profile.validate()
        self.observer = self._observer_factory()
        try:
            self.observer.schedule(self.handler, str(self.profile.base), recursive=True)
            self.observer.start()
        except OSError as exc:
            raise ProfileError(
                f"cannot watch base directory {self.profile.base}: {exc}"
            ) from exc
        self._running = True
        logger.info("Watching %s for %s (delay=%.1fs, %d pattern(s))",
                    self.profile.base, self.profile_name,
                    self.profile.delay, len(self.profile.includes))

    def stop(self):
        if self._running:
            self.observer.stop()
            self.observer.join()
            self._running = False
            logger.info("Stopped watching %s", self.profile_name)

    def run(self, stop_event: threading.Event = None):
        """Start watching and loop until ``stop_event`` is set.

        A failed backup ends the loop with the error; the observer is
        stopped either way.
        """
        stop_event = stop_event or threading.Event()
        if not self._running:
            self.start()
        try:
            while not stop_event.is_set():
                self._step()
        finally:
            self.stop()

    def _step(self):
        if not self.observer.is_alive():
            raise WatchError(f"change source for {self.profile_name} stopped unexpectedly")

        timeout = self.debouncer.time_until_due()
        if timeout is None:
            timeout = IDLE_POLL_SECONDS
        try:
            event = self.events.get(timeout=timeout)
        except queue.Empty:
            event = None

        if event is not None:
            self.debouncer.on_change()
            # Drain whatever else is already queued into the same quiet period
            while True:
                try:
                    self.events.get_nowait()
                except queue.Empty:
                    break
                self.debouncer.on_change()
            return

        if self.debouncer.tick():
            self._backup()

    def _backup(self):
        logger.info("%s: contents changed on disk, backing up", self.profile_name)
        started = time.monotonic()
        snapshot = self.store.create(
            self.profile_name,
            self.profile,
            self.profile.expand_includes(relative=True),
        )
        self.backups_created += 1
        logger.info("Backup %d of %s done in %.2fs",
                    snapshot.id, self.profile_name, time.monotonic() - started)
        if self.on_backup:
            self.on_backup(snapshot)
        return snapshot
