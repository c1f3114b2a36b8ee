"""Watchdog handler that forwards relevant changes to the watch loop."""

import logging
import os
import queue
import time
from dataclasses import dataclass
from pathlib import Path

from watchdog.events import FileSystemEvent, FileSystemEventHandler

from savefile.profile.profile import Profile

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChangeEvent:
    """A change to a path the profile includes. Only its occurrence matters."""
    path: str
    event_type: str
    timestamp: float


class IncludeFilterHandler(FileSystemEventHandler):
    """Filters watchdog events against the profile's live include set.

    Runs on the observer thread. Matching events go onto ``events``; the
    handler never touches debounce state.
    """

    def __init__(self, profile: Profile, events: queue.Queue):
        super().__init__()
        self.profile = profile
        self.events = events

    def _affected_paths(self, event: FileSystemEvent) -> list[str]:
        paths = [event.src_path]
        dest = getattr(event, "dest_path", None)
        if dest:
            paths.append(dest)
        return [os.fsdecode(p) for p in paths]

    def on_any_event(self, event: FileSystemEvent):
        try:
            self._handle(event)
        except Exception:
            logger.exception("Error handling %s event for %s",
                             event.event_type, event.src_path)

    def _handle(self, event: FileSystemEvent):
        if event.event_type in ("opened", "closed_no_write"):
            return
        included = set(self.profile.expand_includes(relative=False))
        for path in self._affected_paths(event):
            if Path(os.path.normpath(path)) in included:
                self.events.put(ChangeEvent(
                    path=path,
                    event_type=event.event_type,
                    timestamp=time.monotonic(),
                ))
                logger.debug("%s: %s", event.event_type.upper(), path)
                return
        logger.debug("Ignoring %s event for %s", event.event_type, event.src_path)
