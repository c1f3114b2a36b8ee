"""Trailing-edge debounce of filesystem changes.

    state          input    action                 next
    IDLE           change   start quiet timer      PENDING_QUIET
    PENDING_QUIET  change   restart quiet timer    PENDING_QUIET
    PENDING_QUIET  tick     emit trigger if quiet  IDLE
    IDLE           tick     nothing                IDLE

A burst of changes with gaps shorter than ``delay`` produces exactly one
trigger, ``delay`` seconds after the last change. The debouncer owns no
thread or timer; the watch loop drives it with the current time.
"""

import logging
import time
from enum import Enum

logger = logging.getLogger(__name__)


class DebounceState(Enum):
    IDLE = "idle"
    PENDING_QUIET = "pending_quiet"


class ChangeDebouncer:
    """Coalesces change notifications into backup triggers.

    Parameters
    ----------
    delay:
        Quiet period in seconds required after the last change.
    clock:
        Monotonic time source, injectable for tests.
    """

    def __init__(self, delay: float, clock=time.monotonic):
        if delay < 0:
            raise ValueError(f"delay must be non-negative, got {delay}")
        self.delay = float(delay)
        self._clock = clock
        self.state = DebounceState.IDLE
        self._last_change: float | None = None
        self.changes_coalesced = 0

    def on_change(self, now: float = None):
        """Record a change; (re)starts the quiet period."""
        now = self._clock() if now is None else now
        if self.state is DebounceState.IDLE:
            self.state = DebounceState.PENDING_QUIET
            self.changes_coalesced = 0
        self._last_change = now
        self.changes_coalesced += 1

    def time_until_due(self, now: float = None) -> float | None:
        """Seconds until a trigger is due, or None while idle."""
        if self.state is DebounceState.IDLE:
            return None
        now = self._clock() if now is None else now
        return max(0.0, self._last_change + self.delay - now)

    def tick(self, now: float = None) -> bool:
        """Return True (and go idle) if the quiet period has elapsed."""
        if self.state is DebounceState.IDLE:
            return False
        now = self._clock() if now is None else now
        if now - self._last_change < self.delay:
            return False
        logger.debug("Quiet for %.2fs after %d change(s), triggering",
                     now - self._last_change, self.changes_coalesced)
        self.state = DebounceState.IDLE
        self._last_change = None
        return True

    def reset(self):
        self.state = DebounceState.IDLE
        self._last_change = None
        self.changes_coalesced = 0
