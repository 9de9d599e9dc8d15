"""
Single-slot pending timer.

    timer = PendingTimer()
    timer.arm(300, save)   # schedule
    timer.arm(300, save)   # cancels the first, schedules again
    timer.flush()          # run now if something is pending

At most one callback is ever pending. Rapid re-arming collapses into a
single call after the last quiet window.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

logger = logging.getLogger("cjsync.debounce")


class PendingTimer:
    """Debounce helper built on threading.Timer."""

    def __init__(self, name: str = "pending-timer") -> None:
        self.name = name
        self._lock = threading.Lock()
        self._timer: Optional[threading.Timer] = None
        self._callback: Optional[Callable[[], None]] = None
        self._generation = 0

    @property
    def pending(self) -> bool:
        with self._lock:
            return self._timer is not None

    def arm(self, delay: float, callback: Callable[[], None]) -> None:
        """Schedule callback after delay seconds, replacing any pending one."""
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._generation += 1
            timer = threading.Timer(delay, self._fire, args=(self._generation,))
            timer.daemon = True
            timer.name = self.name
            self._timer = timer
            self._callback = callback
            timer.start()

    def cancel(self) -> bool:
        """Drop the pending callback. Returns True if one was pending."""
        with self._lock:
            if self._timer is None:
                return False
            self._timer.cancel()
            self._timer = None
            self._callback = None
            return True

    def flush(self) -> bool:
        """Run the pending callback immediately. Returns True if one ran."""
        with self._lock:
            if self._timer is None:
                return False
            self._timer.cancel()
            callback = self._callback
            self._timer = None
            self._callback = None
        self._run(callback)
        return True

    def _fire(self, generation: int) -> None:
        with self._lock:
            # a newer arm(), cancel() or flush() superseded this timer
            if self._timer is None or generation != self._generation:
                return
            callback = self._callback
            self._timer = None
            self._callback = None
        self._run(callback)

    def _run(self, callback: Optional[Callable[[], None]]) -> None:
        if callback is None:
            return
        try:
            callback()
        except Exception as exc:
            logger.error("%s callback failed: %s", self.name, exc)
