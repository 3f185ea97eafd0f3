"""Cancellable delayed callbacks used for notification expiry and redirects."""

from __future__ import annotations

import logging
import threading
from typing import Callable, Protocol

LOGGER = logging.getLogger(__name__)

Callback = Callable[[], None]


class ScheduledTask(Protocol):
    """Handle returned by :meth:`Scheduler.call_later`."""

    @property
    def cancelled(self) -> bool: ...

    @property
    def done(self) -> bool: ...

    def cancel(self) -> None: ...


class Scheduler(Protocol):
    """Runs callbacks once after a delay expressed in seconds."""

    def call_later(self, delay: float, callback: Callback) -> ScheduledTask: ...


class _TimerTask:
    """Task backed by a :class:`threading.Timer`."""

    def __init__(self, delay: float, callback: Callback) -> None:
        self._callback = callback
        self._lock = threading.Lock()
        self._cancelled = False
        self._done = False
        self._timer = threading.Timer(delay, self._fire)
        self._timer.daemon = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def done(self) -> bool:
        return self._done

    def start(self) -> None:
        self._timer.start()

    def cancel(self) -> None:
        with self._lock:
            if self._done:
                return
            self._cancelled = True
            self._done = True
        self._timer.cancel()

    def _fire(self) -> None:
        with self._lock:
            if self._cancelled:
                return
            self._done = True
        try:
            self._callback()
        except Exception:
            LOGGER.exception("Scheduled callback %r failed", self._callback)
            raise


class ThreadingScheduler:
    """Scheduler for headless use (CLI, scripts) relying on timer threads."""

    def call_later(self, delay: float, callback: Callback) -> ScheduledTask:
        task = _TimerTask(max(float(delay), 0.0), callback)
        task.start()
        return task


__all__ = ["Callback", "ScheduledTask", "Scheduler", "ThreadingScheduler"]
