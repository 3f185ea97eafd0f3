"""Scheduler backed by Qt timers living on the GUI thread."""

from __future__ import annotations

import logging
from typing import Optional

from PySide6 import QtCore

from credential_portal.scheduling import Callback, ScheduledTask

LOGGER = logging.getLogger(__name__)


class _QtTask:
    def __init__(self, callback: Callback) -> None:
        self._callback = callback
        self._cancelled = False
        self._done = False
        self.timer: Optional[QtCore.QTimer] = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def done(self) -> bool:
        return self._done

    def cancel(self) -> None:
        if self._done:
            return
        self._cancelled = True
        self._done = True
        timer = self.timer
        if timer is not None and QtCore.QThread.currentThread() == timer.thread():
            timer.stop()
            timer.deleteLater()
            self.timer = None

    def fire(self) -> None:
        if self._cancelled:
            return
        self._done = True
        self._callback()


class QtScheduler(QtCore.QObject):
    """Runs callbacks on the GUI thread, whichever thread scheduled them."""

    _requested = QtCore.Signal(object, float)

    def __init__(self, parent: Optional[QtCore.QObject] = None) -> None:
        super().__init__(parent)
        self._requested.connect(self._start_timer, QtCore.Qt.ConnectionType.QueuedConnection)

    def call_later(self, delay: float, callback: Callback) -> ScheduledTask:
        task = _QtTask(callback)
        if QtCore.QThread.currentThread() == self.thread():
            self._start_timer(task, delay)
        else:
            self._requested.emit(task, float(delay))
        return task

    @QtCore.Slot(object, float)
    def _start_timer(self, task: _QtTask, delay: float) -> None:
        if task.cancelled:
            return
        timer = QtCore.QTimer(self)
        timer.setSingleShot(True)
        timer.timeout.connect(lambda: self._on_timeout(timer, task))
        task.timer = timer
        timer.start(max(int(delay * 1000), 0))

    def _on_timeout(self, timer: QtCore.QTimer, task: _QtTask) -> None:
        timer.deleteLater()
        task.timer = None
        task.fire()


__all__ = ["QtScheduler"]
