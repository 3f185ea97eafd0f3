"""Transient user notifications with automatic expiry."""

from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List

from .scheduling import ScheduledTask, Scheduler

LOGGER = logging.getLogger(__name__)

DEFAULT_NOTIFICATION_TTL_SECONDS = 5.0

NotificationListener = Callable[[List["Notification"]], None]


class Severity(str, Enum):
    SUCCESS = "success"
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


@dataclass(frozen=True)
class Notification:
    """A message shown to the user until it expires or is dismissed."""

    id: str
    severity: Severity
    message: str


class NotificationCenter:
    """Keeps the list of live notifications and their expiry timers.

    Every notification owns exactly one pending expiry task, keyed by the
    notification id. Dismissing a notification cancels its task so neither path
    leaves residual timers behind.
    """

    def __init__(self, scheduler: Scheduler, *, ttl_seconds: float = DEFAULT_NOTIFICATION_TTL_SECONDS) -> None:
        self._scheduler = scheduler
        self._ttl_seconds = ttl_seconds
        self._lock = threading.RLock()
        self._items: List[Notification] = []
        self._timers: Dict[str, ScheduledTask] = {}
        self._listeners: List[NotificationListener] = []

    @property
    def items(self) -> List[Notification]:
        with self._lock:
            return list(self._items)

    @property
    def pending_timers(self) -> int:
        with self._lock:
            return len(self._timers)

    def subscribe(self, listener: NotificationListener) -> Callable[[], None]:
        """Register a listener called with the current list after each change."""

        with self._lock:
            self._listeners.append(listener)

        def _unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return _unsubscribe

    def notify(self, severity: Severity | str, message: str) -> Notification:
        notification = Notification(id=uuid.uuid4().hex[:9], severity=Severity(severity), message=message)
        with self._lock:
            self._items.append(notification)
            self._timers[notification.id] = self._scheduler.call_later(
                self._ttl_seconds, lambda: self._expire(notification.id)
            )
        LOGGER.debug("Notification %s (%s): %s", notification.id, notification.severity.value, message)
        self._emit()
        return notification

    def dismiss(self, notification_id: str) -> bool:
        """Remove a notification before it expires. Returns ``False`` if unknown."""

        with self._lock:
            task = self._timers.pop(notification_id, None)
            removed = self._remove(notification_id)
        if task is not None:
            task.cancel()
        if removed:
            self._emit()
        return removed

    def clear(self) -> None:
        with self._lock:
            tasks = list(self._timers.values())
            self._timers.clear()
            self._items.clear()
        for task in tasks:
            task.cancel()
        self._emit()

    def _expire(self, notification_id: str) -> None:
        with self._lock:
            self._timers.pop(notification_id, None)
            removed = self._remove(notification_id)
        if removed:
            self._emit()

    def _remove(self, notification_id: str) -> bool:
        before = len(self._items)
        self._items = [item for item in self._items if item.id != notification_id]
        return len(self._items) != before

    def _emit(self) -> None:
        with self._lock:
            snapshot = list(self._items)
            listeners = list(self._listeners)
        for listener in listeners:
            listener(snapshot)


__all__ = ["Notification", "NotificationCenter", "Severity", "DEFAULT_NOTIFICATION_TTL_SECONDS"]
