"""Session and application state shared by the orchestrator and the UI."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from credential_portal.clients.credentials import AuthenticatedIdentity
from credential_portal.lifecycle.outcomes import OperationKind, OperationOutcome
from credential_portal.notifications import NotificationCenter, Severity
from credential_portal.scheduling import Scheduler

LOGGER = logging.getLogger(__name__)

FAREWELL_MESSAGE = "Déconnexion réussie"


class Screen(str, Enum):
    HOME = "home"
    CREATE_ACCOUNT = "create-account"
    LOGIN = "login"
    RENEW_CREDENTIALS = "renew-credentials"
    DASHBOARD = "dashboard"


@dataclass(frozen=True)
class AuthenticatedSession:
    """Identity currently logged in.

    ``days_until_expiration`` is the value reported by the backend at login time;
    it is never recomputed locally.
    """

    username: str
    days_until_expiration: int


class SessionState:
    """Single source of truth for the logged-in identity."""

    def __init__(self, notifications: NotificationCenter) -> None:
        self._notifications = notifications
        self._lock = threading.Lock()
        self._current: Optional[AuthenticatedSession] = None

    @property
    def current(self) -> Optional[AuthenticatedSession]:
        return self._current

    @property
    def is_authenticated(self) -> bool:
        return self._current is not None

    def login(self, outcome: OperationOutcome) -> AuthenticatedSession:
        """Open a session from a successful ``authenticate`` outcome."""

        if outcome.operation is not OperationKind.AUTHENTICATE or not outcome.succeeded:
            raise ValueError("A session can only be opened from a successful authentication")
        identity = outcome.payload
        if not isinstance(identity, AuthenticatedIdentity):
            raise ValueError("Successful authentication outcome carries no identity")
        session = AuthenticatedSession(
            username=identity.username,
            days_until_expiration=identity.days_until_expiration,
        )
        with self._lock:
            self._current = session
        LOGGER.info("Session opened for %s (%s days until expiration)", session.username, session.days_until_expiration)
        return session

    def logout(self) -> None:
        with self._lock:
            previous = self._current
            self._current = None
        if previous is not None:
            LOGGER.info("Session closed for %s", previous.username)
        self._notifications.notify(Severity.INFO, FAREWELL_MESSAGE)


class AppState:
    """Explicit application state passed to the orchestrator and the UI."""

    def __init__(self, scheduler: Scheduler, *, notification_ttl_seconds: float = 5.0) -> None:
        self.scheduler = scheduler
        self.notifications = NotificationCenter(scheduler, ttl_seconds=notification_ttl_seconds)
        self.session = SessionState(self.notifications)
        self.screen = Screen.HOME


__all__ = ["AppState", "AuthenticatedSession", "FAREWELL_MESSAGE", "Screen", "SessionState"]
