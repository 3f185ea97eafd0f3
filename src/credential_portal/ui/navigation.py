"""Maps lifecycle outcomes onto screens and notifications."""

from __future__ import annotations

import logging
from typing import Callable, List, Optional

from credential_portal.lifecycle.orchestrator import CredentialLifecycleOrchestrator
from credential_portal.lifecycle.outcomes import FlowKind, OperationKind, OperationOutcome
from credential_portal.notifications import Notification, Severity
from credential_portal.state import AppState, Screen

LOGGER = logging.getLogger(__name__)

ScreenListener = Callable[[Screen], None]

_SCREEN_BY_FLOW = {
    FlowKind.CREATE_ACCOUNT: Screen.CREATE_ACCOUNT,
    FlowKind.AUTHENTICATE: Screen.LOGIN,
    FlowKind.RENEW: Screen.RENEW_CREDENTIALS,
}

# Flows whose artifacts are released when their screen is left.
_FLOW_BY_SCREEN = {
    Screen.CREATE_ACCOUNT: FlowKind.CREATE_ACCOUNT,
    Screen.LOGIN: FlowKind.AUTHENTICATE,
    Screen.RENEW_CREDENTIALS: FlowKind.RENEW,
}


class NavigationController:
    """Presentation controller: renders outcomes and tracks the current screen.

    The controller never classifies results itself; severity and message come
    from the outcome, and follow-up flows from the orchestrator.
    """

    def __init__(self, app_state: AppState, orchestrator: CredentialLifecycleOrchestrator) -> None:
        self._state = app_state
        self._orchestrator = orchestrator
        self._listeners: List[ScreenListener] = []
        self.prefill_username: Optional[str] = None
        orchestrator.add_transition_listener(self._on_transition)

    @property
    def screen(self) -> Screen:
        return self._state.screen

    def subscribe(self, listener: ScreenListener) -> None:
        self._listeners.append(listener)

    def navigate(self, screen: Screen, *, username: Optional[str] = None) -> Screen:
        """Move to ``screen``, leaving the current flow cleanly."""

        if screen is Screen.DASHBOARD and not self._state.session.is_authenticated:
            screen = Screen.HOME
        previous = self._state.screen
        if previous is not screen:
            left_flow = _FLOW_BY_SCREEN.get(previous)
            if left_flow is not None:
                self._orchestrator.release_flow(left_flow)
        self.prefill_username = username
        self._state.screen = screen
        LOGGER.debug("Navigation %s -> %s", previous.value, screen.value)
        for listener in list(self._listeners):
            listener(screen)
        return screen

    def present(self, outcome: OperationOutcome) -> Notification:
        """Show the notification for ``outcome`` and apply its screen change."""

        notification = self._state.notifications.notify(outcome.severity, outcome.message)
        if outcome.succeeded and outcome.operation is OperationKind.AUTHENTICATE:
            self.navigate(Screen.DASHBOARD)
        elif outcome.next_flow is FlowKind.RENEW and outcome.operation is OperationKind.CREATE_PASSWORD:
            self.navigate(Screen.RENEW_CREDENTIALS, username=outcome.username)
        # Expired credentials are redirected by the orchestrator's scheduled transition.
        return notification

    def announce_renewal(self) -> Notification:
        return self._state.notifications.notify(Severity.INFO, "Régénération du mot de passe en cours...")

    def logout(self) -> None:
        self._state.session.logout()
        self.navigate(Screen.HOME)

    def _on_transition(self, flow: FlowKind, username: str) -> None:
        self.navigate(_SCREEN_BY_FLOW[flow], username=username)


__all__ = ["NavigationController", "ScreenListener"]
