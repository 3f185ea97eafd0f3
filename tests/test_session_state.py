"""Tests for session state and notifications."""

from __future__ import annotations

import pytest

from credential_portal.clients.credentials import AuthenticatedIdentity
from credential_portal.lifecycle.outcomes import OperationKind, OperationOutcome, OutcomeStatus
from credential_portal.notifications import NotificationCenter, Severity
from credential_portal.state import FAREWELL_MESSAGE, AuthenticatedSession, Screen


def _auth_outcome(status: OutcomeStatus = OutcomeStatus.SUCCESS, payload=None) -> OperationOutcome:
    return OperationOutcome(OperationKind.AUTHENTICATE, status, "erin", payload=payload)


def test_app_state_starts_on_home_without_session(app_state):
    assert app_state.screen is Screen.HOME
    assert app_state.session.current is None
    assert app_state.notifications.items == []


def test_login_from_successful_authentication(app_state):
    session = app_state.session.login(_auth_outcome(payload=AuthenticatedIdentity("erin", 42)))

    assert session == AuthenticatedSession(username="erin", days_until_expiration=42)
    assert app_state.session.is_authenticated


@pytest.mark.parametrize(
    "outcome",
    [
        _auth_outcome(OutcomeStatus.REJECTED_CREDENTIALS),
        _auth_outcome(OutcomeStatus.EXPIRED),
        _auth_outcome(payload=None),
        OperationOutcome(OperationKind.CREATE_PASSWORD, OutcomeStatus.SUCCESS, "erin", payload=object()),
    ],
)
def test_login_refuses_anything_but_successful_authentication(app_state, outcome):
    with pytest.raises(ValueError):
        app_state.session.login(outcome)
    assert not app_state.session.is_authenticated


def test_days_until_expiration_is_not_decremented_locally(app_state, scheduler):
    app_state.session.login(_auth_outcome(payload=AuthenticatedIdentity("erin", 3)))

    scheduler.advance(86400 * 5)

    assert app_state.session.current.days_until_expiration == 3


def test_logout_clears_session_and_says_goodbye(app_state):
    app_state.session.login(_auth_outcome(payload=AuthenticatedIdentity("erin", 42)))

    app_state.session.logout()

    assert app_state.session.current is None
    [notification] = app_state.notifications.items
    assert notification.severity is Severity.INFO
    assert notification.message == FAREWELL_MESSAGE


def test_logout_without_session_still_succeeds(app_state):
    app_state.session.logout()

    assert app_state.session.current is None
    assert len(app_state.notifications.items) == 1


def test_notification_expires_after_ttl(scheduler):
    center = NotificationCenter(scheduler, ttl_seconds=5)
    notification = center.notify(Severity.SUCCESS, "ok")

    scheduler.advance(4)
    assert center.items == [notification]

    scheduler.advance(1)
    assert center.items == []
    assert center.pending_timers == 0


def test_dismissed_notification_leaves_no_timer(scheduler):
    center = NotificationCenter(scheduler, ttl_seconds=5)
    notification = center.notify("error", "boom")

    assert center.dismiss(notification.id)
    assert center.items == []
    assert center.pending_timers == 0
    assert scheduler.pending == []

    scheduler.advance(10)
    assert center.items == []
    assert not center.dismiss(notification.id)


def test_expiry_and_dismissal_end_in_the_same_state(scheduler):
    expiring = NotificationCenter(scheduler, ttl_seconds=5)
    dismissed = NotificationCenter(scheduler, ttl_seconds=5)
    keep = expiring.notify(Severity.INFO, "kept")
    expiring.dismiss(keep.id)
    expiring.notify(Severity.INFO, "gone")
    gone = dismissed.notify(Severity.INFO, "gone")
    dismissed.dismiss(gone.id)

    scheduler.advance(5)

    assert expiring.items == dismissed.items == []
    assert expiring.pending_timers == dismissed.pending_timers == 0


def test_notifications_are_independent_and_unique(scheduler):
    center = NotificationCenter(scheduler, ttl_seconds=5)
    first = center.notify(Severity.INFO, "one")
    scheduler.advance(3)
    second = center.notify(Severity.WARNING, "two")

    scheduler.advance(2)

    assert first.id != second.id
    assert center.items == [second]


def test_listeners_receive_each_change(scheduler):
    center = NotificationCenter(scheduler, ttl_seconds=5)
    snapshots: list[list[str]] = []
    unsubscribe = center.subscribe(lambda items: snapshots.append([item.message for item in items]))

    notification = center.notify(Severity.INFO, "hello")
    center.dismiss(notification.id)
    unsubscribe()
    center.notify(Severity.INFO, "ignored")

    assert snapshots == [["hello"], []]
