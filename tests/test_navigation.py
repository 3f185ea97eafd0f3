"""Tests for the navigation/presentation controller."""

from __future__ import annotations

import pytest

from credential_portal.clients.credentials import (
    AlreadyExistsError,
    CredentialServiceError,
    CredentialValidationError,
    ExpiredCredentialsError,
    NotFoundError,
    RejectedCredentialsError,
    TransportError,
)
from credential_portal.lifecycle.outcomes import (
    FlowKind,
    OperationKind,
    OperationOutcome,
    OutcomeStatus,
    severity_for,
    status_for_error,
)
from credential_portal.notifications import Severity
from credential_portal.state import Screen


@pytest.mark.parametrize(
    ("status", "severity"),
    [
        (OutcomeStatus.SUCCESS, Severity.SUCCESS),
        (OutcomeStatus.ALREADY_EXISTS, Severity.WARNING),
        (OutcomeStatus.NOT_FOUND, Severity.WARNING),
        (OutcomeStatus.EXPIRED, Severity.WARNING),
        (OutcomeStatus.VALIDATION_ERROR, Severity.ERROR),
        (OutcomeStatus.REJECTED_CREDENTIALS, Severity.ERROR),
        (OutcomeStatus.TRANSPORT_ERROR, Severity.ERROR),
    ],
)
def test_severity_matches_outcome_tag(status, severity):
    outcome = OperationOutcome(OperationKind.RENEW_PASSWORD, status, "u", "message")
    assert severity_for(outcome) is severity


@pytest.mark.parametrize(
    ("error_type", "status"),
    [
        (AlreadyExistsError, OutcomeStatus.ALREADY_EXISTS),
        (NotFoundError, OutcomeStatus.NOT_FOUND),
        (ExpiredCredentialsError, OutcomeStatus.EXPIRED),
        (CredentialValidationError, OutcomeStatus.VALIDATION_ERROR),
        (RejectedCredentialsError, OutcomeStatus.REJECTED_CREDENTIALS),
        (TransportError, OutcomeStatus.TRANSPORT_ERROR),
        (CredentialServiceError, OutcomeStatus.TRANSPORT_ERROR),
    ],
)
def test_client_error_tag_names_the_outcome(error_type, status):
    assert status_for_error(error_type("message")) is status


def test_every_presented_outcome_produces_exactly_one_notification(navigation, orchestrator, app_state):
    for outcome in (
        orchestrator.create_password(""),
        orchestrator.create_two_factor("nobody"),
        orchestrator.renew_password("ghost"),
    ):
        before = len(app_state.notifications.items)
        notification = navigation.present(outcome)
        assert len(app_state.notifications.items) == before + 1
        assert notification.message == outcome.message
        assert notification.severity is outcome.severity


def test_successful_login_moves_to_dashboard(navigation, orchestrator, backend, app_state):
    backend.seed("erin")
    navigation.navigate(Screen.LOGIN)

    outcome = orchestrator.authenticate("erin", backend.password_of("erin"), backend.code_for("erin"))
    navigation.present(outcome)

    assert navigation.screen is Screen.DASHBOARD
    assert app_state.notifications.items[-1].severity is Severity.SUCCESS


def test_rejected_login_stays_on_login(navigation, orchestrator, backend, app_state):
    backend.seed("carol")
    navigation.navigate(Screen.LOGIN)

    navigation.present(orchestrator.authenticate("carol", "wrongpass", "123456"))

    assert navigation.screen is Screen.LOGIN
    assert not app_state.session.is_authenticated
    assert app_state.notifications.items[-1].severity is Severity.ERROR


def test_expired_login_redirects_to_renewal_after_delay(navigation, orchestrator, backend, scheduler, app_state):
    backend.seed("dave", expired=True)
    navigation.navigate(Screen.LOGIN)

    navigation.present(orchestrator.authenticate("dave", backend.password_of("dave"), backend.code_for("dave")))

    assert navigation.screen is Screen.LOGIN
    assert app_state.notifications.items[-1].severity is Severity.WARNING

    scheduler.advance(2)

    assert navigation.screen is Screen.RENEW_CREDENTIALS
    assert navigation.prefill_username == "dave"


def test_leaving_login_cancels_pending_redirect(navigation, orchestrator, backend, scheduler):
    backend.seed("dave", expired=True)
    navigation.navigate(Screen.LOGIN)
    navigation.present(orchestrator.authenticate("dave", backend.password_of("dave"), backend.code_for("dave")))

    navigation.navigate(Screen.HOME)
    scheduler.advance(5)

    assert navigation.screen is Screen.HOME
    assert not orchestrator.authentication.redirect_pending


def test_existing_account_is_sent_to_renewal(navigation, orchestrator, backend):
    backend.seed("alice")
    navigation.navigate(Screen.CREATE_ACCOUNT)

    outcome = orchestrator.create_password("alice")
    navigation.present(outcome)

    assert outcome.next_flow is FlowKind.RENEW
    assert navigation.screen is Screen.RENEW_CREDENTIALS
    assert navigation.prefill_username == "alice"


def test_leaving_create_account_releases_artifacts(navigation, orchestrator):
    navigation.navigate(Screen.CREATE_ACCOUNT)
    artifact = orchestrator.create_password("grace").payload

    navigation.navigate(Screen.HOME)

    assert artifact.released
    assert orchestrator.create_account.password_artifact.current is None


def test_dashboard_requires_session(navigation):
    assert navigation.navigate(Screen.DASHBOARD) is Screen.HOME


def test_logout_returns_home(navigation, orchestrator, backend, app_state):
    backend.seed("erin")
    navigation.present(orchestrator.authenticate("erin", backend.password_of("erin"), backend.code_for("erin")))
    screens: list[Screen] = []
    navigation.subscribe(screens.append)

    navigation.logout()

    assert screens == [Screen.HOME]
    assert not app_state.session.is_authenticated
    assert app_state.notifications.items[-1].message == "Déconnexion réussie"


def test_announce_renewal_is_informational(navigation, app_state):
    notification = navigation.announce_renewal()

    assert notification.severity is Severity.INFO
    assert app_state.notifications.items == [notification]
