"""Sequencing and gating of credential lifecycle operations."""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from dataclasses import replace
from enum import Enum
from typing import Callable, Iterator, List, Optional, Set, Tuple, Union

from credential_portal.artifacts import ArtifactSlot
from credential_portal.clients.credentials import (
    CredentialServiceClient,
    CredentialServiceError,
    CredentialValidationError,
    normalize_username,
)
from credential_portal.scheduling import ScheduledTask
from credential_portal.state import AppState

from .outcomes import FlowKind, OperationKind, OperationOutcome, OutcomeStatus, status_for_error

LOGGER = logging.getLogger(__name__)

DEFAULT_REDIRECT_DELAY_SECONDS = 2.0

IN_PROGRESS_MESSAGE = "Opération déjà en cours pour cet utilisateur"
FLOW_BUSY_MESSAGE = "Une autre opération est en cours, veuillez patienter"

TransitionListener = Callable[[FlowKind, str], None]


class CreateAccountState(str, Enum):
    START = "start"
    PASSWORD_REQUESTED = "password_requested"
    PASSWORD_ISSUED = "password_issued"
    TWO_FACTOR_REQUESTED = "two_factor_requested"
    TWO_FACTOR_ISSUED = "two_factor_issued"
    COMPLETE = "complete"
    ALREADY_PROVISIONED = "already_provisioned"


class AuthenticateState(str, Enum):
    START = "start"
    SUBMITTED = "submitted"
    AUTHENTICATED = "authenticated"
    REJECTED = "rejected"
    EXPIRED_REDIRECT = "expired_redirect"


class RenewState(str, Enum):
    START = "start"
    RENEW_REQUESTED = "renew_requested"
    RENEWED = "renewed"
    FAILED = "failed"


class CreateAccountFlow:
    """Password and TOTP issuance for one username.

    Both steps are independent; the flow is complete only when both artifacts
    were issued by this flow instance.
    """

    def __init__(self) -> None:
        self.username: Optional[str] = None
        self.state = CreateAccountState.START
        self.password_issued = False
        self.two_factor_issued = False
        self.password_artifact = ArtifactSlot()
        self.two_factor_artifact = ArtifactSlot()
        self.in_flight = 0

    @property
    def complete(self) -> bool:
        return self.state is CreateAccountState.COMPLETE

    def bind(self, username: str) -> None:
        if username != self.username:
            self.reset()
            self.username = username

    def reset(self) -> None:
        self.password_artifact.release()
        self.two_factor_artifact.release()
        self.username = None
        self.state = CreateAccountState.START
        self.password_issued = False
        self.two_factor_issued = False

    def settle(self) -> None:
        if self.password_issued and self.two_factor_issued:
            self.state = CreateAccountState.COMPLETE
        elif self.password_issued:
            self.state = CreateAccountState.PASSWORD_ISSUED
        elif self.two_factor_issued:
            self.state = CreateAccountState.TWO_FACTOR_ISSUED
        else:
            self.state = CreateAccountState.START


class AuthenticateFlow:
    def __init__(self) -> None:
        self.username: Optional[str] = None
        self.state = AuthenticateState.START
        self.redirect_task: Optional[ScheduledTask] = None

    @property
    def redirect_pending(self) -> bool:
        return self.redirect_task is not None and not self.redirect_task.done


class RenewFlow:
    """Password-only renewal. TOTP secrets are never renewed here."""

    def __init__(self) -> None:
        self.username: Optional[str] = None
        self.state = RenewState.START
        self.password_artifact = ArtifactSlot()
        self.in_flight = 0

    def bind(self, username: str) -> None:
        if username != self.username:
            self.reset()
            self.username = username

    def reset(self, username: Optional[str] = None) -> None:
        self.password_artifact.release()
        self.username = username
        self.state = RenewState.START


class CredentialLifecycleOrchestrator:
    """Decides which lifecycle call is legal and classifies every outcome.

    Each public operation returns an :class:`OperationOutcome`; client errors are
    converted here and never propagate to the presentation layer.
    """

    def __init__(
        self,
        client: CredentialServiceClient,
        app_state: AppState,
        *,
        redirect_delay_seconds: float = DEFAULT_REDIRECT_DELAY_SECONDS,
    ) -> None:
        self._client = client
        self._app_state = app_state
        self._redirect_delay_seconds = redirect_delay_seconds
        self._lock = threading.Lock()
        self._in_flight: Set[Tuple[str, OperationKind]] = set()
        self._transition_listeners: List[TransitionListener] = []

        self.create_account = CreateAccountFlow()
        self.authentication = AuthenticateFlow()
        self.renewal = RenewFlow()

    def add_transition_listener(self, listener: TransitionListener) -> None:
        """Register a callable notified when a scheduled flow transition fires."""

        self._transition_listeners.append(listener)

    # Create account ------------------------------------------------------------

    def create_password(self, username: str) -> OperationOutcome:
        kind = OperationKind.CREATE_PASSWORD
        cleaned, rejection = self._validate(kind, username)
        if rejection:
            return rejection
        flow = self.create_account
        with self._guard(kind, cleaned, flow) as acquired:
            if not acquired:
                return self._busy(kind, cleaned, flow)
            flow.state = CreateAccountState.PASSWORD_REQUESTED
            outcome = self._execute(kind, cleaned, self._client.create_password)
            if self._left_during_call(flow, cleaned, outcome):
                return self._finish(flow, outcome)

            if outcome.succeeded:
                flow.password_artifact.replace(outcome.payload)
                flow.password_issued = True
                flow.settle()
                return self._finish(flow, replace(outcome, message=self._issued_message(
                    flow, "Mot de passe généré et QR Code affiché avec succès."
                )))
            if outcome.status is OutcomeStatus.ALREADY_EXISTS:
                flow.state = CreateAccountState.ALREADY_PROVISIONED
                return self._finish(flow, replace(
                    outcome,
                    message=f"{outcome.message} Utilisez la page de renouvellement pour mettre à jour vos identifiants.",
                    next_flow=FlowKind.RENEW,
                ))
            flow.settle()
            return self._finish(flow, outcome)

    def create_two_factor(self, username: str) -> OperationOutcome:
        kind = OperationKind.CREATE_TWO_FACTOR
        cleaned, rejection = self._validate(kind, username)
        if rejection:
            return rejection
        flow = self.create_account
        with self._guard(kind, cleaned, flow) as acquired:
            if not acquired:
                return self._busy(kind, cleaned, flow)
            # An existing account may legitimately add its TOTP secret here.
            provisioned = flow.state is CreateAccountState.ALREADY_PROVISIONED
            flow.state = CreateAccountState.TWO_FACTOR_REQUESTED
            outcome = self._execute(kind, cleaned, self._client.create_two_factor)
            if self._left_during_call(flow, cleaned, outcome):
                return self._finish(flow, outcome)

            if outcome.succeeded:
                flow.two_factor_artifact.replace(outcome.payload)
                flow.two_factor_issued = True
                flow.settle()
                return self._finish(flow, replace(outcome, message=self._issued_message(
                    flow, "Secret 2FA généré et QR Code affiché avec succès."
                )))

            if provisioned:
                flow.state = CreateAccountState.ALREADY_PROVISIONED
            else:
                flow.settle()
            if outcome.status is OutcomeStatus.NOT_FOUND:
                outcome = replace(outcome, message=f"{outcome.message} Créez d'abord le mot de passe.")
            elif outcome.status is OutcomeStatus.ALREADY_EXISTS:
                outcome = replace(
                    outcome,
                    message=f"{outcome.message} Le secret 2FA existant reste valide et ne peut pas être régénéré.",
                )
            return self._finish(flow, outcome)

    # Authenticate --------------------------------------------------------------

    def authenticate(self, username: str, password: str, code: str) -> OperationOutcome:
        kind = OperationKind.AUTHENTICATE
        cleaned, rejection = self._validate(kind, username)
        if rejection:
            return rejection
        with self._guard(kind, cleaned) as acquired:
            if not acquired:
                return self._busy(kind, cleaned)
            flow = self.authentication
            self.cancel_redirect()
            flow.username = cleaned
            flow.state = AuthenticateState.SUBMITTED
            outcome = self._execute(kind, cleaned, lambda name: self._client.authenticate(name, password, code))

            if outcome.succeeded:
                session = self._app_state.session.login(outcome)
                flow.state = AuthenticateState.AUTHENTICATED
                return self._finish(flow, replace(
                    outcome,
                    message=f"Authentification réussie ! ({session.days_until_expiration} jours avant expiration)",
                ))
            if outcome.status is OutcomeStatus.EXPIRED:
                flow.state = AuthenticateState.EXPIRED_REDIRECT
                flow.redirect_task = self._app_state.scheduler.call_later(
                    self._redirect_delay_seconds,
                    lambda: self._fire_redirect(cleaned),
                )
                return self._finish(flow, replace(
                    outcome,
                    message=f"{outcome.message} Redirection vers la régénération...",
                    next_flow=FlowKind.RENEW,
                ))
            flow.state = AuthenticateState.REJECTED
            return self._finish(flow, outcome)

    def cancel_redirect(self) -> bool:
        """Cancel a pending expired-credentials redirect. Returns ``True`` if one was pending."""

        task = self.authentication.redirect_task
        self.authentication.redirect_task = None
        if task is None or task.done:
            return False
        task.cancel()
        LOGGER.info("Cancelled pending renewal redirect for %s", self.authentication.username)
        return True

    # Renew ---------------------------------------------------------------------

    def renew_password(self, username: str) -> OperationOutcome:
        kind = OperationKind.RENEW_PASSWORD
        cleaned, rejection = self._validate(kind, username)
        if rejection:
            return rejection
        flow = self.renewal
        with self._guard(kind, cleaned, flow) as acquired:
            if not acquired:
                return self._busy(kind, cleaned, flow)
            # A new attempt never shows the previous QR code.
            flow.password_artifact.release()
            flow.state = RenewState.RENEW_REQUESTED
            outcome = self._execute(kind, cleaned, self._client.renew_password)
            if self._left_during_call(flow, cleaned, outcome):
                return self._finish(flow, outcome)

            if outcome.succeeded:
                flow.password_artifact.replace(outcome.payload)
                flow.state = RenewState.RENEWED
                return self._finish(flow, replace(
                    outcome,
                    message="Mot de passe régénéré avec succès ! Le secret 2FA reste inchangé.",
                ))
            flow.state = RenewState.FAILED
            if outcome.status is OutcomeStatus.NOT_FOUND:
                outcome = replace(
                    outcome,
                    message=f"{outcome.message} Créez d'abord un compte.",
                    next_flow=FlowKind.CREATE_ACCOUNT,
                )
            return self._finish(flow, outcome)

    # Lifecycle -----------------------------------------------------------------

    def release_flow(self, kind: FlowKind) -> None:
        """Leave a flow: release its artifacts and forget its progress."""

        if kind is FlowKind.CREATE_ACCOUNT:
            self.create_account.reset()
        elif kind is FlowKind.RENEW:
            self.renewal.reset()
        elif kind is FlowKind.AUTHENTICATE:
            self.cancel_redirect()
            self.authentication.username = None
            self.authentication.state = AuthenticateState.START

    def close(self) -> None:
        for kind in FlowKind:
            self.release_flow(kind)

    # Internals -----------------------------------------------------------------

    def _validate(self, kind: OperationKind, username: str) -> Tuple[str, Optional[OperationOutcome]]:
        try:
            return normalize_username(username), None
        except CredentialValidationError as exc:
            LOGGER.info("%s rejected locally: %s", kind.value, exc.message)
            return "", OperationOutcome(kind, OutcomeStatus.VALIDATION_ERROR, (username or "").strip(), exc.message)

    @contextmanager
    def _guard(
        self,
        kind: OperationKind,
        username: str,
        flow: Optional[Union[CreateAccountFlow, RenewFlow]] = None,
    ) -> Iterator[bool]:
        """Claim ``(username, kind)`` and bind ``flow`` to ``username`` for the call.

        A flow with a request in flight stays bound to its user until that request
        has finished.
        """

        key = (username, kind)
        with self._lock:
            acquired = key not in self._in_flight and not self._flow_taken(flow, username)
            if acquired:
                self._in_flight.add(key)
                if flow is not None:
                    flow.bind(username)
                    flow.in_flight += 1
        try:
            yield acquired
        finally:
            if acquired:
                with self._lock:
                    self._in_flight.discard(key)
                    if flow is not None:
                        flow.in_flight -= 1

    @staticmethod
    def _flow_taken(flow: Optional[Union[CreateAccountFlow, RenewFlow]], username: str) -> bool:
        return flow is not None and flow.in_flight > 0 and flow.username != username

    def _busy(
        self,
        kind: OperationKind,
        username: str,
        flow: Optional[Union[CreateAccountFlow, RenewFlow]] = None,
    ) -> OperationOutcome:
        if self._flow_taken(flow, username):
            LOGGER.warning("%s for %s refused: flow busy for %s", kind.value, username, flow.username)
            return OperationOutcome(kind, OutcomeStatus.VALIDATION_ERROR, username, FLOW_BUSY_MESSAGE)
        LOGGER.warning("Duplicate %s submission for %s ignored", kind.value, username)
        return OperationOutcome(kind, OutcomeStatus.VALIDATION_ERROR, username, IN_PROGRESS_MESSAGE)

    def _left_during_call(
        self,
        flow: Union[CreateAccountFlow, RenewFlow],
        username: str,
        outcome: OperationOutcome,
    ) -> bool:
        """Return ``True`` if ``flow`` was released while the call for ``username`` ran.

        The artifact of such a call has no screen left to show it and is released.
        """

        if flow.username == username:
            return False
        if outcome.succeeded:
            outcome.payload.release()
        LOGGER.info("%s for %s finished after its flow was left", outcome.operation.value, username)
        return True

    def _execute(self, kind: OperationKind, username: str, call: Callable[[str], object]) -> OperationOutcome:
        try:
            payload = call(username)
        except CredentialServiceError as exc:
            return OperationOutcome(kind, status_for_error(exc), username, exc.message)
        return OperationOutcome(kind, OutcomeStatus.SUCCESS, username, payload=payload)

    def _finish(self, flow: Union[CreateAccountFlow, AuthenticateFlow, RenewFlow], outcome: OperationOutcome) -> OperationOutcome:
        LOGGER.info(
            "%s for %s -> %s (flow state %s)",
            outcome.operation.value,
            outcome.username,
            outcome.status.value,
            flow.state.value,
        )
        return outcome

    @staticmethod
    def _issued_message(flow: CreateAccountFlow, message: str) -> str:
        if flow.complete:
            return f"{message} Compte créé avec succès ! Vous pouvez maintenant vous authentifier."
        return message

    def _fire_redirect(self, username: str) -> None:
        self.authentication.redirect_task = None
        self.renewal.reset(username)
        LOGGER.info("Redirecting %s to password renewal", username)
        for listener in list(self._transition_listeners):
            listener(FlowKind.RENEW, username)


__all__ = [
    "AuthenticateFlow",
    "AuthenticateState",
    "CreateAccountFlow",
    "CreateAccountState",
    "CredentialLifecycleOrchestrator",
    "DEFAULT_REDIRECT_DELAY_SECONDS",
    "FLOW_BUSY_MESSAGE",
    "IN_PROGRESS_MESSAGE",
    "RenewFlow",
    "RenewState",
    "TransitionListener",
]
