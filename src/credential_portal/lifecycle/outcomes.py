"""Normalised results of credential lifecycle operations."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from credential_portal.clients.credentials import CredentialServiceError
from credential_portal.notifications import Severity


class OperationKind(str, Enum):
    CREATE_PASSWORD = "create_password"
    CREATE_TWO_FACTOR = "create_two_factor"
    AUTHENTICATE = "authenticate"
    RENEW_PASSWORD = "renew_password"


class OutcomeStatus(str, Enum):
    SUCCESS = "success"
    ALREADY_EXISTS = "already_exists"
    NOT_FOUND = "not_found"
    EXPIRED = "expired"
    VALIDATION_ERROR = "validation_error"
    REJECTED_CREDENTIALS = "rejected_credentials"
    TRANSPORT_ERROR = "transport_error"


class FlowKind(str, Enum):
    CREATE_ACCOUNT = "create_account"
    AUTHENTICATE = "authenticate"
    RENEW = "renew"


_SEVERITY_BY_STATUS = {
    OutcomeStatus.SUCCESS: Severity.SUCCESS,
    OutcomeStatus.ALREADY_EXISTS: Severity.WARNING,
    OutcomeStatus.NOT_FOUND: Severity.WARNING,
    OutcomeStatus.EXPIRED: Severity.WARNING,
    OutcomeStatus.VALIDATION_ERROR: Severity.ERROR,
    OutcomeStatus.REJECTED_CREDENTIALS: Severity.ERROR,
    OutcomeStatus.TRANSPORT_ERROR: Severity.ERROR,
}

@dataclass(frozen=True)
class OperationOutcome:
    """Tagged result of one lifecycle operation.

    ``payload`` is a :class:`~credential_portal.artifacts.QrArtifact` for issuance
    and renewal, an :class:`~credential_portal.clients.credentials.AuthenticatedIdentity`
    for authentication, and ``None`` for every failure. ``next_flow`` names the
    flow the user should be taken to, if any.
    """

    operation: OperationKind
    status: OutcomeStatus
    username: str
    message: str = ""
    payload: Any = None
    next_flow: Optional[FlowKind] = None

    @property
    def succeeded(self) -> bool:
        return self.status is OutcomeStatus.SUCCESS

    @property
    def severity(self) -> Severity:
        return severity_for(self)


def severity_for(outcome: OperationOutcome) -> Severity:
    """Return the notification severity matching an outcome's tag."""

    return _SEVERITY_BY_STATUS[outcome.status]


def status_for_error(error: CredentialServiceError) -> OutcomeStatus:
    """Return the outcome tag named by a client error's ``tag``."""

    try:
        return OutcomeStatus(error.tag)
    except ValueError:
        return OutcomeStatus.TRANSPORT_ERROR


__all__ = [
    "FlowKind",
    "OperationKind",
    "OperationOutcome",
    "OutcomeStatus",
    "severity_for",
    "status_for_error",
]
