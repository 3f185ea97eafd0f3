"""Thin client wrapper for the credential backend (OpenFaaS functions)."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Literal, Optional, Tuple, Type, Union

import httpx
from pydantic import BaseModel, Field, ValidationError

from credential_portal.artifacts import QrArtifact

LOGGER = logging.getLogger(__name__)

GENERATE_PASSWORD_PATH = "/generate-password-qrcode"
RENEW_PASSWORD_PATH = "/renew-password-qrcode"
GENERATE_TWO_FACTOR_PATH = "/generate-2fa-secret"
AUTHENTICATE_PATH = "/auth-user"

# Structured discriminants understood in JSON error bodies (``code`` or ``error``).
_ALREADY_EXISTS_CODES = {"already_exists", "user_exists", "conflict"}
_NOT_FOUND_CODES = {"not_found", "user_not_found", "unknown_user"}
_VALIDATION_CODES = {"validation_error", "invalid_username", "bad_request"}
_EXPIRED_CODES = {"expired", "credentials_expired"}
_REJECTED_CODES = {"invalid_credentials", "rejected"}

# Compatibility shim for backends that only return human-readable messages.
_ALREADY_EXISTS_MARKERS = ("existe déjà", "already exists")
_NOT_FOUND_MARKERS = ("n'existe pas", "does not exist", "not found")

# Action hint sent with expired credentials; it always leads to the renewal flow.
RENEW_CREDENTIALS_ACTION = "renew_credentials"


class CredentialServiceError(RuntimeError):
    """Base class of every failure raised by :class:`CredentialServiceClient`."""

    tag = "transport_error"

    def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class CredentialValidationError(CredentialServiceError):
    """Input rejected locally or by the backend as malformed."""

    tag = "validation_error"


class AlreadyExistsError(CredentialServiceError):
    """The requested credential already exists for this username."""

    tag = "already_exists"


class NotFoundError(CredentialServiceError):
    """No credential record exists for this username."""

    tag = "not_found"


class ExpiredCredentialsError(CredentialServiceError):
    """Credentials are valid but past their validity window."""

    tag = "expired"

    def __init__(self, message: str, *, action: Optional[str] = None, status_code: Optional[int] = None) -> None:
        super().__init__(message, status_code=status_code)
        self.action = action


class RejectedCredentialsError(CredentialServiceError):
    """Username, password or TOTP code did not match."""

    tag = "rejected_credentials"


class TransportError(CredentialServiceError):
    """Network failure or a response that could not be decoded."""

    tag = "transport_error"


@dataclass(frozen=True)
class ImagePayload:
    data: bytes
    content_type: str


@dataclass(frozen=True)
class JsonPayload:
    value: Any


@dataclass(frozen=True)
class TextPayload:
    text: str


ResponsePayload = Union[ImagePayload, JsonPayload, TextPayload]

# Failures each operation may report; anything else is a transport error.
_CREATE_PASSWORD_FAILURES = (CredentialValidationError, AlreadyExistsError)
_CREATE_TWO_FACTOR_FAILURES = (CredentialValidationError, AlreadyExistsError, NotFoundError)
_RENEW_PASSWORD_FAILURES = (CredentialValidationError, NotFoundError)
_AUTHENTICATE_FAILURES = (CredentialValidationError, ExpiredCredentialsError, RejectedCredentialsError)


@dataclass(frozen=True)
class AuthenticatedIdentity:
    """Identity confirmed by the backend after a successful authentication."""

    username: str
    days_until_expiration: int


class AuthUserPayload(BaseModel):
    username: str
    days_until_expiration: int = Field(ge=0)


class AuthResponse(BaseModel):
    """Envelope returned by the ``auth-user`` function.

    ``action`` is the backend's hint for the next flow; ``renew_credentials``
    sends the user to password renewal just like an ``expired`` status.
    """

    status: Literal["success", "error", "expired"]
    message: str = ""
    user: Optional[AuthUserPayload] = None
    action: Optional[str] = None


def normalize_username(username: Optional[str]) -> str:
    """Return the trimmed username or raise :class:`CredentialValidationError`."""

    cleaned = (username or "").strip()
    if not cleaned:
        raise CredentialValidationError("Veuillez saisir un nom d'utilisateur")
    return cleaned


def decode_payload(response: httpx.Response) -> ResponsePayload:
    """Tag a response body by its content type."""

    content_type = response.headers.get("content-type", "").split(";")[0].strip().lower()
    if content_type.startswith("image/"):
        return ImagePayload(data=response.content, content_type=content_type)
    if content_type == "application/json" or content_type.endswith("+json"):
        try:
            return JsonPayload(value=response.json())
        except ValueError:
            return TextPayload(text=response.text)
    return TextPayload(text=response.text)


class CredentialServiceClient:
    """Issues credential lifecycle requests and normalises every failure."""

    def __init__(self, *, base_url: str, timeout: float = 30.0) -> None:
        self._api_base = base_url.rstrip("/")
        self._client = httpx.Client(
            base_url=self._api_base,
            headers={
                "Accept": "application/json, image/png",
                "Content-Type": "application/json",
            },
            timeout=timeout,
        )

    def __enter__(self) -> "CredentialServiceClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def close(self) -> None:
        """Release the underlying HTTP connection pool."""

        self._client.close()

    def create_password(self, username: str) -> QrArtifact:
        """Request a first password for ``username`` and return its QR code."""

        username = normalize_username(username)
        LOGGER.info("Requesting password issuance for %s", username)
        return self._request_qr_code(
            GENERATE_PASSWORD_PATH,
            {"username": username},
            context="Erreur lors de la génération du mot de passe",
            label=f"password:{username}",
            allowed=_CREATE_PASSWORD_FAILURES,
        )

    def create_two_factor(self, username: str) -> QrArtifact:
        """Request a TOTP secret for ``username`` and return its QR code.

        The backend refuses when no password exists yet; secrets are never renewed.
        """

        username = normalize_username(username)
        LOGGER.info("Requesting 2FA secret issuance for %s", username)
        return self._request_qr_code(
            GENERATE_TWO_FACTOR_PATH,
            {"username": username, "renew": False},
            context="Erreur lors de la génération du secret 2FA",
            label=f"2fa:{username}",
            allowed=_CREATE_TWO_FACTOR_FAILURES,
        )

    def renew_password(self, username: str) -> QrArtifact:
        """Regenerate only the password of ``username``; the TOTP secret is kept."""

        username = normalize_username(username)
        LOGGER.info("Requesting password renewal for %s", username)
        return self._request_qr_code(
            RENEW_PASSWORD_PATH,
            {"username": username},
            context="Erreur lors du renouvellement du mot de passe",
            label=f"password-renewal:{username}",
            allowed=_RENEW_PASSWORD_FAILURES,
        )

    def authenticate(self, username: str, password: str, code: str) -> AuthenticatedIdentity:
        """Validate the three factors in a single request."""

        username = normalize_username(username)
        if not (password or "").strip():
            raise CredentialValidationError("Mot de passe requis")
        if not (code or "").strip():
            raise CredentialValidationError("Code 2FA requis")

        context = "Erreur lors de l'authentification"
        LOGGER.info("Authenticating %s", username)
        response = self._post(AUTHENTICATE_PATH, {"username": username, "password": password, "twoFactorCode": code.strip()})
        payload = decode_payload(response)
        if not isinstance(payload, JsonPayload):
            if not response.is_success:
                raise self._classify_failure(response, payload, context=context, allowed=_AUTHENTICATE_FAILURES)
            raise TransportError("Réponse d'authentification illisible", status_code=response.status_code)

        try:
            envelope = AuthResponse.model_validate(payload.value)
        except ValidationError as exc:
            if not response.is_success:
                raise self._classify_failure(response, payload, context=context, allowed=_AUTHENTICATE_FAILURES) from exc
            raise TransportError("Réponse d'authentification invalide", status_code=response.status_code) from exc

        if envelope.status == "success":
            if envelope.user is None:
                raise TransportError("Réponse d'authentification sans utilisateur", status_code=response.status_code)
            return AuthenticatedIdentity(
                username=envelope.user.username,
                days_until_expiration=envelope.user.days_until_expiration,
            )
        # Either the status or the renewal hint marks credentials that must be renewed.
        if envelope.status == "expired" or envelope.action == RENEW_CREDENTIALS_ACTION:
            LOGGER.warning("Credentials expired for %s (action=%s)", username, envelope.action)
            raise ExpiredCredentialsError(
                envelope.message or "Identifiants expirés",
                action=envelope.action,
                status_code=response.status_code,
            )
        LOGGER.info("Authentication rejected for %s", username)
        raise RejectedCredentialsError(
            envelope.message or "Échec de l'authentification",
            status_code=response.status_code,
        )

    def _request_qr_code(
        self,
        path: str,
        body: Dict[str, Any],
        *,
        context: str,
        label: str,
        allowed: Tuple[Type[CredentialServiceError], ...],
    ) -> QrArtifact:
        response = self._post(path, body)
        payload = decode_payload(response)
        if not response.is_success:
            raise self._classify_failure(response, payload, context=context, allowed=allowed)
        if not isinstance(payload, ImagePayload):
            # Some deployments report business errors with a 200 JSON body.
            if isinstance(payload, JsonPayload) and isinstance(payload.value, dict) and _discriminant(payload.value):
                raise self._classify_failure(response, payload, context=context, allowed=allowed)
            raise TransportError(f"{context}: réponse inattendue (image attendue)", status_code=response.status_code)
        if not payload.data:
            raise TransportError("QR code vide reçu de l'API", status_code=response.status_code)
        LOGGER.debug("QR code received for %s (%s bytes, %s)", label, len(payload.data), payload.content_type)
        return QrArtifact(payload.data, content_type=payload.content_type, label=label)

    def _post(self, path: str, body: Dict[str, Any]) -> httpx.Response:
        try:
            response = self._client.post(path, json=body)
        except httpx.HTTPError as exc:
            LOGGER.error("Request to %s failed: %s", path, exc)
            raise TransportError(f"Impossible de joindre le service d'authentification: {exc}") from exc
        LOGGER.debug("POST %s -> %s", path, response.status_code)
        return response

    @classmethod
    def _classify_failure(
        cls,
        response: httpx.Response,
        payload: ResponsePayload,
        *,
        context: str,
        allowed: Tuple[Type[CredentialServiceError], ...],
    ) -> CredentialServiceError:
        """Map a failed response onto one of the errors ``allowed`` for the operation.

        A classification the operation cannot produce (a gateway 404 in front of
        ``auth-user``, say) is reported as a :class:`TransportError` instead.
        """

        error = cls._match_failure(response, payload, context=context)
        if isinstance(error, TransportError) or isinstance(error, allowed):
            return error
        LOGGER.error("Unexpected %s from backend (%s): %s", error.tag, response.status_code, error.message)
        return TransportError(error.message, status_code=error.status_code)

    @staticmethod
    def _match_failure(
        response: httpx.Response,
        payload: ResponsePayload,
        *,
        context: str,
    ) -> CredentialServiceError:

        status = response.status_code
        body: Dict[str, Any] = payload.value if isinstance(payload, JsonPayload) and isinstance(payload.value, dict) else {}
        if isinstance(payload, JsonPayload):
            message = str(body.get("message") or body.get("detail") or f"Erreur API: {status}")
        elif isinstance(payload, TextPayload) and payload.text.strip():
            message = f"{context}: {status} - {payload.text.strip()}"
        else:
            message = f"{context}: {status}"

        code = _discriminant(body)
        if code in _ALREADY_EXISTS_CODES:
            return AlreadyExistsError(message, status_code=status)
        if code in _NOT_FOUND_CODES:
            return NotFoundError(message, status_code=status)
        if code in _VALIDATION_CODES:
            return CredentialValidationError(message, status_code=status)
        if code in _EXPIRED_CODES:
            return ExpiredCredentialsError(message, action=body.get("action"), status_code=status)
        if code in _REJECTED_CODES:
            return RejectedCredentialsError(message, status_code=status)

        if status == httpx.codes.CONFLICT:
            return AlreadyExistsError(message, status_code=status)
        if status == httpx.codes.NOT_FOUND:
            return NotFoundError(message, status_code=status)
        if status in (httpx.codes.BAD_REQUEST, httpx.codes.UNPROCESSABLE_ENTITY):
            return CredentialValidationError(message, status_code=status)

        lowered = message.lower()
        if any(marker in lowered for marker in _ALREADY_EXISTS_MARKERS):
            LOGGER.debug("Classified failure as already-exists from message text")
            return AlreadyExistsError(message, status_code=status)
        if any(marker in lowered for marker in _NOT_FOUND_MARKERS):
            LOGGER.debug("Classified failure as not-found from message text")
            return NotFoundError(message, status_code=status)

        LOGGER.error("Backend error %s: %s", status, message)
        return TransportError(message, status_code=status)


def _discriminant(body: Dict[str, Any]) -> Optional[str]:
    value = body.get("code") or body.get("error")
    if isinstance(value, str) and value.strip():
        return value.strip().lower()
    return None


__all__ = [
    "AlreadyExistsError",
    "AuthResponse",
    "AuthenticatedIdentity",
    "CredentialServiceClient",
    "CredentialServiceError",
    "CredentialValidationError",
    "ExpiredCredentialsError",
    "ImagePayload",
    "JsonPayload",
    "NotFoundError",
    "RENEW_CREDENTIALS_ACTION",
    "RejectedCredentialsError",
    "TextPayload",
    "TransportError",
    "decode_payload",
    "normalize_username",
]
