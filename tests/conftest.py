"""Shared fixtures: an in-memory credential backend and a manual clock."""

from __future__ import annotations

import json
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

import httpx
import pytest

# Run Qt headless when no display is available.
os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from credential_portal.clients import credentials as credentials_module  # noqa: E402
from credential_portal.clients.credentials import CredentialServiceClient  # noqa: E402
from credential_portal.lifecycle.orchestrator import CredentialLifecycleOrchestrator  # noqa: E402
from credential_portal.state import AppState  # noqa: E402
from credential_portal.ui.navigation import NavigationController  # noqa: E402

BASE_URL = "https://faas.example.com/function"
PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"fake-qr-code"


@dataclass
class FakeAccount:
    password: str
    code: Optional[str] = None
    expired: bool = False


class FakeCredentialBackend:
    """Mimics the OpenFaaS credential functions closely enough for the client."""

    def __init__(self) -> None:
        self.accounts: dict[str, FakeAccount] = {}
        self.requests: list[httpx.Request] = []
        self.image_bytes = PNG_BYTES
        self._counter = 0

    # Helpers ---------------------------------------------------------------

    def seed(self, username: str, *, with_two_factor: bool = True, expired: bool = False) -> FakeAccount:
        account = FakeAccount(password=self._next_password(username), expired=expired)
        if with_two_factor:
            account.code = self._next_code()
        self.accounts[username] = account
        return account

    def password_of(self, username: str) -> str:
        return self.accounts[username].password

    def code_for(self, username: str) -> str:
        code = self.accounts[username].code
        assert code is not None
        return code

    def paths(self) -> list[str]:
        return [request.url.path.rsplit("/", 1)[-1] for request in self.requests]

    def _next_password(self, username: str) -> str:
        self._counter += 1
        return f"pw-{username}-{self._counter}"

    def _next_code(self) -> str:
        self._counter += 1
        return f"{100000 + self._counter}"

    # Transport -------------------------------------------------------------

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        body = json.loads(request.content or b"{}")
        endpoint = request.url.path.rsplit("/", 1)[-1]
        handler = {
            "generate-password-qrcode": self._generate_password,
            "generate-2fa-secret": self._generate_two_factor,
            "renew-password-qrcode": self._renew_password,
            "auth-user": self._authenticate,
        }.get(endpoint)
        if handler is None:
            return httpx.Response(404, request=request, text="function not deployed")
        return handler(request, body)

    def _image(self, request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, request=request, content=self.image_bytes, headers={"content-type": "image/png"})

    def _generate_password(self, request: httpx.Request, body: dict) -> httpx.Response:
        username = body["username"]
        if username in self.accounts:
            return httpx.Response(
                409,
                request=request,
                json={"status": "error", "code": "already_exists", "message": f"{username} existe déjà"},
            )
        self.accounts[username] = FakeAccount(password=self._next_password(username))
        return self._image(request)

    def _generate_two_factor(self, request: httpx.Request, body: dict) -> httpx.Response:
        username = body["username"]
        account = self.accounts.get(username)
        # Older function revisions only report errors as free text.
        if account is None:
            return httpx.Response(500, request=request, json={"message": f"L'utilisateur {username} n'existe pas"})
        if account.code is not None:
            return httpx.Response(500, request=request, json={"message": f"Le secret 2FA de {username} existe déjà"})
        account.code = self._next_code()
        return self._image(request)

    def _renew_password(self, request: httpx.Request, body: dict) -> httpx.Response:
        username = body["username"]
        account = self.accounts.get(username)
        if account is None:
            return httpx.Response(
                404,
                request=request,
                json={"code": "not_found", "message": f"L'utilisateur {username} n'existe pas"},
            )
        account.password = self._next_password(username)
        account.expired = False
        return self._image(request)

    def _authenticate(self, request: httpx.Request, body: dict) -> httpx.Response:
        username = body.get("username")
        account = self.accounts.get(username)
        if (
            account is None
            or account.code is None
            or account.password != body.get("password")
            or account.code != body.get("twoFactorCode")
        ):
            return httpx.Response(
                401,
                request=request,
                json={"status": "error", "message": "Nom d'utilisateur, mot de passe ou code 2FA invalide"},
            )
        if account.expired:
            return httpx.Response(
                200,
                request=request,
                json={
                    "status": "expired",
                    "message": "Vos identifiants ont expiré.",
                    "action": "renew_credentials",
                },
            )
        return httpx.Response(
            200,
            request=request,
            json={
                "status": "success",
                "message": "Authentification réussie",
                "user": {"username": username, "days_until_expiration": 180},
            },
        )


class ManualTask:
    def __init__(self, due: float, callback: Callable[[], None]) -> None:
        self.due = due
        self._callback = callback
        self.cancelled = False
        self.done = False

    def cancel(self) -> None:
        if not self.done:
            self.cancelled = True
            self.done = True

    def fire(self) -> None:
        if not self.done:
            self.done = True
            self._callback()


class ManualScheduler:
    """Deterministic scheduler advanced explicitly by tests."""

    def __init__(self) -> None:
        self.now = 0.0
        self.tasks: list[ManualTask] = []

    def call_later(self, delay: float, callback: Callable[[], None]) -> ManualTask:
        task = ManualTask(self.now + delay, callback)
        self.tasks.append(task)
        return task

    @property
    def pending(self) -> list[ManualTask]:
        return [task for task in self.tasks if not task.done]

    def advance(self, seconds: float) -> None:
        self.now += seconds
        for task in sorted(self.pending, key=lambda item: item.due):
            if task.due <= self.now:
                task.fire()


def install_transport(monkeypatch, handler: Callable[[httpx.Request], httpx.Response]) -> None:
    """Route every httpx.Client created by the credential client through ``handler``."""

    transport = httpx.MockTransport(handler)
    real_client_class = httpx.Client

    def client_factory(*args, **kwargs):
        kwargs.setdefault("transport", transport)
        return real_client_class(*args, **kwargs)

    monkeypatch.setattr(credentials_module.httpx, "Client", client_factory)


@pytest.fixture
def backend() -> FakeCredentialBackend:
    return FakeCredentialBackend()


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def client(monkeypatch, backend):
    install_transport(monkeypatch, backend)
    with CredentialServiceClient(base_url=BASE_URL) as service_client:
        yield service_client


@pytest.fixture
def app_state(scheduler) -> AppState:
    return AppState(scheduler, notification_ttl_seconds=5.0)


@pytest.fixture
def orchestrator(client, app_state) -> CredentialLifecycleOrchestrator:
    return CredentialLifecycleOrchestrator(client, app_state, redirect_delay_seconds=2.0)


@pytest.fixture
def navigation(app_state, orchestrator) -> NavigationController:
    return NavigationController(app_state, orchestrator)
