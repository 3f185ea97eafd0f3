#!/usr/bin/env python
"""Command-line entry point to issue, verify and renew portal credentials."""

from __future__ import annotations

import argparse
import getpass
import logging
import sys
from pathlib import Path
from typing import Callable, Optional

PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from credential_portal.artifacts import QrArtifact  # noqa: E402
from credential_portal.clients.credentials import CredentialServiceClient  # noqa: E402
from credential_portal.config import PortalSettings, get_settings  # noqa: E402
from credential_portal.lifecycle.orchestrator import CredentialLifecycleOrchestrator  # noqa: E402
from credential_portal.lifecycle.outcomes import OperationOutcome  # noqa: E402
from credential_portal.scheduling import ThreadingScheduler  # noqa: E402
from credential_portal.state import AppState  # noqa: E402

OperationRunner = Callable[[CredentialLifecycleOrchestrator, argparse.Namespace], OperationOutcome]


def _write_artifact(artifact: QrArtifact, output: Optional[Path]) -> None:
    if output is None:
        print(f"QR code received ({artifact.size} bytes); use --output to save it.")
        return
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_bytes(artifact.data)
    print(f"QR code written to {output}")


def _prompt_secret(provided: Optional[str], prompt: str) -> str:
    if provided:
        return provided
    return getpass.getpass(prompt)


def _create_password(orchestrator: CredentialLifecycleOrchestrator, args: argparse.Namespace) -> OperationOutcome:
    return orchestrator.create_password(args.username)


def _create_two_factor(orchestrator: CredentialLifecycleOrchestrator, args: argparse.Namespace) -> OperationOutcome:
    return orchestrator.create_two_factor(args.username)


def _renew(orchestrator: CredentialLifecycleOrchestrator, args: argparse.Namespace) -> OperationOutcome:
    return orchestrator.renew_password(args.username)


def _authenticate(orchestrator: CredentialLifecycleOrchestrator, args: argparse.Namespace) -> OperationOutcome:
    password = _prompt_secret(args.password, "Password: ")
    code = _prompt_secret(args.code, "2FA code: ")
    return orchestrator.authenticate(args.username, password, code)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Manage portal credentials against the authentication backend.")
    parser.add_argument("--base-url", default=None, help="Override PORTAL_API_BASE_URL.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    for name, runner, help_text in (
        ("create-password", _create_password, "Issue the first password of a new user."),
        ("create-2fa", _create_two_factor, "Issue the TOTP secret of a user that already has a password."),
        ("renew", _renew, "Regenerate the password only; the TOTP secret is kept."),
    ):
        command = subparsers.add_parser(name, help=help_text)
        command.add_argument("--username", required=True, help="Target username.")
        command.add_argument("--output", type=Path, default=None, help="Where to write the QR code PNG.")
        command.set_defaults(runner=runner)

    auth_cmd = subparsers.add_parser("authenticate", help="Verify username, password and 2FA code.")
    auth_cmd.add_argument("--username", required=True, help="Username to authenticate.")
    auth_cmd.add_argument("--password", default=None, help="Password (prompted when omitted).")
    auth_cmd.add_argument("--code", default=None, help="Current 6-digit 2FA code (prompted when omitted).")
    auth_cmd.set_defaults(runner=_authenticate, output=None)
    return parser


def run(args: argparse.Namespace, settings: PortalSettings) -> int:
    runner: OperationRunner = args.runner
    app_state = AppState(ThreadingScheduler(), notification_ttl_seconds=settings.ui.notification_ttl_seconds)
    with CredentialServiceClient(
        base_url=args.base_url or settings.api.base_url,
        timeout=settings.api.timeout_seconds,
    ) as client:
        # The CLI has no screen to redirect to, so expired credentials only print guidance.
        orchestrator = CredentialLifecycleOrchestrator(client, app_state, redirect_delay_seconds=0)
        try:
            outcome = runner(orchestrator, args)
            print(f"[{outcome.severity.value}] {outcome.message}")
            if outcome.succeeded and isinstance(outcome.payload, QrArtifact):
                _write_artifact(outcome.payload, args.output)
            if outcome.next_flow is not None:
                print(f"Next step: {outcome.next_flow.value.replace('_', ' ')}")
        finally:
            orchestrator.close()
            app_state.notifications.clear()
    return 0 if outcome.succeeded else 1


def main(argv: Optional[list[str]] = None) -> None:
    settings = get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    parser = build_parser()
    args = parser.parse_args(argv)
    sys.exit(run(args, settings))


if __name__ == "__main__":
    main()
