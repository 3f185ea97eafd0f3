"""Main PySide6 portal window."""

from __future__ import annotations

import logging
from typing import Callable, Dict, List, Optional

from PySide6 import QtCore, QtGui, QtWidgets

from credential_portal.clients.credentials import CredentialServiceClient
from credential_portal.config import PortalSettings, get_settings
from credential_portal.lifecycle.orchestrator import CredentialLifecycleOrchestrator, RenewState
from credential_portal.lifecycle.outcomes import OperationOutcome
from credential_portal.notifications import Notification
from credential_portal.state import AppState, Screen

from .navigation import NavigationController
from .qt_scheduler import QtScheduler
from .styles import GLOBAL_STYLE
from .widgets import QrCodeCard, SessionBar, ToastPanel, format_days_until_expiration

LOGGER = logging.getLogger(__name__)

FOOTER_TEXT = "© COFRAP 2025 - Système d'authentification sécurisée"


class ApiWorker(QtCore.QRunnable):
    """Runs lifecycle operations in a background thread."""

    def __init__(self, fn, *args, **kwargs) -> None:
        super().__init__()
        self.fn = fn
        self.args = args
        self.kwargs = kwargs
        self.signals = WorkerSignals()

    @QtCore.Slot()
    def run(self) -> None:
        try:
            result = self.fn(*self.args, **self.kwargs)
        except Exception as exc:  # pragma: no cover - propagation
            self.signals.error.emit(exc)
        else:
            self.signals.result.emit(result)


class WorkerSignals(QtCore.QObject):
    """Signals shared by ApiWorker."""

    result = QtCore.Signal(object)
    error = QtCore.Signal(Exception)


class PortalWindow(QtWidgets.QMainWindow):
    """Account creation, login and renewal screens around one orchestrator."""

    _notifications_changed = QtCore.Signal(object)

    def __init__(
        self,
        *,
        client: Optional[CredentialServiceClient] = None,
        settings: Optional[PortalSettings] = None,
        parent: Optional[QtWidgets.QWidget] = None,
    ) -> None:
        super().__init__(parent)
        self.setWindowTitle("COFRAP - Portail d'authentification")
        self.resize(960, 760)
        self.setStyleSheet(GLOBAL_STYLE)

        self.settings = settings or get_settings()
        self.client = client or CredentialServiceClient(
            base_url=self.settings.api.base_url,
            timeout=self.settings.api.timeout_seconds,
        )
        self.scheduler = QtScheduler(self)
        self.app_state = AppState(
            self.scheduler,
            notification_ttl_seconds=self.settings.ui.notification_ttl_seconds,
        )
        self.orchestrator = CredentialLifecycleOrchestrator(
            self.client,
            self.app_state,
            redirect_delay_seconds=self.settings.ui.expired_redirect_delay_seconds,
        )
        self.navigation = NavigationController(self.app_state, self.orchestrator)
        self.thread_pool = QtCore.QThreadPool.globalInstance()
        self._busy_buttons: List[QtWidgets.QPushButton] = []

        # Session bar / toasts ------------------------------------------------
        self.session_bar = SessionBar(self)
        self.session_bar.logout_requested.connect(self.navigation.logout)
        self.session_bar.hide()

        self.toast_panel = ToastPanel(self)
        self.toast_panel.dismiss_requested.connect(self.app_state.notifications.dismiss)
        self._notifications_changed.connect(self.toast_panel.update_notifications)
        self.app_state.notifications.subscribe(self._notifications_changed.emit)

        # Pages ---------------------------------------------------------------
        self.stack = QtWidgets.QStackedWidget(self)
        self.pages: Dict[Screen, QtWidgets.QWidget] = {
            Screen.HOME: self._build_home_page(),
            Screen.CREATE_ACCOUNT: self._build_create_account_page(),
            Screen.LOGIN: self._build_login_page(),
            Screen.RENEW_CREDENTIALS: self._build_renew_page(),
            Screen.DASHBOARD: self._build_dashboard_page(),
        }
        for page in self.pages.values():
            self.stack.addWidget(page)

        footer = QtWidgets.QLabel(FOOTER_TEXT, self)
        footer.setObjectName("SubtitleLabel")
        footer.setAlignment(QtCore.Qt.AlignmentFlag.AlignCenter)

        # Layout --------------------------------------------------------------
        container = QtWidgets.QWidget()
        container.setObjectName("PortalContainer")
        main_layout = QtWidgets.QVBoxLayout(container)
        main_layout.setContentsMargins(0, 0, 0, 12)
        main_layout.setSpacing(12)
        main_layout.addWidget(self.session_bar)
        main_layout.addWidget(self.stack, 1)
        main_layout.addWidget(self.toast_panel)
        main_layout.addWidget(footer)
        self.setCentralWidget(container)

        self.navigation.subscribe(self._on_screen_changed)
        self._on_screen_changed(self.navigation.screen)

    # ---------------------------------------------------------------- Pages --

    def _page(self, title: str) -> tuple[QtWidgets.QWidget, QtWidgets.QVBoxLayout]:
        page = QtWidgets.QWidget()
        layout = QtWidgets.QVBoxLayout(page)
        layout.setContentsMargins(32, 24, 32, 24)
        layout.setSpacing(14)
        if title:
            header = QtWidgets.QHBoxLayout()
            back = QtWidgets.QPushButton("← Retour", page)
            back.setObjectName("LinkButton")
            back.clicked.connect(lambda: self.navigation.navigate(Screen.HOME))
            title_label = QtWidgets.QLabel(title, page)
            title_label.setObjectName("TitleLabel")
            header.addWidget(back)
            header.addWidget(title_label)
            header.addStretch(1)
            layout.addLayout(header)
        return page, layout

    def _primary_button(self, text: str, parent: QtWidgets.QWidget, slot: Callable[[], None]) -> QtWidgets.QPushButton:
        button = QtWidgets.QPushButton(text, parent)
        button.setObjectName("PrimaryButton")
        button.clicked.connect(slot)
        return button

    def _link_button(self, text: str, parent: QtWidgets.QWidget, screen: Screen) -> QtWidgets.QPushButton:
        button = QtWidgets.QPushButton(text, parent)
        button.setObjectName("LinkButton")
        button.clicked.connect(lambda: self.navigation.navigate(screen))
        return button

    def _build_home_page(self) -> QtWidgets.QWidget:
        page, layout = self._page("")
        title = QtWidgets.QLabel("Portail d'authentification COFRAP", page)
        title.setObjectName("TitleLabel")
        title.setAlignment(QtCore.Qt.AlignmentFlag.AlignCenter)
        layout.addStretch(1)
        layout.addWidget(title)
        for text, screen in (
            ("Créer un compte", Screen.CREATE_ACCOUNT),
            ("Se connecter", Screen.LOGIN),
            ("Renouveler mes identifiants", Screen.RENEW_CREDENTIALS),
        ):
            button = self._link_button(text, page, screen)
            button.setObjectName("PrimaryButton")
            layout.addWidget(button)
        layout.addStretch(1)
        return page

    def _build_create_account_page(self) -> QtWidgets.QWidget:
        page, layout = self._page("Création de compte utilisateur")
        self.create_username_edit = QtWidgets.QLineEdit(page)
        self.create_username_edit.setPlaceholderText("Saisissez le nom d'utilisateur")

        self.generate_password_button = self._primary_button("Générer le mot de passe", page, self._on_generate_password)
        self.generate_two_factor_button = self._primary_button("Générer le secret 2FA", page, self._on_generate_two_factor)
        buttons = QtWidgets.QHBoxLayout()
        buttons.addWidget(self.generate_password_button)
        buttons.addWidget(self.generate_two_factor_button)

        self.create_password_card = QrCodeCard(
            "Mot de passe",
            "Scannez ce QR code pour obtenir votre mot de passe.",
            page,
        )
        self.create_two_factor_card = QrCodeCard(
            "Secret 2FA",
            "Scannez avec votre application d'authentification (Google Authenticator, Authy, etc.).",
            page,
        )
        cards = QtWidgets.QHBoxLayout()
        cards.addWidget(self.create_password_card)
        cards.addWidget(self.create_two_factor_card)

        self.create_complete_label = QtWidgets.QLabel(
            "Compte créé avec succès ! Vous pouvez maintenant vous authentifier avec ces identifiants.",
            page,
        )
        self.create_complete_label.setObjectName("SuccessLabel")
        self.create_login_button = self._link_button("Se connecter maintenant", page, Screen.LOGIN)

        layout.addWidget(QtWidgets.QLabel("Nom d'utilisateur", page))
        layout.addWidget(self.create_username_edit)
        layout.addLayout(buttons)
        layout.addLayout(cards)
        layout.addWidget(self.create_complete_label)
        layout.addWidget(self.create_login_button)
        layout.addWidget(self._link_button("Vous avez déjà un compte ? Renouveler vos identifiants", page, Screen.RENEW_CREDENTIALS))
        layout.addStretch(1)
        self._busy_buttons += [self.generate_password_button, self.generate_two_factor_button]
        return page

    def _build_login_page(self) -> QtWidgets.QWidget:
        page, layout = self._page("Authentification")
        self.login_username_edit = QtWidgets.QLineEdit(page)
        self.login_username_edit.setPlaceholderText("Saisissez votre nom d'utilisateur")
        self.login_password_edit = QtWidgets.QLineEdit(page)
        self.login_password_edit.setPlaceholderText("Saisissez votre mot de passe")
        self.login_password_edit.setEchoMode(QtWidgets.QLineEdit.EchoMode.Password)
        self.login_code_edit = QtWidgets.QLineEdit(page)
        self.login_code_edit.setPlaceholderText("Code à 6 chiffres")
        self.login_code_edit.setMaxLength(6)
        self.login_button = self._primary_button("Se connecter", page, self._on_login)
        self.login_code_edit.returnPressed.connect(self._on_login)

        form = QtWidgets.QFormLayout()
        form.addRow("Nom d'utilisateur", self.login_username_edit)
        form.addRow("Mot de passe", self.login_password_edit)
        form.addRow("Code 2FA", self.login_code_edit)
        layout.addLayout(form)
        layout.addWidget(self.login_button)
        layout.addStretch(1)
        self._busy_buttons.append(self.login_button)
        return page

    def _build_renew_page(self) -> QtWidgets.QWidget:
        page, layout = self._page("Renouvellement des identifiants")
        self.renew_username_edit = QtWidgets.QLineEdit(page)
        self.renew_username_edit.setPlaceholderText("Saisissez votre nom d'utilisateur")
        self.renew_button = self._primary_button("Régénérer le mot de passe", page, self._on_renew)
        self.renew_password_card = QrCodeCard(
            "Nouveau mot de passe",
            "Scannez ce QR code pour obtenir votre nouveau mot de passe. "
            "Votre secret 2FA existant reste valide, pas besoin de le reconfigurer.",
            page,
        )
        self.renew_status_label = QtWidgets.QLabel(
            "Mot de passe régénéré. Le secret 2FA existant reste inchangé et fonctionnel.",
            page,
        )
        self.renew_status_label.setObjectName("SuccessLabel")
        self.renew_login_button = self._link_button("Se connecter", page, Screen.LOGIN)

        layout.addWidget(QtWidgets.QLabel("Nom d'utilisateur", page))
        layout.addWidget(self.renew_username_edit)
        layout.addWidget(self.renew_button)
        layout.addWidget(self.renew_password_card)
        layout.addWidget(self.renew_status_label)
        layout.addWidget(self.renew_login_button)
        layout.addWidget(self._link_button("Créer un compte", page, Screen.CREATE_ACCOUNT))
        layout.addStretch(1)
        self._busy_buttons.append(self.renew_button)
        return page

    def _build_dashboard_page(self) -> QtWidgets.QWidget:
        page, layout = self._page("")
        self.dashboard_welcome_label = QtWidgets.QLabel("", page)
        self.dashboard_welcome_label.setObjectName("TitleLabel")
        self.dashboard_expiration_label = QtWidgets.QLabel("--", page)
        self.dashboard_expiration_label.setObjectName("ValueLabel")
        layout.addStretch(1)
        layout.addWidget(self.dashboard_welcome_label)
        layout.addWidget(self.dashboard_expiration_label)
        layout.addStretch(1)
        return page

    # -------------------------------------------------------------- Actions --

    def _on_generate_password(self) -> None:
        self._run(self.orchestrator.create_password, self.create_username_edit.text())

    def _on_generate_two_factor(self) -> None:
        self._run(self.orchestrator.create_two_factor, self.create_username_edit.text())

    def _on_login(self) -> None:
        self._run(
            self.orchestrator.authenticate,
            self.login_username_edit.text(),
            self.login_password_edit.text(),
            self.login_code_edit.text(),
        )

    def _on_renew(self) -> None:
        if self.renew_username_edit.text().strip():
            self.navigation.announce_renewal()
        self._run(self.orchestrator.renew_password, self.renew_username_edit.text())

    def _run(self, fn, *args, **kwargs) -> None:
        self._set_busy(True)
        worker = ApiWorker(fn, *args, **kwargs)
        worker.signals.result.connect(self._handle_outcome)
        worker.signals.error.connect(self._handle_error)
        self.thread_pool.start(worker)

    def _set_busy(self, busy: bool) -> None:
        for button in self._busy_buttons:
            button.setDisabled(busy)

    # ------------------------------------------------------------- Handlers --

    def _handle_outcome(self, outcome: OperationOutcome) -> None:
        self._set_busy(False)
        self.navigation.present(outcome)
        self._refresh_current_page()

    def _handle_error(self, error: Exception) -> None:  # pragma: no cover - UI feedback
        self._set_busy(False)
        LOGGER.error("Unexpected failure in lifecycle operation: %s", error)
        self.statusBar().showMessage(f"Erreur inattendue: {error}", 5000)

    def _on_screen_changed(self, screen: Screen) -> None:
        self.stack.setCurrentWidget(self.pages[screen])
        prefill = self.navigation.prefill_username
        if prefill:
            edit = {
                Screen.CREATE_ACCOUNT: self.create_username_edit,
                Screen.LOGIN: self.login_username_edit,
                Screen.RENEW_CREDENTIALS: self.renew_username_edit,
            }.get(screen)
            if edit is not None:
                edit.setText(prefill)
        if screen is Screen.LOGIN:
            self.login_password_edit.clear()
            self.login_code_edit.clear()
        self._refresh_current_page()

    def _refresh_current_page(self) -> None:
        session = self.app_state.session.current
        if session is not None:
            self.session_bar.update_session(session.username, session.days_until_expiration)
            self.session_bar.show()
            self.dashboard_welcome_label.setText(f"Bienvenue, {session.username}")
            self.dashboard_expiration_label.setText(format_days_until_expiration(session.days_until_expiration))
        else:
            self.session_bar.hide()

        create_flow = self.orchestrator.create_account
        self.create_password_card.show_artifact(create_flow.password_artifact.current)
        self.create_two_factor_card.show_artifact(create_flow.two_factor_artifact.current)
        self.create_complete_label.setVisible(create_flow.complete)
        self.create_login_button.setVisible(create_flow.complete)

        renew_flow = self.orchestrator.renewal
        self.renew_password_card.show_artifact(renew_flow.password_artifact.current)
        renewed = renew_flow.state is RenewState.RENEWED
        self.renew_status_label.setVisible(renewed)
        self.renew_login_button.setVisible(renewed)

    @property
    def notifications(self) -> List[Notification]:
        return self.app_state.notifications.items

    def closeEvent(self, event: QtGui.QCloseEvent) -> None:  # noqa: N802 - Qt signature
        self.orchestrator.close()
        self.app_state.notifications.clear()
        try:
            self.client.close()
        except Exception:  # pragma: no cover
            LOGGER.exception("Failed to close credential client")
        super().closeEvent(event)


__all__ = ["ApiWorker", "PortalWindow"]
