"""Custom widgets used by the portal window."""

from __future__ import annotations

from typing import Dict, Optional, Sequence

from PySide6 import QtCore, QtGui, QtWidgets

from credential_portal.artifacts import QrArtifact
from credential_portal.notifications import Notification

from .styles import SEVERITY_COLORS


def format_days_until_expiration(days: Optional[int]) -> str:
    """Render the remaining validity window as a short French label."""

    if days is None or days < 0:
        return "--"
    if days == 0:
        return "Expire aujourd'hui"
    if days == 1:
        return "1 jour avant expiration"
    return f"{days} jours avant expiration"


class QrCodeCard(QtWidgets.QFrame):
    """Card displaying a QR image and a short instruction."""

    def __init__(self, title: str, caption: str, parent: Optional[QtWidgets.QWidget] = None) -> None:
        super().__init__(parent)
        self.setObjectName("Card")

        layout = QtWidgets.QVBoxLayout(self)
        layout.setContentsMargins(16, 16, 16, 16)
        layout.setSpacing(8)

        self.title_label = QtWidgets.QLabel(title, self)
        self.title_label.setObjectName("TitleLabel")

        self.image_label = QtWidgets.QLabel(self)
        self.image_label.setAlignment(QtCore.Qt.AlignmentFlag.AlignCenter)
        self.image_label.setMinimumSize(200, 200)

        self.caption_label = QtWidgets.QLabel(caption, self)
        self.caption_label.setObjectName("SubtitleLabel")
        self.caption_label.setWordWrap(True)

        layout.addWidget(self.title_label)
        layout.addWidget(self.image_label)
        layout.addWidget(self.caption_label)
        self.hide()

    @property
    def has_image(self) -> bool:
        pixmap = self.image_label.pixmap()
        return pixmap is not None and not pixmap.isNull()

    def show_artifact(self, artifact: Optional[QrArtifact]) -> None:
        if artifact is None or artifact.released:
            self.clear()
            return
        pixmap = QtGui.QPixmap()
        if not pixmap.loadFromData(artifact.data):
            self.clear()
            return
        self.image_label.setPixmap(
            pixmap.scaled(
                200,
                200,
                QtCore.Qt.AspectRatioMode.KeepAspectRatio,
                QtCore.Qt.TransformationMode.SmoothTransformation,
            )
        )
        self.show()

    def clear(self) -> None:
        self.image_label.clear()
        self.hide()


class ToastPanel(QtWidgets.QWidget):
    """Stack of notifications, each with its own close button."""

    dismiss_requested = QtCore.Signal(str)

    def __init__(self, parent: Optional[QtWidgets.QWidget] = None) -> None:
        super().__init__(parent)
        self._layout = QtWidgets.QVBoxLayout(self)
        self._layout.setContentsMargins(0, 0, 0, 0)
        self._layout.setSpacing(6)
        self._rows: Dict[str, QtWidgets.QFrame] = {}

    @property
    def notification_ids(self) -> list[str]:
        return list(self._rows)

    def update_notifications(self, notifications: Sequence[Notification]) -> None:
        wanted = {item.id for item in notifications}
        for notification_id in list(self._rows):
            if notification_id not in wanted:
                row = self._rows.pop(notification_id)
                self._layout.removeWidget(row)
                row.deleteLater()
        for item in notifications:
            if item.id not in self._rows:
                row = self._build_row(item)
                self._rows[item.id] = row
                self._layout.addWidget(row)

    def _build_row(self, notification: Notification) -> QtWidgets.QFrame:
        row = QtWidgets.QFrame(self)
        row.setObjectName("Toast")
        color = SEVERITY_COLORS.get(notification.severity.value, SEVERITY_COLORS["info"])
        row.setStyleSheet(f"QFrame#Toast {{ border-left: 4px solid {color}; }}")

        layout = QtWidgets.QHBoxLayout(row)
        layout.setContentsMargins(12, 8, 8, 8)
        message = QtWidgets.QLabel(notification.message, row)
        message.setWordWrap(True)
        message.setStyleSheet("color: #f0f4ff;")
        close_button = QtWidgets.QPushButton("×", row)
        close_button.setObjectName("LinkButton")
        close_button.setFixedWidth(24)
        close_button.clicked.connect(lambda: self.dismiss_requested.emit(notification.id))

        layout.addWidget(message, 1)
        layout.addWidget(close_button)
        return row


class SessionBar(QtWidgets.QFrame):
    """Bar shown while a user is authenticated."""

    logout_requested = QtCore.Signal()

    def __init__(self, parent: Optional[QtWidgets.QWidget] = None) -> None:
        super().__init__(parent)
        self.setObjectName("SessionBar")

        layout = QtWidgets.QHBoxLayout(self)
        layout.setContentsMargins(16, 8, 16, 8)

        self.user_label = QtWidgets.QLabel("", self)
        self.user_label.setStyleSheet("color: #ffffff; font-weight: 600;")
        self.expiration_label = QtWidgets.QLabel("", self)
        self.expiration_label.setObjectName("SubtitleLabel")
        self.logout_button = QtWidgets.QPushButton("Déconnexion", self)
        self.logout_button.setObjectName("PrimaryButton")
        self.logout_button.clicked.connect(self.logout_requested.emit)

        layout.addWidget(self.user_label)
        layout.addWidget(self.expiration_label)
        layout.addStretch(1)
        layout.addWidget(self.logout_button)

    def update_session(self, username: str, days_until_expiration: int) -> None:
        self.user_label.setText(username)
        self.expiration_label.setText(format_days_until_expiration(days_until_expiration))


__all__ = ["QrCodeCard", "SessionBar", "ToastPanel", "format_days_until_expiration"]
