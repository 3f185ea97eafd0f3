"""Global style definitions for the PySide6 portal."""

from __future__ import annotations

SEVERITY_COLORS = {
    "success": "#2f9e44",
    "error": "#e03131",
    "warning": "#f08c00",
    "info": "#3c6ef5",
}

GLOBAL_STYLE = """
QMainWindow {
    background-color: #0f1a2a;
}

QWidget#PortalContainer {
    background-color: #0f1a2a;
}

QLabel#TitleLabel {
    color: #ffffff;
    font-size: 20px;
    font-weight: 600;
}

QLabel#ValueLabel {
    color: #f7f9fb;
    font-size: 28px;
    font-weight: 700;
}

QLabel#SubtitleLabel {
    color: #8aa0c0;
    font-size: 12px;
}

QLabel#SuccessLabel {
    color: #7ee787;
    font-weight: 600;
}

QFrame#Card {
    background-color: #16243a;
    border: 1px solid #233753;
    border-radius: 12px;
}

QFrame#SessionBar {
    background-color: #1d2f4b;
    border-bottom: 1px solid #233753;
}

QFrame#Toast {
    background-color: #16243a;
    border-radius: 8px;
}

QPushButton#PrimaryButton {
    background-color: #3c6ef5;
    color: #ffffff;
    border: none;
    border-radius: 10px;
    padding: 8px 18px;
    font-weight: 600;
}

QPushButton#PrimaryButton:hover {
    background-color: #4d7ef7;
}

QPushButton#PrimaryButton:pressed {
    background-color: #345fd1;
}

QPushButton#PrimaryButton:disabled {
    background-color: #2a3f5f;
    color: #8aa0c0;
}

QPushButton#LinkButton {
    background: transparent;
    color: #8aa0c0;
    border: none;
    text-decoration: underline;
}

QLineEdit {
    background-color: #16243a;
    color: #e1eaf6;
    border: 1px solid #233753;
    border-radius: 8px;
    padding: 6px 10px;
}
"""
