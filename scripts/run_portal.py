#!/usr/bin/env python
from __future__ import annotations

import logging
import sys
from pathlib import Path

from PySide6.QtWidgets import QApplication

PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from credential_portal.config import get_settings  # noqa: E402
from credential_portal.ui.portal import PortalWindow  # noqa: E402


def main() -> None:
    settings = get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    app = QApplication.instance()
    if app is None:
        app = QApplication(sys.argv)
    window = PortalWindow(settings=settings)
    window.show()
    sys.exit(app.exec())


if __name__ == '__main__':
    main()
