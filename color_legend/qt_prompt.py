"""PyQt6 confirmation prompt used for the destructive reset."""
from __future__ import annotations

from typing import Optional

from PyQt6.QtWidgets import QApplication, QMessageBox, QWidget

DEFAULT_TITLE = "Color Legend"


def qt_confirm(message: str, *, parent: Optional[QWidget] = None, title: str = DEFAULT_TITLE) -> bool:
    """Block on a Yes/No dialog; anything but an explicit Yes declines."""
    if QApplication.instance() is None:
        raise RuntimeError("qt_confirm requires a running QApplication")
    answer = QMessageBox.question(
        parent,
        title,
        message,
        QMessageBox.StandardButton.Yes | QMessageBox.StandardButton.No,
        QMessageBox.StandardButton.No,
    )
    return answer == QMessageBox.StandardButton.Yes
