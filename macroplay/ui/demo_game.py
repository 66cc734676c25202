"""Stand-in microgame used when previewing definitions locally."""

from __future__ import annotations

import random
from typing import Optional

from PySide6.QtCore import Qt, QTimer
from PySide6.QtWidgets import QLabel, QPushButton, QVBoxLayout, QWidget

from macroplay.core.models import MicrogameResult
from macroplay.core.registry import MicrogameContext
from macroplay.ui.colors import PlayerColors

TAPS_TO_WIN = 3


class TapTargetGame(QWidget):
    """Tap the jumping button; enough taps before time runs out is a win.

    Reports ``item_caught`` for every tap and ``win`` on a win.
    """

    def __init__(self, parent: Optional[QWidget] = None) -> None:
        super().__init__(parent)
        self._context: Optional[MicrogameContext] = None
        self._taps = 0
        self._timer = QTimer(self)
        self._timer.setSingleShot(True)
        self._timer.timeout.connect(self._finish)

        self._hint = QLabel("")
        self._hint.setAlignment(Qt.AlignCenter)
        self._hint.setStyleSheet(f"color: {PlayerColors.TEXT_MUTED}; font-size: 16px;")

        self._target = QPushButton("●", self)
        self._target.setFixedSize(64, 64)
        self._target.setCursor(Qt.PointingHandCursor)
        self._target.setStyleSheet(
            f"background: {PlayerColors.ACCENT}; border-radius: 32px; font-size: 28px;"
        )
        self._target.clicked.connect(self._on_tap)

        layout = QVBoxLayout(self)
        layout.addWidget(self._hint, 0, Qt.AlignTop)
        layout.addStretch(1)

    def start(self, context: MicrogameContext) -> None:
        self._context = context
        self._taps = 0
        self._hint.setText(context.game_data.controls or "Tap the target!")
        self._move_target()
        self._timer.start(max(1, context.game_data.length_seconds) * 1000)

    def stop(self) -> None:
        self._timer.stop()
        self._context = None

    def _on_tap(self) -> None:
        if self._context is None:
            return
        if self._taps == 0:
            self._context.on_interaction()
        self._taps += 1
        self._context.on_report_event("item_caught")
        self._move_target()

    def _move_target(self) -> None:
        x = random.randint(0, max(0, self.width() - self._target.width()))
        y = random.randint(40, max(40, self.height() - self._target.height()))
        self._target.move(x, y)

    def _finish(self) -> None:
        context = self._context
        if context is None:
            return
        win = self._taps >= TAPS_TO_WIN
        if win:
            context.on_report_event("win")
        context.on_end(MicrogameResult(win=win))
