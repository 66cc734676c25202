from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Mapping, Optional

from PySide6.QtCore import Qt, QUrl
from PySide6.QtGui import QCloseEvent
from PySide6.QtMultimedia import QAudioOutput, QMediaPlayer
from PySide6.QtWidgets import (
    QHBoxLayout,
    QLabel,
    QMainWindow,
    QPushButton,
    QScrollArea,
    QStackedWidget,
    QVBoxLayout,
    QWidget,
)

from macroplay.core.engine import FALLBACK_MESSAGE, EndContent, PlaybackEngine, View
from macroplay.core.models import ConversionMethod, MacrogameDefinition
from macroplay.ui.colors import PlayerColors, result_color
from macroplay.ui.models import build_offer_cards
from macroplay.ui.offer_cards import OfferListWidget

logger = logging.getLogger(__name__)


class PlayerWindow(QMainWindow):
    """Plays one macrogame: a page per engine view plus a score/progress header.

    The window owns no playback logic. It forwards clicks and offer actions to
    the :class:`PlaybackEngine` and re-renders whenever the engine notifies it.
    """

    def __init__(
        self,
        engine: PlaybackEngine,
        methods: Mapping[str, ConversionMethod],
        asset_dir: Optional[Path] = None,
    ) -> None:
        super().__init__()
        self._engine = engine
        self._methods = methods
        self._asset_dir = asset_dir
        self._embedded_module: Optional[QWidget] = None
        self._current_track: Optional[str] = None
        self._pages: Dict[View, QWidget] = {}

        self._player = QMediaPlayer(self)
        self._audio_output = QAudioOutput(self)
        self._player.setAudioOutput(self._audio_output)
        self._player.setLoops(QMediaPlayer.Loops.Infinite)

        self.setWindowTitle(engine.definition.name)
        self.resize(720, 900)
        self._build_ui()

    @property
    def definition(self) -> MacrogameDefinition:
        return self._engine.definition

    def _build_ui(self) -> None:
        root = QWidget()
        root.setObjectName("playerRoot")
        root.setStyleSheet(
            f"""
            QWidget#playerRoot {{
                background: qlineargradient(x1:0, y1:0, x2:0, y2:1,
                    stop:0 {PlayerColors.BG_TOP}, stop:1 {PlayerColors.BG_BOTTOM});
            }}
            QLabel {{ color: {PlayerColors.TEXT_PRIMARY}; }}
            QPushButton {{
                background: {PlayerColors.PRIMARY};
                color: white;
                border: none;
                border-radius: 6px;
                padding: 10px 18px;
                font-size: 15px;
            }}
            """
        )
        layout = QVBoxLayout(root)
        layout.setContentsMargins(16, 12, 16, 16)

        header = QHBoxLayout()
        self._progress_label = QLabel("")
        self._progress_label.setStyleSheet(f"color: {PlayerColors.TEXT_MUTED}; font-size: 14px;")
        self._score_label = QLabel("")
        self._score_label.setStyleSheet("font-size: 16px; font-weight: 800;")
        self._mute_button = QPushButton("🔊")
        self._mute_button.setFixedWidth(48)
        self._mute_button.clicked.connect(self._toggle_mute)
        header.addWidget(self._progress_label)
        header.addStretch(1)
        header.addWidget(self._score_label)
        header.addWidget(self._mute_button)
        layout.addLayout(header)

        self._stack = QStackedWidget()
        layout.addWidget(self._stack, 1)

        self._intro_text = self._add_text_page(View.INTRO, clickable=True)
        self._title_text = self._add_text_page(View.TITLE)
        self._controls_text = self._add_text_page(View.CONTROLS)
        self._combined_text = self._add_text_page(View.COMBINED)
        self._result_text = self._add_text_page(View.RESULT)
        self._promo_text = self._add_text_page(View.PROMO, clickable=True)
        self._add_text_page(View.LOADING).setText("Loading…")
        self._build_game_page()
        self._build_end_page()

        self.setCentralWidget(root)

    def _add_text_page(self, view: View, clickable: bool = False) -> QLabel:
        page = QWidget()
        page_layout = QVBoxLayout(page)
        label = QLabel("")
        label.setWordWrap(True)
        label.setAlignment(Qt.AlignCenter)
        label.setStyleSheet("font-size: 28px; font-weight: 800;")
        page_layout.addWidget(label, 1)
        if clickable:
            page.mousePressEvent = lambda _e: self._engine.click()
        self._stack.addWidget(page)
        self._pages[view] = page
        return label

    def _build_game_page(self) -> None:
        page = QWidget()
        self._game_layout = QVBoxLayout(page)
        self._game_layout.setContentsMargins(0, 0, 0, 0)
        self._overlay_label = QLabel("", page)
        self._overlay_label.setAlignment(Qt.AlignCenter)
        self._overlay_label.setWordWrap(True)
        self._overlay_label.setStyleSheet(
            f"background: {PlayerColors.MASK_BG}; font-size: 22px; font-weight: 800; padding: 24px;"
        )
        self._waiting_label = QLabel("Tap to start!", page)
        self._waiting_label.setAlignment(Qt.AlignCenter)
        self._waiting_label.setStyleSheet(f"color: {PlayerColors.ACCENT}; font-size: 18px;")
        self._game_layout.addWidget(self._waiting_label)
        self._stack.addWidget(page)
        self._pages[View.GAME] = page

    def _build_end_page(self) -> None:
        page = QWidget()
        layout = QVBoxLayout(page)
        self._end_headline = QLabel("")
        self._end_headline.setAlignment(Qt.AlignCenter)
        self._end_headline.setWordWrap(True)
        self._end_headline.setStyleSheet("font-size: 28px; font-weight: 900;")
        self._end_body = QLabel("")
        self._end_body.setAlignment(Qt.AlignCenter)
        self._end_body.setWordWrap(True)
        self._end_body.setStyleSheet("font-size: 15px;")
        self._offer_list = OfferListWidget(on_success=self._on_offer_success, on_purchase=self._on_offer_purchase)
        scroll = QScrollArea()
        scroll.setWidgetResizable(True)
        scroll.setFrameShape(QScrollArea.NoFrame)
        scroll.setStyleSheet("background: transparent;")
        scroll.setWidget(self._offer_list)
        self._replay_button = QPushButton("Play Again")
        self._replay_button.clicked.connect(lambda: self._engine.restart())
        layout.addWidget(self._end_headline)
        layout.addWidget(self._end_body)
        layout.addWidget(scroll, 1)
        layout.addWidget(self._replay_button, 0, Qt.AlignHCenter)
        self._stack.addWidget(page)
        self._pages[View.END] = page

    # ------------------------------------------------------------------
    # Engine notifications
    # ------------------------------------------------------------------

    def refresh(self, engine: Optional[PlaybackEngine] = None) -> None:
        """Re-render from the engine's current state (engine listener)."""
        engine = engine or self._engine
        view = engine.view
        self._progress_label.setText(engine.progress_text)
        self._score_label.setText(f"⭐ {engine.total_score}")
        self._sync_music(engine.music_track)

        if view is not View.GAME:
            self._release_module()

        instance = engine.active_instance
        if view is View.INTRO:
            self._intro_text.setText(self._screen_text(self.definition.intro_screen.text,
                                                       self.definition.intro_screen.click_to_continue))
        elif view is View.TITLE and instance is not None:
            self._title_text.setText(instance.microgame.name.upper())
        elif view is View.CONTROLS and instance is not None:
            self._controls_text.setText(self._controls_for(instance.microgame.name, False))
        elif view is View.COMBINED and instance is not None:
            self._combined_text.setText(self._controls_for(instance.microgame.name, True))
        elif view is View.GAME:
            self._refresh_game()
        elif view is View.RESULT and engine.result is not None:
            win = engine.result.win
            self._result_text.setText("WIN!" if win else "LOSE")
            self._result_text.setStyleSheet(f"font-size: 72px; font-weight: 900; color: {result_color(win)};")
        elif view is View.PROMO:
            self._promo_text.setText(self._screen_text(self.definition.promo_screen.text,
                                                       self.definition.promo_screen.click_to_continue))
        elif view is View.END:
            self._refresh_end()

        page = self._pages.get(view)
        if page is not None:
            self._stack.setCurrentWidget(page)

    def _screen_text(self, text: str, click_to_continue: bool) -> str:
        if click_to_continue:
            return f"{text}\n\nClick to continue"
        return text

    def _controls_for(self, name: str, with_title: bool) -> str:
        instance = self._engine.active_instance
        microgame = instance.microgame
        description = microgame.description_for(self.definition.category)
        text = f"{microgame.controls}\n\n{description}"
        if with_title:
            return f"{name.upper()}\n\n{text}"
        return text

    def _refresh_game(self) -> None:
        module = self._engine.active_module
        if isinstance(module, QWidget) and module is not self._embedded_module:
            self._release_module()
            self._game_layout.addWidget(module, 1)
            self._embedded_module = module
        instance = self._engine.active_instance
        if self._engine.is_overlay_visible and instance is not None:
            self._overlay_label.setText(self._controls_for(instance.microgame.name, True))
            self._overlay_label.setGeometry(self._pages[View.GAME].rect())
            self._overlay_label.raise_()
            self._overlay_label.show()
        else:
            self._overlay_label.hide()
        self._waiting_label.setVisible(self._engine.is_waiting)

    def _release_module(self) -> None:
        module, self._embedded_module = self._embedded_module, None
        if module is not None:
            module.setParent(None)
            module.deleteLater()

    def _refresh_end(self) -> None:
        content = self._engine.end_content
        screen = self._engine.conversion_screen
        self._offer_list.setVisible(content is EndContent.CONVERSION)
        self._replay_button.setVisible(content is not EndContent.CONVERSION)
        if content is EndContent.REPLAY:
            self._end_headline.setText("Preview Finished")
            self._end_body.setText("")
        elif content is EndContent.FALLBACK or screen is None:
            self._end_headline.setText("Game Over!")
            self._end_body.setText(f"({FALLBACK_MESSAGE})")
        else:
            self._end_headline.setText(screen.headline)
            self._end_body.setText(screen.body_text)
            session = self._engine.session
            cards = build_offer_cards(
                screen,
                self._engine.resolve_offers(),
                self._methods,
                session.balance(),
                session.completed,
            )
            self._offer_list.set_cards(cards)

    # ------------------------------------------------------------------
    # Offers and audio
    # ------------------------------------------------------------------

    def _on_offer_success(self, instance_id: str) -> None:
        self._engine.complete_offer(instance_id)
        self.refresh()

    def _on_offer_purchase(self, instance_id: str) -> None:
        result = self._engine.purchase_offer(instance_id)
        if not result.ok:
            logger.info("Purchase of %s refused; %d more points needed", instance_id, result.error.shortfall)
        self.refresh()

    def _sync_music(self, track: Optional[str]) -> None:
        if track == self._current_track:
            return
        self._current_track = track
        if track is None:
            self._player.stop()
            return
        path = Path(track)
        if not path.is_absolute() and self._asset_dir is not None:
            path = self._asset_dir / path
        if not path.exists():
            logger.warning("Music file not found: %s", path)
            self._player.stop()
            return
        self._player.setSource(QUrl.fromLocalFile(str(path)))
        self._player.play()

    def _toggle_mute(self) -> None:
        muted = not self._audio_output.isMuted()
        self._audio_output.setMuted(muted)
        self._mute_button.setText("🔇" if muted else "🔊")

    def closeEvent(self, event: QCloseEvent) -> None:
        """Stop playback timers and music before closing."""
        self._engine.teardown()
        self._player.stop()
        super().closeEvent(event)
