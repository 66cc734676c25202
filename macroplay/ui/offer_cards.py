"""Conversion screen UI: OfferCardWidget and OfferListWidget."""

from __future__ import annotations

from typing import Callable, Dict, List, Optional

from PySide6.QtCore import Qt
from PySide6.QtWidgets import (
    QFrame,
    QLabel,
    QProgressBar,
    QPushButton,
    QVBoxLayout,
    QWidget,
)

from macroplay.core.models import ConversionMethod, GateKind, MethodType
from macroplay.ui.colors import PlayerColors, blend_hex, purchase_button_color
from macroplay.ui.models import OfferCard


def _coupon_text(method: ConversionMethod) -> str:
    return f"Code: {method.options.get('static_code', '')}"


def _social_text(method: ConversionMethod) -> str:
    links = method.options.get("links") or []
    return " · ".join(str(link.get("platform", "")) for link in links if isinstance(link, dict))


# Success button label and body text per method type.
_RENDERERS: Dict[MethodType, tuple[str, Callable[[ConversionMethod], str]]] = {
    MethodType.COUPON_DISPLAY: ("Copy code", _coupon_text),
    MethodType.EMAIL_CAPTURE: ("Submit", lambda m: str(m.options.get("submit_button_text", ""))),
    MethodType.FORM_SUBMIT: ("Submit", lambda m: ""),
    MethodType.LINK_REDIRECT: ("Open", lambda m: str(m.options.get("url", ""))),
    MethodType.SOCIAL_FOLLOW: ("Follow", _social_text),
}


class OfferCardWidget(QFrame):
    """One offer: its content when unlocked, or a mask with a call to action when locked."""

    def __init__(
        self,
        card: OfferCard,
        *,
        on_success: Callable[[str], None],
        on_purchase: Callable[[str], None],
        parent: Optional[QWidget] = None,
    ) -> None:
        super().__init__(parent)
        self._card = card
        self.setObjectName("offerCard")
        self.setStyleSheet(
            f"""
            QFrame#offerCard {{
                background: {PlayerColors.CARD_BG};
                border: 1px solid {PlayerColors.CARD_BORDER};
                border-radius: 12px;
            }}
            QLabel {{ color: {PlayerColors.TEXT_PRIMARY}; }}
            """
        )
        layout = QVBoxLayout(self)
        layout.setContentsMargins(16, 14, 16, 14)
        layout.setSpacing(8)

        if card.instance.content_above:
            layout.addWidget(self._label(card.instance.content_above, 12))

        if card.state.locked and card.mask is not None:
            self._build_mask(layout, on_purchase)
        elif card.needs_reveal:
            reveal = QPushButton("Click to Reveal the Coupon Code")
            reveal.clicked.connect(lambda: on_success(card.instance_id))
            layout.addWidget(self._label(card.method.headline, 18, bold=True))
            layout.addWidget(reveal)
        else:
            self._build_content(layout, on_success)

        if card.instance.content_below:
            layout.addWidget(self._label(card.instance.content_below, 12))

    def _label(self, text: str, size: int, bold: bool = False) -> QLabel:
        label = QLabel(text)
        label.setWordWrap(True)
        label.setAlignment(Qt.AlignCenter)
        weight = "800" if bold else "400"
        label.setStyleSheet(f"font-size: {size}px; font-weight: {weight};")
        return label

    def _build_content(self, layout: QVBoxLayout, on_success: Callable[[str], None]) -> None:
        method = self._card.method
        button_text, body = _RENDERERS[method.type]
        layout.addWidget(self._label(method.headline, 18, bold=True))
        if method.subheadline:
            layout.addWidget(self._label(method.subheadline, 13))
        text = body(method)
        if text:
            layout.addWidget(self._label(text, 14))
        button = QPushButton(button_text)
        button.setCursor(Qt.PointingHandCursor)
        button.clicked.connect(lambda: on_success(self._card.instance_id))
        layout.addWidget(button, 0, Qt.AlignHCenter)

    def _build_mask(self, layout: QVBoxLayout, on_purchase: Callable[[str], None]) -> None:
        card = self._card
        mask = card.mask
        layout.addWidget(self._label(("🔒 " if mask.show_icon else "") + mask.headline, 16, bold=True))
        layout.addWidget(self._label(mask.body, 13))

        if card.state.kind is GateKind.POINT_PURCHASE:
            affordable = bool(card.state.affordable)
            button = QPushButton(card.action_text)
            button.setEnabled(affordable)
            button.setCursor(Qt.PointingHandCursor if affordable else Qt.ForbiddenCursor)
            bg = purchase_button_color(affordable, mask.style.button_color)
            fg = mask.style.button_text_color or "white"
            button.setStyleSheet(
                f"QPushButton {{ background: {bg}; color: {fg}; border: none; border-radius: 6px;"
                " padding: 8px 16px; font-weight: bold; }"
                f"QPushButton:hover {{ background: {blend_hex(bg, '#000000', 0.15)}; }}"
            )
            button.clicked.connect(lambda: on_purchase(card.instance_id))
            layout.addWidget(button, 0, Qt.AlignHCenter)
        elif card.state.kind is GateKind.POINT_THRESHOLD:
            bar = QProgressBar()
            bar.setRange(0, 100)
            bar.setValue(int(round(card.progress * 100)))
            bar.setTextVisible(mask.show_point_label)
            bar.setFixedHeight(8 if not mask.show_point_label else 16)
            fill = mask.style.progress_color or PlayerColors.ACCENT
            track = mask.style.progress_background_color or PlayerColors.PROGRESS_TRACK
            bar.setStyleSheet(
                f"QProgressBar {{ border: none; border-radius: 4px; background: {track}; }}"
                f"QProgressBar::chunk {{ border-radius: 4px; background: {fill}; }}"
            )
            layout.addWidget(bar)
            affordable = bool(card.state.affordable)
            button = QPushButton("Unlock" if affordable else card.action_text)
            button.setEnabled(affordable)
            button.clicked.connect(lambda: on_purchase(card.instance_id))
            layout.addWidget(button, 0, Qt.AlignHCenter)


class OfferListWidget(QWidget):
    """Vertical list of offer cards, rebuilt whenever the gating state changes."""

    def __init__(
        self,
        *,
        on_success: Callable[[str], None],
        on_purchase: Callable[[str], None],
        parent: Optional[QWidget] = None,
    ) -> None:
        super().__init__(parent)
        self._on_success = on_success
        self._on_purchase = on_purchase
        self._layout = QVBoxLayout(self)
        self._layout.setSpacing(20)

    def set_cards(self, cards: List[OfferCard]) -> None:
        while self._layout.count():
            item = self._layout.takeAt(0)
            w = item.widget()
            if w is not None:
                w.setParent(None)
                w.deleteLater()
        for card in cards:
            self._layout.addWidget(
                OfferCardWidget(card, on_success=self._on_success, on_purchase=self._on_purchase)
            )
        self._layout.addStretch(1)
