"""Theme colors and color utilities for the player."""

from __future__ import annotations


class PlayerColors:
    """Dark arcade palette used by the player screens."""

    BG_TOP = "#1a1a2e"
    BG_BOTTOM = "#16213e"

    PRIMARY = "#4CAF50"
    PRIMARY_DARK = "#2e7d32"
    ACCENT = "#f1c40f"

    WIN = "#2ecc71"
    LOSE = "#e74c3c"

    BUTTON_DISABLED = "#555555"

    CARD_BG = "rgba(255, 255, 255, 0.08)"
    CARD_BORDER = "rgba(255, 255, 255, 0.25)"
    MASK_BG = "rgba(0, 0, 0, 0.85)"

    TEXT_PRIMARY = "#ffffff"
    TEXT_MUTED = "#b0bec5"

    PROGRESS_TRACK = "rgba(255, 255, 255, 0.2)"


def blend_hex(a: str, b: str, t: float) -> str:
    """Blend two #RRGGBB colors. t=0 -> a, t=1 -> b."""
    try:
        a = a.strip()
        b = b.strip()
        if not (a.startswith("#") and b.startswith("#") and len(a) == 7 and len(b) == 7):
            return a
        t = max(0.0, min(1.0, float(t)))
        ar, ag, ab = int(a[1:3], 16), int(a[3:5], 16), int(a[5:7], 16)
        br, bg, bb = int(b[1:3], 16), int(b[3:5], 16), int(b[5:7], 16)
        r = int(ar + (br - ar) * t)
        g = int(ag + (bg - ag) * t)
        bl = int(ab + (bb - ab) * t)
        return f"#{r:02X}{g:02X}{bl:02X}"
    except ValueError:
        return a


def result_color(win: bool) -> str:
    return PlayerColors.WIN if win else PlayerColors.LOSE


def purchase_button_color(affordable: bool, configured: str | None = None) -> str:
    """Configured button color, else green when affordable and grey otherwise."""
    if configured:
        return configured
    return PlayerColors.WIN if affordable else PlayerColors.BUTTON_DISABLED
