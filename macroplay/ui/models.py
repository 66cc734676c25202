"""Data models used by the UI."""

from __future__ import annotations

from dataclasses import dataclass
from typing import AbstractSet, List, Mapping, Optional

from macroplay.core.gating import MethodState, Resolution, call_to_action, default_mask, threshold_progress
from macroplay.core.models import ConversionMethod, ConversionScreen, MaskConfig, MethodInstance, MethodType


@dataclass
class OfferCard:
    """UI state for one rendered offer: the method, its gating state and mask text."""

    instance: MethodInstance
    method: ConversionMethod
    state: MethodState
    action_text: str = ""
    mask: Optional[MaskConfig] = None
    progress: float = 1.0
    needs_reveal: bool = False

    @property
    def instance_id(self) -> str:
        return self.instance.instance_id


def build_offer_cards(
    screen: ConversionScreen,
    resolution: Resolution,
    methods: Mapping[str, ConversionMethod],
    balance: int,
    completed: AbstractSet[str] = frozenset(),
) -> List[OfferCard]:
    """Cards for the visible offers of *screen*, in screen order."""
    cards: List[OfferCard] = []
    for instance in screen.methods:
        state = resolution.get(instance.instance_id)
        method = methods.get(instance.method_id)
        if state is None or method is None or not state.visible:
            continue
        needs_reveal = (
            not state.locked
            and method.type is MethodType.COUPON_DISPLAY
            and bool(method.options.get("click_to_reveal"))
            and instance.instance_id not in completed
        )
        cards.append(
            OfferCard(
                instance=instance,
                method=method,
                state=state,
                action_text=call_to_action(state, balance),
                mask=default_mask(instance, state, balance) if state.locked else None,
                progress=threshold_progress(state, balance),
                needs_reveal=needs_reveal,
            )
        )
    return cards
