"""Offer gating for conversion screens.

:func:`resolve` decides, for every method instance on a conversion screen,
whether it is locked, whether it renders at all and what it costs. It is a
pure function of its inputs; the running session owns the completion set and
the balance and passes them in.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, fields, replace
from typing import AbstractSet, Any, Dict, List, Mapping, Optional

from macroplay.core.models import (
    ConversionMethod,
    ConversionScreen,
    Gate,
    GateKind,
    MaskConfig,
    MaskStyle,
    MethodInstance,
    NoGate,
    OnSuccessGate,
    PointGate,
    Visibility,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MethodState:
    """Resolved state of one method instance."""

    locked: bool
    visible: bool
    kind: GateKind = GateKind.NONE
    cost: Optional[int] = None
    affordable: Optional[bool] = None
    replaced: bool = False

    @property
    def purchasable(self) -> bool:
        """Locked behind points and currently affordable."""
        return self.locked and self.visible and bool(self.affordable)


Resolution = Dict[str, MethodState]


def _gate_state(
    gate: Gate,
    instance_id: str,
    completed: AbstractSet[str],
    balance: int,
    prices: Mapping[str, int],
    earlier: AbstractSet[str],
) -> MethodState:
    if isinstance(gate, NoGate):
        return MethodState(locked=False, visible=True)
    if isinstance(gate, OnSuccessGate):
        prerequisite = gate.method_instance_id
        # Only earlier instances can satisfy a prerequisite; anything else stays locked.
        if prerequisite and prerequisite in earlier and prerequisite in completed:
            return MethodState(locked=False, visible=True, kind=gate.kind)
        return MethodState(
            locked=True,
            visible=gate.visibility is Visibility.LOCKED_MASK,
            kind=gate.kind,
        )
    if isinstance(gate, PointGate):
        cost = max(0, int(prices.get(instance_id, 0) or 0))
        return MethodState(
            locked=True,
            visible=True,
            kind=gate.kind,
            cost=cost,
            affordable=balance >= cost,
        )
    raise TypeError(f"Unhandled gate type: {type(gate).__name__}")


def resolve(
    screen: ConversionScreen,
    completed: AbstractSet[str],
    balance: int,
    prices: Mapping[str, int],
    methods: Optional[Mapping[str, ConversionMethod]] = None,
) -> Resolution:
    """Resolve lock/visibility/cost for every method instance on *screen*.

    Instances already in *completed* are unlocked whatever their gate says.
    When *methods* is given, instances whose method no longer exists are
    dropped from the result.
    """
    states: Resolution = {}
    earlier: set[str] = set()
    for method in screen.methods:
        if methods is not None and method.method_id not in methods:
            logger.debug("Dropping %s: method %s not found", method.instance_id, method.method_id)
            continue
        if method.instance_id in completed:
            state = MethodState(
                locked=False,
                visible=True,
                kind=getattr(method.gate, "kind", GateKind.NONE),
            )
        else:
            state = _gate_state(method.gate, method.instance_id, completed, balance, prices, earlier)
        states[method.instance_id] = state
        earlier.add(method.instance_id)

    for method in screen.methods:
        gate = method.gate
        if not isinstance(gate, OnSuccessGate) or not gate.replace_prerequisite:
            continue
        if method.instance_id not in states:
            continue
        prerequisite = gate.method_instance_id
        if prerequisite in states and prerequisite in completed:
            states[prerequisite] = replace(states[prerequisite], visible=False, replaced=True)
    return states


def visible_ids(resolution: Resolution) -> List[str]:
    """Instance ids that render, in screen order."""
    return [instance_id for instance_id, state in resolution.items() if state.visible]


def call_to_action(state: MethodState, balance: int) -> str:
    """Button or mask text for a locked offer; empty when nothing is needed."""
    if not state.locked:
        return ""
    if state.kind is GateKind.POINT_PURCHASE:
        cost = state.cost or 0
        if cost == 0:
            return "Purchase (Test)"
        if balance >= cost:
            return f"Buy for {cost} Points"
        return f"Need {cost - balance} more"
    if state.kind is GateKind.POINT_THRESHOLD:
        return f"Earn {max(0, (state.cost or 0) - balance)} more points!"
    if state.kind is GateKind.ON_SUCCESS:
        return "Complete the prior steps to unlock this reward!"
    return ""


def threshold_progress(state: MethodState, balance: int) -> float:
    """Fraction (0..1) of a point gate's cost covered by *balance*."""
    cost = state.cost or 0
    if cost <= 0:
        return 1.0
    return min(1.0, max(0.0, balance / cost))


_MASK_HEADLINES = {
    GateKind.POINT_PURCHASE: "Use your points to purchase this reward!",
    GateKind.POINT_THRESHOLD: "Earn enough points to unlock this reward!",
    GateKind.ON_SUCCESS: "LOCKED",
}


def _merge_style(base: MaskStyle, overrides: Any) -> MaskStyle:
    if not isinstance(overrides, Mapping):
        return base
    known = {f.name for f in fields(MaskStyle)}
    return replace(base, **{k: v for k, v in overrides.items() if k in known})


def default_mask(method: MethodInstance, state: MethodState, balance: int) -> MaskConfig:
    """Mask for a locked offer: stock defaults per gate, overlaid with the configured mask."""
    body = call_to_action(state, balance)
    if state.kind is GateKind.POINT_PURCHASE:
        body = f"Spend {state.cost or 0} points."
    mask = MaskConfig(headline=_MASK_HEADLINES.get(state.kind, "LOCKED"), body=body)
    configured = method.mask or {}
    scalar = {
        k: v
        for k, v in configured.items()
        if k in ("headline", "body", "show_icon", "animation", "show_point_label")
    }
    mask = replace(mask, **scalar)
    return replace(
        mask,
        style=_merge_style(mask.style, configured.get("style")),
        light_style=_merge_style(mask.light_style, configured.get("light_style")),
    )
