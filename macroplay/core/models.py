"""Data model for macrogame definitions and conversion screens.

Everything here is immutable during playback. Definitions are built once by
the loader (see :mod:`macroplay.core.loader`) and shared by the engine and the
gating resolver.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union


class ScreenFlowType(str, Enum):
    SEPARATE = "Separate"
    COMBINED = "Combined"
    SKIP = "Skip"
    OVERLAY = "Overlay"

    @classmethod
    def parse(cls, value: Optional[str]) -> "ScreenFlowType":
        """Map a stored value to a flow type; missing or unknown means Separate."""
        for member in cls:
            if value == member.value:
                return member
        return cls.SEPARATE


class Visibility(str, Enum):
    HIDDEN = "hidden"
    LOCKED_MASK = "locked_mask"


class GateKind(str, Enum):
    NONE = "none"
    ON_SUCCESS = "on_success"
    POINT_THRESHOLD = "point_threshold"
    POINT_PURCHASE = "point_purchase"


class MethodType(str, Enum):
    COUPON_DISPLAY = "coupon_display"
    EMAIL_CAPTURE = "email_capture"
    LINK_REDIRECT = "link_redirect"
    FORM_SUBMIT = "form_submit"
    SOCIAL_FOLLOW = "social_follow"


@dataclass(frozen=True)
class Spotlight:
    url: str
    layout: str = "left"


@dataclass(frozen=True)
class ScreenConfig:
    """Intro or promo screen settings."""

    enabled: bool = False
    text: str = ""
    duration_seconds: float = 0.0
    click_to_continue: bool = False
    background_image_url: Optional[str] = None
    spotlight: Optional[Spotlight] = None


@dataclass(frozen=True)
class MacrogameConfig:
    title_screen_duration_ms: int = 2000
    controls_screen_duration_ms: int = 2000
    screen_flow_type: ScreenFlowType = ScreenFlowType.SEPARATE
    background_music_url: Optional[str] = None


@dataclass(frozen=True)
class AudioSetting:
    """Music override for one segment (intro, flow_<n>, promo, conversion)."""

    play_music: bool = True
    music_id: Optional[str] = None


@dataclass(frozen=True)
class TrackableEvent:
    event_id: str
    label: str = ""
    default_points: int = 0


@dataclass(frozen=True)
class Microgame:
    id: str
    name: str
    controls: str = ""
    trackable_events: Tuple[TrackableEvent, ...] = ()
    skins: Mapping[str, str] = field(default_factory=dict)
    length_seconds: int = 5

    def description_for(self, category: str) -> str:
        """Skin description for *category*, else the first one, else a stock line."""
        if category in self.skins:
            return self.skins[category]
        for description in self.skins.values():
            return description
        return "Get ready!"


@dataclass(frozen=True)
class FlowItem:
    microgame_id: str
    variant_id: Optional[str] = None
    point_rules: Optional[Mapping[str, int]] = None


@dataclass(frozen=True)
class MicrogameInstance:
    """A flow item joined with its microgame metadata and custom skin data."""

    flow_index: int
    item: FlowItem
    microgame: Microgame
    skin_data: Mapping[str, str] = field(default_factory=dict)

    def points_for(self, event_id: str) -> Optional[int]:
        """Points for *event_id*, or None when the event is not trackable."""
        for event in self.microgame.trackable_events:
            if event.event_id != event_id:
                continue
            rules = self.item.point_rules or {}
            if event_id in rules:
                return int(rules[event_id])
            return int(event.default_points)
        return None


@dataclass(frozen=True)
class MacrogameDefinition:
    id: str
    name: str
    flow: Tuple[MicrogameInstance, ...]
    config: MacrogameConfig = field(default_factory=MacrogameConfig)
    intro_screen: ScreenConfig = field(default_factory=ScreenConfig)
    promo_screen: ScreenConfig = field(default_factory=ScreenConfig)
    category: str = ""
    conversion_screen_id: Optional[str] = None
    point_costs: Mapping[str, int] = field(default_factory=dict)
    audio: Mapping[str, AudioSetting] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Conversion screens and gates
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class NoGate:
    kind: GateKind = field(default=GateKind.NONE, init=False)


@dataclass(frozen=True)
class OnSuccessGate:
    """Locked until the referenced (earlier) method instance has succeeded."""

    method_instance_id: str = ""
    visibility: Visibility = Visibility.HIDDEN
    replace_prerequisite: bool = False
    kind: GateKind = field(default=GateKind.ON_SUCCESS, init=False)


@dataclass(frozen=True)
class PointGate:
    """Locked until redeemed; the price lives in the macrogame's point costs."""

    kind: GateKind = GateKind.POINT_PURCHASE

    def __post_init__(self) -> None:
        if self.kind not in (GateKind.POINT_THRESHOLD, GateKind.POINT_PURCHASE):
            raise ValueError(f"PointGate cannot have kind {self.kind!r}")


Gate = Union[NoGate, OnSuccessGate, PointGate]


@dataclass(frozen=True)
class MaskStyle:
    background_color: str
    text_color: str
    stroke_color: str = "transparent"
    button_color: Optional[str] = None
    button_text_color: Optional[str] = None
    progress_color: Optional[str] = None
    progress_background_color: Optional[str] = None


@dataclass(frozen=True)
class MaskConfig:
    """Placeholder shown over a locked offer."""

    headline: str
    body: str
    show_icon: bool = True
    animation: str = "fade"
    show_point_label: bool = False
    style: MaskStyle = MaskStyle("rgba(0,0,0,0.85)", "#ffffff")
    light_style: MaskStyle = MaskStyle("rgba(255,255,255,0.9)", "#000000")


@dataclass(frozen=True)
class MethodInstance:
    instance_id: str
    method_id: str
    gate: Gate = field(default_factory=NoGate)
    content_above: Optional[str] = None
    content_below: Optional[str] = None
    mask: Optional[Mapping[str, Any]] = None


@dataclass(frozen=True)
class ConversionMethod:
    id: str
    name: str
    type: MethodType
    headline: str = ""
    subheadline: str = ""
    options: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ConversionScreen:
    id: str
    name: str = ""
    headline: str = ""
    body_text: str = ""
    methods: Tuple[MethodInstance, ...] = ()

    def index_of(self, instance_id: str) -> int:
        """Position of *instance_id* in the screen, or -1."""
        for i, method in enumerate(self.methods):
            if method.instance_id == instance_id:
                return i
        return -1


@dataclass(frozen=True)
class MicrogameResult:
    win: bool


def method_lookup(methods: List[ConversionMethod]) -> Dict[str, ConversionMethod]:
    """Index conversion methods by id."""
    return {m.id: m for m in methods}
