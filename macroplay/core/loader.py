from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml

from macroplay.core.models import (
    AudioSetting,
    ConversionMethod,
    ConversionScreen,
    FlowItem,
    Gate,
    GateKind,
    MacrogameConfig,
    MacrogameDefinition,
    MethodInstance,
    MethodType,
    Microgame,
    MicrogameInstance,
    NoGate,
    OnSuccessGate,
    PointGate,
    ScreenConfig,
    ScreenFlowType,
    Spotlight,
    TrackableEvent,
    Visibility,
)

logger = logging.getLogger(__name__)


def _read_yaml(path: Path) -> Any:
    try:
        return yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise ValueError(f"{path.name}: invalid YAML: {e}") from e


def _as_list(raw: Any, key: str, path: Path) -> List[Dict[str, Any]]:
    if raw is None:
        return []
    if not isinstance(raw, dict) or not isinstance(raw.get(key, []), list):
        raise ValueError(f"{path.name}: expected a mapping with a '{key}' list")
    items = raw.get(key) or []
    for item in items:
        if not isinstance(item, dict):
            raise ValueError(f"{path.name}: every entry under '{key}' must be a mapping")
    return items


def _require(item: Any, field_name: str, path: Path) -> str:
    if not isinstance(item, dict):
        raise ValueError(f"{path.name}: expected a mapping with '{field_name}', got {item!r}")
    value = item.get(field_name)
    if not value or not isinstance(value, str):
        raise ValueError(f"{path.name}: missing or invalid '{field_name}'")
    return value


def _mapping(raw: Any, field_name: str, path: Path) -> Dict[Any, Any]:
    """*raw* as a mapping; missing or null is empty."""
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ValueError(f"{path.name}: '{field_name}' must be a mapping")
    return raw


def _count(raw: Any, field_name: str, path: Path, default: int = 0) -> int:
    """Nonnegative integer field (points, durations); null means *default*."""
    if raw is None:
        return default
    if isinstance(raw, bool):
        raise ValueError(f"{path.name}: '{field_name}' must be a number, got {raw!r}")
    try:
        value = int(raw)
    except (TypeError, ValueError) as e:
        raise ValueError(f"{path.name}: '{field_name}' must be a number, got {raw!r}") from e
    if value < 0:
        raise ValueError(f"{path.name}: '{field_name}' must not be negative, got {value}")
    return value


def _points(raw: Any, field_name: str, path: Path) -> Dict[str, int]:
    return {
        str(k): _count(v, f"{field_name}.{k}", path)
        for k, v in _mapping(raw, field_name, path).items()
    }


def parse_gate(raw: Any, path: Path) -> Gate:
    """Build a gate from its YAML mapping; no mapping means no gate."""
    if raw is None:
        return NoGate()
    if not isinstance(raw, dict):
        raise ValueError(f"{path.name}: gate must be a mapping")
    kind = raw.get("type", "none")
    if kind == GateKind.NONE.value:
        return NoGate()
    if kind == GateKind.ON_SUCCESS.value:
        try:
            visibility = Visibility(raw.get("visibility", Visibility.HIDDEN.value))
        except ValueError as e:
            raise ValueError(f"{path.name}: unknown gate visibility {raw.get('visibility')!r}") from e
        return OnSuccessGate(
            method_instance_id=str(raw.get("method_instance_id") or ""),
            visibility=visibility,
            replace_prerequisite=bool(raw.get("replace_prerequisite", False)),
        )
    if kind in (GateKind.POINT_THRESHOLD.value, GateKind.POINT_PURCHASE.value):
        return PointGate(kind=GateKind(kind))
    raise ValueError(f"{path.name}: unknown gate type {kind!r}")


def _parse_screen_config(raw: Any, field_name: str, path: Path) -> ScreenConfig:
    raw = _mapping(raw, field_name, path)
    spotlight = None
    if raw.get("spotlight_url"):
        spotlight = Spotlight(url=str(raw["spotlight_url"]), layout=str(raw.get("spotlight_layout", "left")))
    duration = raw.get("duration")
    try:
        duration_seconds = max(0.0, float(duration or 0))
    except (TypeError, ValueError) as e:
        raise ValueError(f"{path.name}: '{field_name}.duration' must be a number, got {duration!r}") from e
    return ScreenConfig(
        enabled=bool(raw.get("enabled", False)),
        text=str(raw.get("text", "")),
        duration_seconds=duration_seconds,
        click_to_continue=bool(raw.get("click_to_continue", False)),
        background_image_url=raw.get("background_image_url"),
        spotlight=spotlight,
    )


def _parse_config(raw: Any, path: Path) -> MacrogameConfig:
    raw = _mapping(raw, "config", path)
    return MacrogameConfig(
        title_screen_duration_ms=_count(raw.get("title_screen_duration"), "title_screen_duration", path, 2000),
        controls_screen_duration_ms=_count(
            raw.get("controls_screen_duration"), "controls_screen_duration", path, 2000
        ),
        screen_flow_type=ScreenFlowType.parse(raw.get("screen_flow_type")),
        background_music_url=raw.get("background_music_url"),
    )


def _parse_audio(raw: Any, positions: Mapping[int, int], path: Path) -> Dict[str, AudioSetting]:
    """Per-segment music settings.

    ``flow_<n>`` keys name the authored flow position; they are moved to the
    item's position in the hydrated flow, and dropped with the item when it
    was skipped as an orphan.
    """
    settings: Dict[str, AudioSetting] = {}
    for key, value in _mapping(raw, "audio", path).items():
        key = str(key)
        value = _mapping(value, f"audio.{key}", path)
        if key.startswith("flow_"):
            try:
                authored = int(key[len("flow_"):])
            except ValueError as e:
                raise ValueError(f"{path.name}: unknown audio segment {key!r}") from e
            if authored not in positions:
                logger.warning("%s: dropping music setting for skipped flow item %d", path.name, authored)
                continue
            key = f"flow_{positions[authored]}"
        settings[key] = AudioSetting(
            play_music=bool(value.get("play_music", True)),
            music_id=value.get("music_id"),
        )
    return settings


class DefinitionRepository:
    """Macrogames, microgames and conversion screens loaded from YAML.

    Layout under the data directory::

        microgames.yaml      microgames: [...], variants: [...]
        methods.yaml         methods: [...]
        screens.yaml         screens: [...]
        macrogames/*.yaml    one macrogame per file, keyed by file stem
    """

    def __init__(self, base_dir: Optional[Path] = None) -> None:
        self._base_dir = base_dir or Path(__file__).resolve().parent.parent / "data"
        if not self._base_dir.exists():
            raise FileNotFoundError(f"Data directory not found: {self._base_dir}")
        self._microgames, self._skins = self._load_microgames()
        self._methods = self._load_methods()
        self._screens = self._load_screens()
        self._macrogames = self._load_macrogames()

    def all(self) -> List[MacrogameDefinition]:
        return list(self._macrogames.values())

    def get(self, key: str) -> MacrogameDefinition:
        return self._macrogames[key]

    def microgame(self, microgame_id: str) -> Microgame:
        return self._microgames[microgame_id]

    def methods(self) -> Dict[str, ConversionMethod]:
        return dict(self._methods)

    def conversion_screen(self, screen_id: Optional[str]) -> Optional[ConversionScreen]:
        """The screen with *screen_id*, or None if it is unset or was deleted."""
        if screen_id is None:
            return None
        screen = self._screens.get(screen_id)
        if screen is None:
            logger.warning("Conversion screen %s not found", screen_id)
        return screen

    def _load_microgames(self) -> tuple[Dict[str, Microgame], Dict[str, Dict[str, str]]]:
        path = self._base_dir / "microgames.yaml"
        if not path.exists():
            raise FileNotFoundError(f"Microgame catalogue not found: {path}")
        raw = _read_yaml(path)
        microgames: Dict[str, Microgame] = {}
        for item in _as_list(raw, "microgames", path):
            microgame_id = _require(item, "id", path)
            events = tuple(
                TrackableEvent(
                    event_id=_require(e, "event_id", path),
                    label=str(e.get("label", "")),
                    default_points=_count(e.get("default_points"), "default_points", path),
                )
                for e in _as_list(item, "trackable_events", path)
            )
            microgames[microgame_id] = Microgame(
                id=microgame_id,
                name=_require(item, "name", path),
                controls=str(item.get("controls", "")),
                trackable_events=events,
                skins={str(k): str(v) for k, v in _mapping(item.get("skins"), "skins", path).items()},
                length_seconds=_count(item.get("length"), "length", path, 5),
            )

        skins: Dict[str, Dict[str, str]] = {}
        for variant in _as_list(raw, "variants", path):
            variant_id = _require(variant, "id", path)
            skin_data = _mapping(variant.get("skin_data"), "skin_data", path)
            skins[variant_id] = {str(k): str(v) for k, v in skin_data.items()}
        return microgames, skins

    def _load_methods(self) -> Dict[str, ConversionMethod]:
        path = self._base_dir / "methods.yaml"
        if not path.exists():
            return {}
        methods: Dict[str, ConversionMethod] = {}
        reserved = {"id", "name", "type", "headline", "subheadline"}
        for item in _as_list(_read_yaml(path), "methods", path):
            method_id = _require(item, "id", path)
            try:
                method_type = MethodType(item.get("type"))
            except ValueError as e:
                raise ValueError(f"{path.name}: unknown method type {item.get('type')!r}") from e
            methods[method_id] = ConversionMethod(
                id=method_id,
                name=str(item.get("name", method_id)),
                type=method_type,
                headline=str(item.get("headline", "")),
                subheadline=str(item.get("subheadline", "")),
                options={k: v for k, v in item.items() if k not in reserved},
            )
        return methods

    def _load_screens(self) -> Dict[str, ConversionScreen]:
        path = self._base_dir / "screens.yaml"
        if not path.exists():
            return {}
        screens: Dict[str, ConversionScreen] = {}
        for item in _as_list(_read_yaml(path), "screens", path):
            screen_id = _require(item, "id", path)
            instances = []
            seen: set[str] = set()
            for m in _as_list(item, "methods", path):
                instance_id = _require(m, "instance_id", path)
                if instance_id in seen:
                    raise ValueError(f"{path.name}: duplicate instance_id {instance_id!r} in screen {screen_id}")
                seen.add(instance_id)
                instances.append(
                    MethodInstance(
                        instance_id=instance_id,
                        method_id=_require(m, "method_id", path),
                        gate=parse_gate(m.get("gate"), path),
                        content_above=m.get("content_above"),
                        content_below=m.get("content_below"),
                        mask=_mapping(m.get("mask"), "mask", path) or None,
                    )
                )
            screens[screen_id] = ConversionScreen(
                id=screen_id,
                name=str(item.get("name", "")),
                headline=str(item.get("headline", "")),
                body_text=str(item.get("body_text", "")),
                methods=tuple(instances),
            )
        return screens

    def _load_macrogames(self) -> Dict[str, MacrogameDefinition]:
        base_dir = self._base_dir / "macrogames"
        macrogames: Dict[str, MacrogameDefinition] = {}
        for path in sorted(base_dir.glob("*.yaml")):
            raw = _read_yaml(path)
            if not raw or not isinstance(raw, dict):
                raise ValueError(f"{path.name}: expected YAML with 'name' and 'flow'")
            name = _require(raw, "name", path)
            flow = raw.get("flow")
            if not isinstance(flow, list):
                raise ValueError(f"{path.name}: missing 'flow' list")
            instances, positions = self._hydrate_flow(flow, path)
            macrogames[path.stem] = MacrogameDefinition(
                id=path.stem,
                name=name,
                category=str(raw.get("category", "")),
                flow=instances,
                config=_parse_config(raw.get("config"), path),
                intro_screen=_parse_screen_config(raw.get("intro_screen"), "intro_screen", path),
                promo_screen=_parse_screen_config(raw.get("promo_screen"), "promo_screen", path),
                conversion_screen_id=raw.get("conversion_screen_id"),
                point_costs=_points(raw.get("point_costs"), "point_costs", path),
                audio=_parse_audio(raw.get("audio"), positions, path),
            )
        if not macrogames:
            raise ValueError(f"No macrogame files (*.yaml) found in {base_dir}")
        return macrogames

    def _hydrate_flow(
        self, flow: List[Any], path: Path
    ) -> tuple[tuple[MicrogameInstance, ...], Dict[int, int]]:
        """Join flow entries with their microgames, skipping orphans.

        Also returns the hydrated position of every kept entry, keyed by its
        authored position.
        """
        instances: List[MicrogameInstance] = []
        positions: Dict[int, int] = {}
        for authored, raw_item in enumerate(flow):
            if not isinstance(raw_item, dict):
                raise ValueError(f"{path.name}: flow entries must be mappings")
            item = FlowItem(
                microgame_id=_require(raw_item, "microgame_id", path),
                variant_id=raw_item.get("variant_id"),
                point_rules=_points(raw_item.get("point_rules"), "point_rules", path) or None,
            )
            microgame = self._microgames.get(item.microgame_id)
            if microgame is None:
                logger.warning("%s: skipping orphaned flow item %s", path.name, item.microgame_id)
                continue
            skin_data: Dict[str, str] = {}
            if item.variant_id:
                skin_data = self._skins.get(item.variant_id, {})
                if not skin_data:
                    logger.warning("%s: variant %s has no skin data", path.name, item.variant_id)
            positions[authored] = len(instances)
            instances.append(
                MicrogameInstance(
                    flow_index=len(instances),
                    item=item,
                    microgame=microgame,
                    skin_data=skin_data,
                )
            )
        return tuple(instances), positions
