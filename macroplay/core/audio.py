from __future__ import annotations

import logging
from typing import Mapping, Optional

from macroplay.core.models import AudioSetting, MacrogameDefinition

logger = logging.getLogger(__name__)

# Stock tracks selectable per segment; a macrogame may override these ids.
MUSIC_LIBRARY: Mapping[str, str] = {
    "arcade": "music/arcade.mp3",
    "chill": "music/chill.mp3",
    "upbeat": "music/upbeat.mp3",
}

_FLOW_VIEWS = ("title", "controls", "combined", "game", "result")


def segment_key(view: str, flow_index: int, flow_length: int, has_conversion: bool) -> Optional[str]:
    """Audio segment a view belongs to: intro, flow_<n>, promo, conversion or None."""
    if view in _FLOW_VIEWS and 0 <= flow_index < flow_length:
        return f"flow_{flow_index}"
    if view == "intro":
        return "intro"
    if view == "promo":
        return "promo"
    if view == "end" and has_conversion:
        return "conversion"
    return None


def resolve_track(
    definition: MacrogameDefinition,
    view: str,
    flow_index: int,
    library: Mapping[str, str] = MUSIC_LIBRARY,
) -> Optional[str]:
    """URL of the background track for *view*, or None for silence."""
    key = segment_key(
        view,
        flow_index,
        len(definition.flow),
        definition.conversion_screen_id is not None,
    )
    if key is None:
        return None
    setting = definition.audio.get(key, AudioSetting())
    if not setting.play_music:
        return None
    main_track = definition.config.background_music_url
    if setting.music_id == "none":
        return None
    if setting.music_id:
        track = library.get(setting.music_id)
        if track is None:
            logger.warning("Unknown music id %r for segment %s", setting.music_id, key)
            return main_track
        return track
    return main_track
