"""Tests for macroplay.core.audio – background track selection."""

from __future__ import annotations

import pytest

from macroplay.core.audio import resolve_track, segment_key
from macroplay.core.models import (
    AudioSetting,
    FlowItem,
    MacrogameConfig,
    MacrogameDefinition,
    Microgame,
    MicrogameInstance,
)


def _definition(audio=None, conversion="s1", main="music/main.mp3") -> MacrogameDefinition:
    game = Microgame(id="catch", name="Catch")
    flow = tuple(MicrogameInstance(i, FlowItem("catch"), game) for i in range(2))
    return MacrogameDefinition(
        id="demo",
        name="Demo",
        flow=flow,
        config=MacrogameConfig(background_music_url=main),
        conversion_screen_id=conversion,
        audio=audio or {},
    )


# ---------------------------------------------------------------------------
# segment_key
# ---------------------------------------------------------------------------

class TestSegmentKey:
    @pytest.mark.parametrize("view", ["title", "controls", "combined", "game", "result"])
    def test_flow_views(self, view):
        assert segment_key(view, 1, 2, True) == "flow_1"

    def test_intro_and_promo(self):
        assert segment_key("intro", 0, 2, True) == "intro"
        assert segment_key("promo", 2, 2, True) == "promo"

    def test_end_needs_conversion(self):
        assert segment_key("end", 2, 2, True) == "conversion"
        assert segment_key("end", 2, 2, False) is None

    def test_loading_is_silent(self):
        assert segment_key("loading", 0, 2, True) is None


# ---------------------------------------------------------------------------
# resolve_track
# ---------------------------------------------------------------------------

class TestResolveTrack:
    def test_main_track_by_default(self):
        assert resolve_track(_definition(), "game", 0) == "music/main.mp3"

    def test_play_music_off(self):
        definition = _definition({"flow_1": AudioSetting(play_music=False)})
        assert resolve_track(definition, "game", 1) is None
        assert resolve_track(definition, "game", 0) == "music/main.mp3"

    def test_none_music_id_is_silence(self):
        definition = _definition({"promo": AudioSetting(music_id="none")})
        assert resolve_track(definition, "promo", 2) is None

    def test_library_track(self):
        definition = _definition({"intro": AudioSetting(music_id="chill")})
        assert resolve_track(definition, "intro", 0) == "music/chill.mp3"

    def test_custom_library(self):
        definition = _definition({"intro": AudioSetting(music_id="jazz")})
        assert resolve_track(definition, "intro", 0, {"jazz": "j.mp3"}) == "j.mp3"

    def test_unknown_id_falls_back_to_main(self, caplog):
        definition = _definition({"intro": AudioSetting(music_id="polka")})
        with caplog.at_level("WARNING"):
            assert resolve_track(definition, "intro", 0) == "music/main.mp3"
        assert "polka" in caplog.text

    def test_no_main_track(self):
        assert resolve_track(_definition(main=None), "game", 0) is None
