"""Tests for macroplay.core.loader – DefinitionRepository and YAML parsing."""

from __future__ import annotations

import textwrap
from pathlib import Path

import pytest

from macroplay.core.loader import DefinitionRepository, parse_gate
from macroplay.core.models import (
    GateKind,
    MethodType,
    NoGate,
    OnSuccessGate,
    PointGate,
    ScreenFlowType,
    Visibility,
)

MICROGAMES = """\
microgames:
  - id: catch
    name: Catch!
    controls: Tap the falling stars
    length: 6
    trackable_events:
      - event_id: win
        label: Won
        default_points: 10
      - event_id: item_caught
        default_points: 1
variants:
  - id: catch-holiday
    skin_data:
      player: sleigh.png
"""

METHODS = """\
methods:
  - id: coupon
    name: Coupon
    type: coupon_display
    headline: Your code
    click_to_reveal: true
  - id: email
    name: Newsletter
    type: email_capture
"""

SCREENS = """\
screens:
  - id: rewards
    headline: Great job
    methods:
      - instance_id: m1
        method_id: coupon
      - instance_id: m2
        method_id: email
        gate:
          type: on_success
          method_instance_id: m1
          visibility: locked_mask
"""

MACROGAME = """\
name: Launch
category: Retail
config:
  title_screen_duration: 1200
  controls_screen_duration: 800
  screen_flow_type: Combined
intro_screen:
  enabled: true
  text: Welcome
  duration: 2
  click_to_continue: true
flow:
  - microgame_id: catch
    variant_id: catch-holiday
    point_rules:
      win: 25
  - microgame_id: deleted-game
  - microgame_id: catch
conversion_screen_id: rewards
point_costs:
  m2: 15
audio:
  promo:
    music_id: chill
  conversion:
    play_music: false
"""


def _write(base: Path, name: str, text: str) -> None:
    path = base / name
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(textwrap.dedent(text), encoding="utf-8")


@pytest.fixture()
def data_dir(tmp_path: Path) -> Path:
    _write(tmp_path, "microgames.yaml", MICROGAMES)
    _write(tmp_path, "methods.yaml", METHODS)
    _write(tmp_path, "screens.yaml", SCREENS)
    _write(tmp_path, "macrogames/launch.yaml", MACROGAME)
    return tmp_path


# ===========================================================================
# Loading a full data directory
# ===========================================================================

class TestRepository:
    def test_loads_macrogame(self, data_dir):
        repo = DefinitionRepository(data_dir)
        definition = repo.get("launch")
        assert definition.id == "launch"
        assert definition.name == "Launch"
        assert definition.category == "Retail"
        assert [d.id for d in repo.all()] == ["launch"]

    def test_config(self, data_dir):
        config = DefinitionRepository(data_dir).get("launch").config
        assert config.title_screen_duration_ms == 1200
        assert config.controls_screen_duration_ms == 800
        assert config.screen_flow_type is ScreenFlowType.COMBINED

    def test_intro_and_default_promo(self, data_dir):
        definition = DefinitionRepository(data_dir).get("launch")
        assert definition.intro_screen.enabled
        assert definition.intro_screen.click_to_continue
        assert definition.intro_screen.duration_seconds == 2
        assert not definition.promo_screen.enabled

    def test_orphaned_flow_item_is_skipped(self, data_dir, caplog):
        with caplog.at_level("WARNING"):
            flow = DefinitionRepository(data_dir).get("launch").flow
        assert [i.microgame.id for i in flow] == ["catch", "catch"]
        assert [i.flow_index for i in flow] == [0, 1]
        assert "deleted-game" in caplog.text

    def test_variant_skin_and_point_rules(self, data_dir):
        first, second = DefinitionRepository(data_dir).get("launch").flow
        assert first.skin_data == {"player": "sleigh.png"}
        assert first.points_for("win") == 25
        assert second.skin_data == {}
        assert second.points_for("win") == 10
        assert second.points_for("item_caught") == 1

    def test_microgame_catalogue(self, data_dir):
        game = DefinitionRepository(data_dir).microgame("catch")
        assert game.name == "Catch!"
        assert game.length_seconds == 6
        assert [e.event_id for e in game.trackable_events] == ["win", "item_caught"]

    def test_methods(self, data_dir):
        methods = DefinitionRepository(data_dir).methods()
        assert methods["coupon"].type is MethodType.COUPON_DISPLAY
        assert methods["coupon"].options == {"click_to_reveal": True}
        assert methods["email"].type is MethodType.EMAIL_CAPTURE

    def test_conversion_screen(self, data_dir):
        repo = DefinitionRepository(data_dir)
        screen = repo.conversion_screen(repo.get("launch").conversion_screen_id)
        assert screen.headline == "Great job"
        assert [m.instance_id for m in screen.methods] == ["m1", "m2"]
        gate = screen.methods[1].gate
        assert isinstance(gate, OnSuccessGate)
        assert gate.visibility is Visibility.LOCKED_MASK

    def test_missing_conversion_screen(self, data_dir):
        repo = DefinitionRepository(data_dir)
        assert repo.conversion_screen("nope") is None
        assert repo.conversion_screen(None) is None

    def test_point_costs_and_audio(self, data_dir):
        definition = DefinitionRepository(data_dir).get("launch")
        assert definition.point_costs == {"m2": 15}
        assert definition.audio["promo"].music_id == "chill"
        assert definition.audio["conversion"].play_music is False

    def test_flow_music_follows_skipped_orphans(self, data_dir, caplog):
        _write(
            data_dir,
            "macrogames/launch.yaml",
            """\
            name: Launch
            flow:
              - microgame_id: catch
              - microgame_id: deleted-game
              - microgame_id: catch
            audio:
              flow_1:
                music_id: arcade
              flow_2:
                music_id: upbeat
            """,
        )
        with caplog.at_level("WARNING"):
            audio = DefinitionRepository(data_dir).get("launch").audio
        assert audio["flow_1"].music_id == "upbeat"
        assert set(audio) == {"flow_1"}
        assert "skipped flow item 1" in caplog.text

    def test_unknown_key_raises(self, data_dir):
        with pytest.raises(KeyError):
            DefinitionRepository(data_dir).get("nonexistent")

    def test_packaged_data_loads(self):
        repo = DefinitionRepository()
        assert repo.all()


# ===========================================================================
# Error handling
# ===========================================================================

class TestRepositoryErrors:
    def test_missing_directory(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            DefinitionRepository(tmp_path / "nowhere")

    def test_missing_catalogue(self, tmp_path):
        _write(tmp_path, "macrogames/launch.yaml", MACROGAME)
        with pytest.raises(FileNotFoundError):
            DefinitionRepository(tmp_path)

    def test_no_macrogames(self, tmp_path):
        _write(tmp_path, "microgames.yaml", MICROGAMES)
        with pytest.raises(ValueError, match="No macrogame files"):
            DefinitionRepository(tmp_path)

    def test_invalid_yaml(self, data_dir):
        _write(data_dir, "macrogames/broken.yaml", "name: [unclosed\n")
        with pytest.raises(ValueError, match="broken.yaml"):
            DefinitionRepository(data_dir)

    def test_missing_flow(self, data_dir):
        _write(data_dir, "macrogames/empty.yaml", "name: Empty\n")
        with pytest.raises(ValueError, match="flow"):
            DefinitionRepository(data_dir)

    def test_duplicate_instance_id(self, data_dir):
        _write(
            data_dir,
            "screens.yaml",
            """\
            screens:
              - id: rewards
                methods:
                  - instance_id: m1
                    method_id: coupon
                  - instance_id: m1
                    method_id: email
            """,
        )
        with pytest.raises(ValueError, match="duplicate"):
            DefinitionRepository(data_dir)

    def test_unknown_method_type(self, data_dir):
        _write(data_dir, "methods.yaml", "methods:\n  - id: x\n    type: carrier_pigeon\n")
        with pytest.raises(ValueError, match="carrier_pigeon"):
            DefinitionRepository(data_dir)

    def test_unknown_flow_type_falls_back_to_separate(self, data_dir):
        _write(
            data_dir,
            "macrogames/launch.yaml",
            "name: Launch\nconfig:\n  screen_flow_type: Sideways\nflow:\n  - microgame_id: catch\n",
        )
        config = DefinitionRepository(data_dir).get("launch").config
        assert config.screen_flow_type is ScreenFlowType.SEPARATE

    def test_null_duration_uses_default(self, data_dir):
        _write(
            data_dir,
            "macrogames/launch.yaml",
            "name: Launch\nconfig:\n  title_screen_duration: null\nflow:\n  - microgame_id: catch\n",
        )
        assert DefinitionRepository(data_dir).get("launch").config.title_screen_duration_ms == 2000

    @pytest.mark.parametrize(
        "body, message",
        [
            ("config:\n  title_screen_duration: fast\n", "title_screen_duration"),
            ("config: [1, 2]\n", "config"),
            ("intro_screen:\n  duration: soon\n", "intro_screen.duration"),
            ("point_costs:\n  - m2\n", "point_costs"),
            ("point_costs:\n  m2: -15\n", "point_costs.m2"),
            ("audio:\n  flow_x:\n    music_id: chill\n", "flow_x"),
        ],
    )
    def test_malformed_macrogame_fields(self, data_dir, body, message):
        _write(data_dir, "macrogames/launch.yaml", "name: Launch\nflow:\n  - microgame_id: catch\n" + body)
        with pytest.raises(ValueError, match="launch.yaml") as excinfo:
            DefinitionRepository(data_dir)
        assert message in str(excinfo.value)

    @pytest.mark.parametrize(
        "rules, message",
        [
            ("    point_rules:\n      win: -5\n", "point_rules.win"),
            ("    point_rules:\n      - win\n", "point_rules"),
            ("    point_rules:\n      win: lots\n", "point_rules.win"),
        ],
    )
    def test_malformed_point_rules(self, data_dir, rules, message):
        _write(data_dir, "macrogames/launch.yaml", "name: Launch\nflow:\n  - microgame_id: catch\n" + rules)
        with pytest.raises(ValueError, match="launch.yaml") as excinfo:
            DefinitionRepository(data_dir)
        assert message in str(excinfo.value)

    @pytest.mark.parametrize(
        "extra, message",
        [
            ("    skins:\n      - Retail\n", "skins"),
            ("    trackable_events:\n      - event_id: win\n        default_points: -1\n", "default_points"),
            ("    trackable_events:\n      - event_id: win\n        default_points: lots\n", "default_points"),
            ("    trackable_events: win\n", "trackable_events"),
            ("    length: forever\n", "length"),
        ],
    )
    def test_malformed_microgame_fields(self, tmp_path, extra, message):
        _write(tmp_path, "microgames.yaml", "microgames:\n  - id: catch\n    name: Catch\n" + extra)
        _write(tmp_path, "macrogames/launch.yaml", "name: Launch\nflow:\n  - microgame_id: catch\n")
        with pytest.raises(ValueError, match="microgames.yaml") as excinfo:
            DefinitionRepository(tmp_path)
        assert message in str(excinfo.value)

    @pytest.mark.parametrize(
        "methods",
        [
            "    methods:\n      - m1\n",
            "    methods: m1\n",
            "    methods:\n      - instance_id: m1\n        method_id: coupon\n        mask: Locked\n",
        ],
    )
    def test_malformed_screen_methods(self, data_dir, methods):
        _write(data_dir, "screens.yaml", "screens:\n  - id: rewards\n" + methods)
        with pytest.raises(ValueError, match="screens.yaml"):
            DefinitionRepository(data_dir)


# ===========================================================================
# parse_gate
# ===========================================================================

class TestParseGate:
    PATH = Path("screens.yaml")

    def test_missing_gate(self):
        assert parse_gate(None, self.PATH) == NoGate()

    def test_explicit_none(self):
        assert parse_gate({"type": "none"}, self.PATH) == NoGate()

    def test_on_success_defaults(self):
        gate = parse_gate({"type": "on_success", "method_instance_id": "m1"}, self.PATH)
        assert gate == OnSuccessGate("m1", Visibility.HIDDEN, replace_prerequisite=False)

    def test_replace_prerequisite(self):
        gate = parse_gate(
            {"type": "on_success", "method_instance_id": "m1", "replace_prerequisite": True},
            self.PATH,
        )
        assert gate.replace_prerequisite

    @pytest.mark.parametrize("kind", [GateKind.POINT_THRESHOLD, GateKind.POINT_PURCHASE])
    def test_point_gates(self, kind):
        assert parse_gate({"type": kind.value}, self.PATH) == PointGate(kind)

    def test_unknown_type(self):
        with pytest.raises(ValueError, match="unknown gate type"):
            parse_gate({"type": "raffle"}, self.PATH)

    def test_unknown_visibility(self):
        with pytest.raises(ValueError, match="visibility"):
            parse_gate({"type": "on_success", "visibility": "blurred"}, self.PATH)

    def test_not_a_mapping(self):
        with pytest.raises(ValueError):
            parse_gate("on_success", self.PATH)
