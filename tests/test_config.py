"""
Liveness-Gate - Configuration Tests
====================================
Defaults, YAML loading, copy-with and validation of LivenessConfig.
"""

from __future__ import annotations

import sys
from pathlib import Path

import pytest
import yaml

_project_root = str(Path(__file__).resolve().parent.parent)
if _project_root not in sys.path:
    sys.path.insert(0, _project_root)

from liveness_config import DEFAULT_CONFIG_PATH, LivenessConfig, load_config
from liveness_types import ChallengeType


# ─── Test 1: Defaults ─────────────────────────────────────────

def test_defaults_match_documented_values():
    cfg = LivenessConfig()
    assert cfg.max_session_duration_s == 120.0
    assert cfg.eye_blink_threshold_open == 0.7
    assert cfg.eye_blink_threshold_closed == 0.3
    assert cfg.smile_threshold_neutral == 0.3
    assert cfg.smile_threshold_smiling == 0.7
    assert cfg.head_turn_threshold == 20.0
    assert cfg.min_lighting_threshold == 0.25
    assert cfg.bright_pixel_threshold == 230
    assert cfg.max_motion_readings == 100
    assert cfg.max_head_angle_readings == 30
    assert cfg.challenge_types is None
    assert cfg.number_of_random_challenges == 3
    assert cfg.always_include_blink is True
    assert cfg.challenge_instructions == {}


# ─── Test 2: Shipped config.yaml equals the dataclass defaults ─

def test_shipped_yaml_matches_defaults():
    assert Path(DEFAULT_CONFIG_PATH).exists()
    assert load_config() == LivenessConfig()


# ─── Test 3: Sectioned YAML with overrides ────────────────────

def test_load_sectioned_yaml(tmp_path):
    path = tmp_path / "custom.yaml"
    path.write_text(yaml.safe_dump({
        "session": {"max_session_duration_s": 60},
        "detection": {"head_turn_threshold": 15.0},
        "challenges": {
            "challenge_types": ["smile", "blink"],
            "challenge_instructions": {"smile": "Big smile!"},
        },
    }))

    cfg = load_config(str(path))

    assert cfg.max_session_duration_s == 60
    assert cfg.head_turn_threshold == 15.0
    assert cfg.challenge_types == (ChallengeType.SMILE, ChallengeType.BLINK)
    assert cfg.challenge_instructions == {ChallengeType.SMILE: "Big smile!"}


# ─── Test 4: Unknown keys are rejected ────────────────────────

def test_unknown_key_raises(tmp_path):
    path = tmp_path / "bad.yaml"
    path.write_text("detection:\n  blink_speed: 3\n")
    with pytest.raises(ValueError, match="blink_speed"):
        load_config(str(path))


# ─── Test 5: Validation ───────────────────────────────────────

@pytest.mark.parametrize("overrides", [
    {"eye_blink_threshold_open": 1.5},
    {"eye_blink_threshold_closed": 0.8, "eye_blink_threshold_open": 0.7},
    {"smile_threshold_neutral": 0.9},
    {"min_bright_percentage": 0.4},
    {"max_motion_readings": 0},
    {"challenge_types": []},
    {"challenge_types": ["wave"]},
])
def test_invalid_values_raise(overrides):
    with pytest.raises(ValueError):
        LivenessConfig(**overrides)


# ─── Test 6: replace() returns a new validated copy ───────────

def test_replace_is_copy_with():
    base = LivenessConfig()
    changed = base.replace(number_of_random_challenges=5)

    assert changed.number_of_random_challenges == 5
    assert base.number_of_random_challenges == 3
    with pytest.raises(ValueError):
        base.replace(min_lighting_threshold=-0.1)


# ─── Test 7: Frozen config is hashable ────────────────────────

def test_config_is_hashable_with_instructions():
    cfg = LivenessConfig(challenge_instructions={"smile": "Big smile!"})
    same = LivenessConfig(challenge_instructions={ChallengeType.SMILE: "Big smile!"})

    assert cfg == same
    assert hash(cfg) == hash(same)
    assert len({cfg, same, LivenessConfig()}) == 2

    with pytest.raises(TypeError):
        cfg.challenge_instructions[ChallengeType.BLINK] = "Blink!"
