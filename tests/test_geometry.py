"""
Liveness-Gate - Oval Guide Geometry Tests
==========================================
Guide placement, centering predicate and guidance precedence on a
640x480 frame.

Guide for 640x480 with defaults:
  center (320, 216), oval 198 x 264
"""

import sys
from pathlib import Path

import pytest

_project_root = str(Path(__file__).resolve().parent.parent)
if _project_root not in sys.path:
    sys.path.insert(0, _project_root)

from liveness_config import LivenessConfig
from liveness_geometry import (
    MSG_HOLD_STILL,
    MSG_MOVE_DOWN,
    MSG_MOVE_LEFT,
    MSG_MOVE_RIGHT,
    MSG_MOVE_UP,
    MSG_TOO_BIG,
    MSG_TOO_SMALL,
    evaluate_centering,
    guide_region,
)
from liveness_types import BoundingBox

CFG = LivenessConfig()
SIZE = (640, 480)


def _box(cx, cy, w=150.0, h=180.0):
    return BoundingBox(left=cx - w / 2, top=cy - h / 2, width=w, height=h)


def test_guide_region_layout():
    g = guide_region(SIZE, CFG)
    assert g.center_x == pytest.approx(320.0)
    assert g.center_y == pytest.approx(216.0)
    assert g.height == pytest.approx(264.0)
    assert g.width == pytest.approx(198.0)
    assert g.top_marker() == ((pytest.approx(320.0), pytest.approx(216.0 - 264 * 0.55)),
                              (pytest.approx(320.0), pytest.approx(216.0 - 264 * 0.35)))


def test_centered_face_holds_still():
    result = evaluate_centering(_box(320, 216), SIZE, CFG)
    assert result.is_centered is True
    assert result.message == MSG_HOLD_STILL


@pytest.mark.parametrize("box, message", [
    (_box(320, 216, w=320), MSG_TOO_BIG),
    (_box(320, 216, w=80), MSG_TOO_SMALL),
    (_box(200, 216), MSG_MOVE_RIGHT),
    (_box(450, 216), MSG_MOVE_LEFT),
    (_box(320, 120), MSG_MOVE_DOWN),
    (_box(320, 320), MSG_MOVE_UP),
])
def test_single_guidance_message(box, message):
    result = evaluate_centering(box, SIZE, CFG)
    assert result.message == message
    assert result.is_centered is False


def test_size_beats_position_in_precedence():
    # Too big AND far off to the left: size wins
    result = evaluate_centering(_box(100, 100, w=400), SIZE, CFG)
    assert result.message == MSG_TOO_BIG


def test_horizontal_beats_vertical():
    result = evaluate_centering(_box(100, 400), SIZE, CFG)
    assert result.message == MSG_MOVE_RIGHT


def test_mirrored_flips_horizontal_guidance():
    box = _box(200, 216)
    assert evaluate_centering(box, SIZE, CFG, mirrored=False).message == MSG_MOVE_RIGHT
    assert evaluate_centering(box, SIZE, CFG, mirrored=True).message == MSG_MOVE_LEFT


def test_between_predicate_and_guidance_sizes_is_not_centered():
    # width ratio 1.2: guidance says hold still, predicate wants <= 0.9
    result = evaluate_centering(_box(320, 216, w=198 * 1.2), SIZE, CFG)
    assert result.message == MSG_HOLD_STILL
    assert result.is_centered is False


def test_tolerances_come_from_config():
    box = _box(320 + 80, 216)
    assert evaluate_centering(box, SIZE, CFG).is_centered is False
    loose = CFG.replace(horizontal_tolerance=0.2)
    assert evaluate_centering(box, SIZE, loose).is_centered is True
