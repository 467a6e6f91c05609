"""
Liveness-Gate - Signal Classifier Tests
========================================
Edge detection for blink / smile / nod, thresholds for head turns,
memory handling on missing signals and reset.
"""

import sys
from pathlib import Path

import pytest

_project_root = str(Path(__file__).resolve().parent.parent)
if _project_root not in sys.path:
    sys.path.insert(0, _project_root)

from liveness_challenges import NOD_PITCH_THRESHOLD, SignalClassifier
from liveness_config import LivenessConfig
from liveness_types import ChallengeType, FaceSample


@pytest.fixture
def clf():
    return SignalClassifier(LivenessConfig())


def _eyes(avg):
    return FaceSample(left_eye_open=avg, right_eye_open=avg)


def _run(clf, challenge, samples):
    return [clf.detect(challenge, s) for s in samples]


# ─── Blink ────────────────────────────────────────────────────

def test_blink_fires_on_open_to_closed_edge(clf):
    assert _run(clf, ChallengeType.BLINK, [_eyes(0.9), _eyes(0.2)]) == [False, True]


def test_blink_requires_crossing_both_thresholds(clf):
    assert _run(clf, ChallengeType.BLINK, [_eyes(0.9), _eyes(0.5), _eyes(0.5)]) == [False, False, False]


def test_blink_fires_once_per_transition_pair(clf):
    seq = [_eyes(v) for v in (0.9, 0.1, 0.1, 0.9, 0.2, 0.95, 0.9)]
    assert _run(clf, ChallengeType.BLINK, seq).count(True) == 2


def test_blink_uses_average_of_both_eyes(clf):
    clf.detect_blink(FaceSample(left_eye_open=1.0, right_eye_open=0.6))  # avg 0.8
    assert clf.detect_blink(FaceSample(left_eye_open=0.0, right_eye_open=0.5)) is True  # avg 0.25


def test_blink_missing_eye_keeps_memory(clf):
    clf.detect_blink(_eyes(0.9))
    assert clf.detect_blink(FaceSample(left_eye_open=0.1)) is False
    assert clf.memory()["last_eye_open"] == pytest.approx(0.9)
    assert clf.detect_blink(_eyes(0.1)) is True


# ─── Head turns ───────────────────────────────────────────────

@pytest.mark.parametrize("yaw, left, right", [
    (-25.0, True, False),
    (25.0, False, True),
    (-20.0, False, False),
    (20.0, False, False),
    (0.0, False, False),
])
def test_turn_thresholds(clf, yaw, left, right):
    face = FaceSample(yaw=yaw)
    assert clf.detect(ChallengeType.TURN_LEFT, face) is left
    assert clf.detect(ChallengeType.TURN_RIGHT, face) is right


def test_turns_are_mutually_exclusive(clf):
    for yaw in range(-60, 61, 3):
        face = FaceSample(yaw=float(yaw))
        assert not (clf.detect_turn_left(face) and clf.detect_turn_right(face))


def test_turn_records_history_regardless_of_outcome(clf):
    for yaw in (0.0, 5.0, 25.0):
        clf.detect_turn_right(FaceSample(yaw=yaw))
    assert clf.head_angle_history == [0.0, 5.0, 25.0]


def test_head_history_is_bounded():
    clf = SignalClassifier(LivenessConfig(max_head_angle_readings=5))
    for yaw in range(12):
        clf.detect_turn_left(FaceSample(yaw=float(yaw)))
    assert clf.head_angle_history == [7.0, 8.0, 9.0, 10.0, 11.0]


def test_other_detectors_do_not_record_history(clf):
    clf.detect_blink(FaceSample(left_eye_open=0.9, right_eye_open=0.9, yaw=30.0))
    clf.detect_nod(FaceSample(pitch=15.0, yaw=30.0))
    assert clf.head_angle_history == []


def test_missing_yaw_is_no_detection(clf):
    assert clf.detect_turn_left(FaceSample()) is False
    assert clf.head_angle_history == []


# ─── Smile ────────────────────────────────────────────────────

def test_smile_fires_on_neutral_to_smiling_edge(clf):
    seq = [FaceSample(smiling=v) for v in (0.1, 0.9)]
    assert _run(clf, ChallengeType.SMILE, seq) == [False, True]


def test_already_smiling_does_not_fire(clf):
    seq = [FaceSample(smiling=v) for v in (0.9, 0.95, 0.9)]
    assert _run(clf, ChallengeType.SMILE, seq) == [False, False, False]


def test_smile_compares_against_immediately_previous_sample(clf):
    seq = [FaceSample(smiling=v) for v in (0.1, 0.5, 0.9)]
    assert _run(clf, ChallengeType.SMILE, seq) == [False, False, False]


# ─── Nod ──────────────────────────────────────────────────────

def test_nod_fires_on_band_crossing_both_directions(clf):
    seq = [FaceSample(pitch=p) for p in (-15.0, 15.0, -12.0)]
    assert _run(clf, ChallengeType.NOD, seq) == [False, True, True]


def test_nod_ignores_small_movements(clf):
    seq = [FaceSample(pitch=p) for p in (-9.0, 9.0, 15.0, 5.0)]
    assert _run(clf, ChallengeType.NOD, seq) == [False, False, False, False]


def test_nod_threshold_is_independent_of_head_turn_threshold():
    clf = SignalClassifier(LivenessConfig(head_turn_threshold=45.0))
    clf.detect_nod(FaceSample(pitch=-(NOD_PITCH_THRESHOLD + 1)))
    assert clf.detect_nod(FaceSample(pitch=NOD_PITCH_THRESHOLD + 1)) is True


# ─── Reset ────────────────────────────────────────────────────

def test_reset_clears_memory_and_is_idempotent(clf):
    clf.detect_blink(_eyes(0.9))
    clf.detect_smile(FaceSample(smiling=0.1))
    clf.detect_nod(FaceSample(pitch=20.0))
    clf.detect_turn_left(FaceSample(yaw=-30.0))

    clf.reset()
    once = clf.memory()
    clf.reset()

    assert clf.memory() == once == {
        "last_eye_open": None,
        "last_smile": None,
        "last_pitch": None,
        "head_angles": [],
    }
    # Without a prior sample the closing edge cannot fire
    assert clf.detect_blink(_eyes(0.1)) is False


def test_update_config_resizes_history_keeping_newest(clf):
    for yaw in range(10):
        clf.detect_turn_left(FaceSample(yaw=float(yaw)))
    clf.update_config(LivenessConfig(max_head_angle_readings=3))
    assert clf.head_angle_history == [7.0, 8.0, 9.0]
