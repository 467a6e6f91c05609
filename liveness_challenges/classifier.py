"""
Liveness-Gate - Gesture Signal Classifier
==========================================
Edge detectors that turn per-frame detector probabilities and angles
into one-shot "gesture performed" verdicts.

Every detector compares the current sample against the immediately
previous one, so a subject who is already smiling when the challenge
starts still has to produce a neutral -> smiling transition.

  BLINK      avg(eye open) was > open threshold, now < closed threshold
  TURN_LEFT  yaw < -head_turn_threshold   (yaw is recorded to history)
  TURN_RIGHT yaw > +head_turn_threshold   (yaw is recorded to history)
  SMILE      smile was < neutral threshold, now > smiling threshold
  NOD        pitch crossed the +/-10 deg band since the last sample

A missing signal returns False and leaves memory untouched.
"""

from __future__ import annotations

import logging
from collections import deque
from typing import Callable, Dict, List, Optional

from liveness_config import LivenessConfig
from liveness_types import ChallengeType, FaceSample

_log = logging.getLogger("SignalClassifier")

# Pitch band for nods, independent of head_turn_threshold
NOD_PITCH_THRESHOLD = 10.0


class SignalClassifier:
    """Per-session gesture edge detection.

    Memory (cleared by reset()):
      - last eye-open average, last smile probability, last pitch
      - bounded FIFO of observed yaw angles (max_head_angle_readings)
    """

    def __init__(self, config: LivenessConfig):
        self.config = config
        self._last_eye_open: Optional[float] = None
        self._last_smile: Optional[float] = None
        self._last_pitch: Optional[float] = None
        self._head_angles: deque = deque(maxlen=config.max_head_angle_readings)

        self._detectors: Dict[ChallengeType, Callable[[FaceSample], bool]] = {
            ChallengeType.BLINK: self.detect_blink,
            ChallengeType.TURN_LEFT: self.detect_turn_left,
            ChallengeType.TURN_RIGHT: self.detect_turn_right,
            ChallengeType.SMILE: self.detect_smile,
            ChallengeType.NOD: self.detect_nod,
        }

    # ── Public API ────────────────────────────────────────────

    def detect(self, challenge_type: ChallengeType, face: FaceSample) -> bool:
        """Run the detector for one challenge type against a sample."""
        return self._detectors[challenge_type](face)

    def detect_blink(self, face: FaceSample) -> bool:
        if face.left_eye_open is None or face.right_eye_open is None:
            return False

        avg_open = (face.left_eye_open + face.right_eye_open) / 2.0
        previous = self._last_eye_open
        self._last_eye_open = avg_open

        return (
            previous is not None
            and previous > self.config.eye_blink_threshold_open
            and avg_open < self.config.eye_blink_threshold_closed
        )

    def detect_turn_left(self, face: FaceSample) -> bool:
        if face.yaw is None:
            return False
        self._store_head_angle(face.yaw)
        return face.yaw < -self.config.head_turn_threshold

    def detect_turn_right(self, face: FaceSample) -> bool:
        if face.yaw is None:
            return False
        self._store_head_angle(face.yaw)
        return face.yaw > self.config.head_turn_threshold

    def detect_smile(self, face: FaceSample) -> bool:
        if face.smiling is None:
            return False

        previous = self._last_smile
        self._last_smile = face.smiling

        return (
            previous is not None
            and previous < self.config.smile_threshold_neutral
            and face.smiling > self.config.smile_threshold_smiling
        )

    def detect_nod(self, face: FaceSample) -> bool:
        if face.pitch is None:
            return False

        previous = self._last_pitch
        pitch = face.pitch
        self._last_pitch = pitch

        if previous is None:
            return False
        return (
            (previous < -NOD_PITCH_THRESHOLD and pitch > NOD_PITCH_THRESHOLD)
            or (previous > NOD_PITCH_THRESHOLD and pitch < -NOD_PITCH_THRESHOLD)
        )

    @property
    def head_angle_history(self) -> List[float]:
        """Recorded yaw samples, oldest first."""
        return list(self._head_angles)

    def update_config(self, config: LivenessConfig) -> None:
        self.config = config
        if config.max_head_angle_readings != self._head_angles.maxlen:
            self._head_angles = deque(self._head_angles, maxlen=config.max_head_angle_readings)

    def reset(self) -> None:
        """Clear all memory."""
        self._last_eye_open = None
        self._last_smile = None
        self._last_pitch = None
        self._head_angles.clear()

    def memory(self) -> dict:
        """Snapshot of classifier memory (for diagnostics and tests)."""
        return {
            "last_eye_open": self._last_eye_open,
            "last_smile": self._last_smile,
            "last_pitch": self._last_pitch,
            "head_angles": list(self._head_angles),
        }

    # ── Private helpers ───────────────────────────────────────

    def _store_head_angle(self, angle: float) -> None:
        self._head_angles.append(float(angle))
