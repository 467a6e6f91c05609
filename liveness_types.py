"""
Liveness-Gate - Shared Data Types
==================================
Plain data carried between the camera, the face detector, the
classifiers and the session engine.

  - ChallengeType / LivenessState enumerations
  - Challenge (one gesture the subject must perform)
  - FaceSample (what the detector hands us per frame)
  - MotionSample (one device-orientation reading)
  - FrameInput (one camera frame plus its luminance plane)
  - Engine events and the per-frame FrameResult
"""

from __future__ import annotations

from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Any, Optional, Union

import numpy as np


class ChallengeType(str, Enum):
    """Gestures a liveness session can ask for."""
    BLINK = "blink"
    TURN_LEFT = "turn_left"
    TURN_RIGHT = "turn_right"
    SMILE = "smile"
    NOD = "nod"


DEFAULT_INSTRUCTIONS = {
    ChallengeType.BLINK: "Please blink your eyes slowly",
    ChallengeType.TURN_LEFT: "Turn your head to the left",
    ChallengeType.TURN_RIGHT: "Turn your head to the right",
    ChallengeType.SMILE: "Please smile",
    ChallengeType.NOD: "Nod your head up and down",
}


class LivenessState(str, Enum):
    """Session states, in the only order they may be entered."""
    INITIAL = "initial"
    CENTERING_FACE = "centering_face"
    PERFORMING_CHALLENGES = "performing_challenges"
    COMPLETED = "completed"

    @property
    def rank(self) -> int:
        return _STATE_ORDER.index(self)


_STATE_ORDER = [
    LivenessState.INITIAL,
    LivenessState.CENTERING_FACE,
    LivenessState.PERFORMING_CHALLENGES,
    LivenessState.COMPLETED,
]


@dataclass
class Challenge:
    """A single gesture challenge inside a session."""
    type: ChallengeType
    is_completed: bool = False
    custom_instruction: Optional[str] = None

    @property
    def instruction(self) -> str:
        return self.custom_instruction or DEFAULT_INSTRUCTIONS[self.type]

    def mark_completed(self) -> None:
        if self.is_completed:
            raise ValueError(f"Challenge {self.type.value} already completed")
        self.is_completed = True


@dataclass(frozen=True)
class BoundingBox:
    """Face box in frame pixel space."""
    left: float
    top: float
    width: float
    height: float

    @property
    def center_x(self) -> float:
        return self.left + self.width / 2.0

    @property
    def center_y(self) -> float:
        return self.top + self.height / 2.0


@dataclass(frozen=True)
class FaceSample:
    """Detector output for the primary face in one frame.

    Every field is optional: a detector that could not measure a signal
    leaves it as None and the classifiers treat it as "no detection".

    Attributes:
        bbox: Face bounding box in frame pixels.
        left_eye_open: Left eye open probability [0, 1].
        right_eye_open: Right eye open probability [0, 1].
        smiling: Smiling probability [0, 1].
        yaw: Head yaw in degrees (negative = turned left).
        pitch: Head pitch in degrees.
    """
    bbox: Optional[BoundingBox] = None
    left_eye_open: Optional[float] = None
    right_eye_open: Optional[float] = None
    smiling: Optional[float] = None
    yaw: Optional[float] = None
    pitch: Optional[float] = None


@dataclass(frozen=True)
class MotionSample:
    """One device-orientation reading."""
    x: float
    y: float
    z: float
    timestamp: float = 0.0


@dataclass
class FrameInput:
    """One camera frame as seen by the engine.

    Attributes:
        luminance: Single-plane 8-bit luminance samples (array or bytes).
        width: Frame width in pixels.
        height: Frame height in pixels.
        image: Optional BGR image for detectors that need colour.
        mirrored: True when the preview is shown horizontally flipped
                  (front camera). Pixels and detector coordinates stay
                  in sensor orientation; centering math mirrors X.
        timestamp: Capture time, monotonic seconds.
    """
    luminance: Union[np.ndarray, bytes, bytearray]
    width: int
    height: int
    image: Optional[np.ndarray] = None
    mirrored: bool = False
    timestamp: float = 0.0


# ─── Engine events ────────────────────────────────────────────

@dataclass(frozen=True)
class NoChange:
    kind: str = field(default="no_change", init=False)


@dataclass(frozen=True)
class StateChanged:
    previous: LivenessState
    state: LivenessState
    kind: str = field(default="state_changed", init=False)


@dataclass(frozen=True)
class ChallengeCompleted:
    challenge_type: ChallengeType
    index: int
    kind: str = field(default="challenge_completed", init=False)


@dataclass(frozen=True)
class SessionCompleted:
    session_id: str
    success: bool
    metadata: dict
    kind: str = field(default="session_completed", init=False)


@dataclass(frozen=True)
class SessionReset:
    reason: str
    previous_session_id: str
    session_id: str
    kind: str = field(default="session_reset", init=False)


LivenessEvent = Union[NoChange, StateChanged, ChallengeCompleted, SessionCompleted, SessionReset]


@dataclass
class FrameResult:
    """UI-facing outcome of one processed frame."""
    session_id: str
    state: LivenessState
    progress: float
    status_message: str
    face_centering_message: str
    events: list = field(default_factory=list)
    face_detected: bool = False
    lighting_value: float = 0.0
    is_lighting_good: bool = True
    glare_detected: bool = False
    frames_dropped: int = 0
    error: Optional[str] = None

    @property
    def changed(self) -> bool:
        return any(not isinstance(e, NoChange) for e in self.events)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
