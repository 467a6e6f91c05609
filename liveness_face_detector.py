"""
Liveness-Gate - Face Detector Adapter
======================================
The face-landmark detector is an external collaborator: per frame it
yields at most one FaceSample (bounding box, eye-open and smile
probabilities, head yaw/pitch). Everything above this module only sees
FaceSample.

Backends:
  - FaceDetector: abstract boundary (scripted detectors in tests)
  - MediaPipeFaceDetector: MediaPipe FaceLandmarker with blendshapes
    and facial transformation matrices

Signal mapping (MediaPipe blendshapes):
  left_eye_open  = 1 - eyeBlinkLeft
  right_eye_open = 1 - eyeBlinkRight
  smiling        = mean(mouthSmileLeft, mouthSmileRight)
  yaw / pitch    = Euler angles of the facial transformation matrix
"""

from __future__ import annotations

import logging
import math
import os
from abc import ABC, abstractmethod
from typing import Iterable, Optional, Sequence, Tuple

import cv2
import numpy as np

from liveness_types import BoundingBox, FaceSample, FrameInput

_log = logging.getLogger("FaceDetector")

_SCRIPT_DIR = os.path.dirname(os.path.abspath(__file__))


class FaceDetector(ABC):
    """Per-frame face analysis boundary."""

    @abstractmethod
    def detect(self, frame: FrameInput) -> Optional[FaceSample]:
        """Return the primary face in `frame`, or None if there is none."""

    def release(self) -> None:
        pass


# ─── Pure helpers ─────────────────────────────────────────────

def _blendshape_scores(blendshapes: Iterable) -> dict:
    return {c.category_name: float(c.score) for c in blendshapes or []}


def eye_open_probabilities(blendshapes: Iterable) -> Tuple[Optional[float], Optional[float]]:
    """(left, right) eye-open probabilities from blink blendshapes."""
    scores = _blendshape_scores(blendshapes)
    left = scores.get("eyeBlinkLeft")
    right = scores.get("eyeBlinkRight")
    return (
        None if left is None else 1.0 - left,
        None if right is None else 1.0 - right,
    )


def smile_probability(blendshapes: Iterable) -> Optional[float]:
    scores = _blendshape_scores(blendshapes)
    values = [scores[k] for k in ("mouthSmileLeft", "mouthSmileRight") if k in scores]
    if not values:
        return None
    return sum(values) / len(values)


def euler_from_transformation(matrix) -> Tuple[float, float]:
    """(yaw, pitch) in degrees from a 4x4 (or 3x3) pose matrix.

    Uses the rotation block; yaw about the vertical axis, pitch about
    the horizontal axis.
    """
    r = np.asarray(matrix, dtype=np.float64)[:3, :3]
    yaw = math.atan2(-r[2, 0], math.sqrt(r[2, 1] ** 2 + r[2, 2] ** 2))
    pitch = math.atan2(r[2, 1], r[2, 2])
    return math.degrees(yaw), math.degrees(pitch)


def bbox_from_landmarks(landmarks_xy: Sequence, width: int, height: int) -> BoundingBox:
    """Pixel bounding box of normalized (x, y) landmarks, clipped to the frame."""
    pts = np.asarray(landmarks_xy, dtype=np.float64)[:, :2]
    xs = np.clip(pts[:, 0] * width, 0, width)
    ys = np.clip(pts[:, 1] * height, 0, height)
    left, top = float(xs.min()), float(ys.min())
    return BoundingBox(
        left=left,
        top=top,
        width=float(xs.max()) - left,
        height=float(ys.max()) - top,
    )


# ─── MediaPipe backend ────────────────────────────────────────

class MediaPipeFaceDetector(FaceDetector):
    """MediaPipe FaceLandmarker in VIDEO mode.

    Faces narrower than min_face_size (fraction of frame width) are
    ignored; of the rest the largest is reported.
    """

    def __init__(
        self,
        model_path: str = "face_landmarker.task",
        min_face_size: float = 0.15,
        min_detection_confidence: float = 0.5,
        max_faces: int = 2,
    ) -> None:
        from mediapipe.tasks import python
        from mediapipe.tasks.python import vision

        full_path = model_path if os.path.isabs(model_path) else os.path.join(_SCRIPT_DIR, model_path)
        if not os.path.exists(full_path) and os.path.exists(model_path):
            full_path = model_path
        if not os.path.exists(full_path):
            raise FileNotFoundError(f"MediaPipe model not found: {full_path}")

        options = vision.FaceLandmarkerOptions(
            base_options=python.BaseOptions(model_asset_path=full_path),
            running_mode=vision.RunningMode.VIDEO,
            num_faces=max_faces,
            min_face_detection_confidence=min_detection_confidence,
            min_face_presence_confidence=min_detection_confidence,
            min_tracking_confidence=0.5,
            output_face_blendshapes=True,
            output_facial_transformation_matrixes=True,
        )
        self._landmarker = vision.FaceLandmarker.create_from_options(options)
        self._min_face_size = min_face_size
        self._frame_timestamp_ms = 0
        _log.info("MediaPipe FaceLandmarker loaded from %s", full_path)

    def detect(self, frame: FrameInput) -> Optional[FaceSample]:
        if self._landmarker is None:
            raise RuntimeError("MediaPipe landmarker already released")

        import mediapipe as mp

        if frame.image is not None:
            rgb = cv2.cvtColor(frame.image, cv2.COLOR_BGR2RGB)
        else:
            gray = np.asarray(frame.luminance, dtype=np.uint8).reshape(frame.height, frame.width)
            rgb = cv2.cvtColor(gray, cv2.COLOR_GRAY2RGB)

        # VIDEO mode needs strictly increasing timestamps
        ts_ms = int(frame.timestamp * 1000)
        self._frame_timestamp_ms = max(self._frame_timestamp_ms + 1, ts_ms)

        result = self._landmarker.detect_for_video(
            mp.Image(image_format=mp.ImageFormat.SRGB, data=rgb),
            self._frame_timestamp_ms,
        )
        if not result or not result.face_landmarks:
            return None

        best = None
        for i, face_lms in enumerate(result.face_landmarks):
            bbox = bbox_from_landmarks([[lm.x, lm.y] for lm in face_lms], frame.width, frame.height)
            if bbox.width < self._min_face_size * frame.width:
                continue
            if best is None or bbox.width * bbox.height > best[1].width * best[1].height:
                best = (i, bbox)

        if best is None:
            return None

        i, bbox = best
        blendshapes = result.face_blendshapes[i] if result.face_blendshapes else None
        matrix = result.facial_transformation_matrixes[i] if result.facial_transformation_matrixes else None

        left_open, right_open = eye_open_probabilities(blendshapes)
        yaw, pitch = euler_from_transformation(matrix) if matrix is not None else (None, None)

        return FaceSample(
            bbox=bbox,
            left_eye_open=left_open,
            right_eye_open=right_open,
            smiling=smile_probability(blendshapes),
            yaw=yaw,
            pitch=pitch,
        )

    def release(self) -> None:
        if self._landmarker is not None:
            self._landmarker.close()
            self._landmarker = None
        _log.info("MediaPipeFaceDetector released")
