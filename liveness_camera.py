"""
Liveness-Gate - Camera Input Module
====================================
Owns ALL camera interaction. No other file should touch
cv2.VideoCapture directly.

Features:
  - Fails loudly (CameraInitError) when the device cannot be opened
  - Structural frame validation (shape, dtype, channel count)
  - Luminance plane extraction for the lighting monitor
  - Optional zoom preference and the mirrored-preview flag
  - Health monitoring (FPS, drop rate, connection status)

Brightness is deliberately NOT validated here: dark frames have to
reach the lighting monitor so the subject is told to find more light.
"""

from __future__ import annotations

import logging
import time
from collections import deque
from typing import Optional, Union

import cv2
import numpy as np

from liveness_types import FrameInput

_log = logging.getLogger("LivenessCamera")


class CameraInitError(RuntimeError):
    """The capture device could not be opened."""


def frame_from_bgr(frame: np.ndarray, mirrored: bool = False, timestamp: float = 0.0) -> FrameInput:
    """Wrap a BGR frame, extracting its 8-bit luminance plane.

    Pixels stay in sensor orientation. `mirrored` only records that the
    preview is shown flipped; the flip happens once, at display time.
    """
    gray = cv2.cvtColor(frame, cv2.COLOR_BGR2GRAY)
    h, w = gray.shape[:2]
    return FrameInput(
        luminance=gray,
        width=w,
        height=h,
        image=frame,
        mirrored=mirrored,
        timestamp=timestamp,
    )


class LivenessCamera:
    """Validated camera capture for Liveness-Gate.

    Wraps cv2.VideoCapture with:
      - 1-frame buffer to minimize latency
      - Per-frame structural validation
      - Monotonic timestamping
      - Health status reporting (FPS, drops, age)
    """

    MIN_HEIGHT: int = 120
    MIN_WIDTH: int = 160
    EXPECTED_CHANNELS: int = 3
    EXPECTED_DTYPE = np.uint8
    FPS_WINDOW: int = 30

    def __init__(
        self,
        source: Union[int, str] = 0,
        width: int = 640,
        height: int = 480,
        zoom_level: Optional[float] = None,
        mirrored: bool = True,
        backend: int = cv2.CAP_ANY,
    ) -> None:
        """Open the capture device.

        Args:
            source: Camera index or a video file / stream URL.
            width: Requested capture width.
            height: Requested capture height.
            zoom_level: Zoom preference in [0, 1] (0 = widest); applied
                        only when the backend exposes CAP_PROP_ZOOM.
            mirrored: Preview is shown flipped (front camera). Frames are
                      returned unflipped with FrameInput.mirrored set.
            backend: OpenCV capture backend.

        Raises:
            CameraInitError: if the device cannot be opened.
        """
        self._source = source
        self._mirrored = mirrored
        self._cap: cv2.VideoCapture = cv2.VideoCapture(source, backend)

        if not self._cap.isOpened():
            self._cap.release()
            raise CameraInitError(f"Cannot open camera source {source!r}")

        self._cap.set(cv2.CAP_PROP_BUFFERSIZE, 1)
        self._cap.set(cv2.CAP_PROP_FRAME_WIDTH, width)
        self._cap.set(cv2.CAP_PROP_FRAME_HEIGHT, height)
        if zoom_level is not None:
            self._apply_zoom(zoom_level)

        self._resolution: tuple[int, int] = (
            int(self._cap.get(cv2.CAP_PROP_FRAME_WIDTH)),
            int(self._cap.get(cv2.CAP_PROP_FRAME_HEIGHT)),
        )

        self._frames_total: int = 0
        self._frames_dropped: int = 0
        self._last_valid_timestamp: float = 0.0
        self._frame_times: deque[float] = deque(maxlen=self.FPS_WINDOW)

        _log.info(
            "LivenessCamera initialized, source=%r resolution=%s mirrored=%s",
            source, self._resolution, mirrored,
        )

    @property
    def mirrored(self) -> bool:
        return self._mirrored

    # ── Public API ────────────────────────────────────────────

    def read_frame(self) -> Optional[FrameInput]:
        """Read and validate one frame.

        Returns:
            A FrameInput, or None when the frame failed validation
            (the drop counter is incremented).
        """
        self._frames_total += 1
        timestamp = time.monotonic()

        ret, frame = self._cap.read()
        if not self._validate_frame(ret, frame):
            self._frames_dropped += 1
            return None

        self._last_valid_timestamp = timestamp
        self._frame_times.append(timestamp)
        return frame_from_bgr(frame, mirrored=self._mirrored, timestamp=timestamp)

    def get_health_status(self) -> dict:
        now = time.monotonic()
        last_age_ms = (
            (now - self._last_valid_timestamp) * 1000.0
            if self._last_valid_timestamp > 0
            else float("inf")
        )
        return {
            "connected": self._cap.isOpened(),
            "fps_actual": self._calculate_fps(),
            "frames_total": self._frames_total,
            "frames_dropped": self._frames_dropped,
            "drop_rate_pct": (
                (self._frames_dropped / self._frames_total * 100.0)
                if self._frames_total > 0
                else 0.0
            ),
            "last_valid_frame_age_ms": round(last_age_ms, 2),
            "resolution": self._resolution,
        }

    def is_opened(self) -> bool:
        return self._cap.isOpened()

    def release(self) -> None:
        """Release camera resources and log final statistics."""
        health = self.get_health_status()
        _log.info(
            "LivenessCamera releasing, total=%d dropped=%d (%.1f%%)",
            health["frames_total"],
            health["frames_dropped"],
            health["drop_rate_pct"],
        )
        self._cap.release()

    def __enter__(self) -> "LivenessCamera":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.release()

    # ── Private helpers ───────────────────────────────────────

    def _apply_zoom(self, zoom_level: float) -> None:
        zoom_level = min(max(zoom_level, 0.0), 1.0)
        # Most UVC cameras report zoom in [100, 500]; 0 means unsupported
        supported = self._cap.set(cv2.CAP_PROP_ZOOM, 100 + zoom_level * 400)
        if not supported:
            _log.debug("Zoom not supported by backend, ignoring zoom_level=%.2f", zoom_level)

    def _validate_frame(self, ret: bool, frame: Optional[np.ndarray]) -> bool:
        if not ret or frame is None:
            _log.debug("Validation FAIL: no frame returned")
            return False

        # Grayscale or 4-channel frames break luminance extraction
        if frame.ndim != 3 or frame.shape[2] != self.EXPECTED_CHANNELS:
            _log.debug("Validation FAIL: shape=%s", frame.shape)
            return False

        if frame.dtype != self.EXPECTED_DTYPE:
            _log.debug("Validation FAIL: dtype=%s (expected uint8)", frame.dtype)
            return False

        h, w = frame.shape[:2]
        if h < self.MIN_HEIGHT or w < self.MIN_WIDTH:
            _log.debug(
                "Validation FAIL: resolution %dx%d below minimum %dx%d",
                w, h, self.MIN_WIDTH, self.MIN_HEIGHT,
            )
            return False

        return True

    def _calculate_fps(self) -> float:
        if len(self._frame_times) < 2:
            return 0.0
        elapsed = self._frame_times[-1] - self._frame_times[0]
        if elapsed <= 0:
            return 0.0
        return (len(self._frame_times) - 1) / elapsed
