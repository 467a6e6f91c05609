"""
Liveness-Gate - Lighting Quality Monitor
=========================================
Scalar brightness and a screen-glare heuristic from the raw
luminance plane of each frame.

Lighting: mean luminance / 255 must exceed min_lighting_threshold.
Glare: the fraction of near-saturated samples must sit strictly inside
[min_bright_percentage, max_bright_percentage]. Below the band there is
no highlight; above it the whole room is just bright. A glossy screen
held up to the camera shows a localized glint in between.

Glare is advisory: it is exposed and logged, never used to gate the
session.
"""

import logging
from typing import Any, Dict, Union

import numpy as np

from liveness_config import LivenessConfig
from liveness_plugin import LivenessPlugin

_log = logging.getLogger("LightingQuality")

MAX_SAMPLE_VALUE = 255.0


def as_luminance_plane(plane: Union[np.ndarray, bytes, bytearray, memoryview]) -> np.ndarray:
    """Flatten a luminance buffer to a 1-D uint8-compatible array."""
    if isinstance(plane, (bytes, bytearray, memoryview)):
        return np.frombuffer(plane, dtype=np.uint8)
    return np.asarray(plane).ravel()


class LightingQualityMonitor(LivenessPlugin):
    name = "lighting_quality"
    tier = "environment"

    def __init__(self, config: LivenessConfig):
        super().__init__(config)
        self._lighting_value = 0.0
        self._is_lighting_good = True
        self._glare_frames = 0

    @property
    def lighting_value(self) -> float:
        """Normalized mean brightness of the last frame (0.0-1.0)."""
        return self._lighting_value

    @property
    def is_lighting_good(self) -> bool:
        return self._is_lighting_good

    @property
    def glare_frames(self) -> int:
        """Frames flagged with glare since the last reset."""
        return self._glare_frames

    def update_from_frame(self, plane) -> float:
        """Recompute lighting from a luminance plane.

        Returns:
            The normalized lighting value.
        """
        samples = as_luminance_plane(plane)
        if samples.size == 0:
            self._lighting_value = 0.0
            self._is_lighting_good = False
            return self._lighting_value

        avg = float(samples.mean(dtype=np.float64))
        self._lighting_value = avg / MAX_SAMPLE_VALUE
        self._is_lighting_good = self._lighting_value > self.config.min_lighting_threshold
        return self._lighting_value

    def detect_glare(self, plane) -> bool:
        """True when a narrow band of pixels is near saturation."""
        samples = as_luminance_plane(plane)
        if samples.size == 0:
            return False

        bright = int(np.count_nonzero(samples > self.config.bright_pixel_threshold))
        bright_pct = bright / samples.size

        glare = self.config.min_bright_percentage < bright_pct < self.config.max_bright_percentage
        if glare:
            self._glare_frames += 1
            _log.debug("Possible screen glare: %.1f%% bright samples", bright_pct * 100.0)
        return glare

    def reset(self) -> None:
        self._lighting_value = 0.0
        self._is_lighting_good = True
        self._glare_frames = 0

    def summary(self) -> Dict[str, Any]:
        return {
            **super().summary(),
            "lighting_value": round(self._lighting_value, 4),
            "is_lighting_good": self._is_lighting_good,
            "glare_frames": self._glare_frames,
        }
