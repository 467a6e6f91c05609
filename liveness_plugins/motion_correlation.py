"""
Liveness-Gate - Motion Correlation Checker
===========================================
Cross-checks head movement against device movement.

A live subject turning their head in front of a handheld phone moves
the phone a little too. A photo or video panned in front of a phone
resting on a table turns the "head" while the device stays still.

  verify(head_yaws):
    - empty head history or empty device buffer -> True (fail open)
    - head range > significant_head_angle_range AND
      device Y-axis range < min_device_movement_threshold -> False
    - anything else -> True

Device samples stream in continuously from a MotionSource into a
bounded buffer; verify() reads a snapshot.
"""

import json
import logging
import time
from abc import ABC, abstractmethod
from collections import deque
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

from liveness_config import LivenessConfig
from liveness_plugin import LivenessPlugin
from liveness_types import MotionSample

_log = logging.getLogger("MotionCorrelation")


class MotionSource(ABC):
    """Device-motion sensor boundary. Returns None when no reading is ready."""

    @abstractmethod
    def read_sample(self) -> Optional[MotionSample]:
        pass

    def release(self) -> None:
        pass


class ReplayMotionSource(MotionSource):
    """Replays recorded orientation samples (e.g. a JSONL capture).

    Samples are released at their recorded pace: a sample becomes
    available once the time since the first read reaches its timestamp
    offset (seconds) from the first sample. Timestamps that go backwards
    are released immediately.
    """

    def __init__(self, samples: Iterable[MotionSample], clock: Callable[[], float] = time.monotonic):
        self._samples: Iterator[MotionSample] = iter(samples)
        self._clock = clock
        self._pending: Optional[MotionSample] = None
        self._origin: Optional[Tuple[float, float]] = None  # (replay start, first timestamp)

    @classmethod
    def from_jsonl(cls, path: str) -> "ReplayMotionSource":
        """Load {"x":..,"y":..,"z":..,"timestamp":..} lines."""
        samples = []
        with open(path, "r", encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                row = json.loads(line)
                samples.append(MotionSample(
                    x=float(row.get("x", 0.0)),
                    y=float(row.get("y", 0.0)),
                    z=float(row.get("z", 0.0)),
                    timestamp=float(row.get("timestamp", 0.0)),
                ))
        _log.info("Loaded %d motion samples from %s", len(samples), path)
        return cls(samples)

    def read_sample(self) -> Optional[MotionSample]:
        if self._pending is None:
            self._pending = next(self._samples, None)
            if self._pending is None:
                return None

        now = self._clock()
        if self._origin is None:
            self._origin = (now, self._pending.timestamp)
        started, first_timestamp = self._origin
        if self._pending.timestamp - first_timestamp > now - started:
            return None

        sample, self._pending = self._pending, None
        return sample


class MotionCorrelationChecker(LivenessPlugin):
    name = "motion_correlation"
    tier = "biometric"

    def __init__(self, config: LivenessConfig):
        super().__init__(config)
        self._readings: deque = deque(maxlen=config.max_motion_readings)

    def add_sample(self, sample: MotionSample) -> None:
        # deque.append is atomic; the sensor thread is the only writer
        self._readings.append(sample)

    def snapshot(self) -> List[MotionSample]:
        return list(self._readings)

    def __len__(self) -> int:
        return len(self._readings)

    def verify(self, head_angles: Sequence[float]) -> bool:
        """Return False when the head moved but the device did not."""
        readings = self.snapshot()
        if not head_angles or not readings:
            return True

        head_range = max(head_angles) - min(head_angles)
        ys = [r.y for r in readings]
        device_range = max(ys) - min(ys)

        suspicious = (
            head_range > self.config.significant_head_angle_range
            and device_range < self.config.min_device_movement_threshold
        )
        if suspicious:
            _log.warning(
                "Head moved %.1f deg while device moved %.3f, possible spoof",
                head_range, device_range,
            )
        return not suspicious

    def update_config(self, config: LivenessConfig) -> None:
        super().update_config(config)
        if config.max_motion_readings != self._readings.maxlen:
            self._readings = deque(self._readings, maxlen=config.max_motion_readings)

    def reset(self) -> None:
        self._readings.clear()

    def summary(self) -> Dict[str, Any]:
        return {**super().summary(), "readings": len(self._readings)}
