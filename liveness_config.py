"""
Liveness-Gate - Configuration
==============================
Immutable parameter bundle threaded through every component.

Defaults live in config.yaml (grouped by section). load_config()
flattens the sections into a LivenessConfig; components receive the
bundle at construction and never read global state.
"""

from __future__ import annotations

import dataclasses
import logging
import os
from dataclasses import dataclass, field, fields
from types import MappingProxyType
from typing import Any, Mapping, Optional

import yaml

from liveness_types import ChallengeType

_log = logging.getLogger("LivenessConfig")

_SCRIPT_DIR = os.path.dirname(os.path.abspath(__file__))
DEFAULT_CONFIG_PATH = os.path.join(_SCRIPT_DIR, "config.yaml")


@dataclass(frozen=True)
class LivenessConfig:
    """All tunables for a liveness session."""

    # Session
    max_session_duration_s: float = 120.0

    # Detection thresholds
    min_face_size: float = 0.15
    eye_blink_threshold_open: float = 0.7
    eye_blink_threshold_closed: float = 0.3
    smile_threshold_neutral: float = 0.3
    smile_threshold_smiling: float = 0.7
    head_turn_threshold: float = 20.0

    # Lighting / glare
    min_lighting_threshold: float = 0.25
    bright_pixel_threshold: int = 230
    min_bright_percentage: float = 0.05
    max_bright_percentage: float = 0.30

    # Camera
    camera_zoom_level: float = 0.5

    # Motion correlation
    max_motion_readings: int = 100
    max_head_angle_readings: int = 30
    significant_head_angle_range: float = 20.0
    min_device_movement_threshold: float = 0.5

    # Oval guide and centering tolerances
    oval_height_ratio: float = 0.55
    oval_width_ratio: float = 0.75
    stroke_width: float = 4.0
    guide_marker_ratio: float = 0.55
    guide_marker_inner_ratio: float = 0.35
    guide_vertical_offset: float = 0.05
    horizontal_tolerance: float = 0.1
    vertical_tolerance: float = 0.1
    min_face_width_ratio: float = 0.5
    max_face_width_ratio: float = 0.9
    guidance_min_width_ratio: float = 0.5
    guidance_max_width_ratio: float = 1.5

    # Challenges
    challenge_types: Optional[tuple] = None
    number_of_random_challenges: int = 3
    always_include_blink: bool = True
    challenge_instructions: Mapping = field(default_factory=dict, hash=False)

    def __post_init__(self) -> None:
        # Normalise challenge names coming from YAML / callers
        if self.challenge_types is not None:
            object.__setattr__(
                self, "challenge_types",
                tuple(ChallengeType(t) for t in self.challenge_types),
            )
        object.__setattr__(
            self, "challenge_instructions",
            MappingProxyType({ChallengeType(k): str(v) for k, v in (self.challenge_instructions or {}).items()}),
        )
        self._validate()

    def _validate(self) -> None:
        for name in (
            "eye_blink_threshold_open", "eye_blink_threshold_closed",
            "smile_threshold_neutral", "smile_threshold_smiling",
            "min_lighting_threshold", "min_bright_percentage",
            "max_bright_percentage", "min_face_size",
        ):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ValueError(f"{name} must be within [0, 1], got {value}")

        if self.eye_blink_threshold_closed >= self.eye_blink_threshold_open:
            raise ValueError("eye_blink_threshold_closed must be below eye_blink_threshold_open")
        if self.smile_threshold_neutral >= self.smile_threshold_smiling:
            raise ValueError("smile_threshold_neutral must be below smile_threshold_smiling")
        if self.min_bright_percentage >= self.max_bright_percentage:
            raise ValueError("min_bright_percentage must be below max_bright_percentage")
        if not 0 <= self.bright_pixel_threshold <= 255:
            raise ValueError(f"bright_pixel_threshold must be within [0, 255], got {self.bright_pixel_threshold}")
        if self.max_session_duration_s <= 0:
            raise ValueError("max_session_duration_s must be positive")
        if self.head_turn_threshold < 0:
            raise ValueError("head_turn_threshold must be non-negative")
        if self.max_motion_readings < 1 or self.max_head_angle_readings < 1:
            raise ValueError("max_motion_readings and max_head_angle_readings must be >= 1")
        if self.min_face_width_ratio > self.max_face_width_ratio:
            raise ValueError("min_face_width_ratio must not exceed max_face_width_ratio")
        if self.challenge_types is not None and len(self.challenge_types) == 0:
            raise ValueError("challenge_types must be null or a non-empty list")

    def replace(self, **overrides: Any) -> "LivenessConfig":
        """Return a copy with the given fields replaced."""
        return dataclasses.replace(self, **overrides)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "LivenessConfig":
        """Build from a flat or sectioned mapping (config.yaml layout)."""
        flat: dict[str, Any] = {}
        for key, value in (data or {}).items():
            if isinstance(value, Mapping) and key not in ("challenge_instructions",):
                flat.update(value)
            else:
                flat[key] = value

        known = {f.name for f in fields(cls)}
        unknown = sorted(set(flat) - known)
        if unknown:
            raise ValueError(f"Unknown configuration keys: {', '.join(unknown)}")
        return cls(**flat)


def load_config(path: Optional[str] = None) -> LivenessConfig:
    """Load configuration from config.yaml.

    Args:
        path: YAML file to read. Defaults to the config.yaml shipped
              next to this module; when that file is absent the
              dataclass defaults are returned.
    """
    target = path or DEFAULT_CONFIG_PATH
    if path is None and not os.path.exists(target):
        _log.debug("No config.yaml at %s, using built-in defaults", target)
        return LivenessConfig()

    with open(target, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    config = LivenessConfig.from_dict(data)
    _log.info("Configuration loaded from %s", target)
    return config
