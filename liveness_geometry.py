"""
Liveness-Gate - Oval Guide Geometry
====================================
Where the oval guide sits in a frame, whether a face box is centered in
it, and which single guidance message to show.

Guide region:
  center      = (w / 2, h / 2 - h * guide_vertical_offset)
  oval height = h * oval_height_ratio
  oval width  = oval height * oval_width_ratio

Centering predicate (all three must hold):
  |face_x - center_x| < w * horizontal_tolerance
  |face_y - center_y| < h * vertical_tolerance
  min_face_width_ratio <= face_width / oval_width <= max_face_width_ratio

Guidance precedence (first match wins):
  too big > too small > horizontally off > vertically off > hold still

When the preview is mirrored (front camera) the face X coordinate is
flipped before any comparison so "Move left/right" match what the
subject sees.
"""

from dataclasses import dataclass
from typing import Tuple

from liveness_config import LivenessConfig
from liveness_types import BoundingBox

MSG_TOO_BIG = "Move farther away"
MSG_TOO_SMALL = "Move closer"
MSG_MOVE_RIGHT = "Move right"
MSG_MOVE_LEFT = "Move left"
MSG_MOVE_DOWN = "Move down"
MSG_MOVE_UP = "Move up"
MSG_HOLD_STILL = "Perfect! Hold still"
MSG_NO_FACE = "No face detected"


@dataclass(frozen=True)
class GuideRegion:
    """Oval guide in frame pixels, plus the marker segment offsets."""
    center_x: float
    center_y: float
    width: float
    height: float
    stroke_width: float
    marker_outer: float
    marker_inner: float

    def top_marker(self) -> Tuple[Tuple[float, float], Tuple[float, float]]:
        return ((self.center_x, self.center_y - self.marker_outer),
                (self.center_x, self.center_y - self.marker_inner))

    def bottom_marker(self) -> Tuple[Tuple[float, float], Tuple[float, float]]:
        return ((self.center_x, self.center_y + self.marker_outer),
                (self.center_x, self.center_y + self.marker_inner))


@dataclass(frozen=True)
class CenteringResult:
    is_centered: bool
    message: str
    offset_x: float
    offset_y: float
    width_ratio: float


def guide_region(frame_size: Tuple[float, float], config: LivenessConfig) -> GuideRegion:
    """Compute the oval guide for a (width, height) frame."""
    width, height = frame_size
    oval_height = height * config.oval_height_ratio
    return GuideRegion(
        center_x=width / 2.0,
        center_y=height / 2.0 - height * config.guide_vertical_offset,
        width=oval_height * config.oval_width_ratio,
        height=oval_height,
        stroke_width=config.stroke_width,
        marker_outer=oval_height * config.guide_marker_ratio,
        marker_inner=oval_height * config.guide_marker_inner_ratio,
    )


def evaluate_centering(
    bbox: BoundingBox,
    frame_size: Tuple[float, float],
    config: LivenessConfig,
    mirrored: bool = False,
) -> CenteringResult:
    """Check a face box against the guide and pick one guidance message."""
    width, height = frame_size
    guide = guide_region(frame_size, config)

    face_x = width - bbox.center_x if mirrored else bbox.center_x
    face_y = bbox.center_y

    offset_x = face_x - guide.center_x
    offset_y = face_y - guide.center_y
    width_ratio = bbox.width / guide.width if guide.width > 0 else 0.0

    max_dx = width * config.horizontal_tolerance
    max_dy = height * config.vertical_tolerance

    is_centered = (
        abs(offset_x) < max_dx
        and abs(offset_y) < max_dy
        and config.min_face_width_ratio <= width_ratio <= config.max_face_width_ratio
    )

    if width_ratio > config.guidance_max_width_ratio:
        message = MSG_TOO_BIG
    elif width_ratio < config.guidance_min_width_ratio:
        message = MSG_TOO_SMALL
    elif abs(offset_x) > max_dx:
        message = MSG_MOVE_RIGHT if offset_x < 0 else MSG_MOVE_LEFT
    elif abs(offset_y) > max_dy:
        message = MSG_MOVE_DOWN if offset_y < 0 else MSG_MOVE_UP
    else:
        message = MSG_HOLD_STILL

    return CenteringResult(
        is_centered=is_centered,
        message=message,
        offset_x=offset_x,
        offset_y=offset_y,
        width_ratio=width_ratio,
    )
