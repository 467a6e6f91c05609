"""
Liveness-Gate - Camera Module Tests
====================================
Synthetic NumPy frames and a mocked cv2.VideoCapture: NO real camera
needed.
"""

from __future__ import annotations

import sys
from pathlib import Path
from unittest.mock import MagicMock, patch

import numpy as np
import pytest

_project_root = str(Path(__file__).resolve().parent.parent)
if _project_root not in sys.path:
    sys.path.insert(0, _project_root)

import cv2

from liveness_camera import CameraInitError, LivenessCamera, frame_from_bgr
from liveness_config import LivenessConfig
from liveness_geometry import MSG_MOVE_LEFT, MSG_MOVE_RIGHT, evaluate_centering
from liveness_types import BoundingBox


# ─── Fixtures ─────────────────────────────────────────────────

def _make_frame(height: int = 480, width: int = 640, brightness: int = 128) -> np.ndarray:
    return np.full((height, width, 3), brightness, dtype=np.uint8)


def _make_mock_capture(frame: np.ndarray | None, ret: bool = True, opened: bool = True):
    mock_cap = MagicMock()
    mock_cap.read.return_value = (ret, frame)
    mock_cap.isOpened.return_value = opened
    mock_cap.get.return_value = 640.0
    mock_cap.set.return_value = True
    return mock_cap


# ─── Test 1: Valid frame becomes a FrameInput ─────────────────

def test_valid_frame_is_wrapped():
    frame = _make_frame()
    mock_cap = _make_mock_capture(frame)

    with patch("liveness_camera.cv2.VideoCapture", return_value=mock_cap):
        cam = LivenessCamera(source=0, mirrored=False)
        result = cam.read_frame()

    assert result is not None
    assert (result.width, result.height) == (640, 480)
    assert result.luminance.shape == (480, 640)
    assert int(result.luminance[0, 0]) == 128
    assert result.mirrored is False
    assert result.timestamp > 0
    cam.release()


# ─── Test 2: Dark frames are NOT rejected ─────────────────────

def test_dark_frame_reaches_lighting_monitor():
    mock_cap = _make_mock_capture(_make_frame(brightness=2))

    with patch("liveness_camera.cv2.VideoCapture", return_value=mock_cap):
        cam = LivenessCamera()
        assert cam.read_frame() is not None


# ─── Test 3: Structural failures are dropped ──────────────────

@pytest.mark.parametrize("frame, ret", [
    (None, True),
    (_make_frame(), False),
    (np.zeros((480, 640), dtype=np.uint8), True),
    (np.zeros((480, 640, 4), dtype=np.uint8), True),
    (np.zeros((480, 640, 3), dtype=np.float32), True),
    (_make_frame(height=60, width=80), True),
])
def test_invalid_frames_are_dropped(frame, ret):
    mock_cap = _make_mock_capture(frame, ret=ret)

    with patch("liveness_camera.cv2.VideoCapture", return_value=mock_cap):
        cam = LivenessCamera()
        assert cam.read_frame() is None
        health = cam.get_health_status()

    assert health["frames_total"] == 1
    assert health["frames_dropped"] == 1
    assert health["drop_rate_pct"] == 100.0


# ─── Test 4: Init failure raises ──────────────────────────────

def test_unopenable_camera_raises():
    mock_cap = _make_mock_capture(None, opened=False)

    with patch("liveness_camera.cv2.VideoCapture", return_value=mock_cap):
        with pytest.raises(CameraInitError):
            LivenessCamera(source=3)
    mock_cap.release.assert_called_once()


# ─── Test 5: Zoom preference ──────────────────────────────────

def test_zoom_is_requested_when_given():
    mock_cap = _make_mock_capture(_make_frame())

    with patch("liveness_camera.cv2.VideoCapture", return_value=mock_cap):
        LivenessCamera(zoom_level=0.5)

    props = [c.args[0] for c in mock_cap.set.call_args_list]
    assert cv2.CAP_PROP_ZOOM in props


def test_no_zoom_by_default():
    mock_cap = _make_mock_capture(_make_frame())

    with patch("liveness_camera.cv2.VideoCapture", return_value=mock_cap):
        LivenessCamera()

    props = [c.args[0] for c in mock_cap.set.call_args_list]
    assert cv2.CAP_PROP_ZOOM not in props


# ─── Test 6: Mirroring is a display flag only ─────────────────

def test_frame_from_bgr_keeps_sensor_orientation():
    frame = np.zeros((4, 6, 3), dtype=np.uint8)
    frame[:, 0] = 255  # bright left column

    mirrored = frame_from_bgr(frame, mirrored=True)

    assert int(mirrored.luminance[0, 0]) == 255
    assert int(mirrored.luminance[0, -1]) == 0
    assert mirrored.image is frame
    assert mirrored.mirrored is True


def _bbox_of_bright_pixels(frame):
    ys, xs = np.nonzero(frame.luminance > 128)
    return BoundingBox(left=float(xs.min()), top=float(ys.min()),
                       width=float(xs.max() - xs.min() + 1),
                       height=float(ys.max() - ys.min() + 1))


@pytest.mark.parametrize("mirrored, expected", [
    (True, MSG_MOVE_RIGHT),
    (False, MSG_MOVE_LEFT),
])
def test_camera_frame_to_guidance_flips_once(mirrored, expected):
    # Face on the sensor's right; a mirrored preview shows it on the left.
    raw = _make_frame(brightness=0)
    raw[140:290, 440:590] = 255
    mock_cap = _make_mock_capture(raw)

    with patch("liveness_camera.cv2.VideoCapture", return_value=mock_cap):
        cam = LivenessCamera(mirrored=mirrored)
        frame = cam.read_frame()

    box = _bbox_of_bright_pixels(frame)
    assert box.left == 440.0

    result = evaluate_centering(box, (frame.width, frame.height), LivenessConfig(),
                                mirrored=frame.mirrored)
    assert result.message == expected


# ─── Test 7: Context manager releases ─────────────────────────

def test_context_manager_releases():
    mock_cap = _make_mock_capture(_make_frame())

    with patch("liveness_camera.cv2.VideoCapture", return_value=mock_cap):
        with LivenessCamera() as cam:
            assert cam.is_opened()

    mock_cap.release.assert_called_once()
