"""
Liveness-Gate - Launcher
=========================
Runs a liveness session against a webcam or a video file, drawing the
oval guide, progress and status on top of the preview.

Usage:
  python start_liveness.py --source 0
  python start_liveness.py --source clip.mp4 --no-mirror --headless
  python start_liveness.py --motion-log phone_motion.jsonl
"""

import argparse
import logging
import time

import cv2
import numpy as np

from liveness_camera import CameraInitError, LivenessCamera
from liveness_config import load_config
from liveness_engine import LivenessEngine
from liveness_geometry import guide_region
from liveness_logger import get_audit_logger, setup_logger
from liveness_plugins import ReplayMotionSource
from liveness_types import LivenessState, SessionCompleted

WINDOW_NAME = "Liveness-Gate"

_COLOR_IDLE = (255, 255, 255)
_COLOR_OK = (80, 200, 80)
_COLOR_FAIL = (60, 60, 230)


def draw_overlay(frame: np.ndarray, result, config) -> np.ndarray:
    """Oval guide, guide markers, progress bar and status text."""
    h, w = frame.shape[:2]
    guide = guide_region((w, h), config)
    color = _COLOR_OK if result.state is not LivenessState.INITIAL and result.face_detected else _COLOR_IDLE
    thickness = max(1, int(round(guide.stroke_width)))

    center = (int(guide.center_x), int(guide.center_y))
    axes = (int(guide.width / 2), int(guide.height / 2))
    cv2.ellipse(frame, center, axes, 0, 0, 360, color, thickness)
    for (x1, y1), (x2, y2) in (guide.top_marker(), guide.bottom_marker()):
        cv2.line(frame, (int(x1), int(y1)), (int(x2), int(y2)), color, thickness)

    bar_w = int(w * 0.6)
    x0, y0 = (w - bar_w) // 2, h - 30
    cv2.rectangle(frame, (x0, y0), (x0 + bar_w, y0 + 10), _COLOR_IDLE, 1)
    cv2.rectangle(frame, (x0, y0), (x0 + int(bar_w * result.progress), y0 + 10), _COLOR_OK, -1)

    cv2.putText(frame, result.status_message, (20, 35),
                cv2.FONT_HERSHEY_SIMPLEX, 0.7, _COLOR_IDLE, 2)
    if result.face_centering_message:
        cv2.putText(frame, result.face_centering_message, (20, 65),
                    cv2.FONT_HERSHEY_SIMPLEX, 0.6, color, 1)
    if not result.is_lighting_good:
        cv2.putText(frame, f"Light {result.lighting_value:.2f}", (20, 95),
                    cv2.FONT_HERSHEY_SIMPLEX, 0.6, _COLOR_FAIL, 1)
    return frame


def main():
    parser = argparse.ArgumentParser(description="Liveness-Gate Launcher")
    parser.add_argument("--source", type=str, default="0", help="Camera ID (0, 1, etc.) or video file path")
    parser.add_argument("--config", type=str, default=None, help="Path to config.yaml")
    parser.add_argument("--model", type=str, default="face_landmarker.task", help="MediaPipe FaceLandmarker model")
    parser.add_argument("--motion-log", type=str, default=None, help="JSONL device orientation samples to replay")
    parser.add_argument("--log-dir", type=str, default="logs", help="Audit log directory")
    parser.add_argument("--headless", action="store_true", help="Run without UI window")
    parser.add_argument("--mirrored", dest="mirrored", action="store_true", default=True,
                        help="Mirror the preview (front camera, default)")
    parser.add_argument("--no-mirror", dest="mirrored", action="store_false", help="Do not mirror the preview")
    parser.add_argument("--verbose", action="store_true", help="Debug logging")
    args = parser.parse_args()

    level = logging.DEBUG if args.verbose else logging.INFO
    log = setup_logger("LivenessGate", level)
    log.propagate = False
    logging.basicConfig(level=level, format="[%(asctime)s] %(name)-16s %(levelname)-7s %(message)s",
                        datefmt="%H:%M:%S")

    config = load_config(args.config)
    source = int(args.source) if args.source.isdigit() else args.source
    motion_source = ReplayMotionSource.from_jsonl(args.motion_log) if args.motion_log else None

    try:
        camera = LivenessCamera(source=source, zoom_level=config.camera_zoom_level, mirrored=args.mirrored)
    except CameraInitError as e:
        log.error("Error initializing camera: %s", e)
        return 1

    engine = LivenessEngine(
        config=config,
        camera=camera,
        motion_source=motion_source,
        audit_logger=get_audit_logger(args.log_dir),
        model_path=args.model,
    )

    log.info("Source: %s | mirrored=%s | challenges=%s", source, args.mirrored,
             [c.type.value for c in engine.session.challenges])

    if not args.headless:
        cv2.namedWindow(WINDOW_NAME, cv2.WINDOW_AUTOSIZE)

    last_status = None
    exit_code = 0
    try:
        engine.start()
        log.info("Press 'Q' or 'ESC' to exit, 'R' to restart the session.")

        while engine.running:
            key = cv2.waitKey(1) & 0xFF if not args.headless else 0xFF
            if key in (ord("q"), ord("Q"), 27):
                break
            if key in (ord("r"), ord("R")):
                engine.reset_session()

            for event in engine.drain_events():
                log.info("Event: %s", event.kind)
                if isinstance(event, SessionCompleted):
                    log.info("Verification %s (session %s)",
                             "PASSED" if event.success else "FAILED", event.session_id)

            result = engine.get_latest_result()
            if result is None:
                time.sleep(0.005)
                continue

            if result.status_message != last_status:
                print(f"[{result.state.value}] {result.status_message} ({result.progress:.0%})")
                last_status = result.status_message

            frame = engine.latest_frame
            if not args.headless and frame is not None and frame.image is not None:
                preview = cv2.flip(frame.image, 1) if frame.mirrored else frame.image.copy()
                cv2.imshow(WINDOW_NAME, draw_overlay(preview, result, config))

    except KeyboardInterrupt:
        log.info("Interrupted by user")
    except Exception as e:
        log.exception("Critical error: %s", e)
        exit_code = 1
    finally:
        engine.stop()
        if not args.headless:
            cv2.destroyAllWindows()

    return exit_code


if __name__ == "__main__":
    raise SystemExit(main())
