"""
Liveness-Gate - LivenessEngine (Session Orchestrator)
======================================================
The central orchestrator. Turns a stream of camera frames, face
detector samples and device-motion readings into session state,
challenge events and a final accept/reject verdict.

Architecture: single in-flight frame pipeline
  1. Camera Thread: reads frames, drops them while a frame is in flight
  2. Analysis Thread: detector call + classification + state update
  3. Motion Thread: feeds device orientation into the bounded buffer
  4. Caller (UI / launcher): polls get_latest_result() / drain_events()

Per-frame order:
  expiry check -> lighting + glare -> (dark: stop) -> detector
  -> centering guidance -> state machine -> challenge classifier

Every process step returns a FrameResult carrying explicit events
(NoChange, StateChanged, ChallengeCompleted, SessionCompleted,
SessionReset); nothing is pushed through callbacks.
"""

from __future__ import annotations

import logging
import queue
import random
import threading
import time
from typing import Callable, List, Optional

from liveness_camera import CameraInitError, LivenessCamera
from liveness_challenges import ChallengeSequencer, SignalClassifier
from liveness_config import LivenessConfig, load_config
from liveness_face_detector import FaceDetector
from liveness_geometry import MSG_NO_FACE, evaluate_centering
from liveness_logger import LivenessAuditLogger, get_audit_logger
from liveness_plugin import LivenessPlugin
from liveness_plugins import LightingQualityMonitor, MotionCorrelationChecker, MotionSource
from liveness_session import LivenessSession
from liveness_types import (
    ChallengeCompleted,
    FaceSample,
    FrameInput,
    FrameResult,
    LivenessState,
    NoChange,
    SessionCompleted,
    SessionReset,
    StateChanged,
)

_log = logging.getLogger("LivenessEngine")

MSG_INITIALIZING = "Initializing..."
MSG_POOR_LIGHTING = "Please move to a better lit area"
MSG_POSITION_FACE = "Position your face within the oval"
MSG_PROCESSING = "Processing verification..."
MSG_COMPLETE = "Liveness verification complete!"
MSG_CAMERA_ERROR = "Error initializing camera: {}"


class InFlightGuard:
    """Single-slot in-flight marker.

    try_acquire() never blocks: a caller that fails to take the slot
    drops its frame instead of queueing it.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()

    def try_acquire(self) -> bool:
        return self._lock.acquire(blocking=False)

    def release(self) -> None:
        self._lock.release()

    @property
    def busy(self) -> bool:
        return self._lock.locked()


class LivenessEngine:
    """
    Liveness session orchestrator.
    Owns the session, the classifier and the monitor plugins.
    """

    def __init__(
        self,
        config: Optional[LivenessConfig] = None,
        detector: Optional[FaceDetector] = None,
        camera: Optional[LivenessCamera] = None,
        motion_source: Optional[MotionSource] = None,
        audit_logger: Optional[LivenessAuditLogger] = None,
        log_dir: str = "logs",
        clock: Callable[[], float] = time.time,
        rng: Optional[random.Random] = None,
        camera_source=0,
        model_path: str = "face_landmarker.task",
    ):
        self.config = config or load_config()
        self.detector = detector
        self.camera = camera
        self.motion_source = motion_source
        self.logger = audit_logger or get_audit_logger(log_dir)
        self._clock = clock
        self._camera_source = camera_source
        self._model_path = model_path

        # Core components
        self.sequencer = ChallengeSequencer(rng)
        self.classifier = SignalClassifier(self.config)
        self.lighting = LightingQualityMonitor(self.config)
        self.motion = MotionCorrelationChecker(self.config)
        self.plugins: List[LivenessPlugin] = [self.lighting, self.motion]

        # Per-frame advisory state
        self.status_message = MSG_INITIALIZING
        self.face_centering_message = ""
        self.face_detected = False
        self.glare_detected = False
        self.is_verification_successful = False
        self.last_metadata: Optional[dict] = None
        self.latest_frame: Optional[FrameInput] = None

        # Concurrency
        self._guard = InFlightGuard()
        self._frames_dropped = 0
        self.camera_queue: queue.Queue = queue.Queue(maxsize=1)
        self.result_queue: queue.Queue = queue.Queue(maxsize=2)
        self.event_queue: queue.Queue = queue.Queue()
        self.running = False
        self._threads: List[threading.Thread] = []

        self.session = LivenessSession.create(self.config, now=self._clock(), sequencer=self.sequencer)
        self._audit_session_started()

    # ── Read-only views ───────────────────────────────────────

    @property
    def state(self) -> LivenessState:
        return self.session.state

    @property
    def session_id(self) -> str:
        return self.session.session_id

    @property
    def progress(self) -> float:
        return self.session.progress()

    @property
    def lighting_value(self) -> float:
        return self.lighting.lighting_value

    @property
    def is_lighting_good(self) -> bool:
        return self.lighting.is_lighting_good

    @property
    def frames_dropped(self) -> int:
        return self._frames_dropped

    @property
    def busy(self) -> bool:
        return self._guard.busy

    # ── Frame processing ──────────────────────────────────────

    def process_frame(self, frame: FrameInput) -> Optional[FrameResult]:
        """Process one frame synchronously.

        Returns None (and counts a dropped frame) when another frame is
        still in flight.
        """
        if not self._guard.try_acquire():
            self._frames_dropped += 1
            return None
        try:
            result = self._process_frame(frame)
        finally:
            self._guard.release()
        self._publish(result)
        return result

    def submit_frame(self, frame: FrameInput) -> bool:
        """Hand a frame to the analysis thread. False if it was dropped."""
        if not self._guard.try_acquire():
            self._frames_dropped += 1
            return False
        try:
            self.camera_queue.put_nowait(frame)
        except queue.Full:
            self._guard.release()
            self._frames_dropped += 1
            return False
        return True

    def _process_frame(self, frame: FrameInput) -> FrameResult:
        now = self._clock()
        events: list = []

        # STAGE 0: Expiry, before anything else touches the session
        if self.session.is_expired(now, self.config.max_session_duration_s):
            _log.info("Session %s expired", self.session.session_id)
            events.append(self._reset(reason="expired", now=now))
            return self._make_result(events)

        # STAGE 1: Lighting and glare (advisory)
        plane = frame.luminance
        self.lighting.update_from_frame(plane)
        self.glare_detected = self.lighting.detect_glare(plane)
        if self.glare_detected:
            _log.debug("Detected potential screen glare, possible spoofing attempt")
            self.logger.log({
                "event": "glare_detected",
                "session_id": self.session.session_id,
                "lighting_value": self.lighting.lighting_value,
            })

        if not self.lighting.is_lighting_good:
            self.status_message = MSG_POOR_LIGHTING
            return self._make_result(events)

        # STAGE 2: Face detection, the only step that may raise
        try:
            face = self._detect(frame)
        except Exception as e:
            _log.warning("Detector failed on frame: %s", e)
            self.logger.log({
                "event": "frame_error",
                "session_id": self.session.session_id,
                "error": str(e),
            }, level="ERROR")
            return self._make_result(events, error=str(e))

        # STAGE 3: Centering guidance
        self.face_detected = face is not None
        is_centered = False
        if face is None:
            self.face_centering_message = MSG_NO_FACE
        elif face.bbox is not None:
            centering = evaluate_centering(
                face.bbox, (frame.width, frame.height), self.config, mirrored=frame.mirrored,
            )
            self.face_centering_message = centering.message
            is_centered = centering.is_centered
        else:
            # Signals without a box: centering cannot be judged this frame
            self.face_centering_message = MSG_POSITION_FACE

        # STAGE 4: State machine
        state = self.session.state
        if state is LivenessState.INITIAL:
            events.append(self._transition(LivenessState.CENTERING_FACE))
            self.status_message = MSG_POSITION_FACE
        elif face is None:
            pass
        elif state is LivenessState.CENTERING_FACE:
            if is_centered:
                events.append(self._transition(LivenessState.PERFORMING_CHALLENGES))
                self._update_status_message()
            else:
                self.status_message = self.face_centering_message
        elif state is LivenessState.PERFORMING_CHALLENGES:
            events.extend(self._run_challenge(face, now))

        return self._make_result(events)

    def _detect(self, frame: FrameInput) -> Optional[FaceSample]:
        if self.detector is None:
            raise RuntimeError("No face detector configured")
        return self.detector.detect(frame)

    def _run_challenge(self, face: FaceSample, now: float) -> list:
        events: list = []
        challenge = self.session.current_challenge
        if challenge is None:
            events.extend(self._complete_session(now))
            return events

        if not self.classifier.detect(challenge.type, face):
            return events

        index = self.session.current_challenge_index
        self.session.complete_current_challenge()
        _log.info("Challenge %s completed (%d/%d)", challenge.type.value,
                  index + 1, len(self.session.challenges))
        self.logger.log({
            "event": "challenge_completed",
            "session_id": self.session.session_id,
            "challenge": challenge.type,
            "index": index,
        })
        events.append(ChallengeCompleted(challenge_type=challenge.type, index=index))

        if self.session.all_challenges_completed:
            events.extend(self._complete_session(now))
        else:
            self._update_status_message()
        return events

    def _complete_session(self, now: float) -> list:
        events = [self._transition(LivenessState.COMPLETED)]

        head_angles = self.classifier.head_angle_history
        success = self.motion.verify(head_angles)
        if not success:
            _log.warning("Potential spoofing detected: face moved but device did not")

        metadata = {
            "timestamp": int(time.time() * 1000),
            "verification_result": success,
            "challenges": [c.type.value for c in self.session.challenges],
            "session_duration_ms": self.session.duration_ms(now),
            "lighting_value": self.lighting.lighting_value,
        }
        self.is_verification_successful = success
        self.last_metadata = metadata

        self.logger.log({
            "event": "session_completed",
            "session_id": self.session.session_id,
            "success": success,
            "metadata": metadata,
            "plugins": [p.summary() for p in self.plugins],
        })
        _log.info("Session %s completed, success=%s", self.session.session_id, success)

        self.status_message = MSG_COMPLETE
        events.append(SessionCompleted(
            session_id=self.session.session_id,
            success=success,
            metadata=metadata,
        ))
        return events

    def _transition(self, state: LivenessState) -> StateChanged:
        previous = self.session.advance_to(state)
        self.logger.log({
            "event": "state_changed",
            "session_id": self.session.session_id,
            "previous": previous,
            "state": state,
        })
        _log.debug("State %s -> %s", previous.value, state.value)
        return StateChanged(previous=previous, state=state)

    def _update_status_message(self) -> None:
        challenge = self.session.current_challenge
        self.status_message = challenge.instruction if challenge is not None else MSG_PROCESSING

    def _make_result(self, events: list, error: Optional[str] = None) -> FrameResult:
        if not events:
            events = [NoChange()]
        return FrameResult(
            session_id=self.session.session_id,
            state=self.session.state,
            progress=self.session.progress(),
            status_message=self.status_message,
            face_centering_message=self.face_centering_message,
            events=events,
            face_detected=self.face_detected,
            lighting_value=self.lighting.lighting_value,
            is_lighting_good=self.lighting.is_lighting_good,
            glare_detected=self.glare_detected,
            frames_dropped=self._frames_dropped,
            error=error,
        )

    def _publish(self, result: FrameResult) -> None:
        for event in result.events:
            if not isinstance(event, NoChange):
                self.event_queue.put(event)
        try:
            self.result_queue.put_nowait(result)
        except queue.Full:
            try:
                self.result_queue.get_nowait()  # Drop old result
            except queue.Empty:
                pass
            self.result_queue.put_nowait(result)

    # ── Session control ───────────────────────────────────────

    def reset_session(self, reason: str = "user") -> SessionReset:
        """Discard the session and all per-session memory, start fresh."""
        event = self._reset(reason=reason, now=self._clock())
        self.event_queue.put(event)
        return event

    def _reset(self, reason: str, now: float) -> SessionReset:
        previous_id = self.session.session_id
        self.session = self.session.reset(self.config, now=now, sequencer=self.sequencer)
        self.classifier.reset()
        for plugin in self.plugins:
            plugin.reset()

        self.status_message = MSG_INITIALIZING
        self.face_centering_message = ""
        self.face_detected = False
        self.glare_detected = False
        self.is_verification_successful = False
        self.last_metadata = None

        self.logger.log({
            "event": "session_reset",
            "reason": reason,
            "previous_session_id": previous_id,
            "session_id": self.session.session_id,
        })
        self._audit_session_started()
        return SessionReset(reason=reason, previous_session_id=previous_id,
                            session_id=self.session.session_id)

    def update_config(self, config: LivenessConfig) -> None:
        """Swap configuration without resetting the session."""
        self.config = config
        self.classifier.update_config(config)
        for plugin in self.plugins:
            plugin.update_config(config)
        self.logger.log({"event": "config_updated", "session_id": self.session.session_id})
        _log.info("Configuration updated")

    def _audit_session_started(self) -> None:
        self.logger.log({
            "event": "session_started",
            "session_id": self.session.session_id,
            "challenges": [c.type for c in self.session.challenges],
        })

    # ── Result polling ────────────────────────────────────────

    def get_latest_result(self) -> Optional[FrameResult]:
        """UI thread calls this to get render data."""
        try:
            return self.result_queue.get_nowait()
        except queue.Empty:
            return None

    def drain_events(self) -> list:
        """Return every event produced since the last call."""
        events = []
        while True:
            try:
                events.append(self.event_queue.get_nowait())
            except queue.Empty:
                return events

    # ── Threads ───────────────────────────────────────────────

    def start(self) -> None:
        """Open collaborators and start the worker threads.

        Raises:
            CameraInitError: if the camera cannot be opened.
        """
        if self.camera is None:
            try:
                self.camera = LivenessCamera(
                    source=self._camera_source,
                    zoom_level=self.config.camera_zoom_level,
                )
            except CameraInitError as e:
                self.status_message = MSG_CAMERA_ERROR.format(e)
                self.logger.error(self.status_message, exception=e)
                raise

        if self.detector is None:
            from liveness_face_detector import MediaPipeFaceDetector
            self.detector = MediaPipeFaceDetector(
                model_path=self._model_path,
                min_face_size=self.config.min_face_size,
            )

        self.running = True
        self._threads = [
            threading.Thread(target=self._camera_thread, name="liveness-camera", daemon=True),
            threading.Thread(target=self._analysis_thread, name="liveness-analysis", daemon=True),
        ]
        if self.motion_source is not None:
            self._threads.append(
                threading.Thread(target=self._motion_thread, name="liveness-motion", daemon=True)
            )
        for t in self._threads:
            t.start()
        self.logger.log({"event": "engine_started", "threads": [t.name for t in self._threads]})

    def stop(self) -> None:
        """Stop threads and release collaborators."""
        self.running = False
        for t in self._threads:
            t.join(timeout=1.0)
        self._threads = []

        # Frames still waiting hold the in-flight slot
        while True:
            try:
                self.camera_queue.get_nowait()
            except queue.Empty:
                break
            self._guard.release()

        if self.camera is not None:
            self.camera.release()
        if self.detector is not None:
            self.detector.release()
        if self.motion_source is not None:
            self.motion_source.release()

        self.logger.log({"event": "engine_stopped", "frames_dropped": self._frames_dropped})
        self.logger.close()

    def _camera_thread(self) -> None:
        while self.running:
            frame = self.camera.read_frame()
            if frame is None:
                time.sleep(0.01)  # Avoid busy loop on cam fail
                continue
            self.latest_frame = frame
            self.submit_frame(frame)

    def _analysis_thread(self) -> None:
        while self.running:
            try:
                frame = self.camera_queue.get(timeout=0.1)
            except queue.Empty:
                continue

            try:
                result = self._process_frame(frame)
            except Exception as e:
                self.logger.error(f"Analysis thread error: {e}", exception=e, exc_info=True)
                continue
            finally:
                self._guard.release()

            if not self.running:
                _log.debug("Discarding result produced after stop")
                continue
            self._publish(result)

    def _motion_thread(self) -> None:
        while self.running:
            sample = self.motion_source.read_sample()
            if sample is None:
                time.sleep(0.01)
                continue
            self.motion.add_sample(sample)
