"""
Liveness-Gate - Liveness Session
=================================
One end-to-end verification attempt: a session id, a start time, an
ordered challenge list, the active challenge index and the state.

STATE ORDER (forward only):
  INITIAL -> CENTERING_FACE -> PERFORMING_CHALLENGES -> COMPLETED

A session never moves backwards. Reset and expiry replace the whole
object with a fresh one from reset().

PROGRESS:
  INITIAL                 0.0
  CENTERING_FACE          0.2
  PERFORMING_CHALLENGES   0.2 + 0.6 * completed / total
  COMPLETED               1.0
"""

from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import List, Optional

from liveness_challenges import ChallengeSequencer
from liveness_config import LivenessConfig
from liveness_types import Challenge, LivenessState

_log = logging.getLogger("LivenessSession")

CENTERING_PROGRESS = 0.2
CHALLENGE_PROGRESS_SPAN = 0.6


def _new_session_id() -> str:
    return str(uuid.uuid4())


@dataclass
class LivenessSession:
    """Mutable session record, owned by a single engine."""
    challenges: List[Challenge]
    session_id: str = field(default_factory=_new_session_id)
    start_time: float = field(default_factory=time.time)
    current_challenge_index: int = 0
    state: LivenessState = LivenessState.INITIAL

    @classmethod
    def create(
        cls,
        config: LivenessConfig,
        now: Optional[float] = None,
        sequencer: Optional[ChallengeSequencer] = None,
    ) -> "LivenessSession":
        """Start a session with a freshly generated challenge list."""
        sequencer = sequencer or ChallengeSequencer()
        session = cls(
            challenges=sequencer.generate(config),
            start_time=time.time() if now is None else now,
        )
        _log.info(
            "Session %s created with challenges %s",
            session.session_id, [c.type.value for c in session.challenges],
        )
        return session

    def reset(
        self,
        config: LivenessConfig,
        now: Optional[float] = None,
        sequencer: Optional[ChallengeSequencer] = None,
    ) -> "LivenessSession":
        """Return a brand-new session. This object is left untouched."""
        return LivenessSession.create(config, now=now, sequencer=sequencer)

    # ── Challenges ────────────────────────────────────────────

    @property
    def current_challenge(self) -> Optional[Challenge]:
        if self.current_challenge_index < len(self.challenges):
            return self.challenges[self.current_challenge_index]
        return None

    @property
    def completed_count(self) -> int:
        return sum(1 for c in self.challenges if c.is_completed)

    @property
    def all_challenges_completed(self) -> bool:
        return self.current_challenge_index >= len(self.challenges)

    def complete_current_challenge(self) -> Challenge:
        """Mark the active challenge done and advance the index.

        Raises:
            ValueError: if the session is not performing challenges or
                        every challenge is already complete.
        """
        if self.state is not LivenessState.PERFORMING_CHALLENGES:
            raise ValueError(f"Cannot complete a challenge in state {self.state.value}")
        challenge = self.current_challenge
        if challenge is None:
            raise ValueError("No active challenge")
        challenge.mark_completed()
        self.current_challenge_index += 1
        return challenge

    # ── State ─────────────────────────────────────────────────

    def advance_to(self, state: LivenessState) -> LivenessState:
        """Move forward to `state`, returning the previous state.

        Raises:
            ValueError: on any backward transition.
        """
        previous = self.state
        if state.rank < previous.rank:
            raise ValueError(
                f"Invalid transition {previous.value} -> {state.value}: sessions only move forward"
            )
        if state is LivenessState.COMPLETED and not self.all_challenges_completed:
            raise ValueError("Cannot complete a session with pending challenges")
        self.state = state
        return previous

    def progress(self) -> float:
        if self.state is LivenessState.INITIAL:
            return 0.0
        if self.state is LivenessState.CENTERING_FACE:
            return CENTERING_PROGRESS
        if self.state is LivenessState.COMPLETED:
            return 1.0
        total = len(self.challenges)
        if total == 0:
            return CENTERING_PROGRESS
        return CENTERING_PROGRESS + CHALLENGE_PROGRESS_SPAN * (self.completed_count / total)

    # ── Timing ────────────────────────────────────────────────

    def age(self, now: float) -> float:
        return now - self.start_time

    def is_expired(self, now: float, max_duration_s: float) -> bool:
        return self.age(now) > max_duration_s

    def duration_ms(self, now: float) -> int:
        return int(round(self.age(now) * 1000))

    def to_dict(self) -> dict:
        return {
            "session_id": self.session_id,
            "start_time": self.start_time,
            "state": self.state.value,
            "current_challenge_index": self.current_challenge_index,
            "challenges": [
                {"type": c.type.value, "is_completed": c.is_completed, "instruction": c.instruction}
                for c in self.challenges
            ],
        }
