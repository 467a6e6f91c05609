"""
Liveness-Gate - Challenge Sequencer
====================================
Builds the ordered challenge list for a session.

  - Explicit config.challenge_types: used verbatim, no randomization.
  - Otherwise: one BLINK (hardest gesture to fake), plus a random
    sample of the other four types without replacement, then the whole
    list is shuffled.
"""

import logging
import random
from typing import List, Optional

from liveness_config import LivenessConfig
from liveness_types import Challenge, ChallengeType

_log = logging.getLogger("ChallengeSequencer")


class ChallengeSequencer:
    """Randomized, constrained challenge ordering."""

    def __init__(self, rng: Optional[random.Random] = None):
        self._rng = rng or random.Random()

    def generate(self, config: LivenessConfig) -> List[Challenge]:
        if config.challenge_types is not None:
            types = list(config.challenge_types)
        else:
            types = self._random_types(config)

        instructions = config.challenge_instructions
        challenges = [Challenge(t, custom_instruction=instructions.get(t)) for t in types]
        _log.debug("Generated challenges: %s", [t.value for t in types])
        return challenges

    def _random_types(self, config: LivenessConfig) -> List[ChallengeType]:
        requested = max(config.number_of_random_challenges, 1)

        if config.always_include_blink:
            pool = [t for t in ChallengeType if t is not ChallengeType.BLINK]
            extra = min(requested - 1, len(pool))
            types = [ChallengeType.BLINK] + self._rng.sample(pool, extra)
        else:
            pool = list(ChallengeType)
            types = self._rng.sample(pool, min(requested, len(pool)))

        self._rng.shuffle(types)
        return types
