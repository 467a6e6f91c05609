"""
Liveness-Gate - Monitor Plugin Interface
=========================================
Defines the `LivenessPlugin` base class for the session-scoped
monitors (lighting quality, motion correlation).

Engine Integration:
  - LivenessEngine owns its plugins and resets them together
  - Each plugin receives the LivenessConfig at construction
  - update_config() swaps the bundle on a live engine
  - summary() feeds the audit trail at session completion
"""

from abc import ABC, abstractmethod
from typing import Any, Dict

from liveness_config import LivenessConfig


class LivenessPlugin(ABC):
    """Abstract base for engine-owned monitors."""

    def __init__(self, config: LivenessConfig):
        self.config = config

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique identifier for the plugin (e.g., 'lighting_quality')."""

    @property
    @abstractmethod
    def tier(self) -> str:
        """
        Classification:
          - 'environment': capture conditions (lighting, glare)
          - 'biometric': signals about the subject (motion consistency)
        """

    @abstractmethod
    def reset(self) -> None:
        """Drop all per-session memory."""

    def update_config(self, config: LivenessConfig) -> None:
        self.config = config

    def summary(self) -> Dict[str, Any]:
        return {"name": self.name, "tier": self.tier}
