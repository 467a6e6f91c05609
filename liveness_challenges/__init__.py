"""
Liveness-Gate - Challenge Package
==================================
Challenge sequencing and per-gesture signal classification.
"""
from .sequencer import ChallengeSequencer
from .classifier import SignalClassifier, NOD_PITCH_THRESHOLD
