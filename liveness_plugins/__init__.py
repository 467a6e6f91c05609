"""
Liveness-Gate - Monitor Plugins Package
========================================
Session-scoped anti-spoofing monitors for the LivenessEngine.
"""
from .lighting_quality import LightingQualityMonitor
from .motion_correlation import MotionCorrelationChecker, MotionSource, ReplayMotionSource
