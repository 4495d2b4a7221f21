"""Monitoring module."""

from .performance import DetectionTracker, DetectedToken

__all__ = [
    "DetectionTracker",
    "DetectedToken",
]
