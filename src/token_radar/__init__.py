"""
Token Radar

Discovers early-stage, high-momentum tokens from DEX market data, scores
them, flags rug and manipulation risk, and times exits for tracked positions.
Every explanation it produces is built from computed evidence only.
"""

__version__ = "0.1.0"
__author__ = "Token Radar Team"

from .core.models import Candidate, DiscoveryResult, ExitSignal, TrackedPosition
from .core.enums import Chain, ExitAction, PositionStatus, ScanProfile
from .core.policy import Policy
from .service import TokenRadarService

__all__ = [
    "Candidate",
    "DiscoveryResult",
    "ExitSignal",
    "TrackedPosition",
    "Chain",
    "ExitAction",
    "PositionStatus",
    "ScanProfile",
    "Policy",
    "TokenRadarService",
]
