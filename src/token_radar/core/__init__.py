"""Core module for the token radar."""

from .enums import (
    Chain, ScanProfile, FlagType, FlagSeverity, ExitAction, ExitReason,
    SignalConfidence, PositionStatus, Sentiment,
    SUPPORTED_CHAINS, EVM_CHAINS, HARD_FLAG_TYPES,
)
from .models import (
    Scores, Condition, Flag, SocialSignals, WalletClassification,
    WalletIntelligence, Candidate, DiscoveryResult, ExitSignal, TrackedPosition,
)
from .policy import Policy
from .errors import TokenRadarError, InvalidInputError, PolicyViolation, UpstreamUnavailable
from .state_lock import StateLock, StateManager

__all__ = [
    "Chain",
    "ScanProfile",
    "FlagType",
    "FlagSeverity",
    "ExitAction",
    "ExitReason",
    "SignalConfidence",
    "PositionStatus",
    "Sentiment",
    "SUPPORTED_CHAINS",
    "EVM_CHAINS",
    "HARD_FLAG_TYPES",
    "Scores",
    "Condition",
    "Flag",
    "SocialSignals",
    "WalletClassification",
    "WalletIntelligence",
    "Candidate",
    "DiscoveryResult",
    "ExitSignal",
    "TrackedPosition",
    "Policy",
    "TokenRadarError",
    "InvalidInputError",
    "PolicyViolation",
    "UpstreamUnavailable",
    "StateLock",
    "StateManager",
]
