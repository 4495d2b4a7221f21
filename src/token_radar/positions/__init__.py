"""Position tracking module."""

from .store import PositionStore
from .tracker import PositionTracker

__all__ = [
    "PositionStore",
    "PositionTracker",
]
