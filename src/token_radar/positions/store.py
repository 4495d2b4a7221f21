"""In-memory position store with bounded per-position histories."""

import logging
from collections import deque
from datetime import datetime, timedelta
from typing import Deque, Dict, List, Optional, Tuple

from ..core.models import TrackedPosition, WalletIntelligence
from ..core.state_lock import HISTORY_SECTION, POSITIONS_SECTION, StateManager

logger = logging.getLogger(__name__)


class PositionStore:
    """
    Positions keyed by ``chain-address`` plus two rolling windows per key:

    - liquidity samples ``(time, liquidity)``, pruned by age
    - wallet-intelligence samples, bounded by count

    Every mutation runs under a named lock from the owning service's
    ``StateManager`` ("positions" for the map, "history" for the windows).
    Reads return copies and never block.
    """

    def __init__(self, state_manager: Optional[StateManager] = None):
        self.state = state_manager if state_manager is not None else StateManager()
        self._positions: Dict[str, TrackedPosition] = {}
        self._liquidity: Dict[str, Deque[Tuple[datetime, float]]] = {}
        self._wallets: Dict[str, Deque[WalletIntelligence]] = {}

    def __contains__(self, key: str) -> bool:
        return key in self._positions

    def __len__(self) -> int:
        return len(self._positions)

    # ------------------------------------------------------------------
    # Positions
    # ------------------------------------------------------------------

    def get(self, key: str) -> Optional[TrackedPosition]:
        return self._positions.get(key)

    def all(self) -> List[TrackedPosition]:
        return list(self._positions.values())

    async def save(self, position: TrackedPosition) -> None:
        async with self.state.lock_state(POSITIONS_SECTION):
            self._positions[position.id] = position

    async def remove(self, key: str) -> bool:
        """Drop a position and its histories. Returns False for unknown keys."""
        async with self.state.lock_state(POSITIONS_SECTION):
            removed = self._positions.pop(key, None) is not None
        async with self.state.lock_state(HISTORY_SECTION):
            self._liquidity.pop(key, None)
            self._wallets.pop(key, None)
        if removed:
            logger.debug(f"Removed position {key}")
        return removed

    # ------------------------------------------------------------------
    # Liquidity history
    # ------------------------------------------------------------------

    async def record_liquidity(self, key: str, at: datetime, liquidity: float,
                               retention_seconds: float) -> None:
        async with self.state.lock_state(HISTORY_SECTION):
            history = self._liquidity.setdefault(key, deque())
            history.append((at, liquidity))
            cutoff = at - timedelta(seconds=retention_seconds)
            while history and history[0][0] < cutoff:
                history.popleft()

    def liquidity_history(self, key: str) -> List[Tuple[datetime, float]]:
        return list(self._liquidity.get(key, ()))

    def latest_liquidity(self, key: str) -> Optional[float]:
        """Most recent known liquidity for *key*, or None when never seen."""
        history = self._liquidity.get(key)
        if history:
            return history[-1][1]
        position = self._positions.get(key)
        return position.current_liquidity if position is not None else None

    # ------------------------------------------------------------------
    # Wallet history
    # ------------------------------------------------------------------

    async def record_wallet(self, key: str, intel: WalletIntelligence, max_samples: int) -> None:
        async with self.state.lock_state(HISTORY_SECTION):
            history = self._wallets.get(key)
            if history is None or history.maxlen != max_samples:
                history = deque(history or (), maxlen=max_samples)
                self._wallets[key] = history
            history.append(intel)

    def wallet_history(self, key: str) -> List[WalletIntelligence]:
        return list(self._wallets.get(key, ()))
