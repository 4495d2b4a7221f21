"""Detection tracker: how tokens performed after the radar first surfaced them."""

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

import numpy as np
import pandas as pd

from ..core.models import Candidate

logger = logging.getLogger(__name__)

MAX_TRACKED = 500
RETENTION = timedelta(days=7)
EVICT_FRACTION = 0.1


@dataclass
class DetectedToken:
    """Price path of one token since first detection."""
    key: str
    chain: str
    address: str
    symbol: str
    initial_price: float
    detected_at: datetime
    peak_price: float
    peak_at: datetime
    last_price: float
    last_updated: datetime


def _pct(current: float, base: float) -> float:
    return (current - base) / base * 100 if base > 0 else 0.0


class DetectionTracker:
    """Rolling in-memory record of detected tokens.

    Entries older than seven days are dropped when the tracker is full; if it
    is still full, the oldest tenth is evicted.
    """

    def __init__(self, max_tracked: int = MAX_TRACKED, retention: timedelta = RETENTION):
        self.max_tracked = max_tracked
        self.retention = retention
        self._tokens: Dict[str, DetectedToken] = {}

    def __len__(self) -> int:
        return len(self._tokens)

    def get(self, key: str) -> Optional[DetectedToken]:
        return self._tokens.get(key)

    def record(self, candidate: Candidate, now: datetime) -> DetectedToken:
        """Start tracking *candidate*, or refresh its last and peak price."""
        key = candidate.key
        price = candidate.price_usd
        existing = self._tokens.get(key)
        if existing is not None:
            existing.last_price = price
            existing.last_updated = now
            if price > existing.peak_price:
                existing.peak_price = price
                existing.peak_at = now
            return existing

        if len(self._tokens) >= self.max_tracked:
            self._cleanup(now)

        token = DetectedToken(
            key=key,
            chain=candidate.chain.value,
            address=candidate.address,
            symbol=candidate.symbol,
            initial_price=price,
            detected_at=now,
            peak_price=price,
            peak_at=now,
            last_price=price,
            last_updated=now,
        )
        self._tokens[key] = token
        return token

    def performance(self, key: str, now: datetime,
                    current_price: Optional[float] = None) -> Optional[Dict[str, Any]]:
        """Gain since detection, distance from peak, peak gain and hours tracked."""
        token = self._tokens.get(key)
        if token is None:
            return None
        price = token.last_price if current_price is None else current_price
        peak = max(token.peak_price, price)
        return {
            "gain_since_detection": round(_pct(price, token.initial_price), 1),
            "gain_from_peak": round(_pct(price, peak), 1),
            "peak_gain": round(_pct(peak, token.initial_price), 1),
            "hours_tracked": round((now - token.detected_at).total_seconds() / 3600, 1),
            "detected_at": token.detected_at.isoformat(),
        }

    def to_frame(self, now: datetime) -> pd.DataFrame:
        """One row per tracked token, best gain first."""
        columns = ["key", "symbol", "chain", "address", "gain_since_detection",
                   "gain_from_peak", "peak_gain", "hours_tracked", "detected_at"]
        rows = []
        for token in self._tokens.values():
            perf = self.performance(token.key, now)
            rows.append({
                "key": token.key,
                "symbol": token.symbol,
                "chain": token.chain,
                "address": token.address,
                **perf,
            })
        if not rows:
            return pd.DataFrame(columns=columns)
        df = pd.DataFrame(rows, columns=columns)
        return df.sort_values("gain_since_detection", ascending=False, kind="stable").reset_index(drop=True)

    def top_performers(self, now: datetime, limit: int = 10) -> List[Dict[str, Any]]:
        """Tokens with a positive gain since detection, best first."""
        df = self.to_frame(now)
        winners = df[df["gain_since_detection"] > 0].head(limit)
        return winners.drop(columns=["key", "gain_from_peak"]).to_dict("records")

    def stats(self, now: datetime) -> Dict[str, Any]:
        df = self.to_frame(now)
        if df.empty:
            return {"total_tracked": 0, "avg_gain": 0, "top_gain": 0, "green_count": 0, "red_count": 0}

        gains = df["gain_since_detection"].to_numpy(dtype=float)
        green = int(np.count_nonzero(gains > 0))
        return {
            "total_tracked": int(len(gains)),
            "avg_gain": int(round(float(np.mean(gains)))),
            "top_gain": int(round(max(float(np.max(gains)), 0.0))),
            "green_count": green,
            "red_count": int(len(gains)) - green,
        }

    def _cleanup(self, now: datetime) -> None:
        expired = [k for k, t in self._tokens.items() if now - t.detected_at > self.retention]
        for key in expired:
            del self._tokens[key]

        if len(self._tokens) >= self.max_tracked:
            oldest = sorted(self._tokens.values(), key=lambda t: t.detected_at)
            for token in oldest[: math.ceil(self.max_tracked * EVICT_FRACTION)]:
                del self._tokens[token.key]

        logger.debug(f"Detection tracker cleanup: {len(self._tokens)} tokens kept")
