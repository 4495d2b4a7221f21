"""Hot-swappable policy configuration."""

import logging
from typing import Any, Dict, List

from pydantic import BaseModel, Field, ValidationError, validator

from .errors import PolicyViolation

logger = logging.getLogger(__name__)


class Policy(BaseModel):
    """Thresholds consumed by the scoring, flag, wallet, social and exit logic.

    Instances are treated as immutable: an update produces a new validated
    policy via :meth:`apply`, so a rejected update never leaves a half-applied
    configuration behind.
    """

    # Discovery
    min_liquidity: float = Field(default=10_000, ge=0, description="Healthy-liquidity floor (USD)")
    min_conditions_to_pass: int = Field(default=3, ge=1, le=12, description="Discovery qualification minimum")
    buy_pressure_threshold: float = Field(default=0.60, ge=0, le=1, description="Gem low-sell-pressure buy ratio")

    # Exit triggers
    profit_targets: List[float] = Field(default_factory=lambda: [2.0, 5.0, 10.0], description="Info, trim and exit multiples")
    trailing_stop_percent: float = Field(default=25, ge=1, le=100, description="Drop from peak that exits (%)")
    trailing_stop_activation: float = Field(default=2.0, ge=1, description="Peak multiple that arms the trailing stop")
    liquidity_drop_threshold: float = Field(default=40, ge=1, le=100, description="Liquidity drop that exits (%)")
    liquidity_drop_window: float = Field(default=600, gt=0, description="Liquidity drop window (seconds)")
    liquidity_history_seconds: float = Field(default=1800, gt=0, description="Liquidity history retention (seconds)")
    wallet_history_size: int = Field(default=10, ge=2, description="Wallet-intelligence samples kept per position")

    # Wallet classification
    old_wallet_min_age: float = Field(default=15_552_000, gt=0, description="Old wallet age (seconds, ~6 months)")
    old_wallet_min_txns: int = Field(default=100, ge=1)
    old_wallet_min_contracts: int = Field(default=20, ge=1)
    max_wallets_per_analysis: int = Field(default=50, ge=1, le=500)

    # Social
    social_spike_threshold: float = Field(default=10, gt=0, description="Mentions in the last hour that count as a spike")
    social_spam_threshold: float = Field(default=0.3, ge=0, le=1, description="Repeat-poster ratio tolerated for validation")

    # Caching and pacing
    api_rate_limit_per_minute: int = Field(default=60, ge=1, le=6000)
    cache_time_seconds: float = Field(default=30, ge=1, le=3600, description="Market scan cache max-age")
    fresh_pool_cache_seconds: float = Field(default=15, ge=1, le=3600)
    wallet_cache_seconds: float = Field(default=3600, ge=1, le=86_400)
    wallet_request_interval: float = Field(default=0.2, ge=0, description="Explorer/RPC pacing (requests wait)")
    social_cache_seconds: float = Field(default=300, ge=5, le=3600)
    social_request_interval: float = Field(default=2.0, ge=0, description="Social pacing (early requests are skipped)")

    # Continuous radar
    scan_interval_seconds: float = Field(default=60, ge=1)

    class Config:
        extra = 'forbid'

    @validator('profit_targets')
    def validate_profit_targets(cls, v):
        if len(v) != 3:
            raise ValueError("profit_targets needs exactly three multiples (info, trim, exit)")
        if any(t <= 1 for t in v):
            raise ValueError("profit targets must be above 1x")
        if not (v[0] < v[1] < v[2]):
            raise ValueError("profit targets must be strictly ascending")
        return v

    @validator('liquidity_history_seconds')
    def validate_history_covers_window(cls, v, values):
        window = values.get('liquidity_drop_window')
        if window is not None and v < window:
            raise ValueError("liquidity history must cover the liquidity drop window")
        return v

    @property
    def market_request_interval(self) -> float:
        """Minimum seconds between requests to one market-data host."""
        return 60.0 / self.api_rate_limit_per_minute

    def apply(self, updates: Dict[str, Any]) -> "Policy":
        """Return a new policy with *updates* applied, or raise PolicyViolation."""
        merged = {**self.model_dump(), **updates}
        try:
            policy = Policy(**merged)
        except ValidationError as e:
            raise PolicyViolation(
                f"Policy update rejected ({e.error_count()} error(s))", errors=e.errors()
            ) from e
        logger.info(f"Policy updated: {sorted(updates)}")
        return policy

    def summary(self) -> str:
        """Human-readable policy summary."""
        info, trim, exit_ = self.profit_targets
        months = self.old_wallet_min_age / 2_592_000
        lines = [
            "## Policy",
            "",
            "### Discovery",
            f"- Min Liquidity: ${self.min_liquidity:,.0f}",
            f"- Min Conditions: {self.min_conditions_to_pass}",
            f"- Buy Pressure Threshold: {self.buy_pressure_threshold * 100:.0f}%",
            "",
            "### Exit Triggers",
            f"- Profit Targets: {info:g}x (info), {trim:g}x (trim), {exit_:g}x (exit)",
            f"- Trailing Stop: {self.trailing_stop_percent:g}% from peak (after {self.trailing_stop_activation:g}x)",
            f"- Liquidity Drop: {self.liquidity_drop_threshold:g}% in {self.liquidity_drop_window / 60:g} minutes",
            "",
            "### Wallet Classification",
            f"- Old Wallet: >= {months:g} months OR {self.old_wallet_min_txns}+ txns "
            f"OR {self.old_wallet_min_contracts}+ contracts",
            "",
            "### Rate Limits",
            f"- API Rate: {self.api_rate_limit_per_minute}/min",
            f"- Cache: {self.cache_time_seconds:g}s",
        ]
        return "\n".join(lines)
