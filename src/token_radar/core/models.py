"""Core data models for the token radar."""

from datetime import datetime
from typing import Dict, List, Optional, Union

from pydantic import BaseModel, Field, validator

from .enums import (
    Chain, EVM_CHAINS, ExitAction, ExitReason, FlagSeverity, FlagType,
    PositionStatus, ScanProfile, Sentiment, SignalConfidence,
)

# Evidence payloads are a closed variant: numeric, text, or a list of text.
EvidenceValue = Union[float, str, List[str]]


class Scores(BaseModel):
    """Sub-scores and composite, each in [0, 100]."""

    momentum: float = Field(default=0.0, ge=0, le=100, description="Momentum score")
    liquidity: float = Field(default=0.0, ge=0, le=100, description="Liquidity score")
    risk: float = Field(default=50.0, ge=0, le=100, description="Risk score (higher = safer)")
    confidence: float = Field(default=0.0, ge=0, le=100, description="Data confidence score")
    composite: float = Field(default=0.0, ge=0, le=100, description="Weighted composite score")


class Condition(BaseModel):
    """Outcome of a single named condition."""

    name: str = Field(description="Condition name")
    value: EvidenceValue = Field(description="Observed value")
    threshold: str = Field(description="Human-readable threshold")
    passed: bool = Field(description="Whether the condition passed")
    evidence: str = Field(description="Evidence string built from observed inputs")


class Flag(BaseModel):
    """Risk flag raised by the flag detector."""

    type: FlagType = Field(description="Flag type")
    severity: FlagSeverity = Field(description="Hard (disqualifying) or soft (advisory)")
    message: str = Field(description="Flag message")
    evidence: Dict[str, float] = Field(default_factory=dict, description="Numeric inputs that produced the flag")
    detected_at: datetime = Field(description="Detection time")

    @property
    def is_hard(self) -> bool:
        return self.severity == FlagSeverity.HARD


class SocialSignals(BaseModel):
    """Social mention statistics for a token."""

    mention_count: int = Field(default=0, ge=0, description="Mentions in the search window")
    mention_velocity: float = Field(default=0.0, ge=0, description="Mentions in the last hour")
    spike_detected: bool = Field(default=False, description="Velocity above spike threshold")
    spam_score: float = Field(default=0.0, ge=0, le=100, description="0-100, higher = more spam-like")
    sentiment: Sentiment = Field(default=Sentiment.UNKNOWN, description="Engagement-based sentiment")
    trending_score: float = Field(default=0.0, ge=0, le=100, description="Composite trending score")
    unique_posters: int = Field(default=0, ge=0, description="Distinct authors")
    repeat_posters_ratio: float = Field(default=0.0, ge=0, le=1, description="Share of posts from repeat authors")
    last_checked: Optional[datetime] = Field(default=None, description="When the signal was fetched")

    @classmethod
    def empty(cls, now: Optional[datetime] = None) -> "SocialSignals":
        """Empty-signal sentinel."""
        return cls(last_checked=now)

    @property
    def is_empty(self) -> bool:
        return self.mention_count == 0


class WalletClassification(BaseModel):
    """Heuristic classification of one wallet."""

    address: str = Field(description="Wallet address")
    is_old: bool = Field(default=False, description="Old by age, transaction count or contract count")
    is_profitable: bool = Field(default=False, description="Heuristic profitability, not ledger PnL")
    sample_size: int = Field(default=0, ge=0, description="Transactions inspected")
    first_activity: Optional[datetime] = Field(default=None, description="Earliest observed activity")
    distinct_contracts: Optional[int] = Field(default=None, description="Distinct counterparties")


class WalletIntelligence(BaseModel):
    """Aggregate wallet population statistics for a token's buyers."""

    total_buyers: int = Field(default=0, ge=0, description="Buyers submitted for analysis")
    classified_count: int = Field(default=0, ge=0, description="Buyers successfully classified")
    old_wallet_count: int = Field(default=0, ge=0)
    profitable_wallet_count: int = Field(default=0, ge=0)
    old_wallet_percent: float = Field(default=0.0, ge=0, le=100)
    profitable_wallet_percent: float = Field(default=0.0, ge=0, le=100)
    volume_share_from_old: float = Field(default=0.0, ge=0, le=100, description="Count-based approximation")
    volume_share_from_profitable: float = Field(default=0.0, ge=0, le=100, description="Count-based approximation")
    analyzed_at: datetime = Field(description="Analysis time")
    sample_old_wallets: List[str] = Field(default_factory=list, description="Up to 5 addresses for audit")
    sample_profitable_wallets: List[str] = Field(default_factory=list, description="Up to 5 addresses for audit")

    @validator('sample_old_wallets', 'sample_profitable_wallets')
    def limit_samples(cls, v):
        return v[:5]


class Candidate(BaseModel):
    """Token snapshot evaluated for discovery and risk."""

    # Identity
    chain: Chain = Field(description="Chain")
    address: str = Field(description="Token address")
    symbol: str = Field(default="UNKNOWN", description="Token symbol")
    name: str = Field(default="Unknown", description="Token name")
    pair_address: Optional[str] = Field(default=None, description="Pool/pair address")

    # Market snapshot
    price_usd: float = Field(default=0.0, ge=0, description="Price in USD")
    price_change_1h: float = Field(default=0.0, description="1h change %")
    price_change_6h: float = Field(default=0.0, description="6h change %")
    price_change_24h: float = Field(default=0.0, description="24h change %")
    volume_24h: float = Field(default=0.0, ge=0, description="24h volume USD")
    liquidity: float = Field(default=0.0, ge=0, description="Liquidity USD")
    fdv: float = Field(default=0.0, ge=0, description="Fully-diluted valuation USD")

    # Transaction snapshot (24h)
    buys_24h: int = Field(default=0, ge=0)
    sells_24h: int = Field(default=0, ge=0)
    unique_buyers_24h: int = Field(default=0, ge=0)
    unique_sellers_24h: int = Field(default=0, ge=0)
    pair_created_at: Optional[datetime] = Field(default=None, description="Pair creation time")

    # Computed, replaced wholesale on every evaluation
    scores: Scores = Field(default_factory=Scores)
    signals: List[str] = Field(default_factory=list)
    flags: List[Flag] = Field(default_factory=list)

    # Optional enrichment
    social: Optional[SocialSignals] = Field(default=None)
    wallet_intel: Optional[WalletIntelligence] = Field(default=None)

    discovered_at: datetime = Field(description="First seen")
    last_updated: datetime = Field(description="Last normalized")

    @property
    def key(self) -> str:
        """Identity key; EVM addresses are case-insensitive."""
        address = self.address.lower() if self.chain in EVM_CHAINS else self.address
        return f"{self.chain.value}-{address}"

    @property
    def total_txns(self) -> int:
        return self.buys_24h + self.sells_24h

    @property
    def buy_ratio(self) -> float:
        total = self.total_txns
        return self.buys_24h / total if total > 0 else 0.0

    @property
    def sell_ratio(self) -> float:
        total = self.total_txns
        return self.sells_24h / total if total > 0 else 0.0

    @property
    def hard_flags(self) -> List[Flag]:
        return [f for f in self.flags if f.is_hard]

    @property
    def soft_flags(self) -> List[Flag]:
        return [f for f in self.flags if not f.is_hard]

    def age_hours(self, now: datetime) -> Optional[float]:
        """Pair age in hours at *now*, or None when unknown."""
        if self.pair_created_at is None:
            return None
        return max(0.0, (now - self.pair_created_at).total_seconds() / 3600)


class DiscoveryResult(BaseModel):
    """Candidate plus its condition breakdown."""

    candidate: Candidate
    conditions: List[Condition] = Field(default_factory=list)
    conditions_passed: int = Field(default=0, ge=0)
    conditions_total: int = Field(default=0, ge=0)
    qualifies: bool = Field(default=False, description="Condition threshold met")
    profile: ScanProfile = Field(default=ScanProfile.DISCOVERY)

    @property
    def eligible(self) -> bool:
        """Qualifies and carries no hard flag."""
        return self.qualifies and not self.candidate.hard_flags


class ExitSignal(BaseModel):
    """Exit decision for a tracked position."""

    signal: ExitAction = Field(description="HOLD, TRIM or EXIT")
    reason: ExitReason = Field(description="Trigger that produced the signal")
    confidence: SignalConfidence = Field(default=SignalConfidence.MEDIUM)
    timestamp: datetime = Field(description="Signal time")
    evidence: Dict[str, EvidenceValue] = Field(default_factory=dict)
    explanation: str = Field(default="", description="Evidence-only explanation")


class TrackedPosition(BaseModel):
    """Position tracked for exit timing."""

    id: str = Field(description="chain-address key")
    candidate: Candidate = Field(description="Latest evaluated snapshot")

    entry_price: float = Field(ge=0)
    entry_time: datetime
    entry_liquidity: float = Field(ge=0)

    current_price: float = Field(ge=0)
    current_liquidity: float = Field(ge=0)
    current_multiple: float = Field(default=1.0, ge=0)

    peak_price: float = Field(ge=0)
    peak_multiple: float = Field(default=1.0, ge=0)
    peak_time: datetime

    exit_signal: ExitSignal
    exit_history: List[ExitSignal] = Field(default_factory=list)
    status: PositionStatus = Field(default=PositionStatus.ACTIVE)

    @property
    def is_active(self) -> bool:
        return self.status == PositionStatus.ACTIVE

    @property
    def pnl_percent(self) -> float:
        return (self.current_multiple - 1) * 100
